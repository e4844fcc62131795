"""Mandala Day session core: daily practice cycle, status lifecycle and reminders."""

__version__ = "0.1.0"
