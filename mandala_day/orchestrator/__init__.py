"""Session orchestration - the public surface consumed by the UI layer."""

from mandala_day.orchestrator.history import DaySummary
from mandala_day.orchestrator.runner import SessionRunner
from mandala_day.orchestrator.selection import select_next_due
from mandala_day.orchestrator.session_orchestrator import SessionOrchestrator

__all__ = [
    "DaySummary",
    "SessionOrchestrator",
    "SessionRunner",
    "select_next_due",
]
