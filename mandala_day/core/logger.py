"""Logging setup for the Mandala Day core and CLI.

Two loguru sinks:
- stderr, colored, at LOG_LEVEL. The CLI prints its tables to stdout, so
  log lines never interleave with command output.
- an optional rotating file at LOG_FILE for the long-running ``run`` loop.
  It is enqueued because SQL store writes log from worker threads.

Components tag their lines (``[STATUS_ENGINE]``, ``[NOTIFICATIONS v3]``,
``[INSTANCE_STORE]``) so one day's lifecycle can be followed with grep.
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZZ} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """Replace loguru's default handler with the Mandala Day sinks.

    Args:
        level: Minimum level for both sinks
        log_file: Path of the rotating file sink, or None for stderr only
        rotation: When the file rotates (e.g. "10 MB", "1 day")
        retention: How long rotated files are kept (e.g. "7 days")
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    logger.debug(f"Logger ready: level={level} file={log_file or '-'}")


def setup_logger_from_settings() -> None:
    """Configure the logger from LOG_LEVEL and LOG_FILE."""
    from mandala_day.config.settings import settings

    setup_logger(level=settings.log_level, log_file=settings.log_file)
