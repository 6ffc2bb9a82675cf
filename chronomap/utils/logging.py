"""
Logging configuration for chronomap.

The library only ever calls `logger.<level>(...)`; sinks are configured by the
host application, or by the CLI through setup_logging().
"""

import sys
from pathlib import Path

from loguru import logger

from chronomap.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def _resolve_level(level: str | None) -> str:
    name = (level or settings.log_level).upper()
    try:
        logger.level(name)
    except ValueError:
        raise ValueError(f"Unknown log level: {name}") from None
    return name


def setup_logging(
    level: str | None = None,
    log_file: Path | str | None = None,
    rotation: str = "10 MB",
    retention: str = "1 week",
    serialize: bool = False,
) -> list[int]:
    """
    Replace loguru's sinks with a console sink and an optional file sink.

    Args:
        level: Log level name (defaults to settings.log_level)
        log_file: Optional path of a rotating, gz-compressed log file
        rotation: When to rotate the file (e.g. "10 MB", "1 day")
        retention: How long rotated files are kept (e.g. "1 week")
        serialize: Write the file sink as JSON lines

    Returns:
        The ids of the added sinks
    """
    level = _resolve_level(level)
    logger.remove()

    sink_ids = [logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink_ids.append(
            logger.add(
                log_file,
                level=level,
                format=FILE_FORMAT,
                rotation=rotation,
                retention=retention,
                compression="gz",
                serialize=serialize,
            )
        )

    logger.debug(f"Logging configured: level={level}, file={log_file or '-'}")
    return sink_ids
