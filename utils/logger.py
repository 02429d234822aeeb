"""
Logger Configuration
Unified logging setup and structured pipeline events
"""
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.logging import RichHandler
from rich.console import Console


console = Console()

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_FORMAT_SIMPLE = "%(message)s"

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER_NAME = "mentionflow"
EVENT_LOGGER_NAME = f"{ROOT_LOGGER_NAME}.events"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Configure a logger.

    Args:
        name: logger name
        level: log level
        log_file: optional file name under logs/
        use_rich: pretty console output through Rich

    Returns:
        the configured Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # avoid stacking handlers on repeated setup
    if logger.handlers:
        return logger

    if use_rich:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE))
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_path = LOG_DIR / log_file

        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger, configuring it on first use.

    Args:
        name: logger name

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logger(name)

    return logger


def _format_field(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text):
        return repr(text)
    return text


def emit_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """
    Emit one structured pipeline event as a key=value line.

    Every business-level milestone (run triggered, callback received,
    ingestion counters, enrichment results, queue drops) goes through here so
    that log shipping only has to parse one logger.
    """
    parts = [event]
    for key in sorted(fields):
        value = fields[key]
        if value is None:
            continue
        parts.append(f"{key}={_format_field(value)}")
    logging.getLogger(EVENT_LOGGER_NAME).log(level, " ".join(parts))
