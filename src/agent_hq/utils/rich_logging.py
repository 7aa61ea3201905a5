"""Logging setup with task context and readable formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class QueueLogFormatter(logging.Formatter):
    """Formatter that prefixes records with the task they concern."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, component: str, use_colors: bool = True):
        super().__init__()
        self.component = component
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        task_context = ""
        if getattr(record, "task_name", None):
            task_context = f"[{record.task_name}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        line = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.component}] {task_context}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class TaskLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with the current task name."""

    def __init__(self, logger: logging.Logger, task_name: Optional[str] = None):
        super().__init__(logger, {})
        self.task_name = task_name

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})
        if self.task_name:
            extra["task_name"] = self.task_name
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    component: str,
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    console: bool = False,
) -> logging.Logger:
    """
    Configure the ``agent_hq`` logger hierarchy.

    Args:
        component: Name shown in every line and used for the log file name
        log_dir: Directory for ``<component>.log``; no file handler when None
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console: Also log to stderr (colored when it is a terminal)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("agent_hq")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if console:
        use_colors = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(QueueLogFormatter(component, use_colors=use_colors))
        logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{component}.log")
        file_handler.setFormatter(QueueLogFormatter(component, use_colors=False))
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
