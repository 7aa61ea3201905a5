"""Shared utility functions for the queue."""

from .atomic_io import atomic_write_model, atomic_write_text, atomic_write_yaml
from .subprocess_utils import (
    SubprocessError,
    run_command,
    run_git_command,
)
from .rich_logging import QueueLogFormatter, TaskLogger, setup_logging
from .validators import validate_task_name

__all__ = [
    # Atomic I/O
    "atomic_write_model",
    "atomic_write_text",
    "atomic_write_yaml",
    # Subprocess utilities
    "SubprocessError",
    "run_command",
    "run_git_command",
    # Logging
    "QueueLogFormatter",
    "TaskLogger",
    "setup_logging",
    # Validators
    "validate_task_name",
]
