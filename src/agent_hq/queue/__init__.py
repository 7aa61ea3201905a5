"""Directory-backed task queue."""

from .controller import QueueController, QueueResult, TaskSummary
from .launcher import QueueLauncher
from .locks import FileLock, LockHeldError
from .store import TaskStore

__all__ = [
    "FileLock",
    "LockHeldError",
    "QueueController",
    "QueueLauncher",
    "QueueResult",
    "TaskStore",
    "TaskSummary",
]
