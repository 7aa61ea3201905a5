"""Core models and configuration."""

from .task import (
    Binding,
    QueueTask,
    ResolvedContext,
    STATE_ORDER,
    TaskMeta,
    TaskState,
)
from .state_machine import Event, InvalidTransitionError, QueueError, transition
from .config import QueueConfig, load_config

__all__ = [
    "Binding",
    "QueueTask",
    "ResolvedContext",
    "STATE_ORDER",
    "TaskMeta",
    "TaskState",
    "Event",
    "InvalidTransitionError",
    "QueueError",
    "transition",
    "QueueConfig",
    "load_config",
]
