"""Transition table for the task lifecycle.

Pure data plus lookups; the store applies the resulting moves on disk.
"""

from enum import Enum
from typing import Dict, Tuple

from .task import TaskState


class QueueError(Exception):
    """Base class for queue errors."""


class InvalidTransitionError(QueueError):
    """Raised when an event does not apply to the task's current state."""

    def __init__(self, state: TaskState, event: "Event"):
        self.state = state
        self.event = event
        allowed = ", ".join(s.value for s in states_accepting(event))
        super().__init__(
            f"cannot {event.value} a task in '{state.value}' (requires: {allowed})"
        )


class Event(str, Enum):
    PROMOTE = "promote"
    LAUNCH = "launch"
    SUCCEED = "succeed"
    FAIL = "fail"
    KILL = "kill"
    RETRY = "retry"


TRANSITIONS: Dict[Tuple[TaskState, Event], TaskState] = {
    (TaskState.WIP, Event.PROMOTE): TaskState.PENDING,
    (TaskState.PENDING, Event.LAUNCH): TaskState.RUNNING,
    (TaskState.RUNNING, Event.SUCCEED): TaskState.DONE,
    (TaskState.RUNNING, Event.FAIL): TaskState.FAILED,
    (TaskState.RUNNING, Event.KILL): TaskState.FAILED,
    (TaskState.DONE, Event.RETRY): TaskState.PENDING,
    (TaskState.FAILED, Event.RETRY): TaskState.PENDING,
}


def transition(state: TaskState, event: Event) -> TaskState:
    """Return the state an event leads to.

    Raises:
        InvalidTransitionError: If the event is not allowed from ``state``
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


def can_transition(state: TaskState, event: Event) -> bool:
    return (state, event) in TRANSITIONS


def states_accepting(event: Event) -> Tuple[TaskState, ...]:
    return tuple(src for (src, ev) in TRANSITIONS if ev == event)


def exit_event(exit_code: int) -> Event:
    """Map an agent process exit status to its lifecycle event."""
    return Event.SUCCEED if exit_code == 0 else Event.FAIL
