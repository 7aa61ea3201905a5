"""Open a task in a detached window of its resolved session."""

import logging
import re
from typing import Sequence

from ..core.task import ResolvedContext
from .tmux import TmuxClient

logger = logging.getLogger(__name__)

# tmux reads ':' and '.' in a target as session/window/pane separators
_WINDOW_UNSAFE = re.compile(r"[:.\s]")


class SessionLauncher:
    """Window naming and the "run this detached in that session" action."""

    def __init__(self, tmux: TmuxClient, name_length: int = 8, max_suffix: int = 99):
        self.tmux = tmux
        self.name_length = name_length
        self.max_suffix = max_suffix

    def window_name(self, task_name: str) -> str:
        """Short window name for a task, unique across the whole server.

        The first ``name_length`` characters are used as-is when free. Otherwise
        a number from 2 up to ``max_suffix`` replaces the last character
        (``abcdefgh`` -> ``abcdefg2``). When every variant is taken the plain
        base is returned.
        """
        clean = _WINDOW_UNSAFE.sub("-", task_name)
        base = clean[: self.name_length]
        existing = set(self.tmux.list_window_names())
        if base not in existing:
            return base

        stem = clean[: self.name_length - 1]
        for n in range(2, self.max_suffix + 1):
            candidate = f"{stem}{n}"
            if candidate not in existing:
                return candidate

        logger.warning(f"No free window name for {task_name}, reusing {base}")
        return base

    def ensure_session(self, context: ResolvedContext) -> bool:
        """Create the context's session if missing. Returns True if it was created."""
        if self.tmux.session_exists(context.session):
            return False
        self.tmux.create_session(context.session, context.working_dir)
        return True

    def open(self, context: ResolvedContext, window_name: str, command: Sequence[str]) -> None:
        self.tmux.open_window(context.session, window_name, context.working_dir, command)
