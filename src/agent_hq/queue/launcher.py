"""Claim a pending task and start it in its own tmux window.

The window runs a supervisor process (``python -m agent_hq.queue.supervisor``)
that feeds the prompt to the agent, files the task as done/failed from the exit
status, and then hands the window over to an interactive shell.
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional, Sequence

from ..context.resolver import BindingResolver
from ..core.state_machine import Event, transition
from ..core.task import TaskMeta, TaskState, parse_header
from ..session.launcher import SessionLauncher
from .store import TaskStore

logger = logging.getLogger(__name__)

SUPERVISOR_MODULE = "agent_hq.queue.supervisor"


class QueueLauncher:
    """Runs the launch sequence for one pending task.

    The sequence is best-effort: the task is claimed (moved to running) before
    anything else happens, so a crash part-way leaves it in running with no
    window behind it.
    """

    def __init__(
        self,
        store: TaskStore,
        resolver: BindingResolver,
        sessions: SessionLauncher,
        agent_command: Sequence[str] = ("claude",),
        shell: Optional[str] = None,
        log_dir: Optional[Path] = None,
        python: str = sys.executable,
    ):
        self.store = store
        self.resolver = resolver
        self.sessions = sessions
        self.agent_command = list(agent_command)
        self.shell = shell
        self.log_dir = log_dir
        self.python = python

    def supervisor_command(self, name: str) -> List[str]:
        cmd = [self.python, "-m", SUPERVISOR_MODULE, "--root", str(self.store.root)]
        if self.log_dir is not None:
            cmd += ["--log-dir", str(self.log_dir)]
        return cmd + [name]

    def launch(self, name: str, cwd: Optional[Path] = None) -> Optional[TaskMeta]:
        """Launch ``name`` if it is pending.

        Returns the written meta, or None when the task was not pending or another
        runner claimed it first.
        """
        if not self.store.exists(name, TaskState.PENDING):
            return None

        dst = transition(TaskState.PENDING, Event.LAUNCH)
        if not self.store.move(name, TaskState.PENDING, dst):
            logger.info(f"Task {name} was claimed by another runner")
            return None

        body = self.store.read_body(name, dst) or ""
        binding, text = parse_header(body)
        context = self.resolver.resolve(binding, cwd=cwd)
        logger.info(
            f"Resolved {name} to session {context.session} in {context.working_dir}"
        )

        self.sessions.ensure_session(context)
        self.store.write_prompt(name, text.strip())

        window = self.sessions.window_name(name)
        meta = TaskMeta(
            tmux_session=context.session,
            tmux_window=window,
            started_at=datetime.now(UTC),
            working_dir=str(context.working_dir),
            binding=None if binding.is_empty() else binding,
            agent_command=self.agent_command,
            shell=self.shell,
        )
        self.store.write_meta(name, dst, meta)

        try:
            self.sessions.open(context, window, self.supervisor_command(name))
        except Exception:
            logger.exception(f"Failed to open window for {name}; it stays in running")
            raise

        logger.info(f"Launched {name} in {meta.target}")
        return meta
