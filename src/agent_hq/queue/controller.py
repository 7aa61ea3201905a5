"""User- and poller-facing queue operations.

Every operation reports a one-line outcome as a QueueResult; "not found" and
"wrong state" are ordinary results, not exceptions. Filesystem and tmux
failures propagate to the caller.
"""

import logging
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..context.registry import WorkspaceRegistry
from ..context.resolver import BindingResolver
from ..core.config import QueueConfig
from ..core.state_machine import Event, can_transition, transition
from ..core.task import Binding, QueueTask, TaskState
from ..session.launcher import SessionLauncher
from ..session.tmux import TmuxClient
from ..utils.subprocess_utils import SubprocessError
from .launcher import QueueLauncher
from .locks import FileLock, LockHeldError
from .store import TaskStore

logger = logging.getLogger(__name__)

# Same status a supervisor records when its window is closed under it
KILLED_EXIT_CODE = 128 + signal.SIGHUP

WATCH_LOCK = "watch"


@dataclass
class QueueResult:
    ok: bool
    message: str
    name: Optional[str] = None


@dataclass
class TaskSummary:
    name: str
    state: TaskState
    preview: Optional[str] = None
    target: Optional[str] = None


class QueueController:
    """Promote, run, watch, kill, retry and clean tasks in one store."""

    def __init__(
        self,
        store: TaskStore,
        launcher: QueueLauncher,
        tmux: TmuxClient,
        poll_interval: int = 5,
    ):
        self.store = store
        self.launcher = launcher
        self.tmux = tmux
        self.poll_interval = poll_interval

    @classmethod
    def from_config(cls, config: QueueConfig, tmux: Optional[TmuxClient] = None) -> "QueueController":
        tmux = tmux or TmuxClient()
        store = TaskStore(config.root)
        resolver = BindingResolver(
            WorkspaceRegistry(config.registry, tmux),
            default_session=config.default_session,
        )
        sessions = SessionLauncher(
            tmux,
            name_length=config.window_name_length,
            max_suffix=config.max_window_suffix,
        )
        launcher = QueueLauncher(
            store,
            resolver,
            sessions,
            agent_command=config.agent_command,
            shell=config.resolve_shell(),
            log_dir=config.log_dir,
        )
        return cls(store, launcher, tmux, poll_interval=config.poll_interval)

    @property
    def lock_dir(self) -> Path:
        return self.store.root / ".locks"

    def _check(self, name: str, event: Event) -> Tuple[Optional[TaskState], Optional[QueueResult]]:
        """Locate ``name`` and confirm ``event`` applies to its state."""
        try:
            state = self.store.locate(name)
        except ValueError as e:
            return None, QueueResult(False, str(e), name)

        if state is None:
            return None, QueueResult(False, f"Task not found: {name}", name)
        if not can_transition(state, event):
            return state, QueueResult(
                False, f"Cannot {event.value} {name}: it is {state.value}", name
            )
        return state, None

    # -- creation ----------------------------------------------------------

    def add(
        self,
        text: str,
        wip: bool = False,
        binding: Optional[Binding] = None,
        name: Optional[str] = None,
    ) -> QueueResult:
        if not text or not text.strip():
            return QueueResult(False, "Task body is empty")

        state = TaskState.WIP if wip else TaskState.PENDING
        try:
            task = self.store.create(text, state=state, binding=binding, name=name)
        except ValueError as e:
            return QueueResult(False, str(e), name)
        return QueueResult(True, f"Added {task.name} to {state.value}", task.name)

    def promote(self, name: str) -> QueueResult:
        state, error = self._check(name, Event.PROMOTE)
        if error:
            return error

        if not self.store.move(name, state, transition(state, Event.PROMOTE)):
            return QueueResult(False, f"{name} moved before it could be promoted", name)
        return QueueResult(True, f"Promoted: {name}", name)

    # -- launching -----------------------------------------------------------

    def run(self, name: Optional[str] = None, cwd: Optional[Path] = None) -> List[QueueResult]:
        """Launch one pending task, or every pending task in name order."""
        if name is not None:
            _, error = self._check(name, Event.LAUNCH)
            if error:
                return [error]
            return [self._launch(name, cwd)]

        return [self._launch(pending, cwd) for pending in self.store.list(TaskState.PENDING)]

    def _launch(self, name: str, cwd: Optional[Path]) -> QueueResult:
        try:
            meta = self.launcher.launch(name, cwd=cwd)
        except SubprocessError as e:
            return QueueResult(False, f"Failed to launch {name} (left in running): {e.stderr.strip() or e}", name)

        if meta is None:
            return QueueResult(False, f"{name} is no longer pending", name)
        return QueueResult(
            True, f"Launched: {name} -> {meta.target} ({meta.working_dir})", name
        )

    def watch(
        self,
        interval: Optional[int] = None,
        force: bool = False,
        max_passes: Optional[int] = None,
        on_result: Optional[Callable[[QueueResult], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        cwd: Optional[Path] = None,
    ) -> int:
        """Poll pending and launch what appears until interrupted.

        Only one watcher per queue root runs at a time: a second one refuses to
        start (LockHeldError) unless ``force`` is set. The lock guards watchers
        only. Launches themselves stay lock-free, so a watcher racing `hq run`
        still settles through the pending -> running rename, and the loser skips
        the task.

        Returns:
            Number of tasks launched (only reachable with ``max_passes``)

        Raises:
            LockHeldError: If another live watcher holds the lock
        """
        interval = interval or self.poll_interval
        sleep = sleep or time.sleep
        lock = FileLock(self.lock_dir, WATCH_LOCK)
        if not lock.acquire(force=force):
            raise LockHeldError(WATCH_LOCK, lock.holder_pid())

        launched = 0
        passes = 0
        try:
            while True:
                for result in self.run(cwd=cwd):
                    if result.ok:
                        launched += 1
                    if on_result:
                        on_result(result)
                passes += 1
                if max_passes is not None and passes >= max_passes:
                    return launched
                sleep(interval)
        finally:
            lock.release()

    # -- running tasks ---------------------------------------------------------

    def kill(self, name: str) -> QueueResult:
        """Close a running task's window and file it as failed."""
        state, error = self._check(name, Event.KILL)
        if error:
            return error

        meta = self.store.mark_finished(name, state, KILLED_EXIT_CODE)
        window_closed = False
        if meta is None:
            logger.warning(f"No meta for running task {name}; cannot close its window")
        else:
            window_closed = self.tmux.kill_window(meta.tmux_session, meta.tmux_window)

        dst = transition(state, Event.KILL)
        moved = self.store.move(name, state, dst)
        self.store.remove_prompt(name)
        # The supervisor may have filed it first after losing its window
        if not moved and self.store.locate(name) != dst:
            return QueueResult(False, f"{name} left running before it could be killed", name)

        detail = f"closed {meta.target}" if window_closed else "no live window"
        return QueueResult(True, f"Killed: {name} ({detail})", name)

    def attach(self, name: str) -> QueueResult:
        """Switch or attach the terminal to a running task's window."""
        try:
            state = self.store.locate(name)
        except ValueError as e:
            return QueueResult(False, str(e), name)
        if state is None:
            return QueueResult(False, f"Task not found: {name}", name)
        if state != TaskState.RUNNING:
            return QueueResult(False, f"Cannot attach to {name}: it is {state.value}", name)

        meta = self.store.read_meta(name, state)
        if meta is None:
            return QueueResult(False, f"No window recorded for {name}", name)

        if self.tmux.attach(meta.target) != 0:
            return QueueResult(False, f"Could not attach to {meta.target}", name)
        return QueueResult(True, f"Attached to {meta.target}", name)

    # -- finished tasks --------------------------------------------------------

    def retry(self, name: str) -> QueueResult:
        """Send a done/failed task back to pending without its old meta."""
        state, error = self._check(name, Event.RETRY)
        if error:
            return error

        dst = transition(state, Event.RETRY)
        if not self.store.move(name, state, dst):
            return QueueResult(False, f"{name} moved before it could be retried", name)
        self.store.discard_meta(name, dst)
        return QueueResult(True, f"Retrying: {name} ({state.value} -> pending)", name)

    def clean(self) -> int:
        """Delete everything in done and failed. Returns the number of files removed."""
        return self.store.clean()

    # -- inspection --------------------------------------------------------------

    def list_tasks(self, state: Optional[TaskState] = None) -> List[TaskSummary]:
        summaries = []
        for name, task_state in self.store.all_tasks():
            if state is not None and task_state != state:
                continue
            target = None
            if task_state == TaskState.RUNNING:
                meta = self.store.read_meta(name, task_state)
                target = meta.target if meta else None
            summaries.append(TaskSummary(
                name=name,
                state=task_state,
                preview=self.store.read_preview(name, task_state),
                target=target,
            ))
        return summaries

    def show(self, name: str) -> Optional[QueueTask]:
        return self.store.load(name)
