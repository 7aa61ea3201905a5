"""Directory-backed task store.

The queue root holds one directory per lifecycle state; a task's state is the
directory its ``<name>.md`` file sits in. Every transition is a rename, which
the filesystem performs atomically per file. No locks are taken: the source
file existing at rename time is what decides who wins a race.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from ..core.task import (
    Binding,
    QueueTask,
    STATE_ORDER,
    TERMINAL_STATES,
    TaskMeta,
    TaskState,
    compose_body,
    derive_name,
    preview_line,
)
from ..utils.atomic_io import atomic_write_model, atomic_write_text
from ..utils.validators import validate_task_name

logger = logging.getLogger(__name__)

TASK_SUFFIX = ".md"
META_SUFFIX = ".meta"
PROMPT_SUFFIX = ".prompt"


class TaskStore:
    """Five state directories under a root, plus atomic single-task moves."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self._dirs: Optional[Dict[TaskState, Path]] = None

    @property
    def dirs(self) -> Dict[TaskState, Path]:
        """State directories, created on first access."""
        if self._dirs is None:
            dirs = {}
            for state in STATE_ORDER:
                path = self.root / state.value
                path.mkdir(parents=True, exist_ok=True)
                dirs[state] = path
            self._dirs = dirs
        return self._dirs

    def state_dir(self, state: TaskState) -> Path:
        return self.dirs[TaskState(state)]

    def task_path(self, name: str, state: TaskState) -> Path:
        return self.state_dir(state) / f"{validate_task_name(name)}{TASK_SUFFIX}"

    def meta_path(self, name: str, state: TaskState) -> Path:
        return self.state_dir(state) / f"{validate_task_name(name)}{META_SUFFIX}"

    def prompt_path(self, name: str) -> Path:
        return self.state_dir(TaskState.RUNNING) / f"{validate_task_name(name)}{PROMPT_SUFFIX}"

    # -- queries ---------------------------------------------------------

    def list(self, state: TaskState) -> List[str]:
        """Task names in a state, sorted so repeated polls see a stable order."""
        return sorted(p.stem for p in self.state_dir(state).glob(f"*{TASK_SUFFIX}"))

    def exists(self, name: str, state: TaskState) -> bool:
        return self.task_path(name, state).exists()

    def locate(self, name: str) -> Optional[TaskState]:
        """The state holding ``name``, searched in lifecycle order."""
        for state in STATE_ORDER:
            if self.exists(name, state):
                return state
        return None

    def all_tasks(self) -> List[Tuple[str, TaskState]]:
        return [(name, state) for state in STATE_ORDER for name in self.list(state)]

    def snapshot(self) -> Dict[str, TaskState]:
        """Name -> state for every task on disk.

        A name found in two directories means something moved files behind
        the store's back; the earlier state in lifecycle order is reported.
        """
        table: Dict[str, TaskState] = {}
        for name, state in self.all_tasks():
            if name in table:
                logger.warning(
                    f"Task {name} present in both {table[name].value} and {state.value}"
                )
                continue
            table[name] = state
        return table

    def read_body(self, name: str, state: TaskState) -> Optional[str]:
        try:
            return self.task_path(name, state).read_text()
        except FileNotFoundError:
            return None

    def read_preview(self, name: str, state: TaskState) -> Optional[str]:
        """First content line of the body, truncated; None when there is none."""
        body = self.read_body(name, state)
        if body is None:
            return None
        return preview_line(body)

    def load(self, name: str, state: Optional[TaskState] = None) -> Optional[QueueTask]:
        state = state or self.locate(name)
        if state is None:
            return None
        body = self.read_body(name, state)
        if body is None:
            return None
        return QueueTask(name=name, state=state, body=body, meta=self.read_meta(name, state))

    def read_meta(self, name: str, state: TaskState) -> Optional[TaskMeta]:
        path = self.meta_path(name, state)
        try:
            data = yaml.safe_load(path.read_text())
        except FileNotFoundError:
            return None
        except yaml.YAMLError as e:
            logger.warning(f"Unreadable meta sidecar {path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Meta sidecar {path} is not a mapping")
            return None
        try:
            return TaskMeta(**data)
        except ValidationError as e:
            logger.warning(f"Invalid meta sidecar {path}: {e}")
            return None

    # -- mutations -------------------------------------------------------

    def move(self, name: str, src: TaskState, dst: TaskState) -> bool:
        """Move a task's primary file, then its meta sidecar, between states.

        Returns False without touching anything when the primary file is not in
        ``src`` (already moved by someone else, or never there).
        """
        src_path = self.task_path(name, src)
        try:
            src_path.rename(self.task_path(name, dst))
        except FileNotFoundError:
            logger.debug(f"Move {name} {src.value}->{dst.value} skipped: not in {src.value}")
            return False

        meta = self.meta_path(name, src)
        try:
            meta.rename(self.meta_path(name, dst))
        except FileNotFoundError:
            pass

        logger.info(f"Moved {name}: {src.value} -> {dst.value}")
        return True

    def write_meta(self, name: str, state: TaskState, meta: TaskMeta) -> Path:
        path = self.meta_path(name, state)
        atomic_write_model(path, meta)
        return path

    def mark_finished(self, name: str, state: TaskState, exit_code: int) -> Optional[TaskMeta]:
        """Stamp finish time and exit code onto an existing meta sidecar."""
        meta = self.read_meta(name, state)
        if meta is None:
            return None
        meta = meta.model_copy(update={"finished_at": datetime.now(UTC), "exit_code": exit_code})
        self.write_meta(name, state, meta)
        return meta

    def discard_meta(self, name: str, state: TaskState) -> bool:
        try:
            self.meta_path(name, state).unlink()
            return True
        except FileNotFoundError:
            return False

    def write_prompt(self, name: str, prompt: str) -> Path:
        path = self.prompt_path(name)
        atomic_write_text(path, prompt)
        return path

    def remove_prompt(self, name: str) -> None:
        try:
            self.prompt_path(name).unlink()
        except FileNotFoundError:
            pass

    def unique_name(self, base: str) -> str:
        """``base`` if unused in every state, else ``base-2``, ``base-3``, ..."""
        taken = set(self.snapshot())
        if base not in taken:
            return base
        counter = 2
        while f"{base}-{counter}" in taken:
            counter += 1
        return f"{base}-{counter}"

    def create(
        self,
        text: str,
        state: TaskState = TaskState.PENDING,
        binding: Optional[Binding] = None,
        name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> QueueTask:
        """File a new task in ``wip`` or ``pending``.

        The name is ``name`` if given, otherwise derived from the body; either way
        a numeric suffix is added when it collides with an existing task.
        """
        state = TaskState(state)
        if state not in (TaskState.WIP, TaskState.PENDING):
            raise ValueError(f"New tasks go to wip or pending, not {state.value}")

        body = compose_body(text, binding)
        base = validate_task_name(name) if name else derive_name(body, now=now)
        task_name = self.unique_name(base)

        atomic_write_text(self.task_path(task_name, state), body)
        logger.info(f"Created task {task_name} in {state.value}")
        return QueueTask(name=task_name, state=state, body=body)

    def clean(self) -> int:
        """Delete every file in the terminal-state directories. Returns the count."""
        removed = 0
        for state in sorted(TERMINAL_STATES, key=STATE_ORDER.index):
            for path in sorted(self.state_dir(state).iterdir()):
                if path.is_file():
                    path.unlink()
                    removed += 1
        logger.info(f"Cleaned {removed} files from done/failed")
        return removed
