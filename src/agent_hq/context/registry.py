"""Lookup of named tasks, worktrees and tmux sessions.

Tasks come from a YAML file, trees from ``git worktree list`` on the shared bare
repository, sessions from the running tmux server. Lookups never raise: an
unreadable file or failing command means "nothing by that name".
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, TypeVar

import yaml

from ..core.config import RegistryConfig
from ..session.tmux import TmuxClient
from ..utils.subprocess_utils import SubprocessError, run_git_command

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RegisteredTask:
    name: str
    tree_name: Optional[str] = None
    session_name: Optional[str] = None


@dataclass(frozen=True)
class Worktree:
    path: Path
    name: str
    branch: Optional[str] = None
    head: Optional[str] = None


@dataclass(frozen=True)
class SessionRef:
    name: str


class Registry(Protocol):
    """What the binding resolver needs from the outside world."""

    def find_task(self, name_prefix: str) -> Optional[RegisteredTask]: ...

    def find_tree(self, name_prefix: str) -> Optional[Worktree]: ...

    def find_session(self, name_prefix: str) -> Optional[SessionRef]: ...


def match_prefix(items: Iterable[T], prefix: str, key) -> Optional[T]:
    """Exact name match first, else the first name extending ``prefix``.

    A prefix only matches within one path segment: ``auth`` matches
    ``auth-fix`` but not ``auth/login``.
    """
    items = list(items)
    for item in items:
        if key(item) == prefix:
            return item
    for item in items:
        name = key(item)
        if name.startswith(prefix) and "/" not in name[len(prefix):]:
            return item
    return None


def parse_worktree_porcelain(output: str, work_dir: Optional[Path] = None) -> List[Worktree]:
    """Parse ``git worktree list --porcelain`` output, skipping bare entries."""
    trees: List[Worktree] = []
    current: dict = {}

    def flush():
        if current.get("path") and not current.get("bare"):
            path = Path(current["path"])
            trees.append(Worktree(
                path=path,
                name=tree_name_for(path, work_dir),
                branch=current.get("branch"),
                head=current.get("head"),
            ))

    for line in output.splitlines():
        if line.startswith("worktree "):
            flush()
            current = {"path": line[len("worktree "):]}
        elif line.startswith("HEAD "):
            current["head"] = line[len("HEAD "):]
        elif line.startswith("branch "):
            current["branch"] = line[len("branch "):].removeprefix("refs/heads/")
        elif line == "bare":
            current["bare"] = True
    flush()
    return trees


def tree_name_for(path: Path, work_dir: Optional[Path]) -> str:
    """Tree name is the path relative to the work dir, else the directory name."""
    if work_dir is not None:
        try:
            return str(path.relative_to(work_dir))
        except ValueError:
            pass
    return path.name


class WorkspaceRegistry:
    """Registry backed by the tasks file, the bare repo and the tmux server."""

    def __init__(self, config: RegistryConfig, tmux: Optional[TmuxClient] = None):
        self.config = config
        self.tmux = tmux or TmuxClient()

    def tasks(self) -> List[RegisteredTask]:
        path = self.config.tasks_file
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return []
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read tasks file {path}: {e}")
            return []

        entries = data.get("tasks", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            logger.warning(f"Tasks file {path} has no 'tasks' list")
            return []

        tasks = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("name"):
                logger.warning(f"Skipping malformed task entry in {path}: {entry!r}")
                continue
            tasks.append(RegisteredTask(
                name=str(entry["name"]),
                tree_name=entry.get("tree"),
                session_name=entry.get("session"),
            ))
        return tasks

    def trees(self) -> List[Worktree]:
        try:
            result = run_git_command(
                ["worktree", "list", "--porcelain"],
                cwd=self.config.repo_path,
            )
        except (SubprocessError, OSError) as e:
            logger.warning(f"Could not list worktrees in {self.config.repo_path}: {e}")
            return []
        return parse_worktree_porcelain(result.stdout, self.config.work_dir)

    def sessions(self) -> List[SessionRef]:
        try:
            return [SessionRef(name) for name in self.tmux.list_session_names()]
        except (SubprocessError, OSError) as e:
            logger.warning(f"Could not list tmux sessions: {e}")
            return []

    def find_task(self, name_prefix: str) -> Optional[RegisteredTask]:
        return match_prefix(self.tasks(), name_prefix, key=lambda t: t.name)

    def find_tree(self, name_prefix: str) -> Optional[Worktree]:
        return match_prefix(self.trees(), name_prefix, key=lambda t: t.name)

    def find_session(self, name_prefix: str) -> Optional[SessionRef]:
        return match_prefix(self.sessions(), name_prefix, key=lambda s: s.name)
