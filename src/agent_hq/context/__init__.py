"""Binding resolution against named tasks, worktrees and sessions."""

from .registry import RegisteredTask, Registry, SessionRef, WorkspaceRegistry, Worktree
from .resolver import BindingResolver

__all__ = [
    "BindingResolver",
    "RegisteredTask",
    "Registry",
    "SessionRef",
    "WorkspaceRegistry",
    "Worktree",
]
