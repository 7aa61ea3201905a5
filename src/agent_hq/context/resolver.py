"""Turn a task's declared names into the session and directory it runs in."""

import logging
from pathlib import Path
from typing import Optional

from ..core.task import Binding, ResolvedContext
from .registry import Registry

logger = logging.getLogger(__name__)


class BindingResolver:
    """Resolves bindings through the registry; never fails.

    Precedence: a resolvable ``task_name`` supplies session and tree; otherwise a
    resolvable ``session_name`` supplies the session. A resolvable ``tree_name``
    always wins the working directory. Whatever stays unresolved falls back to
    the shared default session and the caller's current directory.
    """

    def __init__(self, registry: Registry, default_session: str):
        self.registry = registry
        self.default_session = default_session

    def resolve(self, binding: Optional[Binding], cwd: Optional[Path] = None) -> ResolvedContext:
        cwd = Path(cwd) if cwd is not None else Path.cwd()
        if binding is None or binding.is_empty():
            return ResolvedContext(session=self.default_session, working_dir=cwd)

        session: Optional[str] = None
        working_dir: Optional[Path] = None

        if binding.task_name:
            task = self.registry.find_task(binding.task_name)
            if task is None:
                logger.info(f"Task binding '{binding.task_name}' not found, ignoring")
            else:
                session = task.session_name
                if task.tree_name:
                    tree = self.registry.find_tree(task.tree_name)
                    if tree is not None:
                        working_dir = tree.path

        if session is None and binding.session_name:
            found = self.registry.find_session(binding.session_name)
            if found is None:
                logger.info(f"Session binding '{binding.session_name}' not found, ignoring")
            else:
                session = found.name

        if binding.tree_name:
            tree = self.registry.find_tree(binding.tree_name)
            if tree is None:
                logger.info(f"Tree binding '{binding.tree_name}' not found, ignoring")
            else:
                working_dir = tree.path

        return ResolvedContext(
            session=session or self.default_session,
            working_dir=working_dir or cwd,
        )
