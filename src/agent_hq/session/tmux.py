"""Thin client over the tmux binary."""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from ..utils.subprocess_utils import run_command

logger = logging.getLogger(__name__)


class TmuxClient:
    """Sessions and windows on a single tmux server.

    Probes (has-session, list-*) and kill-window tolerate failure and report it
    in the return value; creating sessions and windows raises SubprocessError.
    A missing tmux binary surfaces as FileNotFoundError.
    """

    def __init__(self, executable: str = "tmux", socket: Optional[str] = None):
        self.executable = executable
        self.socket = socket

    def _cmd(self, *args: str) -> List[str]:
        prefix = [self.executable]
        if self.socket:
            prefix += ["-L", self.socket]
        return prefix + list(args)

    def _run(self, *args: str, check: bool = False) -> subprocess.CompletedProcess:
        return run_command(self._cmd(*args), check=check, timeout=15)

    def session_exists(self, name: str) -> bool:
        # '=' forces an exact match instead of tmux's prefix matching
        return self._run("has-session", "-t", f"={name}").returncode == 0

    def create_session(self, name: str, working_dir: Path) -> None:
        self._run("new-session", "-d", "-s", name, "-c", str(working_dir), check=True)
        logger.info(f"Created tmux session {name} in {working_dir}")

    def open_window(
        self,
        session: str,
        window_name: str,
        working_dir: Path,
        command: Sequence[str],
    ) -> None:
        """Open a detached window in ``session`` running ``command``."""
        self._run(
            "new-window",
            "-d",
            "-t", f"={session}:",
            "-n", window_name,
            "-c", str(working_dir),
            shlex.join(command),
            check=True,
        )
        logger.info(f"Opened window {session}:{window_name}")

    def kill_window(self, session: str, window_name: str) -> bool:
        result = self._run("kill-window", "-t", f"={session}:{window_name}")
        if result.returncode != 0:
            logger.info(
                f"kill-window {session}:{window_name} failed: {(result.stderr or '').strip()}"
            )
            return False
        return True

    def list_window_names(self) -> List[str]:
        """Window names across every session on the server."""
        result = self._run("list-windows", "-a", "-F", "#{window_name}")
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.splitlines() if line]

    def list_session_names(self) -> List[str]:
        result = self._run("list-sessions", "-F", "#{session_name}")
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.splitlines() if line]

    def attach(self, target: str) -> int:
        """Switch to ``target`` when inside tmux, otherwise attach to it."""
        if os.environ.get("TMUX"):
            args = self._cmd("switch-client", "-t", target)
        else:
            args = self._cmd("attach-session", "-t", target)
        return run_command(args, capture_output=False, check=False).returncode
