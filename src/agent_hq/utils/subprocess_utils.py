"""Running the external commands the queue depends on (tmux, git)."""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class SubprocessError(Exception):
    """A command exited non-zero or did not finish in time."""

    def __init__(self, cmd: str, returncode: int, stderr: str, stdout: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = stderr.strip().splitlines()[0] if stderr.strip() else "no output"
        super().__init__(f"`{cmd}` exited {returncode}: {detail}")


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    capture_output: bool = True,
    check: bool = True,
    timeout: Optional[int] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run ``cmd`` and return its result.

    Args:
        cmd: Argument vector; never passed through a shell
        cwd: Working directory
        capture_output: Capture stdout/stderr as text (off for interactive attach)
        check: Raise on non-zero exit
        timeout: Seconds before the command is abandoned
        env: Replacement environment

    Raises:
        SubprocessError: On non-zero exit with ``check`` set, or on timeout
        FileNotFoundError: If the executable does not exist
    """
    cmd_str = shlex.join(cmd)
    logger.debug(f"Running: {cmd_str}")
    try:
        result = subprocess.run(
            list(cmd),
            cwd=cwd,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            env=env,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {cmd_str}")
        raise SubprocessError(cmd_str, -1, f"timed out after {timeout}s") from None

    if check and result.returncode != 0:
        raise SubprocessError(
            cmd=cmd_str,
            returncode=result.returncode,
            stderr=result.stderr or "",
            stdout=result.stdout or "",
        )

    return result


def run_git_command(
    args: List[str],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: int = 30,
) -> subprocess.CompletedProcess:
    """Run ``git <args>`` in ``cwd``, logging failures with the repo path."""
    try:
        return run_command(["git", *args], cwd=cwd, check=check, timeout=timeout)
    except SubprocessError as e:
        logger.error(f"git {' '.join(args)} failed in {cwd}: {e}")
        raise
