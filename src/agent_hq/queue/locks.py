"""Atomic mkdir lock held by a queue watcher."""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LockHeldError(RuntimeError):
    """Raised when another live process holds the lock."""

    def __init__(self, name: str, pid: Optional[int]):
        self.name = name
        self.pid = pid
        holder = f"PID {pid}" if pid else "another process"
        super().__init__(f"Lock '{name}' is held by {holder}")


class FileLock:
    """
    Atomic lock using mkdir.

    - mkdir is atomic on local filesystems, so only one process creates the dir
    - The holder's PID is stored inside for stale lock detection
    - A lock whose PID is gone is removed and re-acquired
    """

    def __init__(self, lock_dir: Path, name: str):
        self.lock_dir = Path(lock_dir)
        self.name = name
        self.lock_path = self.lock_dir / f"{name}.lock"
        self.pid_file = self.lock_path / "pid"
        self._acquired = False

    def holder_pid(self) -> Optional[int]:
        try:
            return int(self.pid_file.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def acquire(self, force: bool = False) -> bool:
        """
        Attempt to acquire the lock.

        Args:
            force: Take the lock even if a live process holds it

        Returns True if lock acquired, False otherwise.
        """
        if self.lock_path.exists():
            if force or self._is_stale_lock():
                logger.info(f"Removing {'held' if force else 'stale'} lock {self.name}")
                self._remove_lock()
            else:
                logger.debug(f"Lock {self.name} is held by another process")
                return False

        try:
            self.lock_path.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            logger.debug(f"Lock {self.name} already exists (race condition)")
            return False

        self.pid_file.write_text(str(os.getpid()))
        self._acquired = True
        logger.debug(f"Acquired lock {self.name} (PID: {os.getpid()})")
        return True

    def release(self) -> None:
        if self._acquired and self.lock_path.exists():
            self._remove_lock()
        self._acquired = False

    def _is_stale_lock(self) -> bool:
        """Check if lock is stale (process no longer exists)."""
        if not self.pid_file.exists():
            logger.warning(f"Lock {self.name} has no PID file (stale)")
            return True

        pid = self.holder_pid()
        if pid is None:
            logger.warning(f"Lock {self.name} has invalid PID (stale)")
            return True

        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            logger.warning(f"Lock {self.name} held by dead PID {pid} (stale)")
            return True
        except PermissionError:
            # Alive but owned by someone else
            return False
        return False

    def _remove_lock(self) -> None:
        try:
            shutil.rmtree(self.lock_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock directory {self.lock_path}: {e}")

    def __enter__(self):
        if not self.acquire():
            raise LockHeldError(self.name, self.holder_pid())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
