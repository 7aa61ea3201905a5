"""Atomic writes for task bodies, prompts and meta sidecars."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def _tmp_path(file_path: Path) -> Path:
    # Hidden and suffixed so directory listings never mistake it for a task
    return file_path.parent / f".{file_path.name}.{os.getpid()}.tmp"


def atomic_write_text(file_path: Path, content: str, max_retries: int = 3) -> None:
    """
    Write ``content`` to ``file_path`` through a temp file and a rename.

    A concurrent reader (a supervisor, another `hq ls`) sees either the old
    file or the complete new one.

    Raises:
        OSError: If every attempt fails
    """
    file_path = Path(file_path)
    tmp_file = _tmp_path(file_path)

    for attempt in range(1, max_retries + 1):
        try:
            tmp_file.write_text(content)
            tmp_file.rename(file_path)
            return
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            if attempt == max_retries:
                logger.error(f"Giving up writing {file_path} after {attempt} attempts: {e}")
                raise
            logger.warning(f"Write to {file_path} failed (attempt {attempt}/{max_retries}): {e}")


def atomic_write_yaml(file_path: Path, data: Any) -> None:
    """Dump plain data as block-style YAML, keeping key order."""
    atomic_write_text(file_path, yaml.safe_dump(data, sort_keys=False))


def atomic_write_model(file_path: Path, model: BaseModel) -> None:
    """Write a pydantic model as YAML, leaving out unset (None) fields."""
    atomic_write_yaml(file_path, model.model_dump(mode="json", exclude_none=True))
