"""Queue task models and the task body text format."""

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEADER_DELIMITER = "---"
HEADER_KEYS = ("task_name", "tree_name", "session_name")

MAX_SLUG_LENGTH = 60
PREVIEW_WIDTH = 60
TIMESTAMP_NAME_FORMAT = "%Y%m%d%H%M%S"

_HEADER_LINE = re.compile(r"^\s*[A-Za-z_][A-Za-z0-9_]*\s*:")
_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


class TaskState(str, Enum):
    """Lifecycle states. Each one is also the name of a directory under the queue root."""
    WIP = "wip"
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# Search order for locate(); also the display order of `hq ls`
STATE_ORDER: Tuple[TaskState, ...] = (
    TaskState.WIP,
    TaskState.PENDING,
    TaskState.RUNNING,
    TaskState.DONE,
    TaskState.FAILED,
)

TERMINAL_STATES = frozenset({TaskState.DONE, TaskState.FAILED})


class Binding(BaseModel):
    """Names a task declares in its header; resolved to a context at launch."""

    model_config = ConfigDict(frozen=True)

    task_name: Optional[str] = None
    tree_name: Optional[str] = None
    session_name: Optional[str] = None

    @field_validator("task_name", "tree_name", "session_name", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def is_empty(self) -> bool:
        return not (self.task_name or self.tree_name or self.session_name)

    def to_header(self) -> str:
        """Render as a metadata header block, or an empty string when unbound."""
        if self.is_empty():
            return ""
        fields = self.model_dump(exclude_none=True)
        lines = [f"{key}: {fields[key]}" for key in HEADER_KEYS if key in fields]
        return "\n".join([HEADER_DELIMITER, *lines, HEADER_DELIMITER]) + "\n"


class ResolvedContext(BaseModel):
    """Concrete session and working directory a launch will use."""

    model_config = ConfigDict(frozen=True)

    session: str
    working_dir: Path


class TaskMeta(BaseModel):
    """Sidecar written when a task is launched; travels with the task afterwards."""

    tmux_session: str
    tmux_window: str
    started_at: datetime
    working_dir: str
    binding: Optional[Binding] = None
    # What the supervisor runs; recorded so it needs no config of its own
    agent_command: List[str] = Field(default_factory=lambda: ["claude"])
    shell: Optional[str] = None
    finished_at: Optional[datetime] = None
    exit_code: Optional[int] = None

    @property
    def target(self) -> str:
        """tmux target string for the task's window."""
        return f"{self.tmux_session}:{self.tmux_window}"


class QueueTask(BaseModel):
    """A task as found on disk: its name, the directory it sits in, and its body."""

    name: str
    state: TaskState
    body: str = ""
    meta: Optional[TaskMeta] = None

    @property
    def binding(self) -> Binding:
        return parse_header(self.body)[0]

    @property
    def prompt(self) -> str:
        return strip_header(self.body).strip()


def parse_header(text: str) -> Tuple[Binding, str]:
    """
    Split a task body into its binding and the remaining text.

    A header is an optional opening ``---`` line followed by ``key: value`` lines
    and closed by a line that is exactly ``---``. Without the opening delimiter the
    block must name at least one binding key, so a plain markdown body containing
    a horizontal rule is left alone.

    Returns:
        (binding, body without the header). The binding is empty when no header exists.
    """
    fields, body = _split_header(text)
    return Binding(**fields), body


def strip_header(text: str) -> str:
    return _split_header(text)[1]


def _split_header(text: str) -> Tuple[Dict[str, str], str]:
    lines = text.splitlines()
    start = 1 if lines and lines[0].strip() == HEADER_DELIMITER else 0

    end = None
    for i in range(start, len(lines)):
        if lines[i].strip() == HEADER_DELIMITER:
            end = i
            break
    if end is None:
        return {}, text

    block = lines[start:end]
    if any(line.strip() and not _HEADER_LINE.match(line) for line in block):
        return {}, text

    # Values are literal text after the first colon, never YAML-typed
    fields: Dict[str, str] = {}
    for line in block:
        key, _, value = line.partition(":")
        key, value = key.strip(), value.strip()
        if key in HEADER_KEYS and value:
            fields[key] = value
    if start == 0 and not fields:
        return {}, text

    return fields, "\n".join(lines[end + 1:])


def compose_body(text: str, binding: Optional[Binding] = None) -> str:
    """Prefix text with a metadata header for the given binding, if any."""
    text = text.strip() + "\n"
    if binding is None or binding.is_empty():
        return text
    return binding.to_header() + text


def first_content_line(text: str) -> Optional[str]:
    """First non-blank line after the metadata header."""
    for line in strip_header(text).splitlines():
        if line.strip():
            return line.strip()
    return None


def preview_line(text: str, width: int = PREVIEW_WIDTH) -> Optional[str]:
    line = first_content_line(text)
    if line is None:
        return None
    if len(line) > width:
        return line[: width - 1] + "…"
    return line


def slugify(text: str) -> str:
    """Lowercase, collapse everything outside [a-z0-9] to '-', cap at 60 chars."""
    slug = _SLUG_SEPARATORS.sub("-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def derive_name(text: str, now: Optional[datetime] = None) -> str:
    """Base task name for a body: slug of its first line, else a timestamp."""
    line = first_content_line(text)
    slug = slugify(line) if line else ""
    if slug:
        return slug
    return (now or datetime.now()).strftime(TIMESTAMP_NAME_FORMAT)
