"""File-system-backed queue that runs agent tasks in tmux windows."""

__version__ = "0.1.0"
