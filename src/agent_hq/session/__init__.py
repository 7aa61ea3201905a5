"""tmux session management."""

from .launcher import SessionLauncher
from .tmux import TmuxClient

__all__ = ["SessionLauncher", "TmuxClient"]
