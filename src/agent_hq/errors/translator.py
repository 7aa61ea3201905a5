"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import List

from rich.markup import escape


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        r"No such file or directory: '?tmux'?": {
            "title": "tmux is not installed",
            "explanation": "Tasks run in tmux windows, but the tmux binary was not found on PATH.",
            "actions": [
                "Install tmux (e.g. brew install tmux / apt install tmux)",
                "Make sure it is on PATH for the shell running hq",
            ],
        },
        r"no server running|error connecting to": {
            "title": "tmux server is not running",
            "explanation": "The tmux server could not be reached.",
            "actions": [
                "Start one with: tmux new-session -d -s hq",
                "Check that TMUX_TMPDIR matches the server you expect",
            ],
        },
        r"Permission denied|PermissionError": {
            "title": "Permission denied",
            "explanation": "The queue directory or one of its files is not writable.",
            "actions": [
                "Check ownership of the queue root: hq dir",
                "Point HQ_ROOT at a directory you own",
            ],
        },
        r"No space left on device": {
            "title": "Disk full",
            "explanation": "The task file could not be written because the disk is full.",
            "actions": [
                "Free space, then retry",
                "Remove finished tasks: hq clean",
            ],
        },
        r"validation error": {
            "title": "Invalid configuration",
            "explanation": "The config file or an HQ_* environment variable has an invalid value.",
            "actions": [
                "Check the config file named by --config or HQ_CONFIG",
                "Unset HQ_* variables you did not mean to set",
            ],
        },
        r"Lock 'watch' is held": {
            "title": "Another watcher is running",
            "explanation": "Only one `hq watch` per queue root runs at a time.",
            "actions": [
                "Stop the other watcher",
                "Or take over with: hq watch --force",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Translate technical error to user-friendly message."""
        error_str = f"{type(error).__name__}: {error}"

        for pattern, template in self.ERROR_PATTERNS.items():
            if re.search(pattern, error_str, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=template["title"],
                    explanation=template["explanation"],
                    actions=template["actions"],
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=str(error) or type(error).__name__,
            actions=["Re-run with --verbose for details", "Check the log in the hq log directory"],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError, verbose: bool = False) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{escape(friendly_error.explanation)}\n"

        if friendly_error.actions:
            output += "\n[bold]How to fix:[/]\n"
            for i, action in enumerate(friendly_error.actions, 1):
                output += f"  {i}. {action}\n"

        if verbose or friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{escape(str(friendly_error.original_error))}[/]"

        return output
