"""Entry point run inside a task's tmux window.

Runs the agent on the task's prompt, files the task as done or failed from the
exit status, removes the prompt, and finally execs an interactive shell so the
window stays usable.
"""

import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional

import click

from ..core.config import load_config
from ..core.state_machine import exit_event, transition
from ..core.task import TaskState
from ..utils.rich_logging import TaskLogger, setup_logging
from .store import TaskStore

# Exit status recorded when the agent executable cannot be started
EXIT_NOT_STARTED = 127

_FORWARDED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class Supervisor:
    """Owns one running task from agent start to its terminal move."""

    def __init__(self, store: TaskStore, name: str):
        self.store = store
        self.name = name
        self.logger = TaskLogger(logging.getLogger(__name__), name)
        self.received_signal: Optional[int] = None
        self._proc: Optional[subprocess.Popen] = None

    def run(self) -> int:
        """Run the agent to completion and file the task. Returns the exit status."""
        meta = self.store.read_meta(self.name, TaskState.RUNNING)
        if meta is None:
            self.logger.error("No meta sidecar in running; nothing to supervise")
            return 1

        try:
            prompt = self.store.prompt_path(self.name).read_text()
        except FileNotFoundError:
            self.logger.warning("Prompt file missing, starting agent without a prompt")
            prompt = ""

        cmd = list(meta.agent_command)
        if prompt:
            cmd.append(prompt)

        exit_code = self._run_agent(cmd, Path(meta.working_dir))
        self.finish(exit_code)
        return exit_code

    def _run_agent(self, cmd, cwd: Path) -> int:
        self.logger.info(f"Starting agent {cmd[0]} in {cwd}")
        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, *_FORWARDED_SIGNALS)}
        # Ctrl-C belongs to the agent; Python handlers reset to default across exec
        signal.signal(signal.SIGINT, lambda signum, frame: None)
        for sig in _FORWARDED_SIGNALS:
            signal.signal(sig, self._forward_signal)

        try:
            try:
                self._proc = subprocess.Popen(cmd, cwd=cwd)
            except OSError as e:
                self.logger.error(f"Could not start agent: {e}")
                return EXIT_NOT_STARTED
            returncode = self._proc.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self._proc = None

        if self.received_signal is not None:
            return 128 + self.received_signal
        # Popen reports death-by-signal as a negative returncode
        return 128 - returncode if returncode < 0 else returncode

    def _forward_signal(self, signum, frame) -> None:
        self.received_signal = signum
        self.logger.warning(f"Received signal {signum}, stopping agent")
        if self._proc is not None and self._proc.poll() is None:
            self._proc.send_signal(signum)

    def finish(self, exit_code: int) -> Optional[TaskState]:
        """File the task from ``exit_code`` and remove its prompt.

        Returns the state it moved to, or None when the task had already left
        running (killed or moved by hand).
        """
        dst = transition(TaskState.RUNNING, exit_event(exit_code))
        moved = False
        if self.store.exists(self.name, TaskState.RUNNING):
            self.store.mark_finished(self.name, TaskState.RUNNING, exit_code)
            moved = self.store.move(self.name, TaskState.RUNNING, dst)
        self.store.remove_prompt(self.name)

        if not moved:
            self.logger.info(f"Exited {exit_code} but task is no longer running; left as is")
            return None
        self.logger.info(f"Exited {exit_code}, filed as {dst.value}")
        return dst

    def exec_shell(self) -> None:
        """Replace this process with the interactive shell recorded at launch."""
        meta = self.store.read_meta(self.name, TaskState.DONE) or self.store.read_meta(
            self.name, TaskState.FAILED
        )
        shell = (meta.shell if meta else None) or os.environ.get("SHELL") or "zsh"
        logging.shutdown()
        os.execvp(shell, [shell])


@click.command()
@click.option("--root", type=click.Path(path_type=Path), help="Queue root directory")
@click.option("--log-dir", type=click.Path(path_type=Path), help="Directory for supervisor.log")
@click.option("--no-shell", is_flag=True, help="Exit instead of exec'ing a shell afterwards")
@click.argument("name")
def main(root, log_dir, no_shell, name):
    """Supervise the running task NAME."""
    config = load_config()
    setup_logging("supervisor", log_dir or config.log_dir, config.log_level)

    supervisor = Supervisor(TaskStore(root or config.root), name)
    exit_code = supervisor.run()

    state = "done" if exit_code == 0 else "failed"
    click.echo(f"\n[hq] {name} exited with status {exit_code} ({state})")

    # A forwarded SIGHUP/SIGTERM means the window is going away
    if no_shell or supervisor.received_signal is not None:
        sys.exit(exit_code)
    supervisor.exec_shell()


if __name__ == "__main__":
    main()
