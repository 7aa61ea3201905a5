"""Main CLI for the agent task queue."""

import functools
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import load_config
from ..core.task import Binding, STATE_ORDER, TaskState
from ..errors.translator import ErrorTranslator
from ..queue.controller import QueueController, QueueResult
from ..session.tmux import TmuxClient
from ..utils.rich_logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()

STATE_STYLES = {
    TaskState.WIP: "dim",
    TaskState.PENDING: "yellow",
    TaskState.RUNNING: "cyan",
    TaskState.DONE: "green",
    TaskState.FAILED: "red",
}


def _controller(ctx) -> QueueController:
    obj = ctx.obj
    if "controller" not in obj:
        tmux = obj.get("tmux") or TmuxClient()
        obj["controller"] = QueueController.from_config(obj["config"], tmux=tmux)
    return obj["controller"]


def _report(result: QueueResult) -> bool:
    if result.ok:
        console.print(f"[green]✓ {escape(result.message)}[/]")
    else:
        console.print(f"[red]✗ {escape(result.message)}[/]")
    return result.ok


def handle_errors(func):
    """Print unexpected failures as a friendly message and exit non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (click.ClickException, click.exceptions.Exit, click.Abort):
            raise
        except Exception as e:
            logger.exception(f"Command failed: {e}")
            ctx = click.get_current_context()
            translator = ErrorTranslator()
            console.print(translator.format_for_cli(
                translator.translate(e), verbose=ctx.obj.get("verbose", False)
            ))
            ctx.exit(1)
    return wrapper


@click.group()
@click.option("--root", "-r", type=click.Path(path_type=Path), help="Queue root directory")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Log to the terminal as well")
@click.pass_context
def cli(ctx, root, config_path, verbose):
    """hq - queue agent tasks and run them in tmux windows."""
    ctx.ensure_object(dict)
    config = load_config(config_path)
    if root is not None:
        config = config.model_copy(update={"root": root.expanduser()})
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose
    setup_logging("hq", config.log_dir, config.log_level, console=verbose)


@cli.command("ls")
@click.option(
    "--state", "-s",
    type=click.Choice([s.value for s in STATE_ORDER]),
    help="Only show tasks in this state",
)
@click.pass_context
@handle_errors
def list_tasks(ctx, state):
    """List tasks with their state and first line."""
    summaries = _controller(ctx).list_tasks(TaskState(state) if state else None)
    if not summaries:
        console.print("[dim]No tasks[/]")
        return

    table = Table()
    table.add_column("Task", no_wrap=True)
    table.add_column("State")
    table.add_column("Preview")
    table.add_column("Window")

    for summary in summaries:
        style = STATE_STYLES[summary.state]
        table.add_row(
            summary.name,
            f"[{style}]{summary.state.value}[/]",
            escape(summary.preview or ""),
            summary.target or "",
        )

    console.print(table)


@cli.command()
@click.argument("text", nargs=-1)
@click.option("--wip", is_flag=True, help="File in wip instead of pending")
@click.option("--edit", "-e", is_flag=True, help="Write the task in $EDITOR")
@click.option("--name", "-n", help="Task name (default: derived from the first line)")
@click.option("--task", "-t", "task_name", help="Bind to a named task")
@click.option("--tree", "tree_name", help="Run in this worktree")
@click.option("--session", "-s", "session_name", help="Run in this tmux session")
@click.pass_context
@handle_errors
def add(ctx, text, wip, edit, name, task_name, tree_name, session_name):
    """Queue a task from arguments, standard input, or an editor."""
    body = " ".join(text)
    if not body and not edit:
        stdin = click.get_text_stream("stdin")
        if not stdin.isatty():
            body = stdin.read()
    if edit or not body.strip():
        body = click.edit(body, extension=".md") or ""

    binding = Binding(task_name=task_name, tree_name=tree_name, session_name=session_name)
    if not _report(_controller(ctx).add(body, wip=wip, binding=binding, name=name)):
        ctx.exit(1)


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
def promote(ctx, name):
    """Move a wip task to pending."""
    if not _report(_controller(ctx).promote(name)):
        ctx.exit(1)


@cli.command()
@click.argument("name", required=False)
@click.pass_context
@handle_errors
def run(ctx, name):
    """Launch NAME, or every pending task."""
    results = _controller(ctx).run(name)
    if not results:
        console.print("[dim]No pending tasks[/]")
        return

    ok = [_report(result) for result in results]
    if not all(ok):
        ctx.exit(1)


@cli.command()
@click.option("--interval", "-i", type=click.IntRange(min=1), help="Seconds between polls")
@click.option("--force", is_flag=True, help="Take over from another watcher")
@click.pass_context
@handle_errors
def watch(ctx, interval, force):
    """Launch pending tasks as they appear, until Ctrl+C."""
    controller = _controller(ctx)
    interval = interval or controller.poll_interval
    console.print(f"[bold]Watching {controller.store.root} every {interval}s[/]")
    console.print("[dim]Press Ctrl+C to stop[/]\n")

    try:
        controller.watch(interval=interval, force=force, on_result=_report)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped watching[/]")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
def attach(ctx, name):
    """Switch to a running task's window."""
    result = _controller(ctx).attach(name)
    if not result.ok:
        _report(result)
        ctx.exit(1)


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
def kill(ctx, name):
    """Close a running task's window and mark it failed."""
    if not _report(_controller(ctx).kill(name)):
        ctx.exit(1)


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
def retry(ctx, name):
    """Send a done or failed task back to pending."""
    if not _report(_controller(ctx).retry(name)):
        ctx.exit(1)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
@handle_errors
def clean(ctx, yes):
    """Delete every done and failed task."""
    if not yes:
        click.confirm("Delete all done and failed tasks?", abort=True)
    removed = _controller(ctx).clean()
    console.print(f"[green]✓ Removed {removed} files[/]")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors
def show(ctx, name):
    """Print a task's state, binding, launch record and prompt."""
    task = _controller(ctx).show(name)
    if task is None:
        _report(QueueResult(False, f"Task not found: {name}", name))
        ctx.exit(1)

    style = STATE_STYLES[task.state]
    console.print(f"[bold]{escape(task.name)}[/] [{style}]{task.state.value}[/]")
    for key, value in task.binding.model_dump(exclude_none=True).items():
        console.print(f"  {key}: {escape(value)}")
    if task.meta:
        console.print(f"  window:  {task.meta.target}")
        console.print(f"  dir:     {escape(task.meta.working_dir)}")
        console.print(f"  started: {task.meta.started_at.isoformat()}")
        if task.meta.exit_code is not None:
            console.print(f"  exit:    {task.meta.exit_code}")
    console.print()
    console.print(escape(task.prompt))


@cli.command("dir")
@click.pass_context
def queue_dir(ctx):
    """Print the queue root directory."""
    click.echo(str(ctx.obj["config"].root))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
