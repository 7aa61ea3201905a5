"""Tests for the in-window supervisor that runs the agent and files the result."""

import sys
from unittest.mock import patch

from click.testing import CliRunner

from agent_hq.core.task import TaskState
from agent_hq.queue.supervisor import EXIT_NOT_STARTED, Supervisor, main


def _agent(code):
    """A Python one-liner standing in for the agent binary."""
    return [sys.executable, "-c", code]


def test_success_files_done(store, running_task, tmp_path):
    name = running_task(agent_command=_agent("import sys; sys.exit(0)"), working_dir=str(tmp_path))

    exit_code = Supervisor(store, name).run()

    assert exit_code == 0
    assert store.locate(name) == TaskState.DONE
    meta = store.read_meta(name, TaskState.DONE)
    assert meta.exit_code == 0
    assert meta.finished_at is not None
    assert not store.prompt_path(name).exists()


def test_failure_files_failed(store, running_task, tmp_path):
    name = running_task(agent_command=_agent("import sys; sys.exit(3)"), working_dir=str(tmp_path))

    assert Supervisor(store, name).run() == 3
    assert store.locate(name) == TaskState.FAILED
    assert store.read_meta(name, TaskState.FAILED).exit_code == 3


def test_prompt_passed_as_last_argument(store, running_task, tmp_path):
    code = "import sys; open('seen.txt', 'w').write(sys.argv[-1])"
    name = running_task(
        body="Fix the login bug\n\nIt 500s.\n",
        agent_command=_agent(code),
        working_dir=str(tmp_path),
    )

    Supervisor(store, name).run()

    assert (tmp_path / "seen.txt").read_text() == "Fix the login bug\n\nIt 500s."


def test_missing_agent_binary(store, running_task, tmp_path):
    name = running_task(agent_command=["definitely-not-a-real-agent-binary"], working_dir=str(tmp_path))

    assert Supervisor(store, name).run() == EXIT_NOT_STARTED
    assert store.locate(name) == TaskState.FAILED


def test_missing_meta_leaves_task_alone(store):
    store.task_path("orphan", TaskState.RUNNING).write_text("x\n")

    assert Supervisor(store, "orphan").run() == 1
    assert store.locate("orphan") == TaskState.RUNNING


def test_finish_after_kill_is_noop(store, running_task):
    name = running_task()
    store.move(name, TaskState.RUNNING, TaskState.FAILED)

    assert Supervisor(store, name).finish(0) is None
    assert store.locate(name) == TaskState.FAILED
    assert not store.prompt_path(name).exists()


def test_signal_is_recorded_as_failure(store, running_task):
    name = running_task()
    supervisor = Supervisor(store, name)
    supervisor._forward_signal(1, None)

    assert supervisor.received_signal == 1
    assert supervisor.finish(128 + 1) == TaskState.FAILED


def test_exec_shell_uses_recorded_shell(store, running_task):
    name = running_task(shell="/bin/bash")
    supervisor = Supervisor(store, name)
    supervisor.finish(0)

    with patch("agent_hq.queue.supervisor.os.execvp") as mock_exec, \
            patch("agent_hq.queue.supervisor.logging.shutdown"):
        supervisor.exec_shell()

    mock_exec.assert_called_once_with("/bin/bash", ["/bin/bash"])


def test_exec_shell_falls_back_to_env(store, running_task, monkeypatch):
    name = running_task()
    monkeypatch.setenv("SHELL", "/bin/sh")
    supervisor = Supervisor(store, name)
    supervisor.finish(1)

    with patch("agent_hq.queue.supervisor.os.execvp") as mock_exec, \
            patch("agent_hq.queue.supervisor.logging.shutdown"):
        supervisor.exec_shell()

    mock_exec.assert_called_once_with("/bin/sh", ["/bin/sh"])


def test_main_without_shell(store, running_task, tmp_path):
    name = running_task(agent_command=_agent("import sys; sys.exit(0)"), working_dir=str(tmp_path))

    result = CliRunner().invoke(
        main,
        ["--root", str(store.root), "--log-dir", str(tmp_path / "logs"), "--no-shell", name],
    )

    assert result.exit_code == 0
    assert f"{name} exited with status 0 (done)" in result.output
    assert store.locate(name) == TaskState.DONE
    assert (tmp_path / "logs" / "supervisor.log").exists()


def test_main_reports_failure_status(store, running_task, tmp_path):
    name = running_task(agent_command=_agent("import sys; sys.exit(2)"), working_dir=str(tmp_path))

    result = CliRunner().invoke(main, ["--root", str(store.root), "--no-shell", name])

    assert result.exit_code == 2
    assert "(failed)" in result.output
