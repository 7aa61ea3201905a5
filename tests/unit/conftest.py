"""Shared test fixtures for unit tests."""

import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from agent_hq.core.config import QueueConfig, RegistryConfig, clear_config_cache
from agent_hq.core.task import TaskMeta, TaskState
from agent_hq.queue.controller import QueueController
from agent_hq.queue.store import TaskStore
from agent_hq.utils.subprocess_utils import SubprocessError


class FakeTmux:
    """In-memory stand-in for TmuxClient."""

    def __init__(self, sessions=(), windows=()):
        self.sessions = set(sessions)
        self.windows = list(windows)
        self.opened = []
        self.killed = []
        self.attached = []
        self.kill_result = True
        self.attach_result = 0
        self.fail_open = False

    def session_exists(self, name):
        return name in self.sessions

    def create_session(self, name, working_dir):
        self.sessions.add(name)

    def open_window(self, session, window_name, working_dir, command):
        if self.fail_open:
            raise SubprocessError("tmux new-window", 1, "can't find session")
        self.opened.append((session, window_name, Path(working_dir), list(command)))
        self.windows.append(window_name)

    def kill_window(self, session, window_name):
        self.killed.append((session, window_name))
        return self.kill_result

    def list_window_names(self):
        return list(self.windows)

    def list_session_names(self):
        return sorted(self.sessions)

    def attach(self, target):
        self.attached.append(target)
        return self.attach_result


def make_meta(**overrides) -> TaskMeta:
    fields = dict(
        tmux_session="hq",
        tmux_window="fix-bug",
        started_at=datetime.now(UTC),
        working_dir="/tmp",
    )
    fields.update(overrides)
    return TaskMeta(**fields)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's HQ_* settings and config file out of tests."""
    for key in list(os.environ):
        if key.startswith("HQ_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HQ_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.setenv("HQ_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("TMUX", raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def store(tmp_path):
    return TaskStore(tmp_path / "queue")


@pytest.fixture
def tmux():
    return FakeTmux()


@pytest.fixture
def config(tmp_path):
    return QueueConfig(
        root=tmp_path / "queue",
        log_dir=tmp_path / "logs",
        registry=RegistryConfig(
            tasks_file=tmp_path / "tasks.yaml",
            repo_path=tmp_path / "repo",
            work_dir=tmp_path / "work",
        ),
    )


@pytest.fixture
def controller(config, tmux):
    return QueueController.from_config(config, tmux=tmux)


@pytest.fixture
def running_task(store):
    """Put a task straight into running with its meta and prompt."""
    def _make(name="fix-bug", body="Fix the bug\n", **meta_fields):
        store.task_path(name, TaskState.RUNNING).write_text(body)
        store.write_meta(name, TaskState.RUNNING, make_meta(tmux_window=name[:8], **meta_fields))
        store.write_prompt(name, body.strip())
        return name
    return _make
