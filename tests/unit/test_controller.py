"""Tests for QueueController operations."""

from unittest.mock import MagicMock, patch

import pytest

from agent_hq.core.task import TaskState
from agent_hq.queue.controller import KILLED_EXIT_CODE, WATCH_LOCK
from agent_hq.queue.locks import FileLock, LockHeldError
from agent_hq.queue.supervisor import Supervisor


class TestAdd:
    def test_empty_body(self, controller):
        result = controller.add("   \n")
        assert not result.ok
        assert result.message == "Task body is empty"

    def test_names_collide_with_suffix(self, controller):
        first = controller.add("fix bug")
        second = controller.add("Fix bug!")

        assert (first.name, second.name) == ("fix-bug", "fix-bug-2")
        assert second.message == "Added fix-bug-2 to pending"

    def test_wip(self, controller):
        result = controller.add("draft", wip=True)
        assert result.message == "Added draft to wip"
        assert controller.store.locate("draft") == TaskState.WIP

    def test_invalid_name(self, controller):
        result = controller.add("body", name="../etc")
        assert not result.ok


class TestPromote:
    def test_wip_to_pending(self, controller):
        controller.add("draft", wip=True)

        result = controller.promote("draft")

        assert result.ok
        assert result.message == "Promoted: draft"
        assert controller.store.locate("draft") == TaskState.PENDING

    def test_not_wip(self, controller):
        controller.add("ready")
        result = controller.promote("ready")

        assert not result.ok
        assert result.message == "Cannot promote ready: it is pending"

    def test_missing(self, controller):
        result = controller.promote("ghost")
        assert result.message == "Task not found: ghost"


class TestRun:
    def test_runs_all_pending_in_name_order(self, controller, tmux, tmp_path):
        controller.add("bravo task")
        controller.add("alpha task")
        controller.add("draft", wip=True)

        results = controller.run(cwd=tmp_path)

        assert [r.name for r in results] == ["alpha-task", "bravo-task"]
        assert all(r.ok for r in results)
        assert [w for _, w, _, _ in tmux.opened] == ["alpha-ta", "bravo-ta"]
        assert "hq" in tmux.sessions
        assert controller.store.list(TaskState.RUNNING) == ["alpha-task", "bravo-task"]
        assert controller.store.locate("draft") == TaskState.WIP

    def test_launch_message(self, controller, tmp_path):
        controller.add("fix bug")

        [result] = controller.run("fix-bug", cwd=tmp_path)

        assert result.message == f"Launched: fix-bug -> hq:fix-bug ({tmp_path})"

    def test_window_opened_with_supervisor(self, controller, tmux, tmp_path):
        controller.add("fix bug")
        controller.run("fix-bug", cwd=tmp_path)

        session, window, working_dir, command = tmux.opened[0]
        assert (session, window, working_dir) == ("hq", "fix-bug", tmp_path)
        assert "agent_hq.queue.supervisor" in command
        assert command[-1] == "fix-bug"

    def test_colliding_window_names(self, controller, tmux, tmp_path):
        controller.add("abcdefgh one")
        controller.add("abcdefgh two")

        controller.run(cwd=tmp_path)

        assert [w for _, w, _, _ in tmux.opened] == ["abcdefgh", "abcdefg2"]

    def test_named_task_not_pending(self, controller):
        controller.add("draft", wip=True)

        [result] = controller.run("draft")

        assert not result.ok
        assert result.message == "Cannot launch draft: it is wip"

    def test_nothing_pending(self, controller):
        assert controller.run() == []

    def test_tmux_failure_reported(self, controller, tmux, tmp_path):
        tmux.fail_open = True
        controller.add("fix bug")

        [result] = controller.run(cwd=tmp_path)

        assert not result.ok
        assert "left in running" in result.message
        assert controller.store.locate("fix-bug") == TaskState.RUNNING


class TestWatch:
    def test_launches_and_stops_after_passes(self, controller, tmp_path):
        controller.add("fix bug")
        sleep = MagicMock()
        seen = []

        launched = controller.watch(
            interval=7, max_passes=2, on_result=seen.append, sleep=sleep, cwd=tmp_path
        )

        assert launched == 1
        assert [r.name for r in seen] == ["fix-bug"]
        sleep.assert_called_once_with(7)
        assert not (controller.lock_dir / f"{WATCH_LOCK}.lock").exists()

    def test_picks_up_tasks_added_between_polls(self, controller, tmp_path):
        def add_during_sleep(_):
            controller.add("late task")

        launched = controller.watch(max_passes=2, sleep=add_during_sleep, cwd=tmp_path)

        assert launched == 1
        assert controller.store.locate("late-task") == TaskState.RUNNING

    def test_refuses_when_another_watcher_holds_lock(self, controller):
        lock = FileLock(controller.lock_dir, WATCH_LOCK)
        assert lock.acquire()

        with pytest.raises(LockHeldError):
            controller.watch(max_passes=1, sleep=MagicMock())

        lock.release()

    def test_held_watch_lock_does_not_block_run(self, controller, tmp_path):
        lock = FileLock(controller.lock_dir, WATCH_LOCK)
        assert lock.acquire()
        controller.add("fix bug")

        [result] = controller.run(cwd=tmp_path)

        assert result.ok
        assert controller.store.locate("fix-bug") == TaskState.RUNNING
        lock.release()

    def test_force_takes_over(self, controller):
        FileLock(controller.lock_dir, WATCH_LOCK).acquire()

        assert controller.watch(force=True, max_passes=1, sleep=MagicMock()) == 0

    def test_lock_released_on_interrupt(self, controller):
        with pytest.raises(KeyboardInterrupt):
            controller.watch(sleep=MagicMock(side_effect=KeyboardInterrupt))

        assert not (controller.lock_dir / f"{WATCH_LOCK}.lock").exists()


class TestKill:
    def test_kills_running_task(self, controller, tmux, tmp_path):
        controller.add("fix the login bug")
        controller.run(cwd=tmp_path)

        result = controller.kill("fix-the-login-bug")

        assert result.ok
        assert result.message == "Killed: fix-the-login-bug (closed hq:fix-the-)"
        assert tmux.killed == [("hq", "fix-the-")]
        store = controller.store
        assert store.locate("fix-the-login-bug") == TaskState.FAILED
        assert store.read_meta("fix-the-login-bug", TaskState.FAILED).exit_code == KILLED_EXIT_CODE
        assert not store.prompt_path("fix-the-login-bug").exists()

    def test_window_already_gone(self, controller, tmux, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)
        tmux.kill_result = False

        result = controller.kill("fix-bug")

        assert result.ok
        assert "no live window" in result.message
        assert controller.store.locate("fix-bug") == TaskState.FAILED

    def test_running_without_meta(self, controller, tmux):
        controller.store.task_path("bare", TaskState.RUNNING).write_text("x\n")

        result = controller.kill("bare")

        assert result.ok
        assert tmux.killed == []
        assert controller.store.locate("bare") == TaskState.FAILED

    def test_not_running(self, controller):
        controller.add("fix bug")

        result = controller.kill("fix-bug")

        assert not result.ok
        assert result.message == "Cannot kill fix-bug: it is pending"


class TestAttach:
    def test_attach_running(self, controller, tmux, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)

        result = controller.attach("fix-bug")

        assert result.ok
        assert tmux.attached == ["hq:fix-bug"]

    def test_attach_not_running(self, controller, tmux):
        controller.add("fix bug")

        result = controller.attach("fix-bug")

        assert not result.ok
        assert tmux.attached == []

    def test_attach_failure(self, controller, tmux, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)
        tmux.attach_result = 1

        assert not controller.attach("fix-bug").ok


class TestRetryAndClean:
    def test_retry_failed(self, controller, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)
        controller.kill("fix-bug")

        result = controller.retry("fix-bug")

        assert result.message == "Retrying: fix-bug (failed -> pending)"
        store = controller.store
        assert store.locate("fix-bug") == TaskState.PENDING
        assert not store.meta_path("fix-bug", TaskState.PENDING).exists()
        assert not store.meta_path("fix-bug", TaskState.FAILED).exists()

    def test_retry_pending_rejected(self, controller):
        controller.add("fix bug")

        result = controller.retry("fix-bug")

        assert not result.ok
        assert result.message == "Cannot retry fix-bug: it is pending"

    def test_retry_wip_rejected(self, controller):
        controller.add("draft", wip=True)

        result = controller.retry("draft")

        assert not result.ok
        assert result.message == "Cannot retry draft: it is wip"
        assert controller.store.locate("draft") == TaskState.WIP

    def test_retry_running_rejected(self, controller, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)

        result = controller.retry("fix-bug")

        assert not result.ok
        assert result.message == "Cannot retry fix-bug: it is running"
        store = controller.store
        assert store.locate("fix-bug") == TaskState.RUNNING
        assert store.read_meta("fix-bug", TaskState.RUNNING) is not None
        assert store.prompt_path("fix-bug").exists()

    def test_retry_keeps_meta_when_move_loses_race(self, controller, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)
        controller.kill("fix-bug")
        store = controller.store

        with patch.object(store, "move", return_value=False):
            result = controller.retry("fix-bug")

        assert not result.ok
        assert store.locate("fix-bug") == TaskState.FAILED
        assert store.read_meta("fix-bug", TaskState.FAILED).exit_code == KILLED_EXIT_CODE

    def test_retry_done(self, controller, tmp_path):
        controller.add("fix bug")
        controller.run(cwd=tmp_path)
        Supervisor(controller.store, "fix-bug").finish(0)

        result = controller.retry("fix-bug")

        assert result.message == "Retrying: fix-bug (done -> pending)"
        assert not controller.store.meta_path("fix-bug", TaskState.DONE).exists()
        assert not controller.store.meta_path("fix-bug", TaskState.PENDING).exists()

    def test_clean(self, controller, tmp_path):
        controller.add("one")
        controller.add("two")
        controller.add("three")
        controller.run(cwd=tmp_path)
        Supervisor(controller.store, "one").finish(0)
        controller.kill("two")

        removed = controller.clean()

        # task + meta in done, task + meta in failed
        assert removed == 4
        assert controller.store.snapshot() == {"three": TaskState.RUNNING}


class TestInspection:
    def test_list_tasks(self, controller, tmp_path):
        controller.add("Draft idea", wip=True)
        controller.add("Fix bug")
        controller.run("fix-bug", cwd=tmp_path)

        summaries = controller.list_tasks()

        assert [(s.name, s.state) for s in summaries] == [
            ("draft-idea", TaskState.WIP),
            ("fix-bug", TaskState.RUNNING),
        ]
        assert summaries[0].preview == "Draft idea"
        assert summaries[0].target is None
        assert summaries[1].target == "hq:fix-bug"

    def test_list_filtered(self, controller):
        controller.add("Draft idea", wip=True)
        controller.add("Fix bug")

        summaries = controller.list_tasks(TaskState.PENDING)

        assert [s.name for s in summaries] == ["fix-bug"]

    def test_show(self, controller):
        controller.add("Fix bug\n\ndetails")

        task = controller.show("fix-bug")

        assert task.state == TaskState.PENDING
        assert "details" in task.body
        assert controller.show("nope") is None


def test_end_to_end_lifecycle(controller, tmp_path):
    """add -> run -> agent exits 0 -> done -> retry -> pending."""
    store = controller.store
    controller.add("fix the login bug")
    assert store.task_path("fix-the-login-bug", TaskState.PENDING).exists()

    [launched] = controller.run(cwd=tmp_path)
    assert launched.ok
    meta = store.read_meta("fix-the-login-bug", TaskState.RUNNING)
    assert meta.target == "hq:fix-the-"
    assert store.prompt_path("fix-the-login-bug").read_text() == "fix the login bug"

    assert Supervisor(store, "fix-the-login-bug").finish(0) == TaskState.DONE
    assert store.read_meta("fix-the-login-bug", TaskState.DONE).exit_code == 0

    assert controller.retry("fix-the-login-bug").ok
    assert store.locate("fix-the-login-bug") == TaskState.PENDING
    assert store.read_meta("fix-the-login-bug", TaskState.PENDING) is None
