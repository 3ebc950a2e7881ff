"""
Tests for the heartbeat task registry that drives periodic reconciliation.
"""

import pytest
import threading
import time
from unittest.mock import patch, MagicMock

from portfolio_rag.core import heartbeat
from portfolio_rag.core.heartbeat import (
    HeartbeatTask, register_task, unregister_task, list_tasks, start, stop, should_run_task, run_task,
    run_due_tasks, reset_task, get_status,
)


@pytest.fixture(autouse=True)
def reset_heartbeat():
    """Reset heartbeat state between tests."""
    heartbeat.tasks.clear()
    heartbeat.running = False
    heartbeat.shutdown_event = None
    yield
    heartbeat.tasks.clear()
    heartbeat.running = False


class TestHeartbeatRegistration:

    def test_register_task_valid(self):
        register_task("index_reconcile", 30, lambda: None)

        assert list_tasks() == ["index_reconcile"]

    def test_register_task_invalid_func(self):
        with pytest.raises(ValueError, match="Task function must be callable"):
            register_task("bad_task", 30, "not_callable")

    def test_register_task_invalid_interval(self):
        with pytest.raises(ValueError, match="Interval must be >= 1 second"):
            register_task("bad_task", 0, lambda: None)

    def test_register_duplicate_task_replaces_it(self):
        register_task("duplicate", 30, lambda: None)
        register_task("duplicate", 60, lambda: None)

        assert len(list_tasks()) == 1
        assert heartbeat.tasks["duplicate"].interval_sec == 60

    def test_unregister_task(self):
        register_task("test_task", 30, lambda: None)
        unregister_task("test_task")
        unregister_task("nonexistent")

        assert list_tasks() == []


class TestHeartbeatScheduling:

    def test_should_run_first_time(self):
        assert should_run_task(HeartbeatTask("test", lambda: None, 30)) is True

    def test_should_run_when_due(self):
        task = HeartbeatTask("test", lambda: None, 30, last_run=time.monotonic() - 35)
        assert should_run_task(task) is True

    def test_should_not_run_too_soon(self):
        task = HeartbeatTask("test", lambda: None, 30, last_run=time.monotonic() - 10)
        assert should_run_task(task) is False

    def test_reset_task_forces_next_run(self):
        task = register_task("test", 30, lambda: None)
        task.last_run = time.monotonic()

        reset_task("test")

        assert should_run_task(task) is True


class TestHeartbeatExecution:

    def test_run_task_success(self):
        func = MagicMock()
        task = HeartbeatTask("test_task", func, 30)

        run_task(task)

        func.assert_called_once()
        assert task.last_run is not None
        assert task.failures == 0

    def test_run_task_failure_still_counts_as_run(self):
        task = HeartbeatTask("failing_task", MagicMock(side_effect=ValueError("Task failed")), 30)

        with pytest.raises(RuntimeError, match="Task failed"):
            run_task(task)

        assert task.last_run is not None
        assert task.failures == 1
        assert task.last_error == "Task failed"

    def test_run_due_tasks_isolates_failures(self):
        ok = MagicMock()
        register_task("failing", 60, MagicMock(side_effect=ValueError("boom")))
        register_task("reconcile", 60, ok)

        assert run_due_tasks() == ["failing", "reconcile"]
        ok.assert_called_once()

        # Nothing is due again within the interval
        assert run_due_tasks() == []

    @patch("portfolio_rag.core.config.RECONCILE_ENABLED", False)
    def test_start_disabled(self):
        func = MagicMock()
        register_task("test", 30, func)

        start()

        func.assert_not_called()
        assert heartbeat.running is False

    @patch("portfolio_rag.core.config.RECONCILE_ENABLED", True)
    def test_start_already_running(self):
        heartbeat.running = True
        with pytest.raises(RuntimeError, match="already running"):
            start()

    @patch("portfolio_rag.core.config.RECONCILE_ENABLED", True)
    def test_loop_runs_until_stopped(self):
        ran = threading.Event()
        register_task("reconcile", 60, ran.set)

        thread = threading.Thread(target=start)
        thread.start()
        try:
            assert ran.wait(2.0)
        finally:
            stop()
            thread.join(2.0)

        assert not thread.is_alive()
        assert heartbeat.running is False

    def test_stop_when_not_running(self):
        stop()
        assert heartbeat.running is False


class TestHeartbeatStatus:

    @patch("portfolio_rag.core.config.RECONCILE_ENABLED", False)
    def test_get_status_disabled(self):
        status = get_status()

        assert status["status"] == "disabled"
        assert "RECONCILE_ENABLED=false" in status["reason"]

    @patch("portfolio_rag.core.config.RECONCILE_ENABLED", True)
    def test_get_status_lists_tasks(self):
        register_task("index_reconcile", 60, lambda: None)

        status = get_status()

        assert status["status"] == "stopped"
        assert status["tasks"]["index_reconcile"]["interval_sec"] == 60
        assert status["tasks"]["index_reconcile"]["next_run"] is None
        assert status["tasks"]["index_reconcile"]["failures"] == 0
