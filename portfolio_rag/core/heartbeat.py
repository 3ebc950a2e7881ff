"""
Heartbeat scheduler for periodic index maintenance.

A module-level registry of named tasks, each run when its interval has
elapsed. The reconciliation script registers `index_reconcile` here.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from . import config
from ..util.logging import logger

POLL_INTERVAL_SEC = 0.1
MAX_CYCLE_SEC = 10.0


@dataclass
class HeartbeatTask:
    name: str
    func: Callable[[], None]
    interval_sec: int
    last_run: Optional[float] = None  # time.monotonic() of the last attempt
    last_error: Optional[str] = None
    failures: int = 0

    def is_due(self, now: float) -> bool:
        return self.last_run is None or now - self.last_run >= self.interval_sec


tasks: Dict[str, HeartbeatTask] = {}
running = False
shutdown_event: Optional[threading.Event] = None


def register_task(name: str, interval_sec: int, func: Callable[[], None]) -> HeartbeatTask:
    """
    Register (or replace) a periodic task.

    Raises:
        ValueError: if func is not callable or the interval is under a second
    """
    if not callable(func):
        raise ValueError(f"Task function must be callable: {func}")
    if interval_sec < 1:
        raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

    task = HeartbeatTask(name=name, func=func, interval_sec=interval_sec)
    tasks[name] = task
    logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")
    return task


def unregister_task(name: str) -> None:
    if tasks.pop(name, None) is not None:
        logger.info(f"Unregistered heartbeat task '{name}'")


def list_tasks() -> List[str]:
    return list(tasks)


def should_run_task(task: HeartbeatTask) -> bool:
    return task.is_due(time.monotonic())


def run_task(task: HeartbeatTask) -> None:
    """
    Run one task and stamp last_run, whether or not it succeeds.

    Raises:
        RuntimeError: wrapping whatever the task raised
    """
    started = time.monotonic()
    try:
        task.func()
    except Exception as e:
        task.last_run = time.monotonic()
        task.failures += 1
        task.last_error = str(e)
        raise RuntimeError(f"Task '{task.name}' failed after {task.last_run - started:.2f}s: {e}") from e

    task.last_run = time.monotonic()
    task.last_error = None
    logger.log_operation("heartbeat.task", "success", {
        "task": task.name,
        "duration_sec": round(task.last_run - started, 2),
    })


def run_due_tasks() -> List[str]:
    """One scheduler cycle. A failing task is logged and the others still run."""
    ran = []
    for task in list(tasks.values()):
        if not should_run_task(task):
            continue
        try:
            run_task(task)
        except RuntimeError as e:
            logger.error(f"Heartbeat task failed: {e}")
        ran.append(task.name)
    return ran


def start() -> None:
    """Run the scheduler loop until stop() is called. Blocking."""
    global running, shutdown_event

    if not config.RECONCILE_ENABLED:
        logger.info("Heartbeat disabled (RECONCILE_ENABLED=false), not starting")
        return
    if running:
        raise RuntimeError("Heartbeat already running")

    running = True
    shutdown_event = threading.Event()
    logger.log_operation("heartbeat.start", "running", {"tasks": list_tasks()})

    try:
        while running and not shutdown_event.is_set():
            cycle_started = time.monotonic()
            run_due_tasks()

            elapsed = time.monotonic() - cycle_started
            if elapsed > MAX_CYCLE_SEC:
                logger.warning(f"Heartbeat cycle took {elapsed:.1f}s, longer than {MAX_CYCLE_SEC}s")

            shutdown_event.wait(POLL_INTERVAL_SEC)
    except KeyboardInterrupt:
        logger.info("Heartbeat interrupted")
    finally:
        running = False
        logger.log_operation("heartbeat.stop", "stopped")


def stop() -> None:
    global running
    if not running:
        return
    running = False
    if shutdown_event is not None:
        shutdown_event.set()


def reset_task(name: str) -> None:
    """Force the task to run on the next cycle."""
    if name in tasks:
        tasks[name].last_run = None


def get_status() -> Dict:
    if not config.RECONCILE_ENABLED:
        return {"status": "disabled", "reason": "RECONCILE_ENABLED=false"}

    return {
        "status": "running" if running else "stopped",
        "tasks": {
            task.name: {
                "interval_sec": task.interval_sec,
                "last_run": task.last_run,
                "next_run": task.last_run + task.interval_sec if task.last_run is not None else None,
                "failures": task.failures,
                "last_error": task.last_error,
            }
            for task in tasks.values()
        },
    }
