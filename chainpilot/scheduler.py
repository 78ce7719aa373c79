"""
Periodic scheduler for repeating task sets.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional, Union

from ._rate_limited_log import rate_limited_log
from .models import RepeatSchedule, utcnow
from .notify import Notifier, NullNotifier
from .store import Store

# Avoid circular imports with TYPE_CHECKING
if TYPE_CHECKING:
    from .runner import TaskSetRunner

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 15 * 60

_SCHEDULE_STEPS = {
    RepeatSchedule.HOURLY: timedelta(hours=1),
    RepeatSchedule.DAILY: timedelta(hours=24),
    RepeatSchedule.WEEKLY: timedelta(days=7),
}


def next_run(schedule: Union[RepeatSchedule, str, None], now: datetime) -> Optional[datetime]:
    """
    Next run time for a repeat schedule.

    Returns:
        ``now`` plus one period, or None for ``none`` and unknown schedules
    """
    try:
        step = _SCHEDULE_STEPS.get(RepeatSchedule(schedule))
    except ValueError:
        return None
    return now + step if step else None


class Scheduler:
    """
    Runs due task sets on a fixed interval.

    Due sets run one after another; a failure in one set is logged and the
    tick moves on to the next.
    """

    def __init__(
        self,
        store: Store,
        runner: "TaskSetRunner",
        notifier: Optional[Notifier] = None,
        interval: float = DEFAULT_INTERVAL,
    ):
        self.store = store
        self.runner = runner
        self.notifier = notifier or NullNotifier()
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self, now: Optional[datetime] = None) -> int:
        """
        Run every due task set once.

        Returns:
            Number of task sets run
        """
        now = now or utcnow()
        try:
            due = self.store.due_task_sets(now)
        except Exception as e:
            rate_limited_log(f"Scheduler could not load due task sets: {e}", level="error", logger_instance=logger)
            return 0

        if due:
            logger.info(f"Scheduler tick: {len(due)} task sets due")
        for task_set in due:
            try:
                self.notifier.notify(task_set.owner, f"Scheduled run started: {task_set.name}")
                results = self.runner.run(task_set)
                successes = sum(1 for r in results if r.success)
                self.notifier.notify(
                    task_set.owner,
                    f"Scheduled run finished: {task_set.name}\n"
                    f"{successes} succeeded, {len(results) - successes} failed",
                )
            except Exception:
                logger.exception(f"Scheduled run of task set {task_set.id} failed")
        return len(due)

    def _loop(self) -> None:
        logger.info(f"Scheduler started, checking every {self.interval:g}s")
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.interval)
        logger.info("Scheduler stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="chainpilot-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Tick on the calling thread until ``stop`` is called from elsewhere"""
        self._stop_event.clear()
        self._loop()
