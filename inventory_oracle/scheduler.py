"""Background job scheduler for periodic market refresh and daily rate updates.

No external scheduler library is required; jobs run as tasks on the running
asyncio loop.

Two job kinds:
  - **IntervalJob** runs every N minutes (market price refresh and alerts).
  - **DailyJob** runs once a day at a local ``HH:MM`` wall-clock time
    (exchange-rate table refresh). The next run is always recomputed from
    the clock after each run, so the job stays pinned to the same local time
    across restarts and overruns.

Each job loop is: compute next run -> sleep until then -> run -> recompute.
A failing job is logged and rescheduled; it never stops the scheduler.

Typical usage via the CLI::

    ioracle start-scheduler --inventory data/inventory.json

Or directly::

    scheduler = Scheduler()
    scheduler.add_job(IntervalJob("market-refresh", 60, market.refresh_prices))
    scheduler.add_job(DailyJob("rate-update", "02:00", currency.update_all))
    await scheduler.run_forever()

``clock`` and ``sleep`` are injectable so next-run times can be tested
without waiting in real time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

log = logging.getLogger(__name__)

JobAction = Callable[[], Awaitable[object]]


# ── Helpers ───────────────────────────────────────────────────────────────────


def parse_daily_time(daily_time: str) -> tuple[int, int]:
    """Parse ``HH:MM`` into ``(hour, minute)``.

    Raises:
        ValueError: If the string is malformed or out of range.
    """
    parts = daily_time.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected HH:MM, got '{daily_time}'.")
    hour, minute = (int(p) for p in parts)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Time out of range: '{daily_time}'.")
    return hour, minute


def next_daily_run(now: datetime, daily_time: str) -> datetime:
    """Return the first datetime after ``now`` matching ``daily_time`` (``HH:MM``)."""
    hour, minute = parse_daily_time(daily_time)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


# ── Jobs ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IntervalJob:
    """Run ``action`` every ``interval_minutes``.

    When ``run_immediately`` is set the first run happens on start instead
    of one interval later.
    """

    name: str
    interval_minutes: float
    action: JobAction
    run_immediately: bool = False

    def __post_init__(self) -> None:
        if self.interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {self.interval_minutes}.")

    def first_run(self, now: datetime) -> datetime:
        if self.run_immediately:
            return now
        return self.next_run_after(now)

    def next_run_after(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self.interval_minutes)


@dataclass(frozen=True)
class DailyJob:
    """Run ``action`` once a day at local ``daily_time``."""

    name: str
    daily_time: str
    action: JobAction

    def __post_init__(self) -> None:
        parse_daily_time(self.daily_time)

    def first_run(self, now: datetime) -> datetime:
        return next_daily_run(now, self.daily_time)

    def next_run_after(self, now: datetime) -> datetime:
        return next_daily_run(now, self.daily_time)


# ── Scheduler ─────────────────────────────────────────────────────────────────


class Scheduler:
    """Runs registered jobs on the current event loop until stopped.

    Parameters
    ----------
    clock:
        Returns the current local time. Defaults to ``datetime.now``.
    sleep:
        Coroutine used to wait; defaults to ``asyncio.sleep``.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._jobs: dict[str, Union[IntervalJob, DailyJob]] = {}
        self._next_runs: dict[str, datetime] = {}
        self._run_counts: dict[str, int] = {}
        self._tasks: list[asyncio.Task] = []
        self._running = False

    # ── Registration ──────────────────────────────────────────────────────────

    def add_job(self, job: Union[IntervalJob, DailyJob]) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Job '{job.name}' is already registered.")
        self._jobs[job.name] = job
        self._next_runs[job.name] = job.first_run(self._clock())
        self._run_counts[job.name] = 0
        if self._running:
            self._tasks.append(asyncio.create_task(self._job_loop(job), name=job.name))

    def remove_job(self, name: str) -> None:
        """Unregister job ``name`` and cancel its task if the scheduler is running."""
        self._jobs.pop(name, None)
        self._next_runs.pop(name, None)
        self._run_counts.pop(name, None)
        remaining: list[asyncio.Task] = []
        for task in self._tasks:
            if task.get_name() == name:
                task.cancel()
            else:
                remaining.append(task)
        self._tasks = remaining

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    @property
    def is_running(self) -> bool:
        return self._running

    def next_run(self, name: str) -> Optional[datetime]:
        """Return the next scheduled run of job ``name``, or ``None``."""
        return self._next_runs.get(name)

    def run_count(self, name: str) -> int:
        return self._run_counts.get(name, 0)

    # ── Execution ─────────────────────────────────────────────────────────────

    async def run_job(self, job: Union[IntervalJob, DailyJob]) -> bool:
        """Run one job now. Returns ``True`` on success; failures are logged."""
        log.info("[%s] Starting at %s", job.name, self._clock().strftime("%Y-%m-%d %H:%M:%S"))
        try:
            await job.action()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("[%s] Failed: %s", job.name, exc, exc_info=True)
            return False
        finally:
            self._run_counts[job.name] = self._run_counts.get(job.name, 0) + 1
        log.info("[%s] Completed successfully.", job.name)
        return True

    async def _job_loop(self, job: Union[IntervalJob, DailyJob]) -> None:
        next_at = self._next_runs.get(job.name) or job.first_run(self._clock())
        while self._running and job.name in self._jobs:
            self._next_runs[job.name] = next_at
            delay = (next_at - self._clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)
            if not self._running:
                break
            await self.run_job(job)
            next_at = job.next_run_after(self._clock())
            log.info(
                "[%s] Next run at %s", job.name, next_at.strftime("%Y-%m-%d %H:%M:%S")
            )

    def start(self) -> None:
        """Spawn one task per job on the running loop."""
        if self._running:
            return
        self._running = True
        log.info("Scheduler starting with jobs: %s", ", ".join(self._jobs) or "(none)")
        self._tasks = [
            asyncio.create_task(self._job_loop(job), name=job.name)
            for job in self._jobs.values()
        ]

    async def stop(self) -> None:
        """Cancel all job tasks and wait for them to finish."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("Scheduler stopped.")

    async def run_forever(self) -> None:
        """Start and block until every job is removed or the caller is cancelled.

        Jobs added or removed while running are picked up on the next wake-up.
        """
        self.start()
        try:
            while self._running and self._tasks:
                await asyncio.wait(list(self._tasks), return_when=asyncio.FIRST_COMPLETED)
                self._tasks = [task for task in self._tasks if not task.done()]
        finally:
            if self._running:
                await self.stop()
