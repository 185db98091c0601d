"""
Periodic trigger for AZE Price Service.
Owns the background tasks that invoke ingestion on an interval and retention at a fixed daily time.
"""

import asyncio
import inspect
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..core.logging_config import create_logger

logger = create_logger(__name__)

Callback = Callable[[], Union[Awaitable[Any], Any]]


def seconds_until(now: datetime, hour: int, minute: int = 0) -> float:
    """Seconds from now until the next occurrence of hour:minute."""
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


class _Registration:

    def __init__(
        self,
        name: str,
        callback: Callback,
        interval: Optional[float] = None,
        daily_at: Optional[tuple] = None,
        run_immediately: bool = False,
    ):
        self.name = name
        self.callback = callback
        self.interval = interval
        self.daily_at = daily_at
        self.run_immediately = run_immediately
        self.last_run: Optional[datetime] = None
        self.runs = 0


class PeriodicTrigger:
    """Runs registered callbacks on an interval or once a day.

    Each registration gets its own task and awaits its callback before
    sleeping again, so invocations of one callback never overlap. Exceptions
    raised by a callback are logged and the loop keeps going.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self._clock = clock
        self._registrations: List[_Registration] = []
        self._running_tasks: List[asyncio.Task] = []
        self._shutdown_event: Optional[asyncio.Event] = None

    def every(self, name: str, seconds: float, callback: Callback, run_immediately: bool = True) -> None:
        """Register a callback invoked every `seconds`, optionally once right at start."""
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {seconds}")
        self._registrations.append(
            _Registration(name, callback, interval=seconds, run_immediately=run_immediately)
        )

    def daily_at(self, name: str, hour: int, minute: int, callback: Callback) -> None:
        """Register a callback invoked once a day at hour:minute (trigger clock time)."""
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"invalid daily time {hour:02d}:{minute:02d}")
        self._registrations.append(_Registration(name, callback, daily_at=(hour, minute)))

    async def start(self) -> None:
        """Start one background task per registration."""
        if self.is_running():
            return

        self._shutdown_event = asyncio.Event()
        self._running_tasks = []

        for registration in self._registrations:
            if registration.interval is not None:
                coro = self._run_interval(registration)
            else:
                coro = self._run_daily(registration)
            self._running_tasks.append(asyncio.create_task(coro, name=registration.name))

        logger.info("Background tasks started", extra={
            "tasks": [registration.name for registration in self._registrations]
        })

    async def shutdown(self) -> None:
        """Signal shutdown, cancel every task and wait for them to finish."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

        for task in self._running_tasks:
            if not task.done():
                task.cancel()

        if self._running_tasks:
            await asyncio.gather(*self._running_tasks, return_exceptions=True)

        self._running_tasks = []
        logger.info("Background tasks stopped")

    async def _invoke(self, registration: _Registration) -> float:
        """Run the callback once; returns its duration in monotonic seconds."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        start_time = self._clock()
        try:
            result = registration.callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Error in background task", extra={
                "task": registration.name,
                "error": str(e)
            })
        registration.last_run = start_time
        registration.runs += 1
        return loop.time() - started

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep up to timeout; True when shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_interval(self, registration: _Registration) -> None:
        """Fixed-rate loop: the callback's own run time is taken out of the next wait.

        A callback that overruns the interval is followed by the next run right
        away, never by a second concurrent one.
        """
        logger.info("Starting interval loop", extra={
            "task": registration.name,
            "interval_seconds": registration.interval
        })

        delay = registration.interval
        if registration.run_immediately:
            delay -= await self._invoke(registration)

        while not self._shutdown_event.is_set():
            if await self._wait_for_shutdown(max(delay, 0)):
                break
            delay = registration.interval - await self._invoke(registration)

    async def _run_daily(self, registration: _Registration) -> None:
        hour, minute = registration.daily_at

        while not self._shutdown_event.is_set():
            delay = seconds_until(self._clock(), hour, minute)
            logger.info("Next daily run scheduled", extra={
                "task": registration.name,
                "delay_seconds": round(delay, 1)
            })
            if await self._wait_for_shutdown(delay):
                break
            await self._invoke(registration)

    def is_running(self) -> bool:
        """Check if any background task is still running."""
        return any(not task.done() for task in self._running_tasks)

    def get_status(self) -> Dict[str, Dict[str, Any]]:
        """Last run time and run count per registration."""
        return {
            registration.name: {
                "last_run": registration.last_run,
                "runs": registration.runs,
            }
            for registration in self._registrations
        }
