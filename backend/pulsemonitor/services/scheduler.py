"""Scheduler service - one independent interval job per endpoint.

Scheduling design:
- Each enabled endpoint gets its own APScheduler interval job, so a slow or
  hanging probe never delays checks of other endpoints.
- A job that fires while the previous check of the same endpoint is still
  running is skipped (max_instances=1, and the per-endpoint lock is probed
  before starting). Overlapping checks of one endpoint never happen.
- On startup first checks are staggered by STARTUP_STAGGER_SECONDS per
  endpoint to avoid a burst of connections.
- Unscheduling bumps the endpoint's generation and cancels any in-flight
  check, so a deleted or reconfigured endpoint never receives a stale result.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .alerter import NotificationDispatcher
from .checker import CheckerService, CheckResult, checker_service
from .monitor_state import CheckOutcome, MonitorState

logger = logging.getLogger(__name__)

# Delay between the first checks of consecutive endpoints on startup
STARTUP_STAGGER_SECONDS = 0.5


def _job_id(endpoint_id: str) -> str:
    return f"endpoint:{endpoint_id}"


class SchedulerService:
    """Service for scheduling and running periodic endpoint checks."""

    def __init__(
        self,
        state: MonitorState,
        checker: Optional[CheckerService] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.state = state
        self.checker = checker or checker_service
        self.dispatcher = dispatcher or NotificationDispatcher(state)
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._generations: Dict[str, int] = {}
        self._in_flight: Dict[str, Set[asyncio.Task]] = {}
        self._background: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return
        self.scheduler = AsyncIOScheduler()
        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self):
        """Stop the scheduler and cancel in-flight checks."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
        tasks = [task for running in self._in_flight.values() for task in running]
        tasks += list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        logger.info("Scheduler stopped")

    def add_interval_job(self, func: Callable[..., Awaitable[Any]], seconds: float, job_id: str,
                         delay: float = 0, args: Optional[list] = None):
        """Add or replace an interval job whose first run is ``delay`` seconds away."""
        if not self.scheduler:
            raise RuntimeError("Scheduler is not running")
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            args=args or [],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(seconds)),
            next_run_time=datetime.now().astimezone() + timedelta(seconds=delay),
        )

    def remove_job(self, job_id: str):
        if not self.scheduler:
            return
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def start_all(self):
        """Schedule every enabled endpoint with a staggered first check."""
        endpoints = self.state.get_enabled_endpoints()
        for index, endpoint in enumerate(endpoints):
            self.schedule(endpoint, delay=index * STARTUP_STAGGER_SECONDS)
        logger.info(f"Scheduled {len(endpoints)} endpoint(s)")

    def schedule(self, endpoint, delay: float = 0):
        """(Re)schedule an endpoint's checks; disabled endpoints are unscheduled."""
        self.unschedule(endpoint.id)
        if not endpoint.enabled:
            return
        generation = self._generations.get(endpoint.id, 0)
        self.add_interval_job(
            self._tick,
            seconds=endpoint.interval,
            job_id=_job_id(endpoint.id),
            delay=delay,
            args=[endpoint.id, generation],
        )
        logger.debug(f"Scheduled {endpoint.name} every {endpoint.interval}s (first in {delay}s)")

    def unschedule(self, endpoint_id: str):
        """Stop checking an endpoint and discard any in-flight result."""
        self._generations[endpoint_id] = self._generations.get(endpoint_id, 0) + 1
        self.remove_job(_job_id(endpoint_id))
        for task in self._in_flight.pop(endpoint_id, set()):
            if not task.done():
                task.cancel()

    def forget(self, endpoint_id: str):
        """Unschedule a deleted endpoint and drop its bookkeeping."""
        self.unschedule(endpoint_id)
        self._generations.pop(endpoint_id, None)

    def is_scheduled(self, endpoint_id: str) -> bool:
        return bool(self.scheduler and self.scheduler.get_job(_job_id(endpoint_id)))

    async def _tick(self, endpoint_id: str, generation: int):
        if self.state.endpoint_lock(endpoint_id).locked():
            logger.debug(f"Skipping tick for {endpoint_id}: previous check still running")
            return
        await self._run_tracked(endpoint_id, generation)

    async def run_check_now(self, endpoint_id: str) -> Optional[CheckOutcome]:
        """Check an endpoint immediately, waiting for any running check first.

        Raises:
            NotFoundError: If the endpoint does not exist
        """
        self.state.get_endpoint(endpoint_id)
        return await self._run_tracked(endpoint_id, self._generations.get(endpoint_id, 0))

    async def _run_tracked(self, endpoint_id: str, generation: int) -> Optional[CheckOutcome]:
        task = asyncio.create_task(self._run_check(endpoint_id, generation))
        running = self._in_flight.setdefault(endpoint_id, set())
        running.add(task)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                logger.debug(f"Check for {endpoint_id} cancelled")
                return None
            raise
        finally:
            running.discard(task)
            if not running and self._in_flight.get(endpoint_id) is running:
                del self._in_flight[endpoint_id]

    async def _run_check(self, endpoint_id: str, generation: int) -> Optional[CheckOutcome]:
        """Probe one endpoint and apply the result under its lock."""
        async with self.state.endpoint_lock(endpoint_id):
            if not self._is_current(endpoint_id, generation):
                return None
            endpoint = self.state.get_endpoint(endpoint_id)
            result: CheckResult = await self.checker.check(endpoint)

            if not self._is_current(endpoint_id, generation):
                logger.debug(f"Discarding result for {endpoint_id}: endpoint changed during check")
                return None
            outcome = await self.state.record_check(endpoint_id, result)

        if outcome is None:
            return None
        logger.debug(f"Endpoint {endpoint.name}: {result.status} ({result.message})")

        if outcome.alert is not None:
            self._notify(outcome.alert, endpoint)
        elif outcome.recovered and outcome.resolved_alerts:
            self._notify(outcome.resolved_alerts[0], endpoint)
        return outcome

    def _is_current(self, endpoint_id: str, generation: int) -> bool:
        return self.state.has_endpoint(endpoint_id) and self._generations.get(endpoint_id, 0) == generation

    def _notify(self, alert, endpoint):
        """Dispatch in the background so slow channels never hold the endpoint lock."""
        task = asyncio.create_task(self.dispatcher.dispatch(alert, endpoint))
        self._background.add(task)
        task.add_done_callback(self._on_notified)

    def _on_notified(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Error dispatching notification: {task.exception()}")

    async def drain(self):
        """Wait for background notifications to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
