"""DiscoveryScheduler — delayed first campaign, then periodic re-scans."""

from __future__ import annotations

import asyncio
import concurrent.futures
import enum
import os
import threading
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

log = structlog.get_logger("depsentinel.scheduler")

MAX_WORKERS = 4
DEFAULT_SHUTDOWN_GRACE = 5.0


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"


def default_worker_count() -> int:
    return max(1, min(MAX_WORKERS, os.cpu_count() or 1))


class DiscoveryScheduler:
    """Runs discovery campaigns off the caller's thread.

    The cadence loop lives on a private asyncio event loop in a daemon
    thread; each campaign runs on a small worker pool.  Campaigns never
    overlap.  Discovery starts exactly once, however many callers ask for
    it; :meth:`force` adds one immediate campaign on top of the cadence.
    """

    def __init__(
        self,
        campaign: Callable[[], Any],
        *,
        initial_delay: float,
        interval: float,
        max_workers: int | None = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        name: str = "dependency-discovery",
    ) -> None:
        self._campaign = campaign
        self._initial_delay = max(0.0, initial_delay)
        self._interval = interval
        self._shutdown_grace = shutdown_grace
        self._name = name
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers or default_worker_count(),
            thread_name_prefix=name,
        )

        self._guard = threading.Lock()
        self._started = False
        self._closed = False
        self._completed = 0

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._stop = asyncio.Event()
        self._campaign_lock = asyncio.Lock()

    # ── public API ───────────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        if self._closed:
            return SchedulerState.STOPPED
        if not self._started:
            return SchedulerState.IDLE
        if self._campaign_lock.locked():
            return SchedulerState.RUNNING
        if self._completed:
            return SchedulerState.WAITING
        return SchedulerState.SCHEDULED

    @property
    def completed_campaigns(self) -> int:
        return self._completed

    def is_started(self) -> bool:
        return self._started

    def start(self) -> bool:
        """Schedule discovery. Only the first call has any effect."""
        with self._guard:
            if self._started or self._closed:
                return False
            self._started = True
            self._start_loop()
        self._spawn(self._cadence())
        log.info(
            "scheduler.started",
            initial_delay=self._initial_delay,
            interval=self._interval,
        )
        return True

    def force(self) -> None:
        """Run one extra campaign now, or start discovery if it never started."""
        if self.start():
            return
        if self._closed:
            log.debug("scheduler.force_ignored", reason="stopped")
            return
        self._spawn(self._run_campaign("forced"))

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop the scheduler; True when everything stopped within the grace period."""
        with self._guard:
            if self._closed:
                return True
            self._closed = True
            loop, thread = self._loop, self._thread

        grace = self._shutdown_grace if timeout is None else timeout
        clean = True
        if loop is not None and thread is not None:
            try:
                future = asyncio.run_coroutine_threadsafe(self._drain(grace), loop)
                clean = future.result(timeout=grace + 1.0)
            except (concurrent.futures.TimeoutError, RuntimeError):
                log.warning("scheduler.drain_timeout", grace=grace)
                clean = False
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=grace)
            if thread.is_alive():
                clean = False

        self._executor.shutdown(wait=False, cancel_futures=True)
        log.info("scheduler.stopped", clean=clean)
        return clean

    # ── event loop plumbing ──────────────────────────────────────────────

    def _start_loop(self) -> None:
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def _run() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            try:
                loop.run_forever()
            finally:
                loop.close()

        thread = threading.Thread(target=_run, name=f"{self._name}-loop", daemon=True)
        thread.start()
        ready.wait()
        self._loop, self._thread = loop, thread

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        loop = self._loop
        if loop is None:
            coro.close()
            return

        def _create() -> None:
            if self._stop.is_set():
                coro.close()
                return
            task = loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        try:
            loop.call_soon_threadsafe(_create)
        except RuntimeError:
            coro.close()

    async def _wait_stopped(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if a stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _cadence(self) -> None:
        if await self._wait_stopped(self._initial_delay):
            return
        await self._run_campaign("initial")
        if self._interval <= 0:
            log.debug("scheduler.single_run")
            return
        while not await self._wait_stopped(self._interval):
            await self._run_campaign("periodic")

    async def _run_campaign(self, trigger: str) -> None:
        async with self._campaign_lock:
            if self._stop.is_set():
                return
            loop = asyncio.get_running_loop()
            try:
                result = await loop.run_in_executor(self._executor, self._campaign)
                log.info("scheduler.campaign", trigger=trigger, result=result)
            except Exception:
                log.exception("scheduler.campaign_failed", trigger=trigger)
            finally:
                self._completed += 1

    async def _drain(self, grace: float) -> bool:
        self._stop.set()
        tasks = [t for t in self._tasks if not t.done()]
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=grace)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        return not pending
