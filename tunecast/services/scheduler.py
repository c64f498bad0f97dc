"""
Distributed Scheduler
Lease-elected leader running periodic sync, upload and render ticks

Only the instance holding the persisted lease runs ticks. The lease is
renewed every TTL/2; a renewal that matches no row means another instance
took over, and this one stops accepting work at once.
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from ..config import Settings, get_settings
from ..utils.exceptions import LeaseLostError
from ..utils.logger import get_logger
from .job_dispatch import JobDispatcher, get_job_dispatcher
from .job_store import JobStore, get_job_store

logger = get_logger()

Tick = Callable[[], Awaitable[object]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LEADING = "leading"


class DistributedScheduler:
    """Per-process scheduler guarded by a database lease"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        dispatcher: Optional[JobDispatcher] = None,
        settings: Optional[Settings] = None,
        instance_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.store = store or get_job_store()
        self._dispatcher = dispatcher
        self.instance_id = instance_id or self.settings.instance_id
        self.lease_name = self.settings.scheduler_lease_name
        self.lease_ttl = self.settings.scheduler_lease_ttl_seconds
        self.clock = clock

        self._state = SchedulerState.STOPPED
        self._accepting = False
        self._start_task: Optional[asyncio.Future] = None
        self._loops: List[asyncio.Task] = []
        self._heartbeat: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Future] = set()
        self._background: Set[asyncio.Future] = set()
        self._idle_handle: Optional[asyncio.TimerHandle] = None

    @property
    def dispatcher(self) -> JobDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_job_dispatcher()
        return self._dispatcher

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_leading(self) -> bool:
        return self._state is SchedulerState.LEADING

    @property
    def accepting(self) -> bool:
        return self._accepting

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Try to become leader and start the tick loops

        Concurrent callers share a single attempt.

        Returns:
            True if this instance is leading afterwards
        """
        if self._state is SchedulerState.LEADING:
            return True

        task = self._start_task
        if task is None:
            task = asyncio.ensure_future(self._start())
            self._start_task = task
            task.add_done_callback(self._clear_start_task)
        return await asyncio.shield(task)

    def _clear_start_task(self, task: asyncio.Future):
        if self._start_task is task:
            self._start_task = None

    async def _start(self) -> bool:
        self._state = SchedulerState.STARTING
        try:
            acquired = await self.store.try_acquire_lease(
                self.lease_name, self.instance_id, self.lease_ttl, self.clock()
            )
        except Exception as e:
            logger.exception(f"Scheduler lease acquisition failed: {e}")
            acquired = False

        if not acquired:
            self._state = SchedulerState.STOPPED
            logger.info(f"Scheduler lease {self.lease_name} held elsewhere; {self.instance_id} stays follower")
            return False

        self._accepting = True
        self._state = SchedulerState.LEADING
        self._loops = [
            asyncio.ensure_future(self._loop("sync", self.settings.sync_interval_seconds, self._sync_tick)),
            asyncio.ensure_future(self._loop("uploads", self.settings.upload_interval_seconds, self._upload_tick)),
            asyncio.ensure_future(self._loop("renders", self.settings.render_interval_seconds, self._render_tick)),
        ]
        self._heartbeat = asyncio.ensure_future(self._heartbeat_loop())
        logger.info(f"Scheduler started: {self.instance_id} leads {self.lease_name} (ttl {self.lease_ttl}s)")
        return True

    async def stop(self, reason: str = "shutdown"):
        """
        Stop ticking and release the lease

        In-flight tick work is left to finish; use wait_idle() to await it.
        """
        if self._start_task is not None:
            await asyncio.shield(self._start_task)

        was_leading = self._state is SchedulerState.LEADING
        self._accepting = False
        await self._cancel_tasks()

        if was_leading:
            try:
                await self.store.release_lease(self.lease_name, self.instance_id, self.clock())
            except Exception as e:
                logger.exception(f"Failed to release scheduler lease: {e}")

        self._state = SchedulerState.STOPPED
        if was_leading:
            logger.info(f"Scheduler stopped ({reason})")

    async def _cancel_tasks(self):
        current = asyncio.current_task()
        tasks = [t for t in self._loops + [self._heartbeat] if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loops = []
        self._heartbeat = None

    async def wait_idle(self):
        """Wait for in-flight tick work to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # =========================================================================
    # Lease heartbeat
    # =========================================================================

    async def _renew(self):
        """Renew the lease, retrying once on a transient error."""
        for attempt in (1, 2):
            try:
                renewed = await self.store.renew_lease(
                    self.lease_name, self.instance_id, self.lease_ttl, self.clock()
                )
            except Exception as e:
                if attempt == 2:
                    raise LeaseLostError(self.lease_name, self.instance_id) from e
                logger.warning(f"Lease renewal error, retrying once: {e}")
                continue
            if not renewed:
                raise LeaseLostError(self.lease_name, self.instance_id)
            return

    async def _heartbeat_loop(self):
        interval = self.lease_ttl / 2
        while self._accepting:
            await asyncio.sleep(interval)
            if not self._accepting:
                return
            try:
                await self._renew()
            except LeaseLostError as e:
                logger.warning(f"{e.message}; scheduler stops accepting work")
                await self._surrender()
                return

    async def _surrender(self):
        """Lease lost: stop new ticks without releasing or cancelling in-flight work."""
        self._accepting = False
        await self._cancel_tasks()
        self._state = SchedulerState.STOPPED

    # =========================================================================
    # Ticks
    # =========================================================================

    async def _loop(self, name: str, interval: float, tick: Tick):
        while self._accepting:
            await self._run_tick(name, tick)
            await asyncio.sleep(interval)

    async def _run_tick(self, name: str, tick: Tick):
        if not self._accepting:
            return
        task = asyncio.ensure_future(self._guarded(name, tick))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)

    @staticmethod
    async def _guarded(name: str, tick: Tick):
        try:
            await tick()
        except Exception as e:
            logger.exception(f"Scheduler {name} tick failed: {e}")

    async def _sync_tick(self):
        await self.dispatcher.drive_sync.sync_all()

    async def _upload_tick(self):
        result = await self.dispatcher.run_uploads()
        if result.scanned:
            logger.info(f"Scheduler uploads tick: {result.processed}/{result.scanned} succeeded")

    async def _render_tick(self):
        result = await self.dispatcher.run_renders()
        if result.scanned:
            logger.info(f"Scheduler renders tick: {result.processed}/{result.scanned} succeeded")

    # =========================================================================
    # Activity-driven lifecycle
    # =========================================================================

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def touch_activity(self):
        """Record API traffic: start if stopped and re-arm the inactivity stop."""
        if self._state is SchedulerState.STOPPED and self._start_task is None:
            self._spawn(self.start())

        inactivity = self.settings.scheduler_inactivity_seconds
        if inactivity <= 0:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(inactivity, self._on_idle)

    def _on_idle(self):
        self._idle_handle = None
        if self._state is not SchedulerState.STOPPED:
            self._spawn(self.stop("inactivity"))

    async def shutdown(self):
        """Stop for good: cancel the idle timer, stop, and drain in-flight work."""
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        await self.stop("shutdown")
        await self.wait_idle()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


_scheduler: Optional[DistributedScheduler] = None


def get_scheduler() -> DistributedScheduler:
    """Return singleton scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DistributedScheduler()
    return _scheduler
