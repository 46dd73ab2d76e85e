"""
RequestQueue - the single serialized, rate-limited channel to the upstream.

Every upstream fetch is submitted here. One worker task drains the jobs in
FIFO order and, before each dispatch, consults the request ledger:

- at or above `max_requests` in the trailing window: suspend for the backoff
  and check again, keeping the job at the head of the line
- otherwise: log the request to the ledger, call the transport, resolve the
  job's future with the result or the transport's exception

A fixed interval separates consecutive dispatches. The queue never retries
and never classifies errors; that belongs to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import RequestLogRepository
from bggcache.services.errors import ServiceError
from bggcache.settings import global_settings
from bggcache.utils import utcnow


class Transport(Protocol):
    async def fetch(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        ...


@dataclass
class FetchJob:
    """A pending upstream call plus the handle its submitter awaits."""

    endpoint: str
    params: dict[str, Any]
    future: asyncio.Future
    submitted_at: datetime


@dataclass
class QueueStats:
    """Request queue statistics."""

    submitted: int = 0
    dispatched: int = 0
    failed: int = 0
    throttled: int = 0
    pending: int = 0
    dispatch_times: list[datetime] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "submitted": self.submitted,
            "dispatched": self.dispatched,
            "failed": self.failed,
            "throttled": self.throttled,
            "pending": self.pending,
        }


class RequestQueue:
    """
    Usage:
        queue = RequestQueue(BGGClient())
        doc = await queue.submit("thing", {"id": 13, "stats": 1})
        ...
        await queue.close()
    """

    def __init__(
        self,
        transport: Transport,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        max_requests: int | None = None,
        window_seconds: float | None = None,
        backoff_seconds: float | None = None,
        interval_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._transport = transport
        self._session_factory = session_factory
        self._max_requests = max_requests or global_settings.rate_limit_max_requests
        self._window = timedelta(
            seconds=window_seconds or global_settings.rate_limit_window_seconds
        )
        self._backoff = (
            backoff_seconds
            if backoff_seconds is not None
            else global_settings.rate_limit_backoff_seconds
        )
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else global_settings.request_interval_seconds
        )
        self._clock = clock
        self._sleep = sleep

        self._jobs: asyncio.Queue[FetchJob] = asyncio.Queue()
        # Single dispatcher slot; only submit() and close() touch it
        self._worker: asyncio.Task | None = None
        self._worker_lock = asyncio.Lock()
        self._closed = False
        self._stats = QueueStats()

    async def submit(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        Enqueue an upstream call and wait for its result.

        Raises whatever the transport raised for this job, unchanged.
        """
        if self._closed:
            raise ServiceError("Request queue is closed", service_id=endpoint)

        loop = asyncio.get_running_loop()
        job = FetchJob(
            endpoint=endpoint,
            params=dict(params),
            future=loop.create_future(),
            submitted_at=self._clock(),
        )
        self._jobs.put_nowait(job)
        self._stats.submitted += 1
        await self._ensure_worker()

        return await job.future

    async def _ensure_worker(self) -> None:
        async with self._worker_lock:
            if self._worker is None or self._worker.done():
                self._worker = asyncio.create_task(
                    self._run(), name="bgg-request-queue"
                )

    async def _run(self) -> None:
        while True:
            job = await self._jobs.get()
            try:
                await self._dispatch(job)
            except asyncio.CancelledError:
                self._resolve(job, error=ServiceError("Request queue closed"))
                raise
            finally:
                self._jobs.task_done()
            await self._sleep(self._interval)

    async def _dispatch(self, job: FetchJob) -> None:
        try:
            await self._wait_for_slot(job)
            async with session_scope(self._session_factory) as session:
                await RequestLogRepository(session).log_request(
                    job.endpoint, job.params, self._clock()
                )
        except Exception as e:
            logger.error(f"Request ledger unavailable, failing {job.endpoint}: {e}")
            self._stats.failed += 1
            self._resolve(job, error=e)
            return

        dispatched_at = self._clock()
        self._stats.dispatched += 1
        self._stats.dispatch_times.append(dispatched_at)
        waited = (dispatched_at - job.submitted_at).total_seconds()
        logger.debug(f"Dispatching {job.endpoint} after {waited:.1f}s in queue")

        try:
            result = await self._transport.fetch(job.endpoint, job.params)
        except Exception as e:
            self._stats.failed += 1
            logger.warning(f"Upstream call {job.endpoint} {job.params} failed: {e}")
            self._resolve(job, error=e)
        else:
            self._resolve(job, result=result)

    async def _wait_for_slot(self, job: FetchJob) -> None:
        """Suspend until the trailing window has room; the job stays at the head."""
        while True:
            since = self._clock() - self._window
            async with session_scope(self._session_factory) as session:
                count = await RequestLogRepository(session).count_since(since)

            if count < self._max_requests:
                return

            self._stats.throttled += 1
            logger.info(
                f"Rate limit reached ({count}/{self._max_requests} in "
                f"{self._window.total_seconds():.0f}s). "
                f"Holding {job.endpoint} for {self._backoff}s..."
            )
            await self._sleep(self._backoff)

    @staticmethod
    def _resolve(
        job: FetchJob,
        result: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        # The submitter may have gone away; the work itself still counted
        if job.future.done():
            logger.debug(f"Dropping result of abandoned {job.endpoint} request")
            return
        if error is not None:
            job.future.set_exception(error)
        else:
            job.future.set_result(result)

    def get_stats(self) -> QueueStats:
        """Get queue statistics."""
        self._stats.pending = self._jobs.qsize()
        return self._stats

    async def close(self) -> None:
        """Stop the dispatcher and fail every job that never went out."""
        self._closed = True
        async with self._worker_lock:
            if self._worker is not None:
                self._worker.cancel()
                try:
                    await self._worker
                except asyncio.CancelledError:
                    pass
                self._worker = None

        while not self._jobs.empty():
            job = self._jobs.get_nowait()
            self._resolve(job, error=ServiceError("Request queue closed"))
            self._jobs.task_done()

        close_transport = getattr(self._transport, "close", None)
        if close_transport is not None:
            await close_transport()
        logger.debug("RequestQueue closed")
