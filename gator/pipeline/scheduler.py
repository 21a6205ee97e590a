"""Polling scheduler: refresh the most stale feed once per interval."""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..ingestion.interfaces import FetcherInterface, FetchError, ParseError
from ..ingestion.ingestor import PostIngestor, IngestResult
from ..ingestion.timeparse import UnparseableTimestamp
from ..storage.interfaces import StorageInterface, Feed, utcnow

logger = structlog.get_logger()

# Per-feed failures that never stop the polling loop.
RECOVERABLE_ERRORS = (FetchError, ParseError, UnparseableTimestamp)

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_interval(value: str) -> float:
    """Parse a duration such as ``"1m"``, ``"1h30m"`` or ``"500ms"`` into seconds.

    Raises:
        ValueError: malformed or non-positive durations.
    """
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValueError(f"Unable to parse {value!r} as a duration")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"Unable to parse {value!r} as a duration")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if total <= 0:
        raise ValueError(f"Polling interval must be positive, got {value!r}")
    return total


class SchedulerState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass
class CycleResult:
    """What one polling cycle did. ``feed`` is None when there was nothing to poll."""
    feed: Optional[Feed] = None
    ingest: Optional[IngestResult] = None


class FeedScheduler:
    """Drives fetch-and-ingest cycles, one feed at a time.

    Each cycle picks the feed with the oldest watermark (never-fetched feeds
    first), advances its watermark, then fetches and ingests it. The
    watermark moves before the fetch so that a feed which keeps failing goes
    to the back of the queue instead of being retried on every tick.
    """

    def __init__(
        self,
        storage: StorageInterface,
        fetcher: FetcherInterface,
        ingestor: PostIngestor = None,
        stop_on_error: bool = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.fetcher = fetcher
        self.ingestor = ingestor or PostIngestor(storage)
        self.stop_on_error = settings.poll_stop_on_error if stop_on_error is None else stop_on_error
        self.clock = clock
        self.state = SchedulerState.IDLE

    async def run_cycle(self) -> CycleResult:
        """Run one fetch-and-ingest cycle. Errors propagate to the caller.

        Store calls run in a worker thread so the event loop keeps serving
        signals while the database is slow.
        """
        self.state = SchedulerState.FETCHING
        try:
            feed = await asyncio.to_thread(self.storage.get_next_feed_to_fetch)
            if feed is None:
                logger.info("no_feeds_to_fetch")
                return CycleResult()

            fetched_at = self.clock()
            await asyncio.to_thread(self.storage.mark_feed_fetched, feed.id, fetched_at)
            logger.info("feed_cycle_started", feed=feed.name, url=feed.url)

            try:
                raw_feed = await self.fetcher.fetch_feed(feed.url)
                result = await asyncio.to_thread(
                    self.ingestor.ingest, feed, raw_feed, fetched_at
                )
            except Exception as e:
                logger.warning(
                    "feed_cycle_failed",
                    feed=feed.name,
                    url=feed.url,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise

            return CycleResult(feed=feed, ingest=result)
        finally:
            self.state = SchedulerState.IDLE

    async def poll(self) -> None:
        """Scheduled job: one cycle, with per-feed failures logged and absorbed.

        Other errors are absorbed too unless ``stop_on_error`` is set, in which
        case they propagate to the scheduler and end the loop.
        """
        try:
            await self.run_cycle()
        except RECOVERABLE_ERRORS:
            pass
        except Exception as e:
            if self.stop_on_error:
                raise
            logger.error("cycle_error_ignored", error_type=type(e).__name__, error=str(e))

    async def run(self, interval: float, max_cycles: Optional[int] = None) -> int:
        """Run a cycle now and then at the start of every ``interval`` seconds.

        Cycles never overlap; ticks that pass while a cycle is still running
        are dropped. Runs until cancelled, until ``max_cycles`` cycles have
        run, or until a non-recoverable error when ``stop_on_error`` is set.

        Returns:
            The number of cycles run.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        loop = asyncio.get_running_loop()
        done = loop.create_future()
        cycles = 0

        scheduler = AsyncIOScheduler(event_loop=loop, timezone=timezone.utc)

        def on_job_event(event):
            nonlocal cycles
            if done.done():
                return
            if event.code == EVENT_JOB_MAX_INSTANCES:
                logger.debug("tick_dropped")
                return

            cycles += 1
            if event.code == EVENT_JOB_ERROR:
                logger.error("poll_loop_stopped", cycles=cycles, error=str(event.exception))
                scheduler.pause()
                done.set_exception(event.exception)
            elif max_cycles is not None and cycles >= max_cycles:
                scheduler.pause()
                done.set_result(cycles)

        scheduler.add_listener(
            on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES
        )
        scheduler.add_job(
            self.poll,
            IntervalTrigger(seconds=interval, timezone=timezone.utc),
            id="poll_feeds",
            name="Poll the most stale feed",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )

        logger.info("poll_loop_started", interval_seconds=interval, stop_on_error=self.stop_on_error)
        scheduler.start()
        try:
            await done
        finally:
            # Cancels a cycle still in flight.
            scheduler.shutdown(wait=False)
            await asyncio.sleep(0)

        logger.info("poll_loop_finished", cycles=cycles)
        return cycles
