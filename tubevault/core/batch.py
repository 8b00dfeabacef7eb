"""
Batch coordinator: acquires every member of a playlist-like source.

The member roster lives only in memory for the life of the dispatch. The
parent job row carries the persisted aggregate (size and completed count).
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..database.connection import DatabaseManager
from ..database.models import AcquisitionJob, JobStatus
from ..database.service import DatabaseService
from ..monitoring.metrics import PrometheusMetrics
from ..notifications.fanout import BatchProgressEvent, ObserverRegistry
from ..utils.exceptions import (
    AgeRestrictedError,
    BatchEnumerationError,
    ConflictError,
    EmptyBatchError,
    FetcherError,
)
from .dispatcher import Dispatcher
from .fetcher import BatchEntry, BatchListing, Fetcher
from .job_store import JobStore
from .reconciler import BatchContext
from .supervisor import MAX_RUNNING_PROGRESS

logger = get_logger(__name__)


@dataclass
class BatchRun:
    """In-memory state of one batch dispatch."""
    batch_id: str
    listing: BatchListing
    quality: str
    want_subtitles: bool
    target_collection_id: Optional[int] = None
    stopped: bool = False
    in_flight: Set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    task: Optional[asyncio.Task] = None

    @property
    def context(self) -> BatchContext:
        return BatchContext(self.batch_id, self.target_collection_id)


class BatchCoordinator:
    """Enumerates a batch, creates its parent job and drives each member."""

    def __init__(
        self,
        fetcher: Fetcher,
        store: JobStore,
        dispatcher: Dispatcher,
        observers: ObserverRegistry,
        database: DatabaseManager,
        config: Optional[Settings] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.dispatcher = dispatcher
        self.observers = observers
        self.database = database
        self.settings = config or default_settings
        self.metrics = metrics
        self._runs: Dict[str, BatchRun] = {}

    async def preview(self, source_url: str) -> BatchListing:
        """Enumerate members without creating any job."""
        try:
            listing = await self.fetcher.enumerate_batch(source_url)
        except (AgeRestrictedError, BatchEnumerationError):
            raise
        except FetcherError as e:
            raise BatchEnumerationError(f"Failed to get playlist info: {e.message}", url=source_url, cause=e)

        if listing.member_count == 0:
            raise EmptyBatchError(source_url)
        return listing

    async def start_batch(
        self,
        source_url: str,
        quality: str,
        want_subtitles: bool,
        collection_id: Optional[int] = None,
    ) -> Tuple[AcquisitionJob, BatchListing]:
        """Enumerate, persist the parent job and start dispatching members.

        Nothing is persisted when enumeration fails.
        """
        listing = await self.preview(source_url)

        batch_id = listing.id
        if batch_id in {entry.id for entry in listing.entries}:
            # a single item wrapped as a batch shares its ID with its only member
            batch_id = f"batch-{batch_id}"

        parent = await self.store.submit(
            batch_id,
            source_url=source_url,
            quality=quality,
            want_subtitles=want_subtitles,
            title=listing.title,
            is_batch=True,
            batch_size=listing.member_count,
            batch_target_id=collection_id,
        )
        parent = await self.store.transition(batch_id, JobStatus.DOWNLOADING) or parent

        run = BatchRun(
            batch_id=batch_id,
            listing=listing,
            quality=quality,
            want_subtitles=want_subtitles,
            target_collection_id=collection_id,
        )
        self._runs[batch_id] = run
        run.task = asyncio.create_task(self._drive(run), name=f"batch-{batch_id}")

        logger.info(
            "Batch started",
            extra={"batch_id": batch_id, "members": listing.member_count, "collection_id": collection_id}
        )
        return parent, listing

    def stop(self, batch_id: str) -> List[str]:
        """Stop dispatching further members; returns the members currently in flight."""
        run = self._runs.get(batch_id)
        if run is None:
            return []
        run.stopped = True
        return sorted(run.in_flight)

    async def wait(self, batch_id: str) -> None:
        run = self._runs.get(batch_id)
        if run and run.task:
            await asyncio.shield(run.task)

    async def shutdown(self) -> None:
        runs = list(self._runs.values())
        for run in runs:
            run.stopped = True
            if run.task and not run.task.done():
                run.task.cancel()
        await asyncio.gather(*(r.task for r in runs if r.task), return_exceptions=True)

    async def _drive(self, run: BatchRun) -> None:
        try:
            async with self.database.get_session() as session:
                in_library = await DatabaseService(session).library.existing_source_ids(
                    entry.id for entry in run.listing.entries
                )

            member_slots = asyncio.Semaphore(self.settings.BATCH_MEMBER_CONCURRENCY)

            async def attempt(entry: BatchEntry) -> None:
                async with member_slots:
                    if run.stopped:
                        return
                    try:
                        await self._acquire_member(run, entry, entry.id in in_library)
                    except Exception as e:
                        logger.error(
                            f"Batch member failed unexpectedly: {e}",
                            exc_info=True,
                            extra={"batch_id": run.batch_id, "member": entry.id}
                        )
                    await self._record_attempt(run, entry)

            await asyncio.gather(*(attempt(entry) for entry in run.listing.entries))

            if not run.stopped:
                await self.store.transition(run.batch_id, JobStatus.COMPLETED)
                if self.metrics:
                    self.metrics.record_job_finished(JobStatus.COMPLETED.value, is_batch=True)
                logger.info("Batch finished", extra={"batch_id": run.batch_id})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Batch dispatch crashed: {e}", exc_info=True, extra={"batch_id": run.batch_id})
            await self.store.transition(run.batch_id, JobStatus.FAILED, error_message=str(e))
        finally:
            self._runs.pop(run.batch_id, None)

    async def _acquire_member(self, run: BatchRun, entry: BatchEntry, already_acquired: bool) -> None:
        if already_acquired:
            await self._link_existing(run, entry)
            return

        url = entry.url or f"https://www.youtube.com/watch?v={entry.id}"
        try:
            await self.store.submit(
                entry.id,
                source_url=url,
                quality=run.quality,
                want_subtitles=run.want_subtitles,
                title=entry.title,
                batch_target_id=run.target_collection_id,
            )
        except ConflictError:
            logger.info(
                "Batch member already being acquired elsewhere; counting as attempted",
                extra={"batch_id": run.batch_id, "member": entry.id}
            )
            return

        run.in_flight.add(entry.id)
        try:
            status = await self.dispatcher.acquire(entry.id, run.context)
        finally:
            run.in_flight.discard(entry.id)
        logger.debug(
            "Batch member finished",
            extra={"batch_id": run.batch_id, "member": entry.id, "status": status.value if status else None}
        )

    async def _link_existing(self, run: BatchRun, entry: BatchEntry) -> None:
        logger.info(
            "Batch member already in library; skipping acquisition",
            extra={"batch_id": run.batch_id, "member": entry.id}
        )
        if run.target_collection_id is None:
            return
        async with self.database.get_session() as session:
            library = DatabaseService(session).library
            item = await library.get_by_source_id(entry.id)
            if item is not None and await library.get_collection(run.target_collection_id) is not None:
                await library.append_to_collection(run.target_collection_id, item.id)

    async def _record_attempt(self, run: BatchRun, entry: BatchEntry) -> None:
        # serialized so observers see the counter in order
        async with run.lock:
            counts = await self.store.increment_batch_completed(run.batch_id)
            if counts is None:
                return
            completed, size = counts
            event = BatchProgressEvent(run.batch_id, size, completed, current_item=entry.title or entry.id)
            # refused once the parent has left downloading, e.g. after a cancel
            if await self.store.record_progress(run.batch_id, min(event.progress, MAX_RUNNING_PROGRESS)):
                await self.observers.broadcast(event)
