"""
Process supervisor: runs one fetcher invocation per job and streams its output.

Every job gets a dedicated task that consumes the fetcher's stdout line by
line. Progress is persisted first and broadcast only when the store accepted
it, so pushed and polled values never diverge.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import psutil

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..database.models import AcquisitionJob, JobStatus
from ..monitoring.metrics import PrometheusMetrics
from ..notifications.fanout import CompletedEvent, ErrorEvent, ObserverRegistry, ProgressEvent
from ..utils.exceptions import (
    AcquisitionError,
    AgeRestrictedError,
    FetcherError,
)
from .fetcher import Fetcher, MediaInfo
from .job_store import JobStore
from .reconciler import ArtifactReconciler, BatchContext
from .storage import StorageLayout

logger = get_logger(__name__)

# 100 is reserved for completed jobs
MAX_RUNNING_PROGRESS = 99.9


@dataclass
class FetchHandle:
    """Reference to a running acquisition, kept for cancellation."""
    job_id: str
    process: Optional[asyncio.subprocess.Process] = None
    task: Optional[asyncio.Task] = None
    cancelled: bool = False
    started_at: float = field(default_factory=time.monotonic)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def wait(self) -> None:
        if self.task is not None:
            await asyncio.shield(self.task)

    async def terminate(self, grace: float) -> None:
        """Ask the fetcher (and anything it spawned) to exit, then kill it after ``grace`` seconds."""
        self.cancelled = True
        if not self.running:
            return

        children = []
        try:
            children = psutil.Process(self.process.pid).children(recursive=True)
        except psutil.Error:
            pass

        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        for child in children:
            try:
                child.terminate()
            except psutil.Error:
                pass

        try:
            await asyncio.wait_for(self.process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(
                "Fetcher ignored SIGTERM, killing",
                extra={"job_id": self.job_id, "pid": self.pid}
            )
            for child in children:
                try:
                    child.kill()
                except psutil.Error:
                    pass
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
            await self.process.wait()


class ProcessSupervisor:
    """Starts fetcher invocations and drives each job to a terminal state."""

    def __init__(
        self,
        fetcher: Fetcher,
        store: JobStore,
        reconciler: ArtifactReconciler,
        observers: ObserverRegistry,
        layout: StorageLayout,
        config: Optional[Settings] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.reconciler = reconciler
        self.observers = observers
        self.layout = layout
        self.settings = config or default_settings
        self.metrics = metrics
        self._handles: Dict[str, FetchHandle] = {}

    def get_handle(self, job_id: str) -> Optional[FetchHandle]:
        return self._handles.get(job_id)

    @property
    def running_count(self) -> int:
        return len(self._handles)

    def start(self, job: AcquisitionJob, batch: Optional[BatchContext] = None) -> FetchHandle:
        """Begin acquiring ``job`` in the background and return its handle."""
        if job.id in self._handles:
            return self._handles[job.id]

        handle = FetchHandle(job_id=job.id)
        self._handles[job.id] = handle
        handle.task = asyncio.create_task(self._supervise(handle, job, batch), name=f"acquire-{job.id}")
        return handle

    async def run(self, job: AcquisitionJob, batch: Optional[BatchContext] = None) -> FetchHandle:
        handle = self.start(job, batch)
        await handle.wait()
        return handle

    async def shutdown(self) -> None:
        handles = list(self._handles.values())
        for handle in handles:
            if handle.task and not handle.task.done():
                handle.task.cancel()
        await asyncio.gather(*(h.task for h in handles if h.task), return_exceptions=True)

    async def _supervise(self, handle: FetchHandle, job: AcquisitionJob, batch: Optional[BatchContext]) -> None:
        outcome = "skipped"
        if self.metrics:
            self.metrics.record_acquisition_started()
        try:
            outcome = await self._acquire(handle, job, batch)
        except asyncio.CancelledError:
            await handle.terminate(self.settings.CANCEL_GRACE_SECONDS)
            outcome = "interrupted"
            raise
        except Exception as e:
            logger.error(
                f"Acquisition crashed: {e}",
                exc_info=True,
                extra={"job_id": job.id}
            )
            await self._fail(job.id, f"Internal error: {e}")
            outcome = JobStatus.FAILED.value
        finally:
            self._handles.pop(job.id, None)
            if self.metrics:
                self.metrics.record_acquisition_finished(outcome, time.monotonic() - handle.started_at)
                if outcome in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
                    self.metrics.record_job_finished(outcome)

    async def _acquire(self, handle: FetchHandle, job: AcquisitionJob, batch: Optional[BatchContext]) -> str:
        running = await self.store.transition(job.id, JobStatus.DOWNLOADING)
        if running is None:
            logger.info("Job is no longer pending; not starting", extra={"job_id": job.id})
            return "skipped"

        try:
            info: MediaInfo = await self.fetcher.fetch_info(running.source_url)
        except FetcherError as e:
            await self._fail(job.id, e.message, isinstance(e, AgeRestrictedError))
            return JobStatus.FAILED.value
        if info.title:
            await self.store.set_title(job.id, info.title)
            running.title = info.title

        if handle.cancelled:
            return JobStatus.CANCELLED.value

        self.layout.working_dir.mkdir(parents=True, exist_ok=True)
        args = self.fetcher.build_download_args(
            job.id,
            running.source_url,
            running.quality,
            running.want_subtitles,
            self.layout.working_dir,
        )
        try:
            handle.process = await self.fetcher.spawn(args, url=running.source_url)
        except FetcherError as e:
            await self._fail(job.id, e.message)
            return JobStatus.FAILED.value

        if handle.cancelled:
            # cancel arrived while the process was being spawned
            await handle.terminate(self.settings.CANCEL_GRACE_SECONDS)

        logger.info(
            "Fetcher running",
            extra={"job_id": job.id, "pid": handle.pid, "quality": running.quality}
        )

        stderr_task = asyncio.create_task(handle.process.stderr.read())
        await self._stream_progress(job.id, handle.process.stdout)
        returncode = await handle.process.wait()
        stderr = (await stderr_task).decode("utf-8", errors="replace")

        if handle.cancelled:
            logger.info("Fetcher exited after cancellation", extra={"job_id": job.id, "returncode": returncode})
            return JobStatus.CANCELLED.value

        if returncode != 0:
            error = self.fetcher.classify_failure(stderr, returncode, running.source_url)
            logger.warning(
                "Fetcher failed",
                extra={"job_id": job.id, "returncode": returncode, "error_code": error.error_code}
            )
            await self._fail(job.id, error.message, isinstance(error, AgeRestrictedError))
            return JobStatus.FAILED.value

        try:
            result = await self.reconciler.reconcile(running, self.layout.working_dir, info, batch)
        except AcquisitionError as e:
            # the reconciler has already recorded the failure
            await self.observers.broadcast(ErrorEvent(job.id, e.message))
            return JobStatus.FAILED.value

        if result is None:
            return JobStatus.CANCELLED.value

        await self.observers.broadcast(CompletedEvent(job.id, result.item))
        return JobStatus.COMPLETED.value

    async def _stream_progress(self, job_id: str, stream: asyncio.StreamReader) -> None:
        last = -1.0
        async for raw in stream:
            value = self.fetcher.parse_progress(raw.decode("utf-8", errors="replace"))
            if value is None:
                continue
            value = min(value, MAX_RUNNING_PROGRESS)
            if value <= last:
                continue
            if await self.store.record_progress(job_id, value):
                last = value
                await self.observers.broadcast(ProgressEvent(job_id, value))

    async def _fail(self, job_id: str, message: str, age_restricted: bool = False) -> None:
        failed = await self.store.transition(job_id, JobStatus.FAILED, error_message=message)
        if failed is not None:
            await self.observers.broadcast(ErrorEvent(job_id, message, is_age_restricted=age_restricted))
