"""
Dispatcher: admission queue in front of the supervisor.

At most ``MAX_CONCURRENT_ACQUISITIONS`` fetcher downloads run at once. Excess
jobs stay ``pending`` and are admitted as running ones finish.
"""

import asyncio
from typing import Optional, Set

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..database.models import JobStatus
from ..monitoring.metrics import PrometheusMetrics
from ..utils.constants import INTERRUPTED_MESSAGE
from .job_store import JobStore
from .reconciler import BatchContext
from .supervisor import ProcessSupervisor

logger = get_logger(__name__)


class Dispatcher:
    """Caps concurrent acquisitions and tracks background admission tasks."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        store: JobStore,
        config: Optional[Settings] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.supervisor = supervisor
        self.store = store
        self.settings = config or default_settings
        self.metrics = metrics
        self.max_concurrent = self.settings.MAX_CONCURRENT_ACQUISITIONS
        self._slots = asyncio.Semaphore(self.max_concurrent)
        self._tasks: Set[asyncio.Task] = set()
        self._waiting = 0

    @property
    def queued(self) -> int:
        return self._waiting

    def submit(self, job_id: str, batch: Optional[BatchContext] = None) -> asyncio.Task:
        """Queue a pending job for acquisition in the background."""
        task = asyncio.create_task(self.acquire(job_id, batch), name=f"dispatch-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def acquire(self, job_id: str, batch: Optional[BatchContext] = None) -> Optional[JobStatus]:
        """Wait for a slot, run the job and return its final status."""
        self._set_waiting(+1)
        try:
            await self._slots.acquire()
        finally:
            self._set_waiting(-1)

        try:
            job = await self.store.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                logger.info(
                    "Skipping job that left pending while queued",
                    extra={"job_id": job_id, "status": job.status.value if job else None}
                )
                return job.status if job else None

            await self.supervisor.run(job, batch)
        finally:
            self._slots.release()

        final = await self.store.get(job_id)
        return final.status if final else None

    async def recover(self) -> int:
        """Reconcile job rows left behind by a previous process.

        Jobs that were downloading are failed. Pending single jobs are queued
        again; pending batch parents are failed since their roster is gone.
        """
        interrupted = await self.store.list_by_status([JobStatus.DOWNLOADING])
        for job in interrupted:
            await self.store.transition(job.id, JobStatus.FAILED, error_message=INTERRUPTED_MESSAGE)

        requeued = 0
        for job in await self.store.list_by_status([JobStatus.PENDING]):
            if job.is_batch:
                await self.store.transition(job.id, JobStatus.FAILED, error_message=INTERRUPTED_MESSAGE)
                continue
            self.submit(job.id)
            requeued += 1

        if interrupted or requeued:
            logger.info(
                "Recovered jobs from previous run",
                extra={"failed": len(interrupted), "requeued": requeued}
            )
        return requeued

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.supervisor.shutdown()

    def _set_waiting(self, delta: int) -> None:
        self._waiting += delta
        if self.metrics:
            self.metrics.acquisitions_queued.set(self._waiting)
