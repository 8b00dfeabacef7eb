"""
Cancellation controller.

The status change is written first, so the job store decides the winner when
a cancel races a completion. Process termination and file cleanup follow.
"""

from pathlib import Path
from typing import List, Optional

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..database.models import JobStatus
from ..database.service import DatabaseService
from ..monitoring.metrics import PrometheusMetrics
from .batch import BatchCoordinator
from .job_store import JobStore
from .storage import StorageLayout
from .supervisor import ProcessSupervisor

logger = get_logger(__name__)


class CancellationController:
    """Stops an in-flight job and purges its partial artifacts."""

    def __init__(
        self,
        store: JobStore,
        supervisor: ProcessSupervisor,
        batches: BatchCoordinator,
        layout: StorageLayout,
        config: Optional[Settings] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.store = store
        self.supervisor = supervisor
        self.batches = batches
        self.layout = layout
        self.settings = config or default_settings
        self.metrics = metrics

    async def cancel(self, job_id: str) -> bool:
        """Cancel a pending or downloading job.

        Returns False (and does nothing) if the job is not active.
        """
        job = await self.store.get(job_id)
        if job is None or not job.is_active:
            return False

        if await self.store.transition(job_id, JobStatus.CANCELLED) is None:
            # finished or cancelled by someone else in the meantime
            return False

        members: List[str] = []
        if job.is_batch:
            members = self.batches.stop(job_id)
            for member_id in members:
                await self.cancel(member_id)

        handle = self.supervisor.get_handle(job_id)
        if handle is not None:
            await handle.terminate(self.settings.CANCEL_GRACE_SECONDS)

        deleted = await self.purge(job_id)
        if self.metrics:
            self.metrics.record_job_finished(JobStatus.CANCELLED.value, is_batch=job.is_batch)

        logger.info(
            "Job cancelled",
            extra={
                "job_id": job_id,
                "pid": handle.pid if handle else None,
                "members_cancelled": len(members),
                "files_deleted": len(deleted),
            }
        )
        return True

    async def purge(self, job_id: str) -> List[Path]:
        """Delete ``<key>.*`` from the working and storage directories, never raising.

        Files referenced by an existing library item for the same key are
        left in place; a cancelled re-acquisition must not take the
        committed copy with it.
        """
        keep = await self._library_files(job_id)
        deleted, failures = await self.layout.purge(job_id, keep=keep)
        for failure in failures:
            logger.warning(str(failure), extra={"job_id": job_id, **failure.context})
            if self.metrics:
                self.metrics.record_cleanup_failure()
        return deleted

    async def _library_files(self, job_id: str) -> List[Path]:
        async with self.store.database.get_session() as session:
            item = await DatabaseService(session).library.get_by_source_id(job_id)
            if item is None:
                return []
            return [self.layout.root / p for p in item.file_paths]
