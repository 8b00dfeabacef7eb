"""
Job store: the persisted source of truth for acquisition jobs.

Each operation runs in its own short transaction. Status and progress writes
are guarded in SQL (see ``JobRepository``) so concurrent writers cannot move a
job backwards.
"""

from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from ..config.logging_config import get_logger
from ..database.connection import DatabaseManager
from ..database.models import AcquisitionJob, JobStatus
from ..database.service import DatabaseService
from ..utils.clock import utcnow
from ..utils.exceptions import ConflictError

logger = get_logger(__name__)

# Fixed at intake; only resubmission may replace them
IMMUTABLE_FIELDS = frozenset({"source_url", "quality", "want_subtitles", "is_batch"})


class JobStore:
    """Async facade over the job table."""

    def __init__(self, database: DatabaseManager):
        self.database = database

    def session(self):
        return self.database.get_session()

    async def get(self, job_id: str) -> Optional[AcquisitionJob]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.get(job_id)

    async def list_active(self) -> List[AcquisitionJob]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.get_active_jobs()

    async def list_history(self, limit: int, offset: int) -> Tuple[List[AcquisitionJob], int]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.get_history(limit=limit, offset=offset)

    async def list_by_status(self, statuses: Iterable[JobStatus], **filters) -> List[AcquisitionJob]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.get_jobs_by_status(statuses, **filters)

    async def status_counts(self) -> dict:
        async with self.session() as session:
            return await DatabaseService(session).jobs.get_status_counts()

    async def submit(
        self,
        job_id: str,
        source_url: str,
        quality: str,
        want_subtitles: bool,
        title: Optional[str] = None,
        is_batch: bool = False,
        batch_size: int = 0,
        batch_target_id: Optional[int] = None,
    ) -> AcquisitionJob:
        """Create a pending job, or reset a finished one with the same key.

        Raises ConflictError when the key already has an active job.
        """
        fields = {
            "source_url": source_url,
            "quality": quality,
            "want_subtitles": want_subtitles,
            "title": title,
            "is_batch": is_batch,
            "batch_size": batch_size,
            "batch_target_id": batch_target_id,
        }

        existing = await self.get(job_id)
        if existing is not None:
            if existing.is_active:
                raise self._conflict(existing)
            async with self.session() as session:
                job = await DatabaseService(session).jobs.reset_for_resubmission(job_id, **fields)
            if job is None:
                raise self._conflict(await self.get(job_id))
            return job

        try:
            async with self.session() as session:
                job = await DatabaseService(session).jobs.create(
                    id=job_id,
                    status=JobStatus.PENDING,
                    progress=0.0,
                    started_at=utcnow(),
                    batch_completed_count=0,
                    **fields,
                )
        except IntegrityError:
            # lost an insert race against an identical request
            raise self._conflict(await self.get(job_id))

        logger.info(
            "Job accepted",
            extra={"job_id": job_id, "is_batch": is_batch, "quality": quality}
        )
        return job

    async def upsert(self, job_id: str, **fields: Any) -> Optional[AcquisitionJob]:
        """Merge fields into the job keyed by ``job_id``.

        Creates the row when missing. Immutable request options of an existing
        row are kept, and a status change goes through the transition guard.
        Returns None when the guard rejected the change.
        """
        existing = await self.get(job_id)
        if existing is None:
            return await self.submit(
                job_id,
                source_url=fields["source_url"],
                quality=fields["quality"],
                want_subtitles=fields.get("want_subtitles", True),
                title=fields.get("title"),
                is_batch=fields.get("is_batch", False),
                batch_size=fields.get("batch_size", 0),
                batch_target_id=fields.get("batch_target_id"),
            )

        mutable = {key: value for key, value in fields.items() if key not in IMMUTABLE_FIELDS}
        status = mutable.pop("status", None)
        progress = mutable.pop("progress", None)

        async with self.session() as session:
            jobs = DatabaseService(session).jobs
            if status is not None:
                job = await jobs.transition(job_id, JobStatus(status), **mutable)
                if job is None:
                    return None
                mutable = {}
            if progress is not None and not await jobs.update_progress(job_id, progress):
                logger.debug("Progress write rejected", extra={"job_id": job_id, "progress": progress})
            if mutable:
                await jobs.update(job_id, **mutable)
            return await jobs.get(job_id)

    async def transition(self, job_id: str, target: JobStatus, **fields: Any) -> Optional[AcquisitionJob]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.transition(job_id, target, **fields)

    async def record_progress(self, job_id: str, progress: float) -> bool:
        async with self.session() as session:
            return await DatabaseService(session).jobs.update_progress(job_id, progress)

    async def set_title(self, job_id: str, title: str) -> None:
        async with self.session() as session:
            await DatabaseService(session).jobs.set_title(job_id, title)

    async def increment_batch_completed(self, batch_id: str) -> Optional[Tuple[int, int]]:
        async with self.session() as session:
            return await DatabaseService(session).jobs.increment_batch_completed(batch_id)

    @staticmethod
    def _conflict(job: Optional[AcquisitionJob]) -> ConflictError:
        return ConflictError(
            "This URL is already being downloaded",
            job_id=job.id if job else None,
            existing=job.to_dict() if job else None,
        )
