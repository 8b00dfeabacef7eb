"""
Job repository with guarded, conditional status and progress writes.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .base_repo import BaseRepository
from ..models.job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AcquisitionJob,
    JobStatus,
    sources_for,
)
from ...config.logging_config import get_logger
from ...utils.clock import utcnow

logger = get_logger(__name__)


class JobRepository(BaseRepository[AcquisitionJob]):
    """Repository for acquisition jobs.

    Every status write is a single ``UPDATE ... WHERE status IN (...)`` so the
    database decides the winner when writers race.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(AcquisitionJob, session)

    async def get_active_jobs(self) -> List[AcquisitionJob]:
        """Non-terminal jobs, most recently started first."""
        stmt = (
            select(AcquisitionJob)
            .where(AcquisitionJob.status.in_(ACTIVE_STATUSES))
            .order_by(desc(AcquisitionJob.started_at), desc(AcquisitionJob.created_at))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_history(self, limit: int, offset: int) -> Tuple[List[AcquisitionJob], int]:
        """Page through every job, most recently started first."""
        stmt = (
            select(AcquisitionJob)
            .order_by(desc(AcquisitionJob.started_at), desc(AcquisitionJob.created_at))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        total = await self.count()
        return list(result.scalars().all()), total

    async def get_jobs_by_status(self, statuses: Iterable[JobStatus], **filters) -> List[AcquisitionJob]:
        return await self.get_multi(limit=10_000, order_by="started_at", status=list(statuses), **filters)

    async def transition(
        self,
        job_id: str,
        target: JobStatus,
        **fields: Any
    ) -> Optional[AcquisitionJob]:
        """Move a job to ``target`` if its current status allows it.

        Returns the updated row, or None when the guard rejected the write.
        """
        values: Dict[str, Any] = {"status": target, **fields}
        if target.is_terminal:
            values.setdefault("completed_at", utcnow())
        if target == JobStatus.COMPLETED:
            values["progress"] = 100.0

        stmt = (
            update(AcquisitionJob)
            .where(
                AcquisitionJob.id == job_id,
                AcquisitionJob.status.in_(sources_for(target)),
            )
            .values(**values)
            .returning(AcquisitionJob)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        job = result.scalar_one_or_none()

        if job is None:
            logger.debug(
                "Status write rejected",
                extra={"job_id": job_id, "target": target.value}
            )
            return None

        await self.session.refresh(job)
        logger.info(
            f"Job {job_id} -> {target.value}",
            extra={"job_id": job_id, "status": target.value}
        )
        return job

    async def update_progress(self, job_id: str, progress: float) -> bool:
        """Record a progress tick.

        Only applies while the job is downloading and never lowers the stored value,
        so late ticks from a cancelled process are dropped here.
        """
        stmt = (
            update(AcquisitionJob)
            .where(
                AcquisitionJob.id == job_id,
                AcquisitionJob.status == JobStatus.DOWNLOADING,
                AcquisitionJob.progress <= progress,
            )
            .values(progress=progress)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def set_title(self, job_id: str, title: str) -> None:
        stmt = (
            update(AcquisitionJob)
            .where(AcquisitionJob.id == job_id)
            .values(title=title)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def reset_for_resubmission(self, job_id: str, **fields: Any) -> Optional[AcquisitionJob]:
        """Put a terminal job back to pending with fresh request options."""
        values = {
            "status": JobStatus.PENDING,
            "progress": 0.0,
            "started_at": utcnow(),
            "completed_at": None,
            "error_message": None,
            "batch_completed_count": 0,
            **fields,
        }
        stmt = (
            update(AcquisitionJob)
            .where(
                AcquisitionJob.id == job_id,
                AcquisitionJob.status.in_(TERMINAL_STATUSES),
            )
            .values(**values)
            .returning(AcquisitionJob)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        job = result.scalar_one_or_none()
        if job is not None:
            await self.session.refresh(job)
            logger.info("Job reset for resubmission", extra={"job_id": job_id})
        return job

    async def increment_batch_completed(self, job_id: str) -> Optional[Tuple[int, int]]:
        """Atomically bump the completed-member counter.

        Returns ``(completed, size)`` after the increment.
        """
        stmt = (
            update(AcquisitionJob)
            .where(AcquisitionJob.id == job_id, AcquisitionJob.is_batch.is_(True))
            .values(batch_completed_count=AcquisitionJob.batch_completed_count + 1)
            .returning(AcquisitionJob.batch_completed_count, AcquisitionJob.batch_size)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        row = result.first()
        return (row[0], row[1]) if row else None

    async def get_status_counts(self) -> Dict[str, int]:
        stmt = select(AcquisitionJob.status, func.count()).group_by(AcquisitionJob.status)
        result = await self.session.execute(stmt)
        return {status.value: count for status, count in result.all()}
