"""
Acquisition job model.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from ..connection import Base


class JobStatus(str, Enum):
    """Job status enumeration."""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.PENDING, JobStatus.DOWNLOADING})
TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

# Forward moves only. Terminal rows change solely through the resubmission reset.
ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.DOWNLOADING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.DOWNLOADING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def sources_for(target: JobStatus) -> FrozenSet[JobStatus]:
    """Statuses a row may be in for a move to ``target`` to be accepted."""
    sources = {status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets}
    if not target.is_terminal:
        # idempotent rewrite of an active status
        sources.add(target)
    return frozenset(sources)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AcquisitionJob(Base):
    """A request to acquire one item or one batch, keyed by the source's media ID."""

    __tablename__ = "acquisition_jobs"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(
            JobStatus,
            name="job_status",
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=JobStatus.PENDING,
        nullable=False,
        index=True
    )
    progress: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Request options, fixed at intake
    quality: Mapped[str] = mapped_column(String(20), nullable=False)
    want_subtitles: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Batch fields; ordinary jobs keep the defaults
    is_batch: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    batch_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    batch_completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    batch_target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_acquisition_jobs_status_started", "status", "started_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by the HTTP and push interfaces."""
        return {
            "id": self.id,
            "sourceUrl": self.source_url,
            "title": self.title,
            "status": self.status.value,
            "progress": self.progress,
            "quality": self.quality,
            "wantSubtitles": self.want_subtitles,
            "isBatch": self.is_batch,
            "batchSize": self.batch_size,
            "batchCompletedCount": self.batch_completed_count,
            "batchTargetId": self.batch_target_id,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "errorMessage": self.error_message,
        }

    def __repr__(self) -> str:
        return f"<AcquisitionJob(id={self.id}, status={self.status}, progress={self.progress})>"
