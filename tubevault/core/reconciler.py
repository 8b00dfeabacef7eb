"""
Artifact reconciler: turns fetcher output files into a library item.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..database.connection import DatabaseManager
from ..database.models import AcquisitionJob, JobStatus
from ..database.service import DatabaseService
from ..utils.exceptions import AcquisitionError, ArtifactMissing, StorageError
from .fetcher import MediaInfo
from .job_store import JobStore
from .storage import ArtifactSet, StorageLayout, classify_artifacts

logger = get_logger(__name__)


@dataclass
class BatchContext:
    """Passed in by the batch coordinator for member jobs."""
    batch_id: str
    target_collection_id: Optional[int] = None


@dataclass
class ReconcileResult:
    job: AcquisitionJob
    item: Dict[str, Any]


class _Superseded(AcquisitionError):
    """The job left ``downloading`` before it could be completed."""


class ArtifactReconciler:
    """Locates a job's files by natural-key prefix, relocates them and commits the library record."""

    def __init__(
        self,
        database: DatabaseManager,
        store: JobStore,
        layout: StorageLayout,
        config: Optional[Settings] = None,
    ):
        self.database = database
        self.store = store
        self.layout = layout
        self.settings = config or default_settings

    async def reconcile(
        self,
        job: AcquisitionJob,
        working_dir: Optional[Path] = None,
        info: Optional[MediaInfo] = None,
        batch: Optional[BatchContext] = None,
    ) -> Optional[ReconcileResult]:
        """Commit the job's artifacts.

        Returns None if the job was cancelled meanwhile. Raises ArtifactMissing
        (after marking the job failed) when no media file exists.
        """
        working_dir = Path(working_dir or self.layout.working_dir)
        previous = await self._library_files(job.id)
        artifacts = classify_artifacts(
            job.id, working_dir, self.settings.SUBTITLE_LANGUAGES, previous=previous
        )

        if artifacts.media is None:
            error = ArtifactMissing(
                job.id,
                working_dir=str(working_dir),
                found=[p.name for p in (artifacts.thumbnail, artifacts.subtitle) if p],
            )
            await self.store.transition(job.id, JobStatus.FAILED, error_message=error.message)
            logger.error("Reconciliation found no media file", extra=error.context)
            raise error

        try:
            placed = await self._relocate(job.id, artifacts)
        except StorageError as e:
            await self.store.transition(job.id, JobStatus.FAILED, error_message=e.message)
            raise

        directories = self._permanent_directories()
        try:
            result = await self._commit(job, placed, info, batch)
        except _Superseded:
            deleted, _ = await self.layout.purge(job.id, directories, keep=previous)
            logger.info(
                "Job left downloading before reconciliation finished; discarded artifacts",
                extra={"job_id": job.id, "deleted": len(deleted), "kept": len(previous)}
            )
            return None

        # an earlier acquisition may have used another container or thumbnail format
        stale, failures = await self.layout.purge(
            job.id, directories, keep=[p for p in placed.values() if p]
        )
        for failure in failures:
            logger.warning(str(failure), extra={"job_id": job.id, **failure.context})
        if stale:
            logger.info(
                "Removed stale artifacts from an earlier acquisition",
                extra={"job_id": job.id, "files": [p.name for p in stale]}
            )
        return result

    def _permanent_directories(self) -> List[Path]:
        seen: List[Path] = []
        for directory in (self.layout.media_dir, self.layout.thumbnails_dir, self.layout.subtitles_dir):
            if directory not in seen:
                seen.append(directory)
        return seen

    async def _library_files(self, key: str) -> List[Path]:
        async with self.database.get_session() as session:
            item = await DatabaseService(session).library.get_by_source_id(key)
            if item is None:
                return []
            return [self.layout.root / p for p in item.file_paths]

    async def _relocate(self, key: str, artifacts: ArtifactSet) -> Dict[str, Optional[Path]]:
        placed: Dict[str, Optional[Path]] = {"media": None, "thumbnail": None, "subtitle": None}
        placed["media"] = await self.layout.move(
            artifacts.media, self.layout.media_dir / f"{key}{artifacts.media.suffix.lower()}"
        )
        if artifacts.thumbnail:
            placed["thumbnail"] = await self.layout.move(
                artifacts.thumbnail,
                self.layout.thumbnails_dir / f"{key}{artifacts.thumbnail.suffix.lower()}",
            )
        if artifacts.subtitle:
            placed["subtitle"] = await self.layout.move(
                artifacts.subtitle,
                self.layout.subtitles_dir
                / f"{key}.{artifacts.subtitle_language}{artifacts.subtitle.suffix.lower()}",
            )
        return placed

    async def _commit(
        self,
        job: AcquisitionJob,
        placed: Dict[str, Optional[Path]],
        info: Optional[MediaInfo],
        batch: Optional[BatchContext],
    ) -> ReconcileResult:
        tags: List[str] = info.tags if info else []
        target = job.batch_target_id or (batch.target_collection_id if batch else None)

        async with self.database.get_session() as session:
            db = DatabaseService(session)
            item = await db.library.upsert_item(
                job.id,
                source_url=job.source_url,
                title=(info.title if info else None) or job.title or job.id,
                description=info.description if info else None,
                channel=info.channel if info else None,
                duration=info.duration if info else None,
                media_path=self.layout.relative(placed["media"]),
                thumbnail_path=self.layout.relative(placed["thumbnail"]) if placed["thumbnail"] else None,
                subtitle_path=self.layout.relative(placed["subtitle"]) if placed["subtitle"] else None,
                info=info.summary() if info else {},
            )
            await db.library.link_tags(item, await db.library.ensure_tags(tags))

            position = None
            if target is not None:
                if await db.library.get_collection(target) is None:
                    logger.warning(
                        "Target collection does not exist; skipping append",
                        extra={"job_id": job.id, "collection_id": target}
                    )
                else:
                    position = await db.library.append_to_collection(target, item.id)

            completed = await db.jobs.transition(job.id, JobStatus.COMPLETED, error_message=None)
            if completed is None:
                # raising inside the session rolls the whole unit back
                raise _Superseded(f"Job {job.id} is no longer downloading")

            summary = item.to_dict()

        logger.info(
            "Reconciled job into library",
            extra={
                "job_id": job.id,
                "item_id": summary["id"],
                "tags": len(tags),
                "collection_id": target,
                "position": position,
                "batch_id": batch.batch_id if batch else None,
            }
        )
        return ReconcileResult(job=completed, item=summary)
