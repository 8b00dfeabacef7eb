"""
Acquisition service: the entry point used by the HTTP API and the CLI.

Wires the job store, fetcher, supervisor, dispatcher, batch coordinator and
cancellation controller together around one database and one observer
registry.
"""

import re
import time
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import aiofiles.os

from ..config import Quality, Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..core.batch import BatchCoordinator
from ..core.cancellation import CancellationController
from ..core.dispatcher import Dispatcher
from ..core.fetcher import BatchListing, Fetcher
from ..core.job_store import JobStore
from ..core.reconciler import ArtifactReconciler
from ..core.storage import StorageLayout
from ..core.supervisor import ProcessSupervisor
from ..database.connection import DatabaseManager
from ..database.models import AcquisitionJob
from ..monitoring.metrics import PrometheusMetrics
from ..notifications.fanout import ObserverRegistry
from ..utils.exceptions import JobNotFoundError, ValidationError

logger = get_logger(__name__)

_QUALITY_VALUES = {q.value for q in Quality}
_NUMERIC_QUALITY = re.compile(r"^\d{3,4}$")


def normalize_quality(quality: Optional[str], default: str) -> str:
    """Canonical quality preset; "720p" and "720" are the same thing."""
    if quality is None or not str(quality).strip():
        return default
    normalized = str(quality).strip().lower()
    if normalized.endswith("p") and normalized[:-1].isdigit():
        normalized = normalized[:-1]
    if normalized in _QUALITY_VALUES or _NUMERIC_QUALITY.match(normalized):
        return normalized
    raise ValidationError(
        f"Unsupported quality '{quality}'",
        field="quality",
        value=quality,
    )


class AcquisitionService:
    """Facade over the acquisition components."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        database: Optional[DatabaseManager] = None,
        fetcher: Optional[Fetcher] = None,
        observers: Optional[ObserverRegistry] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.settings = config or default_settings
        self.metrics = metrics or PrometheusMetrics()
        self.database = database or DatabaseManager(self.settings)
        self.layout = StorageLayout(self.settings)
        self.fetcher = fetcher or Fetcher(self.settings)
        self.observers = observers or ObserverRegistry(on_prune=self.metrics.record_observer_pruned)

        self.store = JobStore(self.database)
        self.reconciler = ArtifactReconciler(self.database, self.store, self.layout, self.settings)
        self.supervisor = ProcessSupervisor(
            self.fetcher,
            self.store,
            self.reconciler,
            self.observers,
            self.layout,
            self.settings,
            self.metrics,
        )
        self.dispatcher = Dispatcher(self.supervisor, self.store, self.settings, self.metrics)
        self.batches = BatchCoordinator(
            self.fetcher,
            self.store,
            self.dispatcher,
            self.observers,
            self.database,
            self.settings,
            self.metrics,
        )
        self.cancellation = CancellationController(
            self.store,
            self.supervisor,
            self.batches,
            self.layout,
            self.settings,
            self.metrics,
        )
        self.started_at: Optional[float] = None

    # Lifecycle

    async def start(self, recover: bool = True) -> None:
        self.layout.ensure_directories()
        await self.database.create_tables()
        if recover:
            await self.dispatcher.recover()
        self.started_at = time.time()
        self.metrics.set_app_info(self.settings.APP_VERSION, self.settings.ENVIRONMENT.value)
        self.metrics.set_app_status("running")
        logger.info(
            "Acquisition service started",
            extra={"max_concurrent": self.settings.MAX_CONCURRENT_ACQUISITIONS}
        )

    async def stop(self) -> None:
        self.metrics.set_app_status("stopping")
        await self.batches.shutdown()
        await self.dispatcher.shutdown()
        await self.database.close()
        self.metrics.set_app_status("stopped")
        logger.info("Acquisition service stopped")

    # Intake

    async def submit(
        self,
        source_url: str,
        quality: Optional[str] = None,
        want_subtitles: Optional[bool] = None,
        batch_target_id: Optional[int] = None,
    ) -> AcquisitionJob:
        """Validate and persist a single-item request, then queue it.

        Returns once the job is durably pending. URLs without a recognisable
        media ID are resolved through a fetcher metadata lookup first, which can delay
        the reply by up to ``FETCHER_RESOLVE_TIMEOUT``.
        """
        source_url = self._require_url(source_url)
        quality = normalize_quality(quality, self.settings.DEFAULT_QUALITY)
        if want_subtitles is None:
            want_subtitles = self.settings.DEFAULT_WANT_SUBTITLES

        job_id = await self.fetcher.resolve_natural_key(source_url)
        job = await self.store.submit(
            job_id,
            source_url=source_url,
            quality=quality,
            want_subtitles=want_subtitles,
            batch_target_id=batch_target_id,
        )
        self.dispatcher.submit(job.id)
        return job

    async def submit_batch(
        self,
        source_url: str,
        quality: Optional[str] = None,
        want_subtitles: Optional[bool] = None,
        collection_id: Optional[int] = None,
    ) -> Tuple[AcquisitionJob, BatchListing]:
        source_url = self._require_url(source_url)
        quality = normalize_quality(quality, self.settings.DEFAULT_QUALITY)
        if want_subtitles is None:
            want_subtitles = self.settings.DEFAULT_WANT_SUBTITLES
        return await self.batches.start_batch(source_url, quality, want_subtitles, collection_id)

    # Queries

    async def get_job(self, job_id: str) -> AcquisitionJob:
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"No job for {job_id}", job_id=job_id)
        return job

    async def list_active(self) -> List[AcquisitionJob]:
        return await self.store.list_active()

    async def list_history(self, limit: Optional[int] = None, offset: int = 0) -> Dict[str, Any]:
        limit = limit or self.settings.HISTORY_DEFAULT_LIMIT
        limit = max(1, min(limit, self.settings.HISTORY_MAX_LIMIT))
        offset = max(0, offset)
        jobs, total = await self.store.list_history(limit, offset)
        return {
            "jobs": [job.to_dict() for job in jobs],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < total,
            },
        }

    # Cancellation

    async def cancel(self, job_id: str) -> bool:
        return await self.cancellation.cancel(job_id)

    # Metadata

    async def preview(self, source_url: str) -> Dict[str, Any]:
        info = await self.fetcher.fetch_info(self._require_url(source_url, field="url"))
        return {
            "id": info.id,
            "title": info.title,
            "description": info.description,
            "channel": info.channel,
            "duration": info.duration,
            "thumbnail": info.thumbnail,
            "tags": info.tags,
            "webpageUrl": info.webpage_url,
            **info.summary(),
        }

    async def preview_batch(self, source_url: str) -> Dict[str, Any]:
        listing = await self.batches.preview(self._require_url(source_url, field="url"))
        return {
            "id": listing.id,
            "title": listing.title,
            "memberCount": listing.member_count,
            "entries": listing.preview(),
        }

    async def fetcher_status(self) -> Dict[str, Any]:
        version = await self.fetcher.version()
        return {"installed": version is not None, "version": version}

    # Cookies

    async def save_cookies(self, content: bytes) -> str:
        if not content.strip():
            raise ValidationError("Cookies file is empty", field="file")
        path = self.settings.cookies_path
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as handle:
            await handle.write(content)
        logger.info("Cookies file stored", extra={"path": str(path), "size": len(content)})
        return str(path)

    async def delete_cookies(self) -> bool:
        path = self.settings.cookies_path
        if not path.exists():
            return False
        await aiofiles.os.remove(path)
        logger.info("Cookies file removed", extra={"path": str(path)})
        return True

    def has_cookies(self) -> bool:
        return self.settings.cookies_path.is_file()

    @staticmethod
    def _require_url(url: Optional[str], field: str = "sourceUrl") -> str:
        if not url or not str(url).strip():
            raise ValidationError("URL is required", field=field)
        url = str(url).strip()
        if not url.startswith(("http://", "https://")):
            raise ValidationError("A valid http(s) URL is required", field=field, value=url)
        return url
