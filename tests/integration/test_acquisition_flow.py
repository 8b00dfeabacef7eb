"""
End-to-end acquisition tests against the fake fetcher script.
"""

import asyncio

import pytest

from tubevault.database.connection import DatabaseManager
from tubevault.core.job_store import JobStore
from tubevault.database.models import JobStatus
from tubevault.database.service import DatabaseService
from tubevault.services.acquisition_service import AcquisitionService
from tubevault.utils.constants import (
    AGE_RESTRICTED_MESSAGE,
    FORMAT_UNAVAILABLE_MESSAGE,
    INTERRUPTED_MESSAGE,
)
from tubevault.utils.exceptions import ConflictError

pytestmark = pytest.mark.integration


def watch(key):
    return f"https://www.youtube.com/watch?v={key}"


async def wait_until(predicate, timeout=15.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not await predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.05)


class TestSingleAcquisition:

    async def test_completes_and_reconciles(self, service, recorder, wait_status):
        job = await service.submit(watch("abc123XYZ"), quality="best")

        assert job.id == "abc123XYZ"
        assert job.status == JobStatus.PENDING

        done = await wait_status(service, "abc123XYZ", JobStatus.COMPLETED, JobStatus.FAILED)
        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100.0
        assert done.title == "Title of abc123XYZ"
        assert done.completed_at is not None

        assert (service.layout.media_dir / "abc123XYZ.mp4").exists()
        assert (service.layout.thumbnails_dir / "abc123XYZ.jpg").exists()
        assert (service.layout.subtitles_dir / "abc123XYZ.en.vtt").exists()
        assert not (service.layout.working_dir / "abc123XYZ.mp4.part").exists()

        async with service.database.get_session() as session:
            item = await DatabaseService(session).library.get_by_source_id("abc123XYZ")
            assert item.title == "Title of abc123XYZ"
            assert sorted(tag.name for tag in item.tags) == ["live", "music"]

    async def test_progress_is_monotonic_and_below_100(self, service, recorder, wait_status):
        await service.submit(watch("abc123XYZ"))
        await wait_status(service, "abc123XYZ", JobStatus.COMPLETED)

        values = [m["progress"] for m in recorder.of_type("progress")]
        assert values
        assert values == sorted(values)
        assert max(values) < 100

        completed = recorder.of_type("download_completed")
        assert len(completed) == 1
        assert completed[0]["item"]["sourceId"] == "abc123XYZ"

    async def test_without_subtitles(self, service, wait_status):
        await service.submit(watch("nosubs001"), want_subtitles=False)
        await wait_status(service, "nosubs001", JobStatus.COMPLETED)

        assert not (service.layout.subtitles_dir / "nosubs001.en.vtt").exists()

    async def test_duplicate_active_request_conflicts(self, service):
        await service.submit(watch("slowvid01"))

        with pytest.raises(ConflictError):
            await service.submit(watch("slowvid01"))

        assert await service.cancel("slowvid01") is True

    async def test_resubmission_after_completion(self, service, wait_status):
        await service.submit(watch("abc123XYZ"))
        await wait_status(service, "abc123XYZ", JobStatus.COMPLETED)

        again = await service.submit(watch("abc123XYZ"), quality="audio")

        assert again.status == JobStatus.PENDING
        assert again.quality == "audio"
        await wait_status(service, "abc123XYZ", JobStatus.COMPLETED)


class TestFailures:

    async def test_fetcher_exit_error(self, service, recorder, wait_status):
        await service.submit(watch("failvid01"))

        job = await wait_status(service, "failvid01", JobStatus.FAILED, JobStatus.COMPLETED)

        assert job.status == JobStatus.FAILED
        assert "HTTP Error 403" in job.error_message
        errors = recorder.of_type("error")
        assert errors[-1]["jobId"] == "failvid01"
        assert errors[-1]["isAgeRestricted"] is False

    async def test_age_restricted(self, service, recorder, wait_status):
        await service.submit(watch("agegate01"))

        job = await wait_status(service, "agegate01", JobStatus.FAILED)

        assert job.error_message == AGE_RESTRICTED_MESSAGE
        assert recorder.of_type("error")[-1]["isAgeRestricted"] is True

    async def test_format_unavailable(self, service, wait_status):
        await service.submit(watch("noformat1"), quality="2160")

        job = await wait_status(service, "noformat1", JobStatus.FAILED)

        assert job.error_message == FORMAT_UNAVAILABLE_MESSAGE

    async def test_missing_media_file(self, service, recorder, wait_status):
        await service.submit(watch("nomedia01"))

        job = await wait_status(service, "nomedia01", JobStatus.FAILED, JobStatus.COMPLETED)

        assert job.status == JobStatus.FAILED
        assert recorder.of_type("download_completed") == []
        async with service.database.get_session() as session:
            assert await DatabaseService(session).library.get_by_source_id("nomedia01") is None


class TestCancellation:

    async def test_cancel_running_download(self, service, recorder, wait_status):
        await service.submit(watch("slowvid01"))
        await wait_status(service, "slowvid01", JobStatus.DOWNLOADING)

        async def has_progress():
            job = await service.store.get("slowvid01")
            return job.progress > 0

        await wait_until(has_progress)

        assert await service.cancel("slowvid01") is True

        job = await service.store.get("slowvid01")
        assert job.status == JobStatus.CANCELLED
        assert job.completed_at is not None
        leftovers = [
            p for d in service.layout.all_directories() for p in d.glob("slowvid01.*")
        ]
        assert leftovers == []

        # late ticks and completion never surface for a cancelled job
        await asyncio.sleep(0.3)
        assert (await service.store.get("slowvid01")).status == JobStatus.CANCELLED
        assert recorder.of_type("download_completed") == []

    async def test_cancel_is_idempotent(self, service, wait_status):
        await service.submit(watch("slowvid01"))
        await wait_status(service, "slowvid01", JobStatus.DOWNLOADING)

        assert await service.cancel("slowvid01") is True
        assert await service.cancel("slowvid01") is False

    async def test_cancel_finished_job_is_noop(self, service, wait_status):
        await service.submit(watch("abc123XYZ"))
        await wait_status(service, "abc123XYZ", JobStatus.COMPLETED)

        assert await service.cancel("abc123XYZ") is False
        assert (await service.store.get("abc123XYZ")).status == JobStatus.COMPLETED

    async def test_cancelling_resubmission_keeps_library_files(self, service, wait_status):
        await service.submit(watch("libvid001"))
        await wait_status(service, "libvid001", JobStatus.COMPLETED)

        await service.submit(watch("libvid001") + "&slow=1")
        await wait_status(service, "libvid001", JobStatus.DOWNLOADING)

        assert await service.cancel("libvid001") is True

        async with service.database.get_session() as session:
            item = await DatabaseService(session).library.get_by_source_id("libvid001")
            assert item is not None
            media_path = item.media_path

        assert media_path == "videos/libvid001.mp4"
        assert (service.layout.root / media_path).exists()
        assert (service.layout.thumbnails_dir / "libvid001.jpg").exists()
        # the partial download of the cancelled run is still removed
        assert not (service.layout.working_dir / "libvid001.mp4.part").exists()


class TestConcurrencyLimit:

    async def test_excess_jobs_wait_pending(self, service, wait_status):
        keys = ["slowvid01", "slowvid02", "slowvid03"]
        for key in keys:
            await service.submit(watch(key))

        async def two_running():
            jobs = [await service.store.get(key) for key in keys]
            return sum(job.status == JobStatus.DOWNLOADING for job in jobs) == 2

        await wait_until(two_running)
        await asyncio.sleep(0.3)

        statuses = [(await service.store.get(key)).status for key in keys]
        assert statuses.count(JobStatus.DOWNLOADING) == 2
        assert statuses.count(JobStatus.PENDING) == 1
        assert service.dispatcher.queued == 1

        for key in keys:
            await service.cancel(key)


class TestBatchAcquisition:

    async def test_playlist_members_acquired(self, service, recorder, wait_status):
        parent, listing = await service.submit_batch(
            "https://www.youtube.com/playlist?list=PLtest&count=2", quality="360"
        )

        assert parent.id == "PLtest"
        assert listing.member_count == 2

        done = await wait_status(service, "PLtest", JobStatus.COMPLETED, JobStatus.FAILED, timeout=30)
        assert done.status == JobStatus.COMPLETED
        assert done.batch_completed_count == 2

        for member in ("member01", "member02"):
            assert (await service.store.get(member)).status == JobStatus.COMPLETED

        batch_messages = recorder.of_type("batchProgress")
        assert [m["completed"] for m in batch_messages] == [1, 2]
        assert batch_messages[-1]["progress"] == 100.0

    async def test_cancel_batch_stops_members(self, service, wait_status):
        parent, _ = await service.submit_batch(
            "https://www.youtube.com/playlist?list=PLslowlist&count=3"
        )
        await wait_status(service, "member01", JobStatus.DOWNLOADING)

        assert await service.cancel(parent.id) is True

        assert (await service.store.get(parent.id)).status == JobStatus.CANCELLED
        assert (await service.store.get("member01")).status == JobStatus.CANCELLED
        await asyncio.sleep(0.3)
        assert await service.store.get("member02") is None


class TestStartupRecovery:

    async def test_stale_jobs_are_reconciled(self, test_settings, fake_fetcher, wait_status):
        manager = DatabaseManager(test_settings)
        await manager.create_tables()
        store = JobStore(manager)
        await store.submit("stuck0001", source_url=watch("stuck0001"), quality="720", want_subtitles=True)
        await store.transition("stuck0001", JobStatus.DOWNLOADING)
        await store.submit("queued001", source_url=watch("queued001"), quality="720", want_subtitles=True)
        await store.submit(
            "PLorphan", source_url="https://www.youtube.com/playlist?list=PLorphan",
            quality="720", want_subtitles=True, is_batch=True, batch_size=3,
        )
        await manager.close()

        service = AcquisitionService(config=test_settings, fetcher=fake_fetcher)
        await service.start()
        try:
            stuck = await service.store.get("stuck0001")
            assert stuck.status == JobStatus.FAILED
            assert stuck.error_message == INTERRUPTED_MESSAGE

            orphan = await service.store.get("PLorphan")
            assert orphan.status == JobStatus.FAILED

            requeued = await wait_status(service, "queued001", JobStatus.COMPLETED, JobStatus.FAILED)
            assert requeued.status == JobStatus.COMPLETED
        finally:
            await service.stop()
