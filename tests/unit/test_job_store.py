"""
Tests for the job store: intake, guarded transitions and progress writes.
"""

import asyncio

import pytest

from tubevault.core.job_store import JobStore
from tubevault.database.models import JobStatus
from tubevault.database.models.job import sources_for
from tubevault.utils.exceptions import ConflictError


@pytest.fixture
def store(database):
    return JobStore(database)


async def submit(store, job_id="abc123XYZ", **overrides):
    fields = {
        "source_url": f"https://youtu.be/{job_id}",
        "quality": "720",
        "want_subtitles": True,
    }
    fields.update(overrides)
    return await store.submit(job_id, **fields)


class TestTransitionTable:

    def test_terminal_targets_only_from_active(self):
        assert sources_for(JobStatus.COMPLETED) == {JobStatus.DOWNLOADING}
        assert sources_for(JobStatus.CANCELLED) == {JobStatus.PENDING, JobStatus.DOWNLOADING}

    def test_active_status_rewrite_is_idempotent(self):
        assert JobStatus.DOWNLOADING in sources_for(JobStatus.DOWNLOADING)
        assert JobStatus.COMPLETED not in sources_for(JobStatus.PENDING)


class TestSubmit:

    async def test_creates_pending_job(self, store):
        job = await submit(store)

        assert job.status == JobStatus.PENDING
        assert job.progress == 0.0
        assert job.started_at is not None
        assert job.completed_at is None

    async def test_active_duplicate_conflicts(self, store):
        await submit(store)

        with pytest.raises(ConflictError) as exc_info:
            await submit(store, quality="best")

        assert exc_info.value.existing["id"] == "abc123XYZ"
        assert (await store.get("abc123XYZ")).quality == "720"

    async def test_concurrent_intake_admits_one(self, store):
        results = await asyncio.gather(
            submit(store), submit(store), submit(store), return_exceptions=True
        )

        created = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 2

    async def test_terminal_job_is_reset(self, store):
        await submit(store)
        await store.transition("abc123XYZ", JobStatus.DOWNLOADING)
        await store.transition("abc123XYZ", JobStatus.FAILED, error_message="boom")

        job = await submit(store, quality="best")

        assert job.status == JobStatus.PENDING
        assert job.quality == "best"
        assert job.error_message is None
        assert job.completed_at is None


class TestTransitions:

    async def test_forward_path(self, store):
        await submit(store)

        running = await store.transition("abc123XYZ", JobStatus.DOWNLOADING)
        done = await store.transition("abc123XYZ", JobStatus.COMPLETED)

        assert running.status == JobStatus.DOWNLOADING
        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100.0
        assert done.completed_at is not None

    async def test_pending_cannot_complete(self, store):
        await submit(store)
        assert await store.transition("abc123XYZ", JobStatus.COMPLETED) is None

    async def test_terminal_states_are_final(self, store):
        await submit(store)
        await store.transition("abc123XYZ", JobStatus.CANCELLED)

        assert await store.transition("abc123XYZ", JobStatus.DOWNLOADING) is None
        assert await store.transition("abc123XYZ", JobStatus.FAILED) is None
        assert (await store.get("abc123XYZ")).status == JobStatus.CANCELLED

    async def test_cancel_and_complete_race_has_one_winner(self, store):
        await submit(store)
        await store.transition("abc123XYZ", JobStatus.DOWNLOADING)

        completed, cancelled = await asyncio.gather(
            store.transition("abc123XYZ", JobStatus.COMPLETED),
            store.transition("abc123XYZ", JobStatus.CANCELLED),
        )

        assert (completed is None) != (cancelled is None)
        final = await store.get("abc123XYZ")
        assert final.status in (JobStatus.COMPLETED, JobStatus.CANCELLED)


class TestProgress:

    async def test_only_while_downloading(self, store):
        await submit(store)
        assert await store.record_progress("abc123XYZ", 10.0) is False

        await store.transition("abc123XYZ", JobStatus.DOWNLOADING)
        assert await store.record_progress("abc123XYZ", 10.0) is True

    async def test_never_decreases(self, store):
        await submit(store)
        await store.transition("abc123XYZ", JobStatus.DOWNLOADING)

        await store.record_progress("abc123XYZ", 50.0)
        assert await store.record_progress("abc123XYZ", 30.0) is False
        assert (await store.get("abc123XYZ")).progress == 50.0

    async def test_late_tick_after_cancel_dropped(self, store):
        await submit(store)
        await store.transition("abc123XYZ", JobStatus.DOWNLOADING)
        await store.transition("abc123XYZ", JobStatus.CANCELLED)

        assert await store.record_progress("abc123XYZ", 90.0) is False


class TestUpsert:

    async def test_creates_missing_row(self, store):
        job = await store.upsert("abc123XYZ", source_url="https://youtu.be/abc123XYZ", quality="best")
        assert job.status == JobStatus.PENDING

    async def test_keeps_request_options(self, store):
        await submit(store)

        job = await store.upsert("abc123XYZ", quality="audio", title="New title")

        assert job.quality == "720"
        assert job.title == "New title"

    async def test_status_goes_through_guard(self, store):
        await submit(store)

        assert await store.upsert("abc123XYZ", status="completed") is None
        job = await store.upsert("abc123XYZ", status="downloading", progress=12.5)
        assert job.status == JobStatus.DOWNLOADING
        assert job.progress == 12.5


class TestBatchCounter:

    async def test_increment(self, store):
        await submit(store, "PLbatch", is_batch=True, batch_size=3)

        assert await store.increment_batch_completed("PLbatch") == (1, 3)
        assert await store.increment_batch_completed("PLbatch") == (2, 3)

    async def test_increment_ignores_single_jobs(self, store):
        await submit(store)
        assert await store.increment_batch_completed("abc123XYZ") is None


class TestQueries:

    async def test_active_and_history(self, store):
        await submit(store, "first0001")
        await submit(store, "second001")
        await store.transition("first0001", JobStatus.CANCELLED)

        active = await store.list_active()
        history, total = await store.list_history(limit=10, offset=0)

        assert [j.id for j in active] == ["second001"]
        assert total == 2
        assert {j.id for j in history} == {"first0001", "second001"}
        assert await store.status_counts() == {"pending": 1, "cancelled": 1}
