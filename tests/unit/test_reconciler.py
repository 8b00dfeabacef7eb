"""
Tests for the artifact reconciler.
"""

import pytest
from sqlalchemy import func, select

from tubevault.core.fetcher import MediaInfo
from tubevault.core.job_store import JobStore
from tubevault.core.reconciler import ArtifactReconciler, BatchContext
from tubevault.core.storage import StorageLayout
from tubevault.database.models import JobStatus, Tag
from tubevault.database.service import DatabaseService
from tubevault.utils.exceptions import ArtifactMissing

KEY = "abc123XYZ"


@pytest.fixture
def layout(test_settings):
    layout = StorageLayout(test_settings)
    layout.ensure_directories()
    return layout


@pytest.fixture
def store(database):
    return JobStore(database)


@pytest.fixture
def reconciler(database, store, layout, test_settings):
    return ArtifactReconciler(database, store, layout, test_settings)


def info(tags=("music", "live")):
    return MediaInfo(id=KEY, title="A title", channel="Channel", duration=61, tags=list(tags))


def write_artifacts(layout, key=KEY, media=True, subtitles=True):
    if media:
        (layout.working_dir / f"{key}.mp4").write_bytes(b"\x00" * 64)
    (layout.working_dir / f"{key}.jpg").write_bytes(b"\xff\xd8")
    if subtitles:
        (layout.working_dir / f"{key}.en.vtt").write_text("WEBVTT\n")


async def downloading_job(store, key=KEY, **fields):
    await store.submit(key, source_url=f"https://youtu.be/{key}", quality="720", want_subtitles=True, **fields)
    return await store.transition(key, JobStatus.DOWNLOADING)


class TestReconcile:

    async def test_commits_item_and_completes_job(self, reconciler, store, layout, database):
        job = await downloading_job(store)
        write_artifacts(layout)

        result = await reconciler.reconcile(job, info=info())

        assert result.job.status == JobStatus.COMPLETED
        assert result.job.progress == 100.0
        assert result.item["sourceId"] == KEY
        assert result.item["mediaPath"] == "videos/abc123XYZ.mp4"
        assert result.item["thumbnailPath"] == "thumbnails/abc123XYZ.jpg"
        assert result.item["subtitlePath"] == "subtitles/abc123XYZ.en.vtt"
        assert result.item["tags"] == ["live", "music"]
        assert (layout.thumbnails_dir / f"{KEY}.jpg").exists()
        assert not (layout.working_dir / f"{KEY}.jpg").exists()

    async def test_missing_media_fails_job(self, reconciler, store, layout):
        job = await downloading_job(store)
        write_artifacts(layout, media=False)

        with pytest.raises(ArtifactMissing):
            await reconciler.reconcile(job, info=info())

        failed = await store.get(KEY)
        assert failed.status == JobStatus.FAILED
        assert failed.error_message

    async def test_subtitles_optional(self, reconciler, store, layout):
        job = await downloading_job(store)
        write_artifacts(layout, subtitles=False)

        result = await reconciler.reconcile(job, info=info())

        assert result.item["subtitlePath"] is None

    async def test_cancelled_job_is_not_completed(self, reconciler, store, layout, database):
        job = await downloading_job(store)
        write_artifacts(layout)
        await store.transition(KEY, JobStatus.CANCELLED)

        assert await reconciler.reconcile(job, info=info()) is None

        assert (await store.get(KEY)).status == JobStatus.CANCELLED
        async with database.get_session() as session:
            assert await DatabaseService(session).library.get_by_source_id(KEY) is None
        assert not (layout.media_dir / f"{KEY}.mp4").exists()

    async def test_reacquisition_replaces_stale_container(self, reconciler, store, layout, database):
        job = await downloading_job(store)
        write_artifacts(layout)
        await reconciler.reconcile(job, info=info())

        # second run yields audio only and a png thumbnail
        await store.submit(KEY, source_url=f"https://youtu.be/{KEY}", quality="audio", want_subtitles=False)
        job = await store.transition(KEY, JobStatus.DOWNLOADING)
        (layout.working_dir / f"{KEY}.m4a").write_bytes(b"\x00" * 16)
        (layout.working_dir / f"{KEY}.png").write_bytes(b"\x89PNG")
        result = await reconciler.reconcile(job, info=info())

        assert result.item["mediaPath"] == "videos/abc123XYZ.m4a"
        assert result.item["thumbnailPath"] == "thumbnails/abc123XYZ.png"
        assert result.item["subtitlePath"] is None
        assert (layout.media_dir / f"{KEY}.m4a").exists()
        assert not (layout.media_dir / f"{KEY}.mp4").exists()
        assert not (layout.thumbnails_dir / f"{KEY}.jpg").exists()
        assert not (layout.subtitles_dir / f"{KEY}.en.vtt").exists()

    async def test_superseded_reacquisition_keeps_library_files(self, reconciler, store, layout, database):
        job = await downloading_job(store)
        write_artifacts(layout)
        await reconciler.reconcile(job, info=info())

        await store.submit(KEY, source_url=f"https://youtu.be/{KEY}", quality="audio", want_subtitles=False)
        job = await store.transition(KEY, JobStatus.DOWNLOADING)
        (layout.working_dir / f"{KEY}.m4a").write_bytes(b"\x00" * 16)
        await store.transition(KEY, JobStatus.CANCELLED)

        assert await reconciler.reconcile(job, info=info()) is None

        assert (layout.media_dir / f"{KEY}.mp4").exists()
        assert (layout.thumbnails_dir / f"{KEY}.jpg").exists()
        assert not (layout.media_dir / f"{KEY}.m4a").exists()
        async with database.get_session() as session:
            item = await DatabaseService(session).library.get_by_source_id(KEY)
            assert item.media_path == "videos/abc123XYZ.mp4"

    async def test_tags_are_idempotent(self, reconciler, store, layout, database):
        job = await downloading_job(store)
        write_artifacts(layout)
        await reconciler.reconcile(job, info=info())

        # acquire the same key again with an overlapping tag set
        await store.submit(KEY, source_url=f"https://youtu.be/{KEY}", quality="best", want_subtitles=True)
        job = await store.transition(KEY, JobStatus.DOWNLOADING)
        write_artifacts(layout)
        result = await reconciler.reconcile(job, info=info(tags=("music", "remix")))

        assert result.item["tags"] == ["live", "music", "remix"]
        async with database.get_session() as session:
            count = (await session.execute(select(func.count()).select_from(Tag))).scalar_one()
            assert count == 3
            tagged = await DatabaseService(session).library.items_with_tag("music")
            assert [item.source_id for item in tagged] == [KEY]


class TestCollections:

    async def create_collection(self, database, name="Favourites"):
        async with database.get_session() as session:
            collection = await DatabaseService(session).library.create_collection(name)
            return collection.id

    async def test_appends_at_end(self, reconciler, store, layout, database):
        collection_id = await self.create_collection(database)

        for key in ("first0001", "second001"):
            job = await downloading_job(store, key, batch_target_id=collection_id)
            write_artifacts(layout, key)
            await reconciler.reconcile(job, info=MediaInfo(id=key, title=key))

        async with database.get_session() as session:
            entries = await DatabaseService(session).library.collection_entries(collection_id)
        assert entries == [
            {"position": 1, "sourceId": "first0001"},
            {"position": 2, "sourceId": "second001"},
        ]

    async def test_batch_context_target(self, reconciler, store, layout, database):
        collection_id = await self.create_collection(database)
        job = await downloading_job(store)
        write_artifacts(layout)

        await reconciler.reconcile(job, info=info(), batch=BatchContext("PLbatch", collection_id))

        async with database.get_session() as session:
            entries = await DatabaseService(session).library.collection_entries(collection_id)
        assert [e["sourceId"] for e in entries] == [KEY]

    async def test_unknown_collection_is_skipped(self, reconciler, store, layout):
        job = await downloading_job(store, batch_target_id=999)
        write_artifacts(layout)

        result = await reconciler.reconcile(job, info=info())

        assert result.job.status == JobStatus.COMPLETED
