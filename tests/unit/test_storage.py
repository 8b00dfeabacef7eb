"""
Tests for artifact classification and the storage layout.
"""

import pytest

from tubevault.core.storage import StorageLayout, classify_artifacts, subtitle_language


def touch(path, size=1):
    path.write_bytes(b"x" * size)
    return path


class TestClassifyArtifacts:

    def test_sorts_files_by_class(self, tmp_path):
        media = touch(tmp_path / "abc123.mp4", 100)
        thumb = touch(tmp_path / "abc123.jpg")
        subs = touch(tmp_path / "abc123.en.vtt")
        touch(tmp_path / "other1.mp4", 500)

        artifacts = classify_artifacts("abc123", tmp_path)

        assert artifacts.media == media
        assert artifacts.thumbnail == thumb
        assert artifacts.subtitle == subs
        assert artifacts.subtitle_language == "en"

    def test_largest_media_file_wins(self, tmp_path):
        touch(tmp_path / "abc123.f137.mp4", 10)
        merged = touch(tmp_path / "abc123.mkv", 1000)

        assert classify_artifacts("abc123", tmp_path).media == merged

    def test_partial_files_are_ignored(self, tmp_path):
        partial = touch(tmp_path / "abc123.mp4.part", 5000)

        artifacts = classify_artifacts("abc123", tmp_path)

        assert artifacts.media is None
        assert partial in artifacts.ignored

    def test_caption_without_language_is_ignored(self, tmp_path):
        bare = touch(tmp_path / "abc123.vtt")
        touch(tmp_path / "abc123.webm")

        artifacts = classify_artifacts("abc123", tmp_path)

        assert artifacts.subtitle is None
        assert bare in artifacts.ignored

    def test_preferred_language_ranked_first(self, tmp_path):
        touch(tmp_path / "abc123.de.vtt")
        english = touch(tmp_path / "abc123.en-US.vtt")

        artifacts = classify_artifacts("abc123", tmp_path, languages=["en", "de"])

        assert artifacts.subtitle == english
        assert artifacts.subtitle_language == "en-US"

    def test_jpg_thumbnail_preferred(self, tmp_path):
        touch(tmp_path / "abc123.webp")
        jpg = touch(tmp_path / "abc123.jpg")

        assert classify_artifacts("abc123", tmp_path).thumbnail == jpg

    def test_prefix_requires_dot_separator(self, tmp_path):
        touch(tmp_path / "abc1234.mp4")
        assert classify_artifacts("abc123", tmp_path).media is None

    def test_previous_media_loses_to_fresh_download(self, tmp_path):
        old = touch(tmp_path / "abc123.mp4", 100)
        new = touch(tmp_path / "abc123.m4a", 10)

        assert classify_artifacts("abc123", tmp_path).media == old
        assert classify_artifacts("abc123", tmp_path, previous=[old]).media == new

    def test_previous_media_used_when_alone(self, tmp_path):
        only = touch(tmp_path / "abc123.mp4", 100)
        assert classify_artifacts("abc123", tmp_path, previous=[only]).media == only

    def test_missing_directory(self, tmp_path):
        assert classify_artifacts("abc123", tmp_path / "nope").media is None

    def test_subtitle_language(self, tmp_path):
        assert subtitle_language(tmp_path / "abc123.pt-BR.vtt", "abc123") == "pt-BR"
        assert subtitle_language(tmp_path / "abc123.vtt", "abc123") is None


class TestStorageLayout:

    @pytest.fixture
    def layout(self, test_settings):
        layout = StorageLayout(test_settings)
        layout.ensure_directories()
        return layout

    def test_directories_created(self, layout):
        for directory in layout.all_directories():
            assert directory.is_dir()

    def test_relative_paths_are_posix(self, layout):
        path = layout.media_dir / "abc123.mp4"
        assert layout.relative(path) == "videos/abc123.mp4"

    async def test_move_replaces_destination(self, layout, tmp_path):
        source = touch(tmp_path / "abc123.mp4", 3)
        destination = touch(layout.media_dir / "abc123.mp4", 1)

        await layout.move(source, destination)

        assert not source.exists()
        assert destination.stat().st_size == 3

    async def test_purge_removes_every_class(self, layout):
        touch(layout.working_dir / "abc123.mp4.part")
        touch(layout.thumbnails_dir / "abc123.jpg")
        touch(layout.subtitles_dir / "abc123.en.vtt")
        keep = touch(layout.thumbnails_dir / "zzz999.jpg")

        deleted, failures = await layout.purge("abc123")

        assert len(deleted) == 3
        assert failures == []
        assert keep.exists()

    async def test_purge_skips_kept_files(self, layout):
        touch(layout.working_dir / "abc123.mp4.part")
        media = touch(layout.media_dir / "abc123.mp4")
        thumb = touch(layout.thumbnails_dir / "abc123.jpg")

        deleted, failures = await layout.purge("abc123", keep=[media, thumb])

        assert [p.name for p in deleted] == ["abc123.mp4.part"]
        assert media.exists()
        assert thumb.exists()

    async def test_purge_collects_failures(self, layout, monkeypatch):
        touch(layout.working_dir / "abc123.mp4.part")
        touch(layout.thumbnails_dir / "abc123.jpg")

        async def flaky_remove(path):
            if path.suffix == ".part":
                raise PermissionError("busy")
            path.unlink()

        monkeypatch.setattr("tubevault.core.storage.aiofiles.os.remove", flaky_remove)

        deleted, failures = await layout.purge("abc123")

        assert [p.name for p in deleted] == ["abc123.jpg"]
        assert len(failures) == 1
        assert failures[0].context["job_id"] == "abc123"
