"""
Storage layout for acquired media and helpers to classify fetcher output.

All library paths are stored relative to the storage root so the whole tree
can be relocated.
"""

import asyncio
import errno
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import aiofiles.os
import psutil

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..utils.constants import PARTIAL_EXTENSIONS, SUBTITLE_EXTENSIONS, THUMBNAIL_EXTENSIONS
from ..utils.exceptions import PartialCleanupError, StorageError

logger = get_logger(__name__)


@dataclass
class ArtifactSet:
    """Files the fetcher produced for one natural key."""
    media: Optional[Path] = None
    thumbnail: Optional[Path] = None
    subtitle: Optional[Path] = None
    subtitle_language: Optional[str] = None
    ignored: List[Path] = field(default_factory=list)


def _is_partial(path: Path) -> bool:
    return any(suffix.lower() in PARTIAL_EXTENSIONS for suffix in path.suffixes)


def subtitle_language(path: Path, natural_key: str) -> Optional[str]:
    """Language marker of a caption file named ``<key>.<lang>.<ext>``."""
    middle = path.name[len(natural_key) + 1:-len(path.suffix)]
    return middle or None


def classify_artifacts(
    natural_key: str,
    directory: Path,
    languages: Sequence[str] = ("en",),
    previous: Iterable[Path] = (),
) -> ArtifactSet:
    """Sort the files named ``<key>.*`` in ``directory`` into artifact classes.

    Images are thumbnails, caption files carrying a language marker are
    subtitles, and the largest remaining file is the media file. Files in
    ``previous`` (left by an earlier acquisition of the same key) only count
    as media when nothing else does.
    """
    artifacts = ArtifactSet()
    directory = Path(directory)
    if not directory.is_dir():
        return artifacts

    prefix = f"{natural_key}."
    media_candidates: List[Path] = []
    subtitles: List[Tuple[str, Path]] = []

    for path in sorted(directory.iterdir()):
        if not path.is_file() or not path.name.startswith(prefix):
            continue
        suffix = path.suffix.lower()
        if _is_partial(path):
            artifacts.ignored.append(path)
        elif suffix in THUMBNAIL_EXTENSIONS:
            if artifacts.thumbnail is None or suffix == ".jpg":
                artifacts.thumbnail = path
        elif suffix in SUBTITLE_EXTENSIONS:
            language = subtitle_language(path, natural_key)
            if language:
                subtitles.append((language, path))
            else:
                artifacts.ignored.append(path)
        else:
            media_candidates.append(path)

    if media_candidates:
        stale = {Path(p).resolve() for p in previous}
        fresh = [p for p in media_candidates if p.resolve() not in stale]
        artifacts.media = max(fresh or media_candidates, key=lambda p: p.stat().st_size)

    if subtitles:
        ranking = {lang: index for index, lang in enumerate(languages)}
        language, path = min(
            subtitles,
            key=lambda item: (ranking.get(item[0].split("-")[0], len(ranking)), item[0]),
        )
        artifacts.subtitle = path
        artifacts.subtitle_language = language

    return artifacts


class StorageLayout:
    """Directories used for acquisition and permanent storage."""

    def __init__(self, config: Optional[Settings] = None, root: Optional[Path] = None):
        self.settings = config or default_settings
        self.root = Path(root or self.settings.STORAGE_ROOT).resolve()
        self.media_dir = self.root / self.settings.MEDIA_SUBDIR
        self.thumbnails_dir = self.root / self.settings.THUMBNAIL_SUBDIR
        self.subtitles_dir = self.root / self.settings.SUBTITLE_SUBDIR
        self.working_dir = self.root / self.settings.WORKING_SUBDIR

    def ensure_directories(self) -> None:
        for directory in self.all_directories():
            directory.mkdir(parents=True, exist_ok=True)
        logger.info("Storage initialized", extra={"storage_root": str(self.root)})

    def all_directories(self) -> List[Path]:
        seen: List[Path] = []
        for directory in (self.working_dir, self.media_dir, self.thumbnails_dir, self.subtitles_dir):
            if directory not in seen:
                seen.append(directory)
        return seen

    def relative(self, path: Path) -> str:
        """Root-relative POSIX path for storing in the database."""
        return Path(path).resolve().relative_to(self.root).as_posix()

    async def move(self, source: Path, destination: Path) -> Path:
        """Move a file, replacing any existing file at the destination."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        if Path(source).resolve() == destination.resolve():
            return destination
        try:
            await aiofiles.os.replace(source, destination)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise StorageError(
                    f"Failed to move {source.name}", operation="move", path=str(source), cause=e
                )
            await asyncio.to_thread(shutil.move, str(source), str(destination))
        return destination

    async def purge(
        self,
        natural_key: str,
        directories: Optional[Iterable[Path]] = None,
        keep: Iterable[Path] = (),
    ) -> Tuple[List[Path], List[PartialCleanupError]]:
        """Delete every ``<key>.*`` file except those listed in ``keep``.

        Individual failures are collected, never raised.
        """
        prefix = f"{natural_key}."
        kept = {Path(p).resolve() for p in keep}
        deleted: List[Path] = []
        failures: List[PartialCleanupError] = []

        for directory in directories or self.all_directories():
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                if not path.name.startswith(prefix) or not path.is_file():
                    continue
                if path.resolve() in kept:
                    continue
                try:
                    await aiofiles.os.remove(path)
                    deleted.append(path)
                except OSError as e:
                    failures.append(PartialCleanupError(str(path), natural_key, cause=e))

        return deleted, failures

    def disk_usage(self):
        return psutil.disk_usage(str(self.root if self.root.exists() else self.root.parent))
