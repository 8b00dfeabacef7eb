"""
Fetcher adapter: builds yt-dlp invocations and interprets their output.

The fetcher is treated as a black box. This module only knows how to call it
and how to read what it prints.
"""

import asyncio
import json
import re
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qs, urlparse

from ..config import Settings, settings as default_settings
from ..config.logging_config import get_logger
from ..utils.constants import (
    AGE_RESTRICTION_MARKERS,
    AUDIO_FORMAT,
    BATCH_RESULT_TYPES,
    BEST_FORMAT,
    FORMAT_UNAVAILABLE_MARKERS,
    HEIGHT_CAPPED_FORMAT,
    PROGRESS_PATTERN,
)
from ..utils.exceptions import (
    AgeRestrictedError,
    BatchEnumerationError,
    FetcherError,
    FetcherExitError,
    FetcherLaunchError,
    FormatUnavailableError,
    MetadataParseError,
    ValidationError,
)

logger = get_logger(__name__)

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{6,64}$")
_PATH_ID_PREFIXES = ("shorts", "embed", "live", "v")
_STREAM_LIMIT = 1024 * 1024


@dataclass
class MediaInfo:
    """Metadata reported by the fetcher for one item."""
    id: str
    title: str
    webpage_url: Optional[str] = None
    description: Optional[str] = None
    channel: Optional[str] = None
    duration: Optional[float] = None
    thumbnail: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "MediaInfo":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or str(data["id"]),
            webpage_url=data.get("webpage_url") or data.get("original_url"),
            description=data.get("description"),
            channel=data.get("channel") or data.get("uploader"),
            duration=data.get("duration"),
            thumbnail=data.get("thumbnail"),
            tags=[str(tag) for tag in (data.get("tags") or [])],
            raw=data,
        )

    def summary(self) -> Dict[str, Any]:
        """Compact metadata kept on the library item."""
        keys = ("upload_date", "view_count", "like_count", "width", "height", "ext", "categories")
        return {key: self.raw[key] for key in keys if self.raw.get(key) is not None}


@dataclass
class BatchEntry:
    id: str
    title: Optional[str] = None
    url: Optional[str] = None
    thumbnail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "url": self.url, "thumbnail": self.thumbnail}


@dataclass
class BatchListing:
    """Members of a playlist-like source, in source order."""
    id: str
    title: str
    entries: List[BatchEntry]
    webpage_url: Optional[str] = None

    @property
    def member_count(self) -> int:
        return len(self.entries)

    def preview(self, limit: int = 5) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries[:limit]]


class Fetcher:
    """Invokes the external fetcher command."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        command: Optional[Union[str, Sequence[str]]] = None,
    ):
        self.settings = config or default_settings
        command = command or self.settings.FETCHER_BINARY
        self.command: List[str] = shlex.split(command) if isinstance(command, str) else list(command)

    # Invocation building

    @staticmethod
    def format_selector(quality: Optional[str]) -> str:
        """Map a quality preset to a format-selection expression."""
        normalized = (quality or "").strip().lower()
        if normalized == "audio":
            return AUDIO_FORMAT
        normalized = normalized.rstrip("p")
        if normalized.isdigit():
            return HEIGHT_CAPPED_FORMAT.format(height=int(normalized))
        return BEST_FORMAT

    def cookie_args(self) -> List[str]:
        cookies = Path(self.settings.cookies_path)
        if cookies.is_file():
            return ["--cookies", str(cookies)]
        return []

    def build_download_args(
        self,
        natural_key: str,
        url: str,
        quality: str,
        want_subtitles: bool,
        output_dir: Path,
    ) -> List[str]:
        args = [
            "--format", self.format_selector(quality),
            "--output", str(Path(output_dir) / f"{natural_key}.%(ext)s"),
            "--write-thumbnail",
            "--convert-thumbnails", "jpg",
            "--add-metadata",
            "--restrict-filenames",
            "--no-playlist",
            "--newline",
        ]
        if want_subtitles:
            args += [
                "--write-subs",
                "--write-auto-subs",
                "--sub-langs", ",".join(self.settings.SUBTITLE_LANGUAGES),
                "--sub-format", "vtt",
                "--convert-subs", "vtt",
            ]
        args += self.cookie_args()
        args.append(url)
        return args

    # Process handling

    async def spawn(self, args: Sequence[str], url: Optional[str] = None) -> asyncio.subprocess.Process:
        """Start the fetcher with piped output streams."""
        argv = [*self.command, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except (OSError, ValueError) as e:
            raise FetcherLaunchError(
                f"Could not start fetcher: {e}",
                command=shlex.join(argv),
                url=url,
                cause=e,
            )

        logger.debug("Fetcher started", extra={"pid": process.pid, "argv": argv})
        return process

    async def run(
        self,
        args: Sequence[str],
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, str, str]:
        """Run a metadata-only invocation to completion."""
        process = await self.spawn(args, url=url)
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout or self.settings.FETCHER_METADATA_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise FetcherError("Fetcher timed out", url=url, cause=e)
        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    # Output interpretation

    @staticmethod
    def parse_progress(line: str) -> Optional[float]:
        """Percentage from a progress line such as ``[download]  42.3% of 10MiB``."""
        match = PROGRESS_PATTERN.search(line)
        if not match:
            return None
        return max(0.0, min(100.0, float(match.group(1))))

    @staticmethod
    def is_age_restricted(text: str) -> bool:
        return any(marker in text for marker in AGE_RESTRICTION_MARKERS)

    @classmethod
    def classify_failure(
        cls,
        stderr: str,
        returncode: Optional[int],
        url: Optional[str] = None,
    ) -> FetcherExitError:
        if cls.is_age_restricted(stderr):
            return AgeRestrictedError(returncode=returncode, stderr=stderr, url=url)
        if any(marker in stderr for marker in FORMAT_UNAVAILABLE_MARKERS):
            return FormatUnavailableError(returncode=returncode, stderr=stderr, url=url)
        message = stderr.strip() or f"Fetcher exited with code {returncode}"
        return FetcherExitError(message, returncode=returncode, stderr=stderr, url=url)

    # Metadata operations

    async def fetch_info(self, url: str, timeout: Optional[float] = None) -> MediaInfo:
        """Metadata for a single item, without downloading it."""
        returncode, stdout, stderr = await self.run(
            ["--dump-json", "--no-playlist", *self.cookie_args(), url], url=url, timeout=timeout
        )
        if returncode != 0:
            raise self.classify_failure(stderr, returncode, url)
        try:
            return MediaInfo.from_json(json.loads(stdout))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise MetadataParseError(f"Failed to parse fetcher output: {e}", url=url, cause=e)

    async def enumerate_batch(self, url: str) -> BatchListing:
        """List the members of a playlist-like source.

        A single item is wrapped as a one-member listing.
        """
        returncode, stdout, stderr = await self.run(
            ["--dump-single-json", "--flat-playlist", *self.cookie_args(), url], url=url
        )
        if returncode != 0:
            if self.is_age_restricted(stderr):
                raise AgeRestrictedError(returncode=returncode, stderr=stderr, url=url)
            logger.warning(
                "Batch listing failed, retrying with id listing",
                extra={"url": url, "returncode": returncode}
            )
            return await self._enumerate_ids(url, stderr)

        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise BatchEnumerationError(f"Failed to parse fetcher output: {e}", url=url, cause=e)

        if data.get("_type") not in BATCH_RESULT_TYPES:
            single = MediaInfo.from_json(data)
            return BatchListing(
                id=single.id,
                title=single.title,
                entries=[BatchEntry(single.id, single.title, single.webpage_url or url, single.thumbnail)],
                webpage_url=url,
            )

        entries = []
        for entry in data.get("entries") or []:
            if not entry or not entry.get("id"):
                continue
            thumbnails = entry.get("thumbnails") or []
            entries.append(BatchEntry(
                id=str(entry["id"]),
                title=entry.get("title"),
                url=entry.get("url") or entry.get("webpage_url"),
                thumbnail=entry.get("thumbnail") or (thumbnails[-1].get("url") if thumbnails else None),
            ))
        return BatchListing(
            id=str(data.get("id") or self._playlist_id(url, entries)),
            title=data.get("title") or "Playlist",
            entries=entries,
            webpage_url=data.get("webpage_url") or url,
        )

    async def _enumerate_ids(self, url: str, first_error: str) -> BatchListing:
        returncode, stdout, stderr = await self.run(
            ["--flat-playlist", "--print", "%(id)s\t%(title)s", *self.cookie_args(), url], url=url
        )
        if returncode != 0:
            if self.is_age_restricted(stderr):
                raise AgeRestrictedError(returncode=returncode, stderr=stderr, url=url)
            raise BatchEnumerationError(
                f"Failed to list playlist: {(first_error or stderr).strip()}", url=url
            )

        entries = []
        for line in stdout.splitlines():
            member_id, _, title = line.strip().partition("\t")
            if member_id:
                entries.append(BatchEntry(
                    id=member_id,
                    title=title or None,
                    url=f"https://www.youtube.com/watch?v={member_id}",
                ))
        title = entries[0].title if entries and entries[0].title else "Playlist"
        return BatchListing(
            id=self._playlist_id(url, entries),
            title=title,
            entries=entries,
            webpage_url=url,
        )

    @staticmethod
    def _playlist_id(url: str, entries: List[BatchEntry]) -> str:
        listed = parse_qs(urlparse(url).query).get("list")
        if listed:
            return listed[0]
        if entries:
            return f"PL{entries[0].id}"
        return f"unknown-{int(time.time())}"

    async def version(self) -> Optional[str]:
        try:
            returncode, stdout, _ = await self.run(["--version"], timeout=15)
        except FetcherError:
            return None
        return stdout.strip() if returncode == 0 else None

    # Natural keys

    @staticmethod
    def parse_natural_key(url: str) -> Optional[str]:
        """Media ID from well-known URL shapes, or None if the URL is opaque."""
        parsed = urlparse(url.strip())
        if not parsed.scheme or not parsed.netloc:
            return None
        host = parsed.netloc.lower().split(":")[0]
        candidate = None
        if host.endswith("youtu.be"):
            candidate = parsed.path.strip("/").split("/")[0]
        elif host.endswith("youtube.com") or host.endswith("youtube-nocookie.com"):
            query = parse_qs(parsed.query)
            if query.get("v"):
                candidate = query["v"][0]
            else:
                parts = [part for part in parsed.path.split("/") if part]
                if len(parts) >= 2 and parts[0] in _PATH_ID_PREFIXES:
                    candidate = parts[1]
        if candidate and _ID_PATTERN.match(candidate):
            return candidate
        return None

    async def resolve_natural_key(self, url: str) -> str:
        """Natural key for a URL, probing the fetcher when the URL is opaque.

        Intake waits on that lookup, so it is bounded by the shorter
        ``FETCHER_RESOLVE_TIMEOUT``; a slow source fails the request with a
        FetcherError rather than holding it for the full metadata timeout.
        """
        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("A valid http(s) URL is required", field="sourceUrl", value=url)
        key = self.parse_natural_key(url)
        if key:
            return key
        return (await self.fetch_info(url, timeout=self.settings.FETCHER_RESOLVE_TIMEOUT)).id
