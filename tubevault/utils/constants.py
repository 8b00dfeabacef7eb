"""
Application constants and fetcher conventions.
"""

import re

# Fetcher output parsing
PROGRESS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)%")

AGE_RESTRICTION_MARKERS = (
    "Sign in to confirm your age",
    "age-restricted",
    "Sign in to confirm you're not a bot",
    "you're not a bot",
)

FORMAT_UNAVAILABLE_MARKERS = (
    "Requested format is not available",
    "Only images are available for download",
)

AGE_RESTRICTED_MESSAGE = (
    "This video is age-restricted. Upload a cookies file from a signed-in "
    "browser session to download it."
)
FORMAT_UNAVAILABLE_MESSAGE = (
    "The requested quality is not available for this video. Try a different quality."
)

# Format selection
AUDIO_FORMAT = "bestaudio/best"
BEST_FORMAT = "bestvideo+bestaudio/best"
HEIGHT_CAPPED_FORMAT = "bestvideo[height<={height}]+bestaudio/best[height<={height}]"

# Artifact classification
THUMBNAIL_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
SUBTITLE_EXTENSIONS = {".vtt", ".srt", ".ass", ".ssa", ".ttml"}
PARTIAL_EXTENSIONS = {".part", ".ytdl", ".temp", ".tmp"}

# Batch
BATCH_RESULT_TYPES = {"playlist", "multi_video"}

INTERRUPTED_MESSAGE = "Interrupted by service restart"

# Error Codes
ERROR_CODES = {
    "ACQUISITION_ERROR": "E000",
    "VALIDATION_ERROR": "E001",
    "CONFLICT": "E002",
    "JOB_NOT_FOUND": "E003",
    "FETCHER_ERROR": "E100",
    "FETCHER_LAUNCH_FAILED": "E101",
    "FETCHER_EXIT_FAILED": "E102",
    "AGE_RESTRICTED": "E103",
    "FORMAT_UNAVAILABLE": "E104",
    "METADATA_PARSE_FAILED": "E105",
    "ARTIFACT_MISSING": "E200",
    "STORAGE_FAILED": "E201",
    "PARTIAL_CLEANUP": "E202",
    "BATCH_ENUMERATION_FAILED": "E300",
    "EMPTY_BATCH": "E301",
}
