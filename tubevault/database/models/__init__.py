"""Database models."""

from .job import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    AcquisitionJob,
    JobStatus,
    sources_for,
)
from .library import Collection, CollectionItem, LibraryItem, Tag, library_item_tags

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "AcquisitionJob",
    "JobStatus",
    "sources_for",
    "Collection",
    "CollectionItem",
    "LibraryItem",
    "Tag",
    "library_item_tags",
]
