"""Database layer: engine management, ORM models and repositories."""

from .connection import Base, DatabaseManager
from .models import (
    AcquisitionJob,
    Collection,
    CollectionItem,
    JobStatus,
    LibraryItem,
    Tag,
)
from .repositories import BaseRepository, JobRepository, LibraryRepository
from .service import DatabaseService

__all__ = [
    "Base",
    "DatabaseManager",
    "AcquisitionJob",
    "Collection",
    "CollectionItem",
    "JobStatus",
    "LibraryItem",
    "Tag",
    "BaseRepository",
    "JobRepository",
    "LibraryRepository",
    "DatabaseService",
]
