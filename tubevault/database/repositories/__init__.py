"""Repository classes for database access."""

from .base_repo import BaseRepository
from .job_repo import JobRepository
from .library_repo import LibraryRepository

__all__ = ["BaseRepository", "JobRepository", "LibraryRepository"]
