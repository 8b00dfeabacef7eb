"""
Unit of work over one session.

Components open a session with ``DatabaseManager.get_session()`` and wrap it
here so that job and library writes made together commit or roll back
together.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .repositories import JobRepository, LibraryRepository


class DatabaseService:
    """Repositories sharing one session and one transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._jobs: Optional[JobRepository] = None
        self._library: Optional[LibraryRepository] = None

    @property
    def jobs(self) -> JobRepository:
        if self._jobs is None:
            self._jobs = JobRepository(self.session)
        return self._jobs

    @property
    def library(self) -> LibraryRepository:
        if self._library is None:
            self._library = LibraryRepository(self.session)
        return self._library
