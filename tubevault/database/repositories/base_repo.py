"""
Generic repository over one mapped class.
"""

from abc import ABC
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import Table, and_, func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import Base
from ...config.logging_config import get_logger

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType], ABC):
    """Lookups, inserts and keyword-filtered queries shared by all repositories.

    Keyword filters match on equality; a list, tuple or set value becomes an
    ``IN``. Unknown keywords are ignored.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.bind.dialect.name

    async def create(self, **kwargs) -> ModelType:
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        logger.debug(
            f"Inserted {self.model.__tablename__} row",
            extra={"table": self.model.__tablename__, "id": getattr(instance, "id", None)}
        )
        return instance

    async def get(self, id: Any) -> Optional[ModelType]:
        # rows may have been changed by Core UPDATEs earlier in this session
        stmt = select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        order_by: Optional[str] = None,
        **filters
    ) -> List[ModelType]:
        """Filtered page of rows; ``order_by="-field"`` sorts descending."""
        stmt = self._filtered(select(self.model), filters)
        if order_by and hasattr(self.model, order_by.lstrip("-")):
            column = getattr(self.model, order_by.lstrip("-"))
            stmt = stmt.order_by(column.desc() if order_by.startswith("-") else column)
        result = await self.session.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def update(self, id: Any, **kwargs) -> Optional[ModelType]:
        """Unconditional update; ``None`` values are left untouched."""
        values = {k: v for k, v in kwargs.items() if v is not None}
        if not values:
            return await self.get(id)

        stmt = (
            update(self.model)
            .where(self.model.id == id)
            .values(**values)
            .returning(self.model)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def count(self, **filters) -> int:
        stmt = self._filtered(select(func.count()).select_from(self.model), filters)
        return (await self.session.execute(stmt)).scalar() or 0

    async def insert_ignore(self, table: Table, rows: Sequence[Dict[str, Any]]) -> None:
        """Insert rows, skipping any that collide with a unique constraint."""
        if not rows:
            return
        if self.dialect_name == "sqlite":
            stmt = sqlite.insert(table).on_conflict_do_nothing()
        elif self.dialect_name == "postgresql":
            stmt = postgresql.insert(table).on_conflict_do_nothing()
        else:
            stmt = insert(table).prefix_with("IGNORE")
        await self.session.execute(stmt, list(rows))

    def _filtered(self, stmt, filters: Dict[str, Any]):
        conditions = []
        for key, value in filters.items():
            column = getattr(self.model, key, None)
            if column is None:
                continue
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return stmt.where(and_(*conditions)) if conditions else stmt
