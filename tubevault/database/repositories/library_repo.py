"""
Library repository: items, tag vocabulary and collection membership.
"""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .base_repo import BaseRepository
from ..models.library import Collection, CollectionItem, LibraryItem, Tag, library_item_tags
from ...config.logging_config import get_logger

logger = get_logger(__name__)


class LibraryRepository(BaseRepository[LibraryItem]):
    """Repository for library items and their tags and collections."""

    def __init__(self, session: AsyncSession):
        super().__init__(LibraryItem, session)

    async def get_by_source_id(self, source_id: str) -> Optional[LibraryItem]:
        stmt = select(LibraryItem).where(LibraryItem.source_id == source_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def existing_source_ids(self, source_ids: Iterable[str]) -> set:
        ids = list(source_ids)
        if not ids:
            return set()
        stmt = select(LibraryItem.source_id).where(LibraryItem.source_id.in_(ids))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def upsert_item(self, source_id: str, **fields: Any) -> LibraryItem:
        """Create the item or refresh an existing one with the same source ID."""
        item = await self.get_by_source_id(source_id)
        if item is None:
            item = LibraryItem(source_id=source_id, **fields)
            self.session.add(item)
            logger.debug("Creating library item", extra={"source_id": source_id})
        else:
            for key, value in fields.items():
                setattr(item, key, value)
            logger.debug("Updating library item", extra={"source_id": source_id})
        await self.session.flush()
        return item

    async def ensure_tags(self, names: Iterable[str]) -> List[Tag]:
        """Upsert tag names into the vocabulary and return the matching rows."""
        cleaned = sorted({name.strip() for name in names if name and name.strip()})
        if not cleaned:
            return []
        await self.insert_ignore(Tag.__table__, [{"name": name} for name in cleaned])
        result = await self.session.execute(select(Tag).where(Tag.name.in_(cleaned)))
        return list(result.scalars().all())

    async def link_tags(self, item: LibraryItem, tags: Iterable[Tag]) -> None:
        """Associate tags with an item; existing associations are left alone."""
        rows = [{"item_id": item.id, "tag_id": tag.id} for tag in tags]
        await self.insert_ignore(library_item_tags, rows)
        # the association was written with Core, reload the relationship
        await self.session.refresh(item, attribute_names=["tags"])

    async def items_with_tag(self, name: str) -> List[LibraryItem]:
        stmt = (
            select(LibraryItem)
            .join(library_item_tags, library_item_tags.c.item_id == LibraryItem.id)
            .join(Tag, Tag.id == library_item_tags.c.tag_id)
            .where(Tag.name == name)
            .order_by(LibraryItem.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_collection(self, name: str, description: Optional[str] = None) -> Collection:
        collection = Collection(name=name, description=description)
        self.session.add(collection)
        await self.session.flush()
        logger.info("Collection created", extra={"collection_id": collection.id, "name": name})
        return collection

    async def get_collection(self, collection_id: int) -> Optional[Collection]:
        return await self.session.get(Collection, collection_id)

    async def append_to_collection(self, collection_id: int, item_id: int) -> Optional[int]:
        """Append at max(position) + 1.

        Returns the new position, or None if the item was already a member.
        """
        existing = await self.session.get(CollectionItem, (collection_id, item_id))
        if existing is not None:
            return None

        stmt = select(func.coalesce(func.max(CollectionItem.position), 0)).where(
            CollectionItem.collection_id == collection_id
        )
        position = (await self.session.execute(stmt)).scalar_one() + 1
        self.session.add(CollectionItem(collection_id=collection_id, item_id=item_id, position=position))
        await self.session.flush()

        logger.debug(
            "Appended item to collection",
            extra={"collection_id": collection_id, "item_id": item_id, "position": position}
        )
        return position

    async def collection_entries(self, collection_id: int) -> List[Dict[str, Any]]:
        stmt = (
            select(CollectionItem.position, LibraryItem.source_id)
            .join(LibraryItem, LibraryItem.id == CollectionItem.item_id)
            .where(CollectionItem.collection_id == collection_id)
            .order_by(CollectionItem.position)
        )
        result = await self.session.execute(stmt)
        return [{"position": position, "sourceId": source_id} for position, source_id in result.all()]
