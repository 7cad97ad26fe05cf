# pizzeria/repos/menu_repo.py
import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.exceptions import NotFoundError
from pizzeria.models import MenuCategory, MenuItem, new_id
from pizzeria.normalization import normalize_menu_document

logger = logging.getLogger(__name__)

MENU_FIELDS = (
    "title",
    "description",
    "price",
    "available",
    "image_url",
    "category",
    "size_multipliers",
    "extras",
)


class MenuRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_menu(
        self,
        branch_id: str,
        category: Optional[MenuCategory] = None,
        q: Optional[str] = None,
    ) -> list[MenuItem]:
        """Menu of one branch, optionally by category and a title/description search."""
        query = select(MenuItem).where(MenuItem.branch_id == branch_id)
        if category is not None:
            query = query.where(MenuItem.category == category)
        if q and q.strip():
            pattern = f"%{q.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(MenuItem.title).like(pattern),
                    func.lower(func.coalesce(MenuItem.description, "")).like(pattern),
                )
            )
        result = await self.db.execute(query.order_by(MenuItem.title))
        return list(result.scalars().all())

    async def get_item(self, branch_id: str, item_id: str) -> Optional[MenuItem]:
        result = await self.db.execute(
            select(MenuItem).where(
                MenuItem.branch_id == branch_id,
                MenuItem.id == item_id,
            )
        )
        return result.scalar_one_or_none()

    async def require_item(self, branch_id: str, item_id: str) -> MenuItem:
        item = await self.get_item(branch_id, item_id)
        if item is None:
            raise NotFoundError(f"Menu item {item_id} not found in branch {branch_id}")
        return item

    async def add_item(self, branch_id: str, fields: Mapping[str, Any]) -> MenuItem:
        """Insert a menu item. A blank id gets a generated one."""
        item_id = (fields.get("id") or "").strip() or new_id()
        item = MenuItem(id=item_id, branch_id=branch_id)
        self._apply(item, fields)
        if not (item.title or "").strip():
            item.title = "Untitled"
        self.db.add(item)
        await self.db.commit()
        await self.db.refresh(item)
        return item

    async def update_item(self, branch_id: str, fields: Mapping[str, Any]) -> MenuItem:
        item_id = (fields.get("id") or "").strip()
        if not item_id:
            raise ValueError("Menu item id is required for an update")
        item = await self.require_item(branch_id, item_id)
        self._apply(item, fields)
        if not (item.title or "").strip():
            item.title = "Untitled"
        await self.db.commit()
        await self.db.refresh(item)
        return item

    async def delete_item(self, branch_id: str, item_id: str) -> bool:
        result = await self.db.execute(
            delete(MenuItem).where(
                MenuItem.branch_id == branch_id,
                MenuItem.id == item_id,
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def import_documents(
        self,
        branch_id: str,
        documents: Iterable[Mapping[str, Any]],
    ) -> list[MenuItem]:
        """
        Upsert raw menu documents after normalizing them.

        Documents keyed by an existing id replace that item.
        """
        imported = []
        for doc in documents:
            fields = normalize_menu_document(doc)
            item = await self.get_item(branch_id, fields["id"])
            if item is None:
                item = MenuItem(id=fields["id"], branch_id=branch_id)
                self.db.add(item)
            self._apply(item, fields)
            imported.append(item)

        await self.db.commit()
        for item in imported:
            await self.db.refresh(item)

        logger.info(f"Imported {len(imported)} menu item(s) into branch {branch_id}")
        return imported

    @staticmethod
    def _apply(item: MenuItem, fields: Mapping[str, Any]) -> None:
        for field in MENU_FIELDS:
            if field in fields:
                setattr(item, field, fields[field])
