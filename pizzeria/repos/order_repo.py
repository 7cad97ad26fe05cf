# pizzeria/repos/order_repo.py
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.models import Order, OrderStatus, utcnow


class OrderRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_order(self, order: Order) -> Order:
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)
        return order

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.db.get(Order, order_id)

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> list[Order]:
        """All orders, newest first."""
        query = select(Order).order_by(Order.placed_at.desc())
        if status is not None:
            query = query.where(Order.status == status)
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    async def count_orders(self, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def list_for_user(self, user_id: str) -> list[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.placed_at.desc())
        )
        return list(result.scalars().all())

    async def update_order_status(self, order: Order, status: OrderStatus) -> Order:
        order.status = status
        order.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(order)
        return order
