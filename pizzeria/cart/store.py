"""
Local Cart Store

Async row store for cart lines. Every public method runs in its own
transaction, so a call either fully applies or leaves the store untouched.

Lines are namespaced by user: each (user, branch) pair is its own cart.
LOCAL_USER is the namespace of a single-session caller.

Errors:
    - IntegrityError (duplicate configuration) -> InvariantViolation
    - any other SQLAlchemy/driver failure      -> StorageError
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pizzeria.database import CartBase
from pizzeria.exceptions import InvariantViolation, StorageError
from pizzeria.models import LOCAL_USER, CartLine


class CartStore:
    """Pass-through to the cart_lines table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            raise InvariantViolation(
                "A cart line for this user, branch, item, size and extras already exists"
            ) from e
        except SQLAlchemyError as e:
            raise StorageError(f"Cart store failure: {e}") from e

    async def create_tables(self) -> None:
        try:
            async with self._session_maker() as session:
                conn = await session.connection()
                await conn.run_sync(CartBase.metadata.create_all)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Cart store failure: {e}") from e

    async def ping(self) -> None:
        async with self._transaction() as session:
            await session.execute(text("SELECT 1"))

    async def list_lines(self, branch_id: str, user_id: str = LOCAL_USER) -> list[CartLine]:
        """All lines of one user's branch cart, newest insert first."""
        async with self._transaction() as session:
            result = await session.execute(
                select(CartLine)
                .where(CartLine.user_id == user_id, CartLine.branch_id == branch_id)
                .order_by(CartLine.local_id.desc())
            )
            return list(result.scalars().all())

    async def get_line(self, local_id: int) -> Optional[CartLine]:
        async with self._transaction() as session:
            return await session.get(CartLine, local_id)

    async def find_line(
        self,
        branch_id: str,
        item_id: str,
        size: str,
        extras: str,
        user_id: str = LOCAL_USER,
    ) -> Optional[CartLine]:
        async with self._transaction() as session:
            return await self._find(session, user_id, branch_id, item_id, size, extras)

    @staticmethod
    async def _find(
        session: AsyncSession,
        user_id: str,
        branch_id: str,
        item_id: str,
        size: str,
        extras: str,
    ) -> Optional[CartLine]:
        result = await session.execute(
            select(CartLine)
            .where(
                CartLine.user_id == user_id,
                CartLine.branch_id == branch_id,
                CartLine.item_id == item_id,
                CartLine.size == size,
                CartLine.extras == extras,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def insert_line(self, line: CartLine) -> CartLine:
        """Insert a new line. A duplicate configuration is rejected."""
        async with self._transaction() as session:
            session.add(line)
            await session.flush()
        return line

    async def upsert_line(
        self,
        branch_id: str,
        item_id: str,
        size: str,
        extras: str,
        name: str,
        unit_price: Decimal,
        image_url: Optional[str],
        quantity: int,
        user_id: str = LOCAL_USER,
    ) -> CartLine:
        """
        Insert the configuration or add quantity to the existing line.

        On an existing line the unit price, name and image are replaced by
        the supplied values.
        """
        async with self._transaction() as session:
            line = await self._find(session, user_id, branch_id, item_id, size, extras)
            if line is None:
                line = CartLine(
                    user_id=user_id,
                    branch_id=branch_id,
                    item_id=item_id,
                    name=name,
                    unit_price=unit_price,
                    quantity=quantity,
                    image_url=image_url,
                    size=size,
                    extras=extras,
                )
                session.add(line)
            else:
                line.quantity = line.quantity + quantity
                line.unit_price = unit_price
                line.name = name
                line.image_url = image_url
            await session.flush()
        return line

    async def set_quantity(self, local_id: int, quantity: int) -> Optional[CartLine]:
        async with self._transaction() as session:
            line = await session.get(CartLine, local_id)
            if line is None:
                return None
            line.quantity = quantity
        return line

    async def delete_line(self, local_id: int) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(CartLine).where(CartLine.local_id == local_id)
            )
            return result.rowcount > 0

    async def delete_lines(self, local_ids: Iterable[int]) -> int:
        """Delete exactly the given lines; others added meanwhile stay."""
        ids = list(local_ids)
        if not ids:
            return 0
        async with self._transaction() as session:
            result = await session.execute(
                delete(CartLine).where(CartLine.local_id.in_(ids))
            )
            return result.rowcount

    async def delete_branch(self, branch_id: str, user_id: Optional[str] = None) -> int:
        """Delete one user's branch cart, or every user's when user_id is None."""
        statement = delete(CartLine).where(CartLine.branch_id == branch_id)
        if user_id is not None:
            statement = statement.where(CartLine.user_id == user_id)
        async with self._transaction() as session:
            result = await session.execute(statement)
            return result.rowcount
