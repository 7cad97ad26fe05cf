"""
Cart Reconciliation Engine

Keeps, per user and branch, at most one cart line per configuration
(item, size, extras) and accumulates quantities into it.

Ownership:
    A cart is identified by (user_id, branch_id). Every operation takes a
    user_id; LOCAL_USER is the single-session namespace used when the
    caller has no identity of its own.

Concurrency:
    All mutations of one cart are serialized by an asyncio.Lock for that
    cart, so two simultaneous adds of the same configuration can never
    both see "absent" and insert twice. Each mutation is one store
    transaction; a cancelled call leaves either the old or the new state.
    Locks exist only while a call holds or waits for them.

Observation:
    observe() yields the full line list of a cart, first immediately and
    then after every completed mutation of that cart.

Usage:
    engine = get_cart_engine()
    await engine.add_or_increment(
        branch_id="colombo-01",
        item_id="margherita",
        name="Margherita",
        unit_price=Decimal("1360.00"),
        image_url=None,
        quantity=1,
        size="L",
        extras=["Olives", "Extra Cheese"],
        user_id="uid-123",
    )

    async for lines in engine.observe("colombo-01", user_id="uid-123"):
        render(lines)

    async with engine.checkout("colombo-01", user_id="uid-123") as lines:
        save_order(lines)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Optional, Union

from pizzeria.cart.feed import ChangeFeed
from pizzeria.cart.store import CartStore
from pizzeria.exceptions import NotFoundError, StorageError
from pizzeria.models import LOCAL_USER, CartLine
from pizzeria.pricing import ExtrasInput, canonical_extras, normalize_size_label, round_money

logger = logging.getLogger(__name__)

CartKey = tuple[str, str]


def cart_key(branch_id: str, user_id: str = LOCAL_USER) -> CartKey:
    """Lock and feed key of one user's cart at one branch."""
    return (user_id, branch_id)


def _label(key: CartKey) -> str:
    user_id, branch_id = key
    return f"{branch_id}/{user_id or 'local'}"


class CartEngine:

    def __init__(
        self,
        store: CartStore,
        feed: Optional[ChangeFeed] = None,
        default_size: str = "M",
    ):
        self.store = store
        self.feed = feed or ChangeFeed()
        self.default_size = normalize_size_label(default_size) or "M"
        self._locks: dict[CartKey, asyncio.Lock] = {}
        self._lock_users: dict[CartKey, int] = {}

    def _size(self, size: Optional[str]) -> str:
        return normalize_size_label(size) or self.default_size

    @asynccontextmanager
    async def _locked(self, key: CartKey) -> AsyncIterator[None]:
        # Counted before acquiring, so a lock is never dropped under a waiter
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _publish(self, key: CartKey) -> None:
        """Push the cart's lines to its observers. Never raises StorageError."""
        if not self.feed.has_subscribers(key):
            return
        user_id, branch_id = key
        try:
            lines = await self.store.list_lines(branch_id, user_id)
        except StorageError as e:
            # The mutation itself is committed; observers catch up on the next one
            logger.warning(f"Cart {_label(key)}: update not published: {e}")
            return
        self.feed.publish(key, lines)

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def add_or_increment(
        self,
        branch_id: str,
        item_id: str,
        name: str,
        unit_price: Union[Decimal, int, float, str],
        image_url: Optional[str],
        quantity: int,
        size: Optional[str] = None,
        extras: ExtrasInput = None,
        user_id: str = LOCAL_USER,
    ) -> CartLine:
        """
        Add quantity of a configuration to the user's branch cart.

        A matching line (same user, branch, item, size and canonical extras)
        has its quantity increased and its unit price replaced by
        unit_price. Otherwise a new line is inserted.

        Raises:
            ValueError: quantity is not positive or unit_price is negative
            StorageError: the cart store failed
        """
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")
        price = round_money(unit_price)
        if price < 0:
            raise ValueError("Unit price must not be negative")

        line_size = self._size(size)
        descriptor = canonical_extras(extras)
        key = cart_key(branch_id, user_id)

        async with self._locked(key):
            line = await self.store.upsert_line(
                branch_id=branch_id,
                item_id=item_id,
                size=line_size,
                extras=descriptor,
                name=name,
                unit_price=price,
                image_url=image_url,
                quantity=quantity,
                user_id=user_id,
            )
            await self._publish(key)

        logger.debug(
            f"Cart {_label(key)}: {item_id} {line_size} [{descriptor}] now x{line.quantity}"
        )
        return line

    async def change_quantity(self, line: CartLine, new_quantity: int) -> Optional[CartLine]:
        """
        Set a line's quantity; zero or below removes the line.

        Returns the updated line, or None when the line was removed.

        Raises:
            NotFoundError: the line no longer exists and new_quantity > 0
        """
        key = cart_key(line.branch_id, line.user_id or LOCAL_USER)

        async with self._locked(key):
            if new_quantity <= 0:
                await self.store.delete_line(line.local_id)
                updated = None
            else:
                updated = await self.store.set_quantity(line.local_id, new_quantity)
                if updated is None:
                    raise NotFoundError(f"Cart line {line.local_id} not found")
            await self._publish(key)

        return updated

    async def clear_branch(self, branch_id: str, user_id: str = LOCAL_USER) -> int:
        """Remove every line of the user's branch cart. Returns the number removed."""
        key = cart_key(branch_id, user_id)
        async with self._locked(key):
            removed = await self.store.delete_branch(branch_id, user_id)
            await self._publish(key)

        logger.info(f"Cart {_label(key)}: cleared {removed} line(s)")
        return removed

    async def drop_branch(self, branch_id: str) -> int:
        """Remove every user's lines for a branch that no longer exists."""
        removed = await self.store.delete_branch(branch_id)
        for key in self.feed.topics():
            if key[1] == branch_id:
                await self._publish(key)

        logger.info(f"Carts for branch {branch_id}: dropped {removed} line(s)")
        return removed

    @asynccontextmanager
    async def checkout(
        self,
        branch_id: str,
        user_id: str = LOCAL_USER,
    ) -> AsyncIterator[list[CartLine]]:
        """
        Hold one cart for the length of a checkout.

        Yields the cart's lines while the cart is locked; adds and quantity
        changes wait until the block ends. On a normal exit exactly the
        yielded lines are removed. If the block raises, the cart is kept.
        """
        key = cart_key(branch_id, user_id)
        async with self._locked(key):
            lines = await self.store.list_lines(branch_id, user_id)
            yield lines
            try:
                removed = await self.store.delete_lines(line.local_id for line in lines)
            except StorageError as e:
                # The order is already saved; the customer can empty the cart by hand
                logger.error(f"Cart {_label(key)}: checked-out lines not cleared: {e}")
                return
            await self._publish(key)

        logger.info(f"Cart {_label(key)}: checked out {removed} line(s)")

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def snapshot(self, branch_id: str, user_id: str = LOCAL_USER) -> list[CartLine]:
        return await self.store.list_lines(branch_id, user_id)

    async def get_line(self, local_id: int) -> CartLine:
        line = await self.store.get_line(local_id)
        if line is None:
            raise NotFoundError(f"Cart line {local_id} not found")
        return line

    async def health_check(self) -> bool:
        try:
            await self.store.ping()
        except StorageError:
            return False
        return True

    async def item_count(self, branch_id: str, user_id: str = LOCAL_USER) -> int:
        """Total units across all lines, for cart badges."""
        return sum(line.quantity for line in await self.snapshot(branch_id, user_id))

    async def observe(
        self,
        branch_id: str,
        user_id: str = LOCAL_USER,
    ) -> AsyncIterator[list[CartLine]]:
        """
        Stream the cart's line list.

        The subscription is registered before the first read so no write
        in between is missed. Closing the iterator or cancelling the
        consumer unsubscribes.
        """
        key = cart_key(branch_id, user_id)
        queue = self.feed.subscribe(key)
        try:
            yield await self.snapshot(branch_id, user_id)
            while True:
                yield await queue.get()
        finally:
            self.feed.unsubscribe(key, queue)
