"""
Checkout Service

Turns a user's branch cart into a placed order.

Flow (the cart stays locked from step 1 to step 6):
    1. Read the user's branch cart once
    2. Check the branch exists and is taking orders
    3. Compute totals with the configured threshold and fee
    4. Persist the order (status: placed)
    5. Remember the delivery details on the user's profile
    6. Remove the ordered lines from the cart

Usage:
    order = await place_order(
        db=db,
        cart=get_cart_engine(),
        branch_id="colombo-01",
        user_id="uid-123",
        delivery=DeliveryDetails(name="Nimal", address="12 Galle Rd", phone="0771234567"),
    )
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.cart.engine import CartEngine
from pizzeria.core.config import Settings, get_settings
from pizzeria.exceptions import EmptyCartError, NotFoundError
from pizzeria.models import CartLine, Order, OrderStatus
from pizzeria.pricing import compute_totals
from pizzeria.repos import BranchRepo, OrderRepo, ProfileRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryDetails:
    name: str
    address: str
    phone: str


def order_line_title(line: CartLine) -> str:
    """'Margherita (L) + Extra Cheese,Olives' style line title."""
    title = f"{line.name} ({line.size})"
    if line.extras_descriptor:
        title += f" + {line.extras_descriptor}"
    return title


def build_order_items(lines: Iterable[CartLine]) -> list[dict]:
    return [
        {
            "item_id": line.item_id,
            "title": order_line_title(line),
            "price": str(line.unit_price),
            "qty": line.quantity,
        }
        for line in lines
    ]


async def save_profile_if_changed(
    profiles: ProfileRepo,
    user_id: str,
    delivery: DeliveryDetails,
) -> bool:
    """Upsert the profile unless it already holds these delivery details."""
    current = await profiles.get_profile(user_id)
    if current is not None and (
        current.name == delivery.name
        and current.phone == delivery.phone
        and current.address == delivery.address
    ):
        return False

    await profiles.upsert_profile(
        uid=user_id,
        name=delivery.name,
        phone=delivery.phone,
        address=delivery.address,
    )
    return True


async def place_order(
    db: AsyncSession,
    cart: CartEngine,
    branch_id: str,
    user_id: str,
    delivery: DeliveryDetails,
    notes: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Order:
    """
    Place an order from the user's cart for a branch.

    The cart is held for the whole call, so an add that arrives meanwhile
    waits and lands in the cart after the ordered lines are removed.

    Raises:
        EmptyCartError: The cart has no lines
        NotFoundError: The branch does not exist or is inactive
        StorageError: The cart store failed
    """
    settings = settings or get_settings()

    async with cart.checkout(branch_id, user_id=user_id) as lines:
        if not lines:
            raise EmptyCartError(f"Cart for branch {branch_id} is empty")

        branch = await BranchRepo(db).get_branch(branch_id)
        if branch is None or not branch.active:
            raise NotFoundError(f"Branch {branch_id} is not accepting orders")

        totals = compute_totals(
            lines,
            free_delivery_threshold=settings.free_delivery_threshold,
            flat_delivery_fee=settings.flat_delivery_fee,
        )

        order = Order(
            user_id=user_id,
            branch_id=branch_id,
            items=build_order_items(lines),
            subtotal=totals.subtotal,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            delivery_name=delivery.name,
            delivery_address=delivery.address,
            delivery_phone=delivery.phone,
            notes=(notes or "").strip() or None,
            status=OrderStatus.PLACED,
        )
        order = await OrderRepo(db).create_order(order)

        await save_profile_if_changed(ProfileRepo(db), user_id, delivery)

    logger.info(
        f"Order {order.id} placed: branch={branch_id} lines={len(lines)} "
        f"total={totals.total} {settings.currency}"
    )
    return order
