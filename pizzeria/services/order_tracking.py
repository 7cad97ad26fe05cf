"""
Order Status Tracking

Workflow:
    placed -> preparing -> out_for_delivery -> delivered

Any non-terminal order can be cancelled. Delivered and cancelled orders
are terminal: advancing them changes nothing, cancelling them is refused.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.exceptions import InvalidTransitionError
from pizzeria.models import Order, OrderStatus
from pizzeria.repos import OrderRepo

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    OrderStatus.PLACED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def next_status(status: OrderStatus) -> OrderStatus:
    """Following workflow step; terminal statuses map to themselves."""
    return NEXT_STATUS.get(status, status)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


async def advance(db: AsyncSession, order: Order) -> Order:
    """Move the order one step along the workflow."""
    target = next_status(order.status)
    if target == order.status:
        return order

    previous = order.status
    order = await OrderRepo(db).update_order_status(order, target)
    logger.info(f"Order {order.id}: {previous.value} -> {target.value}")
    return order


async def cancel(db: AsyncSession, order: Order) -> Order:
    """
    Cancel an order.

    Raises:
        InvalidTransitionError: The order is already delivered or cancelled
    """
    if is_terminal(order.status):
        raise InvalidTransitionError(
            f"Order {order.id} is {order.status.value} and cannot be cancelled"
        )

    order = await OrderRepo(db).update_order_status(order, OrderStatus.CANCELLED)
    logger.info(f"Order {order.id}: cancelled")
    return order


async def set_status(db: AsyncSession, order: Order, status: OrderStatus) -> Order:
    """
    Admin override to an explicit status.

    Raises:
        InvalidTransitionError: The order is terminal and status differs
    """
    if status == order.status:
        return order
    if is_terminal(order.status):
        raise InvalidTransitionError(
            f"Order {order.id} is {order.status.value}; status is final"
        )
    return await OrderRepo(db).update_order_status(order, status)
