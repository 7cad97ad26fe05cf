"""
SQLAlchemy Database Models

Primary database:
- Branch: store location, optional coordinates for nearest-branch lookup
- MenuItem: per-branch menu entry with size multipliers and extras
- Order: checkout snapshot with lines, totals and delivery details
- UserProfile: delivery details remembered between checkouts

Local cart store:
- CartLine: one row per (user, branch, item, size, extras) configuration
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from pizzeria.database import Base, CartBase

# Cart namespace of a single-session caller (one device, no sign-in)
LOCAL_USER = ""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PLACED = "placed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class MenuCategory(str, enum.Enum):
    PIZZA = "pizza"
    SIDES = "sides"
    DRINKS = "drinks"


class Branch(Base):
    """A store location. Carts, menus and orders are scoped per branch."""
    __tablename__ = "branches"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    address = Column(String(255), nullable=False, default="")
    phone = Column(String(30), nullable=False, default="")
    active = Column(Boolean, nullable=False, default=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self):
        return f"<Branch {self.id} - {self.name}>"


class MenuItem(Base):
    """Menu entry of one branch."""
    __tablename__ = "menu_items"

    id = Column(String(64), primary_key=True, default=new_id)
    branch_id = Column(
        String(64),
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(100), nullable=False, default="Untitled")
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=False)
    image_url = Column(String(500), nullable=True)
    category = Column(
        Enum(MenuCategory),
        nullable=False,
        default=MenuCategory.PIZZA,
        index=True,
    )

    # {"S": "0.90", ...}; NULL means the configured default table
    size_multipliers = Column(JSON, nullable=True)
    # Names of extras offered for this item
    extras = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<MenuItem {self.id} - {self.title} @ {self.branch_id}>"


class Order(Base):
    """
    Placed order.

    Lines are stored as a JSON snapshot so later menu or cart changes never
    rewrite history.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(128), nullable=False, index=True)
    branch_id = Column(String(64), nullable=False, index=True)

    # [{"item_id", "title", "price", "qty"}]
    items = Column(JSON, nullable=False, default=list)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(12, 2), nullable=False)
    delivery_fee = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    # =========================================================================
    # DELIVERY DETAILS
    # =========================================================================
    delivery_name = Column(String(100), nullable=False)
    delivery_address = Column(String(255), nullable=False)
    delivery_phone = Column(String(30), nullable=False)
    notes = Column(Text, nullable=True)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PLACED,
        nullable=False,
        index=True,
    )

    placed_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Order #{self.id} - {self.branch_id} - {self.status.value}>"


class UserProfile(Base):
    __tablename__ = "user_profiles"

    uid = Column(String(128), primary_key=True)
    name = Column(String(100), nullable=False, default="")
    phone = Column(String(30), nullable=False, default="")
    address = Column(String(255), nullable=False, default="")


class CartLine(CartBase):
    """
    One distinct orderable configuration in one user's cart for a branch.

    extras holds the canonical descriptor; "" means no extras so the
    unique constraint also covers plain items.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "branch_id", "item_id", "size", "extras",
            name="uq_cart_line_configuration",
        ),
        Index("ix_cart_lines_user_branch", "user_id", "branch_id"),
    )

    local_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, default=LOCAL_USER)
    branch_id = Column(String(64), nullable=False)
    item_id = Column(String(64), nullable=False)
    name = Column(String(100), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    image_url = Column(String(500), nullable=True)
    size = Column(String(16), nullable=False, default="M")
    extras = Column(String(500), nullable=False, default="")

    @property
    def extras_descriptor(self):
        return self.extras or None

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def __repr__(self):
        return (
            f"<CartLine {self.local_id} - {self.user_id or 'local'}/{self.branch_id}/{self.item_id} "
            f"{self.size} [{self.extras}] x{self.quantity}>"
        )
