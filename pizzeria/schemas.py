"""
Pydantic Schemas for Request/Response Validation

Covers:
- Branches and nearest-branch lookup
- Menu items (raw documents normalized on the way in)
- Price quotes
- Cart lines and totals
- Checkout, orders and profiles
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pizzeria.models import CartLine, MenuCategory, OrderStatus
from pizzeria.normalization import normalize_branch_document, normalize_menu_document


# =============================================================================
# BRANCHES
# =============================================================================

class BranchCreate(BaseModel):
    """Admin request to create a branch."""
    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$", examples=["colombo-01"])
    name: str = Field(..., min_length=1, max_length=100, examples=["Colombo Fort"])
    address: str = Field(default="", max_length=255)
    phone: str = Field(default="", max_length=30)
    active: bool = True
    latitude: Optional[float] = Field(None, ge=-90, le=90, examples=[6.9271])
    longitude: Optional[float] = Field(None, ge=-180, le=180, examples=[79.8612])

    @model_validator(mode="before")
    @classmethod
    def normalize_document(cls, data: Any) -> Any:
        """Accept nested "location" and lat/lng field spellings."""
        if isinstance(data, dict):
            return normalize_branch_document(data)
        return data


class BranchUpdate(BaseModel):
    """Partial branch update; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    active: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class BranchResponse(BaseModel):
    id: str
    name: str
    address: str
    phone: str
    active: bool
    latitude: Optional[float]
    longitude: Optional[float]

    class Config:
        from_attributes = True


class NearestBranchResponse(BaseModel):
    branch: BranchResponse
    distance_km: float
    duration_minutes: Optional[int] = None
    provider: str


# =============================================================================
# MENU
# =============================================================================

class MenuItemIn(BaseModel):
    """
    Menu item as submitted by admins or imports.

    Raw documents are normalized first, so legacy field names
    (name, basePrice, imageUrl, ...) are accepted.
    """
    id: str
    title: str = Field(..., max_length=100)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    available: bool = False
    image_url: Optional[str] = Field(None, max_length=500)
    category: MenuCategory = MenuCategory.PIZZA
    size_multipliers: Optional[Dict[str, Decimal]] = None
    extras: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_document(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_menu_document(data)
        return data

    def to_fields(self) -> dict:
        """Column values for the menu repository (JSON-safe multipliers)."""
        fields = self.model_dump()
        if self.size_multipliers is not None:
            fields["size_multipliers"] = {k: str(v) for k, v in self.size_multipliers.items()}
        return fields


class MenuItemResponse(BaseModel):
    id: str
    branch_id: str
    title: str
    description: Optional[str]
    price: Decimal
    available: bool
    image_url: Optional[str]
    category: MenuCategory
    size_multipliers: Optional[Dict[str, Decimal]]
    extras: List[str]

    class Config:
        from_attributes = True


class MenuImportRequest(BaseModel):
    """Bulk import of raw menu documents."""
    documents: List[Dict[str, Any]] = Field(..., min_length=1)


class MenuImportResponse(BaseModel):
    imported: int
    items: List[MenuItemResponse]


# =============================================================================
# PRICING
# =============================================================================

class QuoteRequest(BaseModel):
    size: Optional[str] = Field(None, max_length=16, examples=["L"])
    extras: List[str] = Field(default_factory=list, examples=[["Olives", "Extra Cheese"]])


class QuoteResponse(BaseModel):
    item_id: str
    base_price: Decimal
    size_label: str
    multiplier: Decimal
    extras_count: int
    extra_surcharge: Decimal
    unit_price: Decimal
    currency: str


# =============================================================================
# CART
# =============================================================================

class AddToCartRequest(BaseModel):
    """Add a configured menu item; the unit price is quoted server-side."""
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1, le=99)
    size: Optional[str] = Field(None, max_length=16)
    extras: List[str] = Field(default_factory=list)


class ChangeQuantityRequest(BaseModel):
    """Zero or below removes the line."""
    quantity: int = Field(..., le=99)


class CartLineResponse(BaseModel):
    local_id: int
    branch_id: str
    item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    image_url: Optional[str]
    size: str
    extras: Optional[str]
    line_total: Decimal

    @classmethod
    def from_line(cls, line: CartLine) -> "CartLineResponse":
        return cls(
            local_id=line.local_id,
            branch_id=line.branch_id,
            item_id=line.item_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            image_url=line.image_url,
            size=line.size,
            extras=line.extras_descriptor,
            line_total=line.line_total,
        )


class CartResponse(BaseModel):
    branch_id: str
    lines: List[CartLineResponse]
    item_count: int
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    currency: str


# =============================================================================
# CHECKOUT & ORDERS
# =============================================================================

class CheckoutRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Nimal Perera"])
    address: str = Field(..., min_length=1, max_length=255, examples=["12 Galle Road, Colombo 03"])
    phone: str = Field(..., min_length=7, max_length=30, examples=["077 123 4567"])
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("name", "address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        cleaned = re.sub(r"[^\d]", "", v)
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v.strip()


class OrderItemResponse(BaseModel):
    item_id: str
    title: str
    price: Decimal
    qty: int


class OrderResponse(BaseModel):
    id: str
    user_id: str
    branch_id: str
    items: List[OrderItemResponse]
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    delivery_name: str
    delivery_address: str
    delivery_phone: str
    notes: Optional[str]
    status: OrderStatus
    placed_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


# =============================================================================
# PROFILE
# =============================================================================

class ProfileUpdate(BaseModel):
    name: str = Field(default="", max_length=100)
    phone: str = Field(default="", max_length=30)
    address: str = Field(default="", max_length=255)


class ProfileResponse(BaseModel):
    uid: str
    name: str
    phone: str
    address: str

    class Config:
        from_attributes = True


# =============================================================================
# SYSTEM
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    cart_store: str
    geo_service: str
    timestamp: datetime
