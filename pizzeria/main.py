"""
FastAPI Application Entry Point

Pizzeria Ordering Service: branches, menus, per-branch carts, checkout and
order tracking.

Endpoints:
    - GET  /api/branches, /api/branches/nearest, /api/branches/{id}
    - GET  /api/branches/{id}/menu, /api/branches/{id}/menu/{item_id}
    - POST /api/branches/{id}/menu/{item_id}/quote: Unit price for a configuration
    - GET/POST/PATCH/DELETE /api/cart/{branch_id}...: Cart lines and totals
    - GET  /api/cart/{branch_id}/stream: Server-sent cart snapshots
    - POST /api/checkout/{branch_id}: Place an order from the cart
    - GET  /api/orders, /api/orders/{id}: The caller's orders
    - GET/PUT /api/profile: Saved delivery details
    - /api/admin/...: Branch, menu and order administration
    - GET  /health: System health check

Callers are identified by the X-User-Id header set by the authentication
layer in front of this service.
"""

import json
import logging
from contextlib import aclosing, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.cart import CartEngine, get_cart_engine
from pizzeria.core.config import get_settings, setup_logging
from pizzeria.database import dispose_engines, get_db, init_db
from pizzeria.exceptions import (
    ConfigurationError,
    EmptyCartError,
    InvalidTransitionError,
    InvariantViolation,
    NotFoundError,
    PizzeriaError,
    StorageError,
)
from pizzeria.models import Branch, MenuCategory, MenuItem, OrderStatus
from pizzeria.pricing import PriceQuote, compute_totals, quote_unit_price, split_extras
from pizzeria.repos import BranchRepo, MenuRepo, OrderRepo, ProfileRepo
from pizzeria.schemas import (
    AddToCartRequest,
    BranchCreate,
    BranchResponse,
    BranchUpdate,
    CartLineResponse,
    CartResponse,
    ChangeQuantityRequest,
    CheckoutRequest,
    ErrorResponse,
    HealthResponse,
    MenuImportRequest,
    MenuImportResponse,
    MenuItemIn,
    MenuItemResponse,
    NearestBranchResponse,
    OrderListResponse,
    OrderResponse,
    ProfileResponse,
    ProfileUpdate,
    QuoteRequest,
    QuoteResponse,
    StatusUpdateRequest,
)
from pizzeria.services import order_tracking
from pizzeria.services.checkout import DeliveryDetails, place_order
from pizzeria.services.geo import BaseGeoService, get_geo_service

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Databases initialized")

    geo_service = get_geo_service()
    logger.info(f"Geo Service: {geo_service.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await dispose_engines()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-branch pizzeria ordering: menus, per-branch carts that merge "
        "identical configurations, checkout and order tracking."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_cart() -> CartEngine:
    return get_cart_engine()


def get_geo() -> BaseGeoService:
    return get_geo_service()


async def current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Caller identity from the authentication layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


async def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
) -> None:
    """Admin routes are open unless ADMIN_API_KEY is configured."""
    expected = get_settings().admin_api_key
    if expected and x_admin_key != expected:
        raise HTTPException(status_code=403, detail="Invalid admin key")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def resolve_extras(item: MenuItem, extras: list[str]) -> list[str]:
    """Match requested extras to the names the item offers, ignoring case."""
    requested = split_extras(extras)
    if not requested:
        return []

    offered = {name.lower(): name for name in (item.extras or [])}
    unknown = [name for name in requested if name.lower() not in offered]
    if unknown:
        raise ConfigurationError(
            f"{item.title} does not offer {unknown}. Options: {sorted(offered.values())}"
        )
    return [offered[name.lower()] for name in requested]


def quote_for_item(item: MenuItem, size: Optional[str], extras: list[str]) -> PriceQuote:
    """Price a configuration of a menu item with the configured defaults."""
    return quote_unit_price(
        base_price=item.price,
        size_label=(size or "").strip() or settings.default_size,
        size_multipliers=item.size_multipliers or settings.size_multipliers,
        selected_extras=extras,
        extra_surcharge=settings.extra_surcharge,
    )


def build_cart_response(branch_id: str, lines: list) -> CartResponse:
    totals = compute_totals(
        lines,
        free_delivery_threshold=settings.free_delivery_threshold,
        flat_delivery_fee=settings.flat_delivery_fee,
    )
    return CartResponse(
        branch_id=branch_id,
        lines=[CartLineResponse.from_line(line) for line in lines],
        item_count=sum(line.quantity for line in lines),
        subtotal=totals.subtotal,
        delivery_fee=totals.delivery_fee,
        total=totals.total,
        currency=settings.currency,
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cart: CartEngine = Depends(get_cart),
    geo: BaseGeoService = Depends(get_geo),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check primary database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    cart_status = "healthy" if await cart.health_check() else "unhealthy"
    geo_status = "healthy" if await geo.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, cart_status, geo_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        cart_store=cart_status,
        geo_service=f"{geo.provider_name}: {geo_status}",
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# BRANCH & MENU ENDPOINTS
# =============================================================================

@app.get("/api/branches", response_model=list[BranchResponse], tags=["Branches"])
async def list_branches(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
) -> list[Branch]:
    return await BranchRepo(db).list_branches(active_only=not include_inactive)


@app.get(
    "/api/branches/nearest",
    response_model=NearestBranchResponse,
    tags=["Branches"],
    summary="Nearest Active Branch",
)
async def nearest_branch(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    db: AsyncSession = Depends(get_db),
    geo: BaseGeoService = Depends(get_geo),
) -> NearestBranchResponse:
    """Closest active branch that has coordinates."""
    branches = await BranchRepo(db).list_branches()
    result = await geo.nearest_branch(branches, lat, lng)
    if result is None:
        raise NotFoundError("No active branch with a location")

    logger.debug(f"Nearest branch to ({lat}, {lng}): {result.branch.id} {result.distance_km:.2f} km")
    return NearestBranchResponse(
        branch=BranchResponse.model_validate(result.branch),
        distance_km=round(result.distance_km, 2),
        duration_minutes=result.duration_minutes,
        provider=geo.provider_name,
    )


@app.get("/api/branches/{branch_id}", response_model=BranchResponse, tags=["Branches"])
async def get_branch(branch_id: str, db: AsyncSession = Depends(get_db)) -> Branch:
    return await BranchRepo(db).require_branch(branch_id)


@app.get(
    "/api/branches/{branch_id}/menu",
    response_model=list[MenuItemResponse],
    tags=["Menu"],
)
async def list_menu(
    branch_id: str,
    category: Optional[MenuCategory] = Query(None),
    q: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> list[MenuItem]:
    """Branch menu, optionally filtered by category and a search term."""
    await BranchRepo(db).require_branch(branch_id)
    return await MenuRepo(db).list_menu(branch_id, category=category, q=q)


@app.get(
    "/api/branches/{branch_id}/menu/{item_id}",
    response_model=MenuItemResponse,
    tags=["Menu"],
)
async def get_menu_item(
    branch_id: str,
    item_id: str,
    db: AsyncSession = Depends(get_db),
) -> MenuItem:
    return await MenuRepo(db).require_item(branch_id, item_id)


@app.post(
    "/api/branches/{branch_id}/menu/{item_id}/quote",
    response_model=QuoteResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Menu"],
    summary="Quote Unit Price",
)
async def quote_item(
    branch_id: str,
    item_id: str,
    body: QuoteRequest,
    db: AsyncSession = Depends(get_db),
) -> QuoteResponse:
    item = await MenuRepo(db).require_item(branch_id, item_id)
    quote = quote_for_item(item, body.size, resolve_extras(item, body.extras))
    return QuoteResponse(item_id=item.id, currency=settings.currency, **quote.to_dict())


# =============================================================================
# CART ENDPOINTS
# =============================================================================

@app.get("/api/cart/{branch_id}", response_model=CartResponse, tags=["Cart"])
async def get_cart_contents(
    branch_id: str,
    user_id: str = Depends(current_user),
    cart: CartEngine = Depends(get_cart),
) -> CartResponse:
    """Lines (newest first), totals and badge count of the caller's branch cart."""
    return build_cart_response(branch_id, await cart.snapshot(branch_id, user_id))


@app.post(
    "/api/cart/{branch_id}/items",
    response_model=CartLineResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Cart"],
    summary="Add To Cart",
)
async def add_to_cart(
    branch_id: str,
    body: AddToCartRequest,
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
    cart: CartEngine = Depends(get_cart),
) -> CartLineResponse:
    """
    Quote the configuration and merge it into the caller's branch cart.

    Adding a configuration that is already in the cart increases that
    line's quantity and reprices it at the current quote.
    """
    item = await MenuRepo(db).require_item(branch_id, body.item_id)
    if not item.available:
        raise HTTPException(status_code=409, detail=f"{item.title} is not available")

    extras = resolve_extras(item, body.extras)
    quote = quote_for_item(item, body.size, extras)
    line = await cart.add_or_increment(
        branch_id=branch_id,
        item_id=item.id,
        name=item.title,
        unit_price=quote.unit_price,
        image_url=item.image_url,
        quantity=body.quantity,
        size=quote.size_label,
        extras=extras,
        user_id=user_id,
    )
    return CartLineResponse.from_line(line)


@app.patch(
    "/api/cart/{branch_id}/items/{line_id}",
    response_model=CartResponse,
    tags=["Cart"],
    summary="Change Line Quantity",
)
async def change_line_quantity(
    branch_id: str,
    line_id: int,
    body: ChangeQuantityRequest,
    user_id: str = Depends(current_user),
    cart: CartEngine = Depends(get_cart),
) -> CartResponse:
    """Set a line's quantity; zero or below removes it."""
    try:
        line = await cart.get_line(line_id)
        if line.branch_id != branch_id or line.user_id != user_id:
            raise NotFoundError(f"Cart line {line_id} not found in branch {branch_id}")
    except NotFoundError:
        # Removing a line that is already gone is a no-op
        if body.quantity > 0:
            raise
    else:
        await cart.change_quantity(line, body.quantity)

    return build_cart_response(branch_id, await cart.snapshot(branch_id, user_id))


@app.delete("/api/cart/{branch_id}", tags=["Cart"])
async def clear_cart(
    branch_id: str,
    user_id: str = Depends(current_user),
    cart: CartEngine = Depends(get_cart),
) -> dict[str, Any]:
    removed = await cart.clear_branch(branch_id, user_id)
    return {"success": True, "branch_id": branch_id, "removed": removed}


@app.get("/api/cart/{branch_id}/stream", tags=["Cart"], summary="Cart Updates (SSE)")
async def stream_cart(
    branch_id: str,
    max_events: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(current_user),
    cart: CartEngine = Depends(get_cart),
) -> StreamingResponse:
    """
    Server-sent events: the caller's current cart, then a new snapshot after every
    change. The stream ends after max_events snapshots when given.
    """

    async def event_stream():
        sent = 0
        async with aclosing(cart.observe(branch_id, user_id=user_id)) as snapshots:
            async for lines in snapshots:
                payload = build_cart_response(branch_id, lines).model_dump(mode="json")
                yield f"event: cart\ndata: {json.dumps(payload)}\n\n"
                sent += 1
                if max_events is not None and sent >= max_events:
                    break

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


# =============================================================================
# CHECKOUT, ORDER & PROFILE ENDPOINTS
# =============================================================================

@app.post(
    "/api/checkout/{branch_id}",
    response_model=OrderResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def checkout(
    branch_id: str,
    body: CheckoutRequest,
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
    cart: CartEngine = Depends(get_cart),
):
    logger.info(f"Checkout for user {user_id} at branch {branch_id}")
    order = await place_order(
        db=db,
        cart=cart,
        branch_id=branch_id,
        user_id=user_id,
        delivery=DeliveryDetails(name=body.name, address=body.address, phone=body.phone),
        notes=body.notes,
        settings=settings,
    )
    return OrderResponse.model_validate(order)


@app.get("/api/orders", response_model=OrderListResponse, tags=["Orders"])
async def list_my_orders(
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """The caller's orders, newest first."""
    orders = await OrderRepo(db).list_for_user(user_id)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get("/api/orders/{order_id}", response_model=OrderResponse, tags=["Orders"])
async def get_my_order(
    order_id: str,
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await OrderRepo(db).get_order(order_id)
    if order is None or order.user_id != user_id:
        raise NotFoundError(f"Order #{order_id} not found")
    return OrderResponse.model_validate(order)


@app.get("/api/profile", response_model=ProfileResponse, tags=["Profile"])
async def get_profile(
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await ProfileRepo(db).get_profile(user_id)
    if profile is None:
        raise NotFoundError("No saved profile")
    return profile


@app.put("/api/profile", response_model=ProfileResponse, tags=["Profile"])
async def save_profile(
    body: ProfileUpdate,
    user_id: str = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ProfileRepo(db).upsert_profile(
        uid=user_id,
        name=body.name.strip(),
        phone=body.phone.strip(),
        address=body.address.strip(),
    )


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

admin = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


@admin.post("/branches", response_model=BranchResponse, status_code=201)
async def create_branch(body: BranchCreate, db: AsyncSession = Depends(get_db)):
    repo = BranchRepo(db)
    if await repo.get_branch(body.id) is not None:
        raise HTTPException(status_code=409, detail=f"Branch {body.id} already exists")
    branch = await repo.create_branch(Branch(**body.model_dump()))
    logger.info(f"Branch {branch.id} created")
    return branch


@admin.put("/branches/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: str,
    body: BranchUpdate,
    db: AsyncSession = Depends(get_db),
):
    return await BranchRepo(db).update_branch(branch_id, **body.model_dump(exclude_unset=True))


@admin.delete("/branches/{branch_id}")
async def delete_branch(
    branch_id: str,
    db: AsyncSession = Depends(get_db),
    cart: CartEngine = Depends(get_cart),
) -> dict[str, Any]:
    if not await BranchRepo(db).delete_branch(branch_id):
        raise NotFoundError(f"Branch {branch_id} not found")
    await cart.drop_branch(branch_id)
    logger.info(f"Branch {branch_id} deleted")
    return {"success": True, "branch_id": branch_id}


@admin.post("/branches/{branch_id}/menu", response_model=MenuItemResponse, status_code=201)
async def add_menu_item(
    branch_id: str,
    body: MenuItemIn,
    db: AsyncSession = Depends(get_db),
):
    await BranchRepo(db).require_branch(branch_id)
    repo = MenuRepo(db)
    if await repo.get_item(branch_id, body.id) is not None:
        raise HTTPException(status_code=409, detail=f"Menu item {body.id} already exists")
    return await repo.add_item(branch_id, body.to_fields())


@admin.put("/branches/{branch_id}/menu/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    branch_id: str,
    item_id: str,
    body: MenuItemIn,
    db: AsyncSession = Depends(get_db),
):
    fields = body.to_fields()
    fields["id"] = item_id
    return await MenuRepo(db).update_item(branch_id, fields)


@admin.delete("/branches/{branch_id}/menu/{item_id}")
async def delete_menu_item(
    branch_id: str,
    item_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    if not await MenuRepo(db).delete_item(branch_id, item_id):
        raise NotFoundError(f"Menu item {item_id} not found in branch {branch_id}")
    return {"success": True, "item_id": item_id}


@admin.post("/branches/{branch_id}/menu/import", response_model=MenuImportResponse)
async def import_menu(
    branch_id: str,
    body: MenuImportRequest,
    db: AsyncSession = Depends(get_db),
) -> MenuImportResponse:
    """Import raw (possibly legacy) menu documents."""
    await BranchRepo(db).require_branch(branch_id)
    items = await MenuRepo(db).import_documents(branch_id, body.documents)
    return MenuImportResponse(
        imported=len(items),
        items=[MenuItemResponse.model_validate(item) for item in items],
    )


@admin.get("/orders", response_model=OrderListResponse)
async def list_all_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    status: Optional[OrderStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Retrieve paginated list of orders, newest first."""
    repo = OrderRepo(db)
    orders = await repo.list_orders(status=status, offset=skip, limit=limit)
    return OrderListResponse(
        total=await repo.count_orders(status=status),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


async def _require_order(db: AsyncSession, order_id: str):
    order = await OrderRepo(db).get_order(order_id)
    if order is None:
        raise NotFoundError(f"Order #{order_id} not found")
    return order


@admin.post("/orders/{order_id}/advance", response_model=OrderResponse)
async def advance_order(order_id: str, db: AsyncSession = Depends(get_db)):
    order = await order_tracking.advance(db, await _require_order(db, order_id))
    return OrderResponse.model_validate(order)


@admin.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, db: AsyncSession = Depends(get_db)):
    order = await order_tracking.cancel(db, await _require_order(db, order_id))
    return OrderResponse.model_validate(order)


@admin.put("/orders/{order_id}/status", response_model=OrderResponse)
async def set_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    order = await order_tracking.set_status(db, await _require_order(db, order_id), body.status)
    return OrderResponse.model_validate(order)


app.include_router(admin)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

ERROR_STATUS_CODES: list[tuple[type, int]] = [
    (ConfigurationError, 400),
    (NotFoundError, 404),
    (EmptyCartError, 409),
    (InvalidTransitionError, 409),
    (InvariantViolation, 409),
    (StorageError, 503),
]


def _error_response(status_code: int, error: str, detail: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "detail": detail},
    )


@app.exception_handler(PizzeriaError)
async def domain_exception_handler(request: Request, exc: PizzeriaError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    status_code = next(
        (code for exc_type, code in ERROR_STATUS_CODES if isinstance(exc, exc_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.debug(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return _error_response(status_code, type(exc).__name__, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error_response(400, "Bad Request", str(exc))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}")
    return _error_response(
        503,
        "Service Unavailable",
        str(exc) if settings.debug else "Database unavailable",
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return _error_response(
        500,
        "Internal Server Error",
        str(exc) if settings.debug else "An unexpected error occurred",
    )
