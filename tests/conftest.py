import asyncio
import os
import tempfile
from decimal import Decimal

# Point both databases at throwaway SQLite files before the app is imported
_DB_DIR = tempfile.mkdtemp(prefix="pizzeria-tests-")
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/primary.db"
os.environ["CART_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/cart.db"
os.environ.pop("ADMIN_API_KEY", None)
os.environ.pop("GOOGLE_MAPS_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

import pizzeria.models  # noqa: F401
from pizzeria.cart import CartEngine, CartStore, ChangeFeed
from pizzeria.database import Base, get_db, make_engine, make_session_maker
from pizzeria.main import app, get_cart, get_geo
from pizzeria.models import Branch, MenuCategory, MenuItem
from pizzeria.services.geo import LocalGeoService

BRANCH_ID = "colombo-01"


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


async def _create_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _seed(session_maker):
    async with session_maker() as session:
        session.add_all([
            Branch(
                id=BRANCH_ID,
                name="Colombo Fort",
                address="1 York Street, Colombo 01",
                phone="0112345678",
                active=True,
                latitude=6.9271,
                longitude=79.8612,
            ),
            Branch(
                id="kandy-01",
                name="Kandy Lake",
                address="5 Dalada Veediya, Kandy",
                phone="0812345678",
                active=True,
                latitude=7.2906,
                longitude=80.6337,
            ),
            Branch(
                id="galle-01",
                name="Galle Fort",
                address="3 Church Street, Galle",
                phone="0912345678",
                active=False,
                latitude=6.0535,
                longitude=80.2210,
            ),
        ])
        session.add_all([
            MenuItem(
                id="margherita",
                branch_id=BRANCH_ID,
                title="Margherita",
                description="Tomato, mozzarella and basil",
                price=Decimal("1000.00"),
                available=True,
                category=MenuCategory.PIZZA,
                extras=["Olives", "Extra Cheese", "Jalapenos"],
            ),
            MenuItem(
                id="pepperoni",
                branch_id=BRANCH_ID,
                title="Pepperoni",
                description="Spicy pepperoni and cheese",
                price=Decimal("1500.00"),
                available=True,
                category=MenuCategory.PIZZA,
                size_multipliers={"M": "1.0", "XL": "1.5"},
                extras=[],
            ),
            MenuItem(
                id="garlic-bread",
                branch_id=BRANCH_ID,
                title="Garlic Bread",
                description=None,
                price=Decimal("450.00"),
                available=True,
                category=MenuCategory.SIDES,
                extras=[],
            ),
            MenuItem(
                id="cola",
                branch_id=BRANCH_ID,
                title="Cola",
                description="330ml can",
                price=Decimal("200.00"),
                available=False,
                category=MenuCategory.DRINKS,
                extras=[],
            ),
        ])
        await session.commit()


@pytest.fixture
def session_maker(tmp_path):
    """Primary database on a fresh SQLite file, seeded with branches and a menu."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'primary.db'}")
    maker = make_session_maker(engine)
    run(_create_tables(engine))
    run(_seed(maker))
    yield maker
    run(engine.dispose())


@pytest.fixture
def cart(tmp_path):
    """Cart engine over a fresh local cart store."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'cart.db'}")
    store = CartStore(make_session_maker(engine))
    run(store.create_tables())
    yield CartEngine(store, ChangeFeed(), default_size="M")
    run(engine.dispose())


@pytest.fixture
def client(session_maker, cart):
    """FastAPI TestClient wired to the per-test databases."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cart] = lambda: cart
    app.dependency_overrides[get_geo] = lambda: LocalGeoService()

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": "user-1"}
