"""
Shared fixtures: a fresh file-backed SQLite database per test, plus small
factories for departments, users and menu items.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from canteen.core.config import get_settings
from canteen.database import build_engine, build_session_maker, get_db, init_db
from canteen.schemas import (
    CartItem,
    DepartmentCreate,
    MenuItemCreate,
    OrderCreate,
    UserCreate,
)
from canteen.services import catalog, directory


def pickup_in(hours: float = 2) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def order_for(user_id: int, *lines: tuple[int, int], remarks=None) -> OrderCreate:
    """Build a checkout request from (menu_item_id, quantity) pairs."""
    return OrderCreate(
        user_id=user_id,
        pickup_or_delivery_time=pickup_in(),
        remarks=remarks,
        items=[CartItem(menu_item_id=i, quantity=q) for i, q in lines],
    )


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'canteen.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_department(db):
    async def _make(name: str = "IT"):
        return await directory.create_department(db, DepartmentCreate(name=name))
    return _make


@pytest.fixture
def make_user(db, make_department):
    departments = {}

    async def _make(name: str = "Test User", contact_number: str = "1234567890",
                    department: str = "IT", role: str = "regular"):
        if department not in departments:
            departments[department] = await make_department(department)
        return await directory.register_user(
            db,
            UserCreate(
                name=name,
                contact_number=contact_number,
                department_id=departments[department].id,
                role=role,
            ),
        )
    return _make


@pytest.fixture
def make_menu_item(db):
    async def _make(name: str = "Pizza", price: str = "25.99",
                    stock_quantity: int = 10, category: str = "Food"):
        return await catalog.create_menu_item(
            db,
            MenuItemCreate(
                name=name,
                price=Decimal(price),
                description=f"Delicious {name.lower()}",
                category=category,
                stock_quantity=stock_quantity,
            ),
        )
    return _make


@pytest.fixture
async def client(session_maker, tmp_path):
    from canteen.main import app, get_excel_manager
    from canteen.services.excel_manager import ExcelManager

    async def _get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_excel_manager] = lambda: ExcelManager(data_dir=tmp_path / "data")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
