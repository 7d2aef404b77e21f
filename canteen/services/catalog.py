"""
Catalog Store

Menu item CRUD plus the two stock primitives the order ledger relies on:
a guarded decrement (placement) and a restore (cancellation, when enabled).
Neither primitive commits; they run inside the caller's transaction.
"""

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InsufficientStockError,
    NotFoundError,
)
from canteen.core.money import money
from canteen.models import MenuItem, OrderItem, utcnow
from canteen.schemas import MenuItemCreate, MenuItemUpdate

logger = logging.getLogger(__name__)


async def list_menu_items(
    db: AsyncSession,
    category: Optional[str] = None,
) -> Sequence[MenuItem]:
    """All menu items, grouped by category then name."""
    query = select(MenuItem).order_by(MenuItem.category, MenuItem.name, MenuItem.id)
    if category:
        query = query.where(MenuItem.category == category)
    result = await db.execute(query)
    return result.scalars().all()


async def get_menu_item(db: AsyncSession, item_id: int) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise NotFoundError(f"menu item with id {item_id} not found")
    return item


async def get_menu_items_by_ids(
    db: AsyncSession,
    ids: Iterable[int],
    lock: bool = False,
) -> dict[int, MenuItem]:
    """
    Batch lookup of menu items.

    Args:
        db: Session whose transaction the read joins
        ids: Menu item ids to resolve
        lock: Take row locks (SELECT ... FOR UPDATE) for a read-modify-write

    Returns:
        Mapping of id -> MenuItem for the ids that exist
    """
    ids = list(ids)
    if not ids:
        return {}

    query = select(MenuItem).where(MenuItem.id.in_(ids)).order_by(MenuItem.id)
    if lock:
        query = query.with_for_update()
    # Stock may have moved since this session last saw the rows
    query = query.execution_options(populate_existing=True)

    result = await db.execute(query)
    return {item.id: item for item in result.scalars().all()}


async def create_menu_item(db: AsyncSession, data: MenuItemCreate) -> MenuItem:
    if data.price is None or data.price <= 0:
        raise DomainValidationError("price must be greater than zero")
    if data.stock_quantity < 0:
        raise DomainValidationError("stock_quantity must not be negative")

    now = utcnow()
    item = MenuItem(
        name=data.name,
        price=money(data.price),
        description=data.description,
        image_url=data.image_url,
        category=data.category,
        stock_quantity=data.stock_quantity,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    await db.commit()

    logger.info(f"Menu item #{item.id} '{item.name}' created")
    return item


async def update_menu_item(
    db: AsyncSession,
    item_id: int,
    patch: MenuItemUpdate,
) -> MenuItem:
    """Apply only the fields present in the patch; updated_at always moves."""
    item = await get_menu_item(db, item_id)

    changes = patch.model_dump(exclude_unset=True)
    for field in ("name", "price", "category", "stock_quantity"):
        if field in changes and changes[field] is None:
            raise DomainValidationError(f"{field} cannot be cleared")
    if "price" in changes and changes["price"] <= 0:
        raise DomainValidationError("price must be greater than zero")
    if "stock_quantity" in changes and changes["stock_quantity"] < 0:
        raise DomainValidationError("stock_quantity must not be negative")
    for field in ("name", "category"):
        if field in changes and not str(changes[field]).strip():
            raise DomainValidationError(f"{field} must not be blank")

    for field, value in changes.items():
        if field == "price":
            value = money(value)
        setattr(item, field, value)
    item.updated_at = utcnow()

    await db.commit()

    logger.info(f"Menu item #{item.id} updated: {sorted(changes)}")
    return item


async def delete_menu_item(db: AsyncSession, item_id: int) -> None:
    item = await get_menu_item(db, item_id)

    referenced = await db.scalar(
        select(func.count(OrderItem.id)).where(OrderItem.menu_item_id == item_id)
    )
    if referenced:
        raise ConflictError(
            f"menu item with id {item_id} appears in {referenced} order line(s)"
        )

    await db.delete(item)
    await db.commit()
    logger.info(f"Menu item #{item_id} deleted")


async def decrement_stock(db: AsyncSession, item: MenuItem, quantity: int) -> None:
    """
    Atomically take ``quantity`` units from stock.

    The UPDATE only matches while enough stock remains, so a concurrent
    order that got there first turns into InsufficientStockError instead
    of a negative count.
    """
    result = await db.execute(
        update(MenuItem)
        .where(MenuItem.id == item.id, MenuItem.stock_quantity >= quantity)
        .values(
            stock_quantity=MenuItem.stock_quantity - quantity,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = await db.scalar(
            select(MenuItem.stock_quantity).where(MenuItem.id == item.id)
        )
        raise InsufficientStockError(item.name, current or 0, quantity, item.id)


async def restore_stock(db: AsyncSession, item_id: int, quantity: int) -> None:
    """Give ``quantity`` units back to stock."""
    await db.execute(
        update(MenuItem)
        .where(MenuItem.id == item_id)
        .values(
            stock_quantity=MenuItem.stock_quantity + quantity,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
