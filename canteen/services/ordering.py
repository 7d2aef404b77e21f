"""
Order Placement Service & Order Ledger Queries

place_order() is the system's one transactional boundary: the user check,
the locked batch read of every menu item in the cart, the order row, its
line items and every stock decrement commit together or not at all.

Line prices are copied from the catalog rows read under lock, never from
the client, and are frozen on the line item from then on.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from canteen.core.exceptions import (
    DomainValidationError,
    InsufficientStockError,
    NotFoundError,
)
from canteen.core.money import MAX_AMOUNT, ZERO, money
from canteen.models import Order, OrderItem, OrderStatus, User, utcnow
from canteen.schemas import Cart, OrderCreate
from canteen.services import catalog

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def _hydrated(query):
    """Attach user, department, line items and their menu items to an order query."""
    return query.options(
        joinedload(Order.user).joinedload(User.department),
        selectinload(Order.items).joinedload(OrderItem.menu_item),
    ).execution_options(populate_existing=True)


def cart_lines(cart: Cart) -> dict[int, int]:
    """
    Validate cart lines and merge duplicates.

    Request schemas already reject these cases; carts built without
    validation (``model_construct``) still fail cleanly here.

    Returns:
        Mapping of menu item id -> quantity
    """
    if not cart.items:
        raise DomainValidationError("cart must contain at least one item")

    for line in cart.items:
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise DomainValidationError(
                f"quantity for menu item {line.menu_item_id} must be a positive integer"
            )

    return cart.consolidated()


# =============================================================================
# PLACEMENT
# =============================================================================

async def place_order(db: AsyncSession, order_data: OrderCreate) -> Order:
    """
    Turn a cart into a persisted, pending order with decremented stock.

    Args:
        db: Session; any transaction it holds is committed or rolled back here
        order_data: Cart plus pickup/delivery time and remarks. The time is
            taken as already validated by the caller.

    Returns:
        The hydrated order (user, items, menu items with post-order stock)

    Raises:
        NotFoundError: unknown user, or any unknown menu item in the cart
        InsufficientStockError: a line asks for more than is in stock
        DomainValidationError: empty cart, non-positive quantity, or a total
            too large to store
    """
    try:
        user = await db.get(User, order_data.user_id)
        if user is None:
            raise NotFoundError("user not found")

        lines = cart_lines(order_data)

        menu_items = await catalog.get_menu_items_by_ids(db, lines.keys(), lock=True)
        if len(menu_items) != len(lines):
            raise NotFoundError("one or more menu items not found")

        total = ZERO
        for item_id, quantity in lines.items():
            item = menu_items[item_id]
            if item.stock_quantity < quantity:
                raise InsufficientStockError(
                    item.name, item.stock_quantity, quantity, item.id
                )
            total += money(item.price) * quantity

        if total > MAX_AMOUNT:
            raise DomainValidationError(
                f"order total {total} exceeds the maximum of {MAX_AMOUNT}"
            )

        now = utcnow()
        order = Order(
            user_id=user.id,
            order_date=now,
            status=OrderStatus.PENDING,
            pickup_or_delivery_time=order_data.pickup_or_delivery_time,
            remarks=order_data.remarks,
            total_amount=money(total),
            created_at=now,
            updated_at=now,
        )
        for item_id, quantity in lines.items():
            order.items.append(
                OrderItem(
                    menu_item_id=item_id,
                    quantity=quantity,
                    price_at_order=money(menu_items[item_id].price),
                    created_at=now,
                )
            )
        db.add(order)
        await db.flush()

        for item_id, quantity in lines.items():
            await catalog.decrement_stock(db, menu_items[item_id], quantity)

        await db.commit()

    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Order #{order.id} placed by user #{order.user_id}: "
        f"{len(lines)} line(s), total {order.total_amount}"
    )
    return await get_order(db, order.id)


# =============================================================================
# LEDGER QUERIES
# =============================================================================

async def get_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(_hydrated(select(Order).where(Order.id == order_id)))
    order = result.scalars().first()
    if order is None:
        raise NotFoundError(f"order with id {order_id} not found")
    return order


async def list_orders(
    db: AsyncSession,
    status: Optional[OrderStatus] = None,
) -> Sequence[Order]:
    """All orders, newest first, optionally filtered by status."""
    query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    if status is not None:
        query = query.where(Order.status == status)
    result = await db.execute(_hydrated(query))
    return result.scalars().all()


async def list_orders_for_user(db: AsyncSession, user_id: int) -> Sequence[Order]:
    """One user's orders, newest first. Unknown users simply have none."""
    query = (
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    result = await db.execute(_hydrated(query))
    return result.scalars().all()
