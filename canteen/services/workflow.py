"""
Order Status Workflow

    pending ──► confirmed ──► delivered
       │            │
       └────────────┴──────► cancelled

delivered and cancelled are terminal. Only ``status`` and ``updated_at``
change on an order. Stock is left alone unless RESTORE_STOCK_ON_CANCEL is
set, in which case cancelling puts every line's quantity back in the same
transaction.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.config import get_settings
from canteen.core.exceptions import DomainValidationError, NotFoundError
from canteen.models import Order, OrderItem, OrderStatus, utcnow
from canteen.services import catalog

logger = logging.getLogger(__name__)

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def allowed_transitions(current: OrderStatus) -> frozenset[OrderStatus]:
    return TRANSITIONS[OrderStatus(current)]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_transitions(current)


async def set_order_status(
    db: AsyncSession,
    order_id: int,
    new_status: OrderStatus,
) -> Order:
    """
    Move an order to ``new_status``.

    Raises:
        NotFoundError: no such order
        DomainValidationError: the transition is not in the table
    """
    new_status = OrderStatus(new_status)

    try:
        order = await db.get(Order, order_id, with_for_update=True, populate_existing=True)
        if order is None:
            raise NotFoundError(f"order with id {order_id} not found")

        current = order.status
        if not can_transition(current, new_status):
            allowed = sorted(s.value for s in allowed_transitions(current)) or ["none"]
            raise DomainValidationError(
                f"cannot move order {order_id} from {current.value} to {new_status.value} "
                f"(allowed: {', '.join(allowed)})"
            )

        if new_status == OrderStatus.CANCELLED and get_settings().restore_stock_on_cancel:
            result = await db.execute(
                select(OrderItem.menu_item_id, OrderItem.quantity)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.menu_item_id)
            )
            for menu_item_id, quantity in result.all():
                await catalog.restore_stock(db, menu_item_id, quantity)
            logger.info(f"Order #{order_id}: stock restored on cancellation")

        order.status = new_status
        order.updated_at = utcnow()
        await db.commit()

    except Exception:
        await db.rollback()
        raise

    logger.info(f"Order #{order_id}: {current.value} -> {new_status.value}")
    return order
