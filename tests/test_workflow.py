import pytest
from sqlalchemy import select

from canteen.core.config import get_settings
from canteen.core.exceptions import DomainValidationError, NotFoundError
from canteen.models import MenuItem, OrderStatus
from canteen.services import ordering, workflow

from conftest import order_for


@pytest.fixture
async def placed_order(db, make_user, make_menu_item):
    user = await make_user()
    pizza = await make_menu_item("Pizza", "25.99", stock_quantity=10)
    return await ordering.place_order(
        db, order_for(user.id, (pizza.id, 3), remarks="Leave at reception")
    )


async def _stock(db, item_id):
    return await db.scalar(select(MenuItem.stock_quantity).where(MenuItem.id == item_id))


class TestTransitionTable:

    @pytest.mark.parametrize("current, target", [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
        (OrderStatus.CONFIRMED, OrderStatus.DELIVERED),
        (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    ])
    def test_allowed(self, current, target):
        assert workflow.can_transition(current, target)

    @pytest.mark.parametrize("current, target", [
        (OrderStatus.PENDING, OrderStatus.DELIVERED),
        (OrderStatus.PENDING, OrderStatus.PENDING),
        (OrderStatus.CONFIRMED, OrderStatus.PENDING),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
    ])
    def test_rejected(self, current, target):
        assert not workflow.can_transition(current, target)

    def test_terminal_states(self):
        assert workflow.allowed_transitions(OrderStatus.DELIVERED) == frozenset()
        assert workflow.allowed_transitions(OrderStatus.CANCELLED) == frozenset()


class TestSetOrderStatus:

    async def test_missing_order(self, db):
        with pytest.raises(NotFoundError, match="order with id 999 not found"):
            await workflow.set_order_status(db, 999, OrderStatus.CONFIRMED)

    async def test_confirm_then_deliver(self, db, placed_order):
        order_id = placed_order.id
        before = {
            "created_at": placed_order.created_at,
            "updated_at": placed_order.updated_at,
            "user_id": placed_order.user_id,
            "total_amount": placed_order.total_amount,
            "pickup_or_delivery_time": placed_order.pickup_or_delivery_time,
            "remarks": placed_order.remarks,
        }

        confirmed = await workflow.set_order_status(db, order_id, OrderStatus.CONFIRMED)
        assert confirmed.status == OrderStatus.CONFIRMED

        delivered = await workflow.set_order_status(db, order_id, "delivered")
        assert delivered.status == OrderStatus.DELIVERED

        reloaded = await ordering.get_order(db, order_id)
        assert reloaded.updated_at > before["updated_at"]
        assert reloaded.created_at == before["created_at"]
        assert reloaded.user_id == before["user_id"]
        assert reloaded.total_amount == before["total_amount"]
        assert reloaded.pickup_or_delivery_time == before["pickup_or_delivery_time"]
        assert reloaded.remarks == before["remarks"]
        assert len(reloaded.items) == 1

    async def test_illegal_transition_is_rejected(self, db, placed_order):
        order_id = placed_order.id
        updated_at = placed_order.updated_at

        with pytest.raises(DomainValidationError, match="pending to delivered"):
            await workflow.set_order_status(db, order_id, OrderStatus.DELIVERED)

        order = await ordering.get_order(db, order_id)
        assert order.status == OrderStatus.PENDING
        assert order.updated_at == updated_at

    async def test_terminal_state_is_final(self, db, placed_order):
        await workflow.set_order_status(db, placed_order.id, OrderStatus.CANCELLED)

        with pytest.raises(DomainValidationError):
            await workflow.set_order_status(db, placed_order.id, OrderStatus.CONFIRMED)

    async def test_cancel_keeps_stock_by_default(self, db, placed_order):
        item_id = placed_order.items[0].menu_item_id
        assert await _stock(db, item_id) == 7

        await workflow.set_order_status(db, placed_order.id, OrderStatus.CANCELLED)

        assert await _stock(db, item_id) == 7

    async def test_cancel_restores_stock_when_enabled(self, db, placed_order, monkeypatch):
        monkeypatch.setenv("RESTORE_STOCK_ON_CANCEL", "true")
        get_settings.cache_clear()
        item_id = placed_order.items[0].menu_item_id

        await workflow.set_order_status(db, placed_order.id, OrderStatus.CONFIRMED)
        await workflow.set_order_status(db, placed_order.id, OrderStatus.CANCELLED)

        assert await _stock(db, item_id) == 10
