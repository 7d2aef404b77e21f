import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from canteen.core.exceptions import (
    DomainValidationError,
    InsufficientStockError,
    NotFoundError,
)
from canteen.models import MenuItem, Order, OrderItem, OrderStatus
from canteen.schemas import MAX_LINE_QUANTITY, CartItem, MenuItemUpdate, OrderCreate
from canteen.services import catalog, ordering

from conftest import order_for


async def _stock(db, item_id: int) -> int:
    return await db.scalar(
        select(MenuItem.stock_quantity)
        .where(MenuItem.id == item_id)
        .execution_options(populate_existing=True)
    )


async def _count(db, model) -> int:
    return await db.scalar(select(func.count(model.id)))


class TestPlaceOrder:

    async def test_creates_pending_order_with_items(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item("Pizza", "25.99", stock_quantity=10)
        burger = await make_menu_item("Burger", "15.50", stock_quantity=5)

        order = await ordering.place_order(
            db, order_for(user.id, (pizza.id, 2), (burger.id, 1), remarks="Test order remarks")
        )

        assert order.id is not None
        assert order.user_id == user.id
        assert order.status == OrderStatus.PENDING
        assert order.remarks == "Test order remarks"
        assert order.total_amount == Decimal("67.48")
        assert order.user.name == "Test User"
        assert order.user.department.name == "IT"

        lines = {line.menu_item_id: line for line in order.items}
        assert lines[pizza.id].quantity == 2
        assert lines[pizza.id].price_at_order == Decimal("25.99")
        assert lines[burger.id].price_at_order == Decimal("15.50")
        # Hydrated menu items carry post-order stock
        assert lines[pizza.id].menu_item.stock_quantity == 8
        assert lines[burger.id].menu_item.stock_quantity == 4

    async def test_total_matches_catalog_prices(self, db, make_user, make_menu_item):
        user = await make_user()
        soup = await make_menu_item("Soup", "3.33", stock_quantity=20)
        tea = await make_menu_item("Tea", "1.10", stock_quantity=20)

        await ordering.place_order(db, order_for(user.id, (soup.id, 3), (tea.id, 7)))

        orders = await ordering.list_orders_for_user(db, user.id)
        assert len(orders) == 1
        expected = sum(line.menu_item.price * line.quantity for line in orders[0].items)
        assert orders[0].total_amount == expected == Decimal("17.69")

    async def test_unknown_user(self, db, make_menu_item):
        pizza = await make_menu_item()
        pizza_id = pizza.id

        with pytest.raises(NotFoundError, match="user not found"):
            await ordering.place_order(db, order_for(999, (pizza_id, 1)))

        assert await _count(db, Order) == 0
        assert await _stock(db, pizza_id) == 10

    async def test_unknown_menu_item_checks_whole_cart(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item()
        user_id, pizza_id = user.id, pizza.id

        with pytest.raises(NotFoundError, match="one or more menu items not found"):
            await ordering.place_order(db, order_for(user_id, (pizza_id, 1), (9999, 1)))

        assert await _count(db, Order) == 0
        assert await _count(db, OrderItem) == 0
        assert await _stock(db, pizza_id) == 10

    async def test_insufficient_stock_leaves_nothing_behind(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item("Pizza", stock_quantity=10)
        burger = await make_menu_item("Burger", "15.50", stock_quantity=5)
        pizza_id, burger_id = pizza.id, burger.id

        with pytest.raises(InsufficientStockError) as exc_info:
            await ordering.place_order(db, order_for(user.id, (pizza_id, 2), (burger_id, 10)))

        assert "Burger" in str(exc_info.value)
        assert "Available: 5" in str(exc_info.value)
        assert "Requested: 10" in str(exc_info.value)
        assert exc_info.value.available == 5
        assert exc_info.value.requested == 10

        assert await _count(db, Order) == 0
        assert await _count(db, OrderItem) == 0
        assert await _stock(db, pizza_id) == 10
        assert await _stock(db, burger_id) == 5

    async def test_quantity_equal_to_stock_drains_it(self, db, make_user, make_menu_item):
        user = await make_user()
        cake = await make_menu_item("Cake", "4.00", stock_quantity=3)

        await ordering.place_order(db, order_for(user.id, (cake.id, 3)))

        assert await _stock(db, cake.id) == 0

    async def test_quantity_one_over_stock_fails(self, db, make_user, make_menu_item):
        user = await make_user()
        cake = await make_menu_item("Cake", "4.00", stock_quantity=3)
        user_id, cake_id = user.id, cake.id

        with pytest.raises(InsufficientStockError):
            await ordering.place_order(db, order_for(user_id, (cake_id, 4)))

        assert await _stock(db, cake_id) == 3
        assert await _count(db, Order) == 0

    async def test_sequential_orders_exhaust_stock(self, db, make_user, make_menu_item):
        user = await make_user()
        x = await make_menu_item("X", "2.50", stock_quantity=2)
        user_id, x_id = user.id, x.id

        await ordering.place_order(db, order_for(user_id, (x_id, 1)))
        await ordering.place_order(db, order_for(user_id, (x_id, 1)))
        assert await _stock(db, x_id) == 0

        with pytest.raises(InsufficientStockError):
            await ordering.place_order(db, order_for(user_id, (x_id, 1)))
        assert await _stock(db, x_id) == 0
        assert await _count(db, Order) == 2

    async def test_duplicate_cart_lines_are_merged(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item("Pizza", "25.99", stock_quantity=3)

        order = await ordering.place_order(db, order_for(user.id, (pizza.id, 1), (pizza.id, 2)))

        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert order.total_amount == Decimal("77.97")
        assert await _stock(db, pizza.id) == 0

    async def test_merged_duplicates_respect_stock(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item("Pizza", "25.99", stock_quantity=2)

        with pytest.raises(InsufficientStockError):
            await ordering.place_order(db, order_for(user.id, (pizza.id, 1), (pizza.id, 2)))

    async def test_non_positive_quantity_is_rejected_not_crashing(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item()
        pizza_id = pizza.id
        unvalidated = OrderCreate.model_construct(
            user_id=user.id,
            pickup_or_delivery_time=datetime.now(timezone.utc) + timedelta(hours=1),
            remarks=None,
            items=[CartItem.model_construct(menu_item_id=pizza_id, quantity=0)],
        )

        with pytest.raises(DomainValidationError):
            await ordering.place_order(db, unvalidated)
        assert await _stock(db, pizza_id) == 10

    async def test_empty_cart_is_rejected(self, db, make_user):
        user = await make_user()
        unvalidated = OrderCreate.model_construct(
            user_id=user.id,
            pickup_or_delivery_time=datetime.now(timezone.utc) + timedelta(hours=1),
            remarks=None,
            items=[],
        )

        with pytest.raises(DomainValidationError):
            await ordering.place_order(db, unvalidated)

    def test_line_quantity_is_capped(self):
        with pytest.raises(ValidationError):
            CartItem(menu_item_id=1, quantity=MAX_LINE_QUANTITY + 1)
        assert CartItem(menu_item_id=1, quantity=MAX_LINE_QUANTITY).quantity == MAX_LINE_QUANTITY

    async def test_total_too_large_to_store_is_rejected(self, db, make_user, make_menu_item):
        user = await make_user()
        banquet = await make_menu_item("Banquet", "99999999.99", stock_quantity=10)
        user_id, banquet_id = user.id, banquet.id

        with pytest.raises(DomainValidationError, match="exceeds the maximum"):
            await ordering.place_order(db, order_for(user_id, (banquet_id, 2)))

        assert await _count(db, Order) == 0
        assert await _stock(db, banquet_id) == 10

    async def test_price_change_does_not_touch_placed_orders(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item("Pizza", "25.99")
        placed = await ordering.place_order(db, order_for(user.id, (pizza.id, 2)))

        await catalog.update_menu_item(db, pizza.id, MenuItemUpdate(price=Decimal("30.00")))

        order = await ordering.get_order(db, placed.id)
        assert order.items[0].price_at_order == Decimal("25.99")
        assert order.items[0].menu_item.price == Decimal("30.00")
        assert order.total_amount == Decimal("51.98")

        later = await ordering.place_order(db, order_for(user.id, (pizza.id, 1)))
        assert later.total_amount == Decimal("30.00")


class TestConcurrentPlacement:

    async def test_oversubscribed_item_never_goes_negative(
        self, db, session_maker, make_user, make_menu_item
    ):
        user = await make_user()
        scarce = await make_menu_item("Special", "9.99", stock_quantity=3)
        requests = [order_for(user.id, (scarce.id, 1)) for _ in range(6)]

        async def attempt(order_data):
            async with session_maker() as session:
                return await ordering.place_order(session, order_data)

        results = await asyncio.gather(*(attempt(r) for r in requests), return_exceptions=True)

        placed = [r for r in results if isinstance(r, Order)]
        failed = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(placed) == 3
        assert len(failed) == 3
        assert await _stock(db, scarce.id) == 0
        assert await _count(db, Order) == 3

    async def test_mixed_quantities_respect_stock(
        self, db, session_maker, make_user, make_menu_item
    ):
        user = await make_user()
        scarce = await make_menu_item("Special", "9.99", stock_quantity=5)
        quantities = [2, 2, 2, 1]

        async def attempt(quantity):
            async with session_maker() as session:
                return await ordering.place_order(
                    session, order_for(user.id, (scarce.id, quantity))
                )

        results = await asyncio.gather(*(attempt(q) for q in quantities), return_exceptions=True)

        sold = sum(q for q, r in zip(quantities, results) if isinstance(r, Order))
        assert any(isinstance(r, InsufficientStockError) for r in results)
        assert all(isinstance(r, (Order, InsufficientStockError)) for r in results)
        assert sold <= 5
        assert await _stock(db, scarce.id) == 5 - sold >= 0


class TestLedgerQueries:

    async def test_list_orders_newest_first_and_filtered(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item()
        first = await ordering.place_order(db, order_for(user.id, (pizza.id, 1)))
        second = await ordering.place_order(db, order_for(user.id, (pizza.id, 1)))

        orders = await ordering.list_orders(db)
        assert [o.id for o in orders] == [second.id, first.id]

        assert await ordering.list_orders(db, status=OrderStatus.CONFIRMED) == []
        pending = await ordering.list_orders(db, status=OrderStatus.PENDING)
        assert len(pending) == 2

    async def test_list_orders_is_repeatable(self, db, make_user, make_menu_item):
        user = await make_user()
        pizza = await make_menu_item()
        burger = await make_menu_item("Burger", "15.50")
        await ordering.place_order(db, order_for(user.id, (pizza.id, 1), (burger.id, 2)))
        await ordering.place_order(db, order_for(user.id, (burger.id, 1)))

        def snapshot(orders):
            return [
                (o.id, o.status, o.total_amount,
                 [(i.menu_item_id, i.quantity, i.price_at_order) for i in o.items])
                for o in orders
            ]

        assert snapshot(await ordering.list_orders(db)) == snapshot(await ordering.list_orders(db))

    async def test_orders_for_user(self, db, make_user, make_menu_item):
        alice = await make_user("Alice", "111")
        bob = await make_user("Bob", "222", department="HR")
        pizza = await make_menu_item()
        await ordering.place_order(db, order_for(alice.id, (pizza.id, 1)))
        await ordering.place_order(db, order_for(bob.id, (pizza.id, 2)))

        alice_orders = await ordering.list_orders_for_user(db, alice.id)
        assert len(alice_orders) == 1
        assert alice_orders[0].user.name == "Alice"
        assert await ordering.list_orders_for_user(db, 12345) == []

    async def test_get_missing_order(self, db):
        with pytest.raises(NotFoundError, match="order with id 42 not found"):
            await ordering.get_order(db, 42)
