"""
Reporting Aggregator

Read-only projections over the order ledger joined with the directory and
catalog. Recomputed on every call.
"""

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.money import money
from canteen.models import Department, MenuItem, Order, OrderItem, User
from canteen.schemas import DepartmentReport, MenuItemReport


async def department_report(db: AsyncSession) -> list[DepartmentReport]:
    """
    Orders grouped by the ordering user's department.

    total_orders counts distinct orders, total_quantity sums line
    quantities, total_amount sums order totals.
    """
    order_rows = await db.execute(
        select(
            Department.name,
            func.count(distinct(Order.id)),
            func.sum(Order.total_amount),
        )
        .select_from(Order)
        .join(User, Order.user_id == User.id)
        .join(Department, User.department_id == Department.id)
        .group_by(Department.name)
        .order_by(Department.name)
    )

    quantity_rows = await db.execute(
        select(Department.name, func.sum(OrderItem.quantity))
        .select_from(OrderItem)
        .join(Order, OrderItem.order_id == Order.id)
        .join(User, Order.user_id == User.id)
        .join(Department, User.department_id == Department.id)
        .group_by(Department.name)
    )
    quantities = {name: int(total or 0) for name, total in quantity_rows.all()}

    return [
        DepartmentReport(
            department=name,
            total_orders=int(total_orders),
            total_quantity=quantities.get(name, 0),
            total_amount=money(total_amount),
        )
        for name, total_orders, total_amount in order_rows.all()
    ]


async def menu_item_report(db: AsyncSession) -> list[MenuItemReport]:
    """Order lines grouped by menu item, biggest earners first."""
    line_total = func.sum(OrderItem.quantity * OrderItem.price_at_order)

    rows = await db.execute(
        select(
            MenuItem.id,
            MenuItem.name,
            func.count(distinct(OrderItem.order_id)),
            func.sum(OrderItem.quantity),
            line_total,
        )
        .select_from(OrderItem)
        .join(MenuItem, OrderItem.menu_item_id == MenuItem.id)
        .group_by(MenuItem.id, MenuItem.name)
        .order_by(line_total.desc(), MenuItem.id)
    )

    return [
        MenuItemReport(
            menu_item_id=item_id,
            name=name,
            total_orders=int(total_orders),
            total_quantity=int(total_quantity or 0),
            total_amount=money(total_amount),
        )
        for item_id, name, total_orders, total_quantity, total_amount in rows.all()
    ]
