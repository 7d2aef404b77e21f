"""
SQLAlchemy Database Models

Tables:
- departments: organisational units users belong to
- users: people who place orders (regular) or run the canteen (admin)
- menu_items: the catalog, with live price and stock
- orders / order_items: the order ledger, line prices frozen at order time
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from canteen.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """User roles."""
    REGULAR = "regular"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    users = relationship("User", back_populates="department", passive_deletes=True)

    def __repr__(self):
        return f"<Department #{self.id} - {self.name}>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    contact_number = Column(String(20), nullable=False, unique=True, index=True)
    department_id = Column(
        Integer,
        ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    role = Column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.REGULAR,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    department = relationship("Department", back_populates="users", lazy="joined")
    orders = relationship("Order", back_populates="user")

    @property
    def department_name(self) -> str:
        return self.department.name

    def __repr__(self):
        return f"<User #{self.id} - {self.name} - {self.role.value}>"


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_menu_items_stock_non_negative"),
        CheckConstraint("price > 0", name="ck_menu_items_price_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    category = Column(String(50), nullable=False, index=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order_items = relationship("OrderItem", back_populates="menu_item", passive_deletes=True)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price} x{self.stock_quantity}>"


class Order(Base):
    """
    Main Order table.

    Immutable after creation except for ``status`` and ``updated_at``.
    ``total_amount`` is the sum of the line items at creation time.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # =========================================================================
    # FULFILLMENT
    # =========================================================================
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    pickup_or_delivery_time = Column(DateTime(timezone=True), nullable=False)
    remarks = Column(Text, nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    total_amount = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self):
        return f"<Order #{self.id} - user {self.user_id} - {self.status.value}>"


class OrderItem(Base):
    """One line of a placed order, pinned to the catalog price at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_at_order = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem", back_populates="order_items")

    def __repr__(self):
        return f"<OrderItem #{self.id} - order {self.order_id} - {self.quantity}x{self.menu_item_id}>"
