"""
Pydantic Schemas for Request/Response Validation

Request schemas carry field-level validation (non-empty names, positive
prices, non-negative stock, pickup lead time). Update schemas are explicit
optional-field patches: only fields the client sent are applied.

Currency fields are Decimal and serialize as strings ("12.99").
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from canteen.core.config import get_settings
from canteen.models import OrderStatus, UserRole

MAX_LINE_QUANTITY = 999


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


# =============================================================================
# DEPARTMENTS
# =============================================================================

class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["IT"])

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _strip_required(v)


class DepartmentResponse(BaseModel):
    id: int
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# USERS
# =============================================================================

class UserCreate(BaseModel):
    """Registration request."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Jane Doe"])
    contact_number: str = Field(..., min_length=1, max_length=20, examples=["555-0100"])
    department_id: int = Field(..., ge=1)
    role: UserRole = UserRole.REGULAR

    @field_validator("name", "contact_number")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _strip_required(v)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    contact_number: Optional[str] = Field(None, min_length=1, max_length=20)
    department_id: Optional[int] = Field(None, ge=1)
    role: Optional[UserRole] = None

    @field_validator("name", "contact_number")
    @classmethod
    def validate_text(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _strip_required(v)


class LoginRequest(BaseModel):
    contact_number: str = Field(..., min_length=1, max_length=20)


class UserResponse(BaseModel):
    id: int
    name: str
    contact_number: str
    department_id: int
    department: str = Field(validation_alias=AliasChoices("department_name", "department"))
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    """A miss is not an error: ``user`` is null."""
    user: Optional[UserResponse] = None


# =============================================================================
# MENU ITEMS
# =============================================================================

class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Chicken Rice"])
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["8.99"])
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=500)
    category: str = Field(..., min_length=1, max_length=50, examples=["Mains"])
    stock_quantity: int = Field(default=0, ge=0)

    @field_validator("name", "category")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _strip_required(v)


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    stock_quantity: Optional[int] = Field(None, ge=0)

    @field_validator("name", "category")
    @classmethod
    def validate_text(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _strip_required(v)


class MenuItemResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    description: Optional[str]
    image_url: Optional[str]
    category: str
    stock_quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# CART / ORDER REQUESTS
# =============================================================================

class CartItem(BaseModel):
    """Single line in a cart."""
    menu_item_id: int = Field(..., examples=[1])
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY, examples=[2])


class Cart(BaseModel):
    """Client-held, not-yet-submitted list of (menu item, quantity) pairs."""
    user_id: int
    items: List[CartItem] = Field(..., min_length=1)

    def consolidated(self) -> dict[int, int]:
        """Menu item id -> total quantity, duplicate lines merged, cart order kept."""
        lines: dict[int, int] = {}
        for item in self.items:
            lines[item.menu_item_id] = lines.get(item.menu_item_id, 0) + item.quantity
        return lines


class OrderCreate(Cart):
    """Checkout request: the cart plus when and how to hand it over."""
    pickup_or_delivery_time: datetime = Field(..., examples=["2026-01-15T12:30:00Z"])
    remarks: Optional[str] = Field(None, max_length=500)

    @field_validator("pickup_or_delivery_time")
    @classmethod
    def validate_lead_time(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        minutes = get_settings().min_lead_time_minutes
        if v <= datetime.now(timezone.utc) + timedelta(minutes=minutes):
            raise ValueError(
                f"Pickup/delivery time must be more than {minutes} minutes from now"
            )
        return v


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# =============================================================================
# ORDER RESPONSES
# =============================================================================

class OrderResponse(BaseModel):
    """Order row without relations."""
    id: int
    user_id: int
    order_date: datetime
    status: OrderStatus
    pickup_or_delivery_time: datetime
    remarks: Optional[str]
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    menu_item_id: int
    quantity: int
    price_at_order: Decimal
    created_at: datetime
    menu_item: MenuItemResponse

    model_config = ConfigDict(from_attributes=True)


class OrderWithItemsResponse(OrderResponse):
    """Fully hydrated order as shown to users and admins."""
    user: UserResponse
    order_items: List[OrderItemResponse] = Field(validation_alias=AliasChoices("items", "order_items"))


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderWithItemsResponse]


# =============================================================================
# REPORTS
# =============================================================================

class DepartmentReport(BaseModel):
    department: str
    total_orders: int
    total_quantity: int
    total_amount: Decimal


class MenuItemReport(BaseModel):
    menu_item_id: int
    name: str
    total_orders: int
    total_quantity: int
    total_amount: Decimal


class ReportExportResponse(BaseModel):
    success: bool
    message: str
    file_path: Optional[str] = None
    exported_at: Optional[str] = None


# =============================================================================
# MISC
# =============================================================================

class DeleteResponse(BaseModel):
    success: bool
    id: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    timestamp: datetime
