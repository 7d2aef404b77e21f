"""
Domain Errors

Typed failures raised by the store and service layers. The HTTP layer maps
each kind to a status code in one place (see canteen.main).
"""

from typing import Optional


class CanteenError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Convert to the standard error response body."""
        return {
            "success": False,
            "error": self.kind,
            "detail": self.message,
        }


class NotFoundError(CanteenError):
    """A referenced user, menu item, order or department does not exist."""

    kind = "not_found"
    status_code = 404


class ConflictError(CanteenError):
    """Unique constraint or referential integrity violation."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(CanteenError):
    """Requested quantity exceeds the menu item's available stock."""

    kind = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        item_name: str,
        available: int,
        requested: int,
        menu_item_id: Optional[int] = None,
    ):
        super().__init__(
            f"Insufficient stock for menu item: {item_name}. "
            f"Available: {available}, Requested: {requested}"
        )
        self.item_name = item_name
        self.available = available
        self.requested = requested
        self.menu_item_id = menu_item_id

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["menu_item_id"] = self.menu_item_id
        body["available"] = self.available
        body["requested"] = self.requested
        return body


class DomainValidationError(CanteenError):
    """Malformed input that reached a service, or an illegal status change."""

    kind = "validation"
    status_code = 422
