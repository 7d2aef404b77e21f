"""
Core module initialization.
Exports configuration, logging utilities and domain errors.
"""

from canteen.core.config import get_settings, Settings, EnvironmentMode
from canteen.core.exceptions import (
    CanteenError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    DomainValidationError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "CanteenError",
    "NotFoundError",
    "ConflictError",
    "InsufficientStockError",
    "DomainValidationError",
]
