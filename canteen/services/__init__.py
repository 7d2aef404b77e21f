"""
                        Services Module

Business logic over the database session, one module per store:
    - catalog: menu items and stock primitives
    - directory: departments and users
    - ordering: order placement and ledger queries
    - workflow: order status transitions
    - reporting: department / menu-item sales projections
    - excel_manager: lock-guarded Excel report export
"""

from canteen.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
