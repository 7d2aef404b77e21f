"""
Excel Report Export with Concurrency Control

Writes the department and menu-item sales reports into one workbook.
Concurrent exports (several admins, several workers) serialize on a
file lock next to the workbook.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd
from filelock import FileLock, Timeout

from canteen.core.config import get_settings
from canteen.schemas import DepartmentReport, MenuItemReport

logger = logging.getLogger(__name__)


class ExcelManager:
    """Lock-guarded writer/reader for the sales report workbook."""

    DEPARTMENT_SHEET = "Departments"
    MENU_ITEM_SHEET = "Menu Items"
    SUMMARY_SHEET = "Summary"

    DEPARTMENT_COLUMNS = [
        "department",
        "total_orders",
        "total_quantity",
        "total_amount",
    ]

    MENU_ITEM_COLUMNS = [
        "menu_item_id",
        "name",
        "total_orders",
        "total_quantity",
        "total_amount",
    ]

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        filename: Optional[str] = None,
        lock_timeout: Optional[int] = None,
    ):
        settings = get_settings()
        self.data_dir = Path(data_dir or settings.data_directory)
        self.report_file = self.data_dir / (filename or settings.report_filename)
        self.lock_file = self.report_file.with_name(self.report_file.name + ".lock")
        self.lock_timeout = (
            settings.report_lock_timeout if lock_timeout is None else lock_timeout
        )

    def _ensure_data_dir(self) -> None:
        """Create data directory if needed."""
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def _frame(self, rows: Sequence[Any], columns: list[str]) -> pd.DataFrame:
        records = []
        for row in rows:
            record = row.model_dump()
            record["total_amount"] = float(record["total_amount"])
            records.append(record)
        return pd.DataFrame(records, columns=columns)

    def export_reports(
        self,
        department_rows: Sequence[DepartmentReport],
        menu_item_rows: Sequence[MenuItemReport],
    ) -> dict[str, Any]:
        """Write both reports to the workbook, replacing the previous export."""
        self._ensure_data_dir()

        result = {
            "success": False,
            "message": "",
            "file_path": str(self.report_file),
            "exported_at": None,
        }

        try:
            lock = FileLock(str(self.lock_file), timeout=self.lock_timeout)

            with lock:
                logger.debug(f"Lock acquired for {self.report_file}")

                export_time = datetime.now().isoformat()
                departments = self._frame(department_rows, self.DEPARTMENT_COLUMNS)
                menu_items = self._frame(menu_item_rows, self.MENU_ITEM_COLUMNS)
                summary = pd.DataFrame([{
                    "exported_at": export_time,
                    "departments": len(departments),
                    "menu_items": len(menu_items),
                    "total_amount": round(float(departments["total_amount"].sum()), 2),
                }])

                with pd.ExcelWriter(str(self.report_file), engine="openpyxl") as writer:
                    departments.to_excel(writer, sheet_name=self.DEPARTMENT_SHEET, index=False)
                    menu_items.to_excel(writer, sheet_name=self.MENU_ITEM_SHEET, index=False)
                    summary.to_excel(writer, sheet_name=self.SUMMARY_SHEET, index=False)

                logger.info(
                    f"Sales report exported: {len(departments)} department row(s), "
                    f"{len(menu_items)} menu item row(s)"
                )

                result["success"] = True
                result["message"] = f"Report exported to {self.report_file}"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for {self.report_file}")

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout exporting {self.report_file}")

        except OSError as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting {self.report_file}")

        return result

    def read_reports(self) -> dict[str, list[dict[str, Any]]]:
        """Read every sheet of the last export; empty when nothing was exported."""
        if not self.report_file.exists():
            return {}

        with FileLock(str(self.lock_file), timeout=self.lock_timeout):
            sheets = pd.read_excel(self.report_file, sheet_name=None, engine="openpyxl")
        return {name: df.to_dict("records") for name, df in sheets.items()}

    def clear(self) -> bool:
        """Delete the workbook and its lock file."""
        try:
            for f in [self.report_file, self.lock_file]:
                if f.exists():
                    f.unlink()
            logger.info("Report files cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing files: {e}")
            return False
