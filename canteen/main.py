"""
FastAPI Application Entry Point

Canteen Meal Ordering System.

Endpoints:
    - /api/departments: Department management (admin)
    - /api/users: Registration, contact-number login, user management
    - /api/menu-items: Menu management (admin) and browsing
    - /api/orders: Order placement, listing, status workflow
    - /api/reports: Department / menu-item sales reports and Excel export
    - GET /health: System health check

Run:
    uvicorn canteen.main:app --port 2022
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.config import get_settings, setup_logging
from canteen.core.exceptions import CanteenError
from canteen.database import engine, get_db, init_db
from canteen.models import OrderStatus
from canteen.schemas import (
    DeleteResponse,
    DepartmentCreate,
    DepartmentReport,
    DepartmentResponse,
    DepartmentUpdate,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MenuItemCreate,
    MenuItemReport,
    MenuItemResponse,
    MenuItemUpdate,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderWithItemsResponse,
    ReportExportResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from canteen.services import catalog, directory, ordering, reporting, workflow
from canteen.services.excel_manager import ExcelManager

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Restore stock on cancel: {settings.restore_stock_on_cancel}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Department meal ordering: menu browsing, checkout with pickup/delivery "
        "times, order fulfillment and sales reports."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_excel_manager() -> ExcelManager:
    return ExcelManager()


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍱 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Verify the database is reachable."""
    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return HealthResponse(
        status="operational" if db_status == "healthy" else "degraded",
        database=db_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# DEPARTMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/departments",
    response_model=DepartmentResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Departments"],
)
async def create_department(
    data: DepartmentCreate,
    db: AsyncSession = Depends(get_db),
) -> DepartmentResponse:
    department = await directory.create_department(db, data)
    return DepartmentResponse.model_validate(department)


@app.get("/api/departments", response_model=List[DepartmentResponse], tags=["Departments"])
async def list_departments(db: AsyncSession = Depends(get_db)) -> List[DepartmentResponse]:
    departments = await directory.list_departments(db)
    return [DepartmentResponse.model_validate(d) for d in departments]


@app.patch(
    "/api/departments/{department_id}",
    response_model=DepartmentResponse,
    responses=ERROR_RESPONSES,
    tags=["Departments"],
)
async def update_department(
    department_id: int,
    patch: DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
) -> DepartmentResponse:
    department = await directory.update_department(db, department_id, patch)
    return DepartmentResponse.model_validate(department)


@app.delete(
    "/api/departments/{department_id}",
    response_model=DeleteResponse,
    responses=ERROR_RESPONSES,
    tags=["Departments"],
)
async def delete_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
) -> DeleteResponse:
    await directory.delete_department(db, department_id)
    return DeleteResponse(success=True, id=department_id)


# =============================================================================
# USER ENDPOINTS
# =============================================================================

@app.post(
    "/api/users",
    response_model=UserResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Users"],
    summary="Register User",
)
async def register_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await directory.register_user(db, data)
    return UserResponse.model_validate(user)


@app.post("/api/users/login", response_model=LoginResponse, tags=["Users"])
async def login_user(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Look up a user by exact contact number. No match returns ``{"user": null}``."""
    user = await directory.login_user(db, data.contact_number)
    if user is None:
        logger.info("Login miss")
        return LoginResponse(user=None)
    return LoginResponse(user=UserResponse.model_validate(user))


@app.get("/api/users", response_model=List[UserResponse], tags=["Users"])
async def list_users(db: AsyncSession = Depends(get_db)) -> List[UserResponse]:
    users = await directory.list_users(db)
    return [UserResponse.model_validate(u) for u in users]


@app.patch(
    "/api/users/{user_id}",
    response_model=UserResponse,
    responses=ERROR_RESPONSES,
    tags=["Users"],
)
async def update_user(
    user_id: int,
    patch: UserUpdate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await directory.update_user(db, user_id, patch)
    return UserResponse.model_validate(user)


@app.get(
    "/api/users/{user_id}/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List a User's Orders",
)
async def list_user_orders(
    user_id: int,
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    orders = await ordering.list_orders_for_user(db, user_id)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderWithItemsResponse.model_validate(o) for o in orders],
    )


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get("/api/menu-items", response_model=List[MenuItemResponse], tags=["Menu"])
async def list_menu_items(
    category: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[MenuItemResponse]:
    items = await catalog.list_menu_items(db, category=category)
    return [MenuItemResponse.model_validate(i) for i in items]


@app.post(
    "/api/menu-items",
    response_model=MenuItemResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def create_menu_item(
    data: MenuItemCreate,
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await catalog.create_menu_item(db, data)
    return MenuItemResponse.model_validate(item)


@app.patch(
    "/api/menu-items/{item_id}",
    response_model=MenuItemResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def update_menu_item(
    item_id: int,
    patch: MenuItemUpdate,
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await catalog.update_menu_item(db, item_id, patch)
    return MenuItemResponse.model_validate(item)


@app.delete(
    "/api/menu-items/{item_id}",
    response_model=DeleteResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def delete_menu_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
) -> DeleteResponse:
    await catalog.delete_menu_item(db, item_id)
    return DeleteResponse(success=True, id=item_id)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderWithItemsResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def place_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderWithItemsResponse:
    """
    Check out a cart.

    Prices come from the menu at the moment of ordering; stock for every
    line is taken in the same transaction as the order is written.
    """
    logger.info(
        f"Placing order for user #{order_data.user_id} "
        f"({len(order_data.items)} cart line(s))"
    )
    order = await ordering.place_order(db, order_data)
    return OrderWithItemsResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    orders = await ordering.list_orders(db, status=status)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderWithItemsResponse.model_validate(o) for o in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderWithItemsResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
) -> OrderWithItemsResponse:
    order = await ordering.get_order(db, order_id)
    return OrderWithItemsResponse.model_validate(order)


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await workflow.set_order_status(db, order_id, data.status)
    return OrderResponse.model_validate(order)


# =============================================================================
# REPORT ENDPOINTS
# =============================================================================

@app.get("/api/reports/departments", response_model=List[DepartmentReport], tags=["Reports"])
async def get_department_report(db: AsyncSession = Depends(get_db)) -> List[DepartmentReport]:
    return await reporting.department_report(db)


@app.get("/api/reports/menu-items", response_model=List[MenuItemReport], tags=["Reports"])
async def get_menu_item_report(db: AsyncSession = Depends(get_db)) -> List[MenuItemReport]:
    return await reporting.menu_item_report(db)


@app.post(
    "/api/reports/export",
    response_model=ReportExportResponse,
    tags=["Reports"],
    summary="Export Reports to Excel",
)
async def export_reports(
    db: AsyncSession = Depends(get_db),
    excel: ExcelManager = Depends(get_excel_manager),
) -> ReportExportResponse:
    departments = await reporting.department_report(db)
    menu_items = await reporting.menu_item_report(db)
    result = await run_in_threadpool(excel.export_reports, departments, menu_items)
    return ReportExportResponse(**result)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(CanteenError)
async def domain_exception_handler(request: Request, exc: CanteenError) -> JSONResponse:
    """Map typed domain errors to their status codes."""
    logger.info(f"{request.method} {request.url.path} -> {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run("canteen.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
