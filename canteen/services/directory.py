"""
Directory Store

Departments and users. A user references a department by id; a department
cannot be deleted while any user still points at it. Login is an exact
contact-number lookup with no password.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.exceptions import ConflictError, DomainValidationError, NotFoundError
from canteen.models import Department, User
from canteen.schemas import DepartmentCreate, DepartmentUpdate, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


async def _commit_or_conflict(db: AsyncSession, message: str) -> None:
    """Commit; a unique-constraint race that slipped past the pre-check becomes a Conflict."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Integrity error on commit: {e.orig}")
        raise ConflictError(message) from e


# =============================================================================
# DEPARTMENTS
# =============================================================================

async def get_department(db: AsyncSession, department_id: int) -> Department:
    department = await db.get(Department, department_id)
    if department is None:
        raise NotFoundError(f"department with id {department_id} not found")
    return department


async def _ensure_department_name_free(
    db: AsyncSession,
    name: str,
    exclude_id: Optional[int] = None,
) -> None:
    query = select(Department.id).where(Department.name == name)
    if exclude_id is not None:
        query = query.where(Department.id != exclude_id)
    if await db.scalar(query) is not None:
        raise ConflictError(f"department '{name}' already exists")


async def list_departments(db: AsyncSession) -> Sequence[Department]:
    result = await db.execute(select(Department).order_by(Department.name))
    return result.scalars().all()


async def create_department(db: AsyncSession, data: DepartmentCreate) -> Department:
    await _ensure_department_name_free(db, data.name)

    department = Department(name=data.name)
    db.add(department)
    await _commit_or_conflict(db, f"department '{data.name}' already exists")

    logger.info(f"Department #{department.id} '{department.name}' created")
    return department


async def update_department(
    db: AsyncSession,
    department_id: int,
    patch: DepartmentUpdate,
) -> Department:
    department = await get_department(db, department_id)
    changes = patch.model_dump(exclude_unset=True)

    if "name" in changes:
        if changes["name"] is None:
            raise DomainValidationError("name cannot be cleared")
        await _ensure_department_name_free(db, changes["name"], exclude_id=department_id)
        department.name = changes["name"]

    await _commit_or_conflict(db, f"department '{department.name}' already exists")
    return department


async def delete_department(db: AsyncSession, department_id: int) -> None:
    """Hard delete; blocked while users reference the department."""
    department = await get_department(db, department_id)

    members = await db.scalar(
        select(func.count(User.id)).where(User.department_id == department_id)
    )
    if members:
        raise ConflictError(
            f"department '{department.name}' still has {members} user(s)"
        )

    await db.delete(department)
    await db.commit()
    logger.info(f"Department #{department_id} deleted")


# =============================================================================
# USERS
# =============================================================================

async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user not found")
    return user


async def _ensure_contact_number_free(
    db: AsyncSession,
    contact_number: str,
    exclude_id: Optional[int] = None,
) -> None:
    query = select(User.id).where(User.contact_number == contact_number)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    if await db.scalar(query) is not None:
        raise ConflictError(f"contact number {contact_number} is already registered")


async def list_users(db: AsyncSession) -> Sequence[User]:
    result = await db.execute(select(User).order_by(User.id))
    return result.scalars().all()


async def register_user(db: AsyncSession, data: UserCreate) -> User:
    department = await get_department(db, data.department_id)
    await _ensure_contact_number_free(db, data.contact_number)

    user = User(
        name=data.name,
        contact_number=data.contact_number,
        department=department,
        role=data.role,
    )
    db.add(user)
    await _commit_or_conflict(
        db, f"contact number {data.contact_number} is already registered"
    )

    logger.info(f"User #{user.id} registered in {department.name}")
    return user


async def login_user(db: AsyncSession, contact_number: str) -> Optional[User]:
    """Exact contact-number match; None when nobody matches."""
    result = await db.execute(
        select(User).where(User.contact_number == contact_number).limit(1)
    )
    return result.scalars().first()


async def update_user(db: AsyncSession, user_id: int, patch: UserUpdate) -> User:
    user = await get_user(db, user_id)
    changes = patch.model_dump(exclude_unset=True)

    for field in ("name", "contact_number", "department_id", "role"):
        if field in changes and changes[field] is None:
            raise DomainValidationError(f"{field} cannot be cleared")

    if "contact_number" in changes:
        await _ensure_contact_number_free(db, changes["contact_number"], exclude_id=user_id)
    if "department_id" in changes:
        user.department = await get_department(db, changes.pop("department_id"))

    for field, value in changes.items():
        setattr(user, field, value)

    await _commit_or_conflict(
        db, f"contact number {user.contact_number} is already registered"
    )
    return user
