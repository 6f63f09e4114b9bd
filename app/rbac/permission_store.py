"""
Permission store — the read side of the permission tables.

The cache service talks to the store through the narrow
`PermissionStore` protocol so the backing technology can be swapped
(or faked in tests).  `SqlAlchemyPermissionStore` is the production
implementation; it returns detached `PermissionRecord` objects, never
ORM instances, so results can be cached and shared safely.

No permission record for a role simply means "not granted".
"""

import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.permission import Permission
from app.models.role import role_permissions
from app.schemas import PermissionRecord


class PermissionStore(Protocol):
    async def get_by_id(self, permission_id: uuid.UUID) -> PermissionRecord | None: ...

    async def get_by_code(self, code: str) -> PermissionRecord | None: ...

    async def get_by_category(self, category: str) -> list[PermissionRecord]: ...

    async def get_all(self) -> list[PermissionRecord]: ...

    async def get_all_active(self) -> list[PermissionRecord]: ...

    async def get_for_role(self, role_id: uuid.UUID) -> list[PermissionRecord]: ...


def _to_records(rows) -> list[PermissionRecord]:
    return [PermissionRecord.model_validate(p) for p in rows]


class SqlAlchemyPermissionStore:
    """`PermissionStore` over an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, permission_id: uuid.UUID) -> PermissionRecord | None:
        permission = await self.db.get(Permission, permission_id)
        return PermissionRecord.model_validate(permission) if permission else None

    async def get_by_code(self, code: str) -> PermissionRecord | None:
        if not code or not code.strip():
            return None
        stmt = select(Permission).where(Permission.code == code)
        result = await self.db.execute(stmt)
        permission = result.scalar_one_or_none()
        return PermissionRecord.model_validate(permission) if permission else None

    async def get_by_category(self, category: str) -> list[PermissionRecord]:
        if not category or not category.strip():
            return []
        stmt = select(Permission).where(Permission.category == category).order_by(Permission.code)
        result = await self.db.execute(stmt)
        return _to_records(result.scalars().all())

    async def get_all(self) -> list[PermissionRecord]:
        stmt = select(Permission).order_by(Permission.category, Permission.code)
        result = await self.db.execute(stmt)
        return _to_records(result.scalars().all())

    async def get_all_active(self) -> list[PermissionRecord]:
        stmt = (
            select(Permission)
            .where(Permission.is_active == True)  # noqa: E712
            .order_by(Permission.category, Permission.code)
        )
        result = await self.db.execute(stmt)
        return _to_records(result.scalars().all())

    async def get_for_role(self, role_id: uuid.UUID) -> list[PermissionRecord]:
        stmt = (
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role_id == role_id)
            .order_by(Permission.category, Permission.code)
        )
        result = await self.db.execute(stmt)
        return _to_records(result.scalars().all())
