"""
Permission service — administrative mutations.

Reads go through `PermissionCacheService`; writes land here.  Every
write commits first and then invalidates exactly the cache entries it
can have made stale:

- permission create / update / delete → `perm:code:{code}`, the two
  aggregates, and the permission's category key(s)
- grant / revoke on a role            → `perm:role:{role_id}`

Invalidating after the commit means a concurrent reader can never
re-populate the cache from the pre-commit state.
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.permission import Permission
from app.models.role import Role, role_permissions
from app.rbac.permission_cache import PermissionCacheService
from app.schemas import PermissionRecord


async def _get_permission_or_404(permission_id: uuid.UUID, db: AsyncSession) -> Permission:
    permission = await db.get(Permission, permission_id)
    if permission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
    return permission


async def _get_role_or_404(role_id: uuid.UUID, db: AsyncSession) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


async def create_permission(
    code: str,
    name: str,
    category: str,
    description: str | None,
    is_active: bool,
    db: AsyncSession,
    permission_cache: PermissionCacheService,
) -> PermissionRecord:
    existing = await db.execute(select(Permission.id).where(Permission.code == code))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Permission '{code}' already exists",
        )

    permission = Permission(
        id=uuid.uuid4(),
        code=code,
        name=name,
        category=category,
        description=description,
        is_active=is_active,
    )
    db.add(permission)
    await db.flush()
    record = PermissionRecord.model_validate(permission)
    await db.commit()

    await permission_cache.invalidate_permission_cache(code)
    await permission_cache.invalidate_category_cache(category)
    return record


async def update_permission(
    permission_id: uuid.UUID,
    db: AsyncSession,
    permission_cache: PermissionCacheService,
    name: str | None = None,
    category: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> PermissionRecord:
    """Update mutable fields.  The code is the stable key and never changes."""
    permission = await _get_permission_or_404(permission_id, db)
    old_category = permission.category

    if name is not None:
        permission.name = name
    if category is not None:
        permission.category = category
    if description is not None:
        permission.description = description
    if is_active is not None:
        permission.is_active = is_active

    await db.flush()
    record = PermissionRecord.model_validate(permission)
    role_ids = [r.id for r in permission.roles]
    await db.commit()

    await permission_cache.invalidate_permission_cache(record.code)
    await permission_cache.invalidate_category_cache(old_category)
    if record.category != old_category:
        await permission_cache.invalidate_category_cache(record.category)
    # Activation state is part of every cached role set holding this code.
    for role_id in role_ids:
        await permission_cache.invalidate_role_cache(role_id)
    return record


async def delete_permission(
    permission_id: uuid.UUID,
    db: AsyncSession,
    permission_cache: PermissionCacheService,
) -> None:
    permission = await _get_permission_or_404(permission_id, db)
    code, category = permission.code, permission.category
    role_ids = [r.id for r in permission.roles]

    await db.delete(permission)
    await db.commit()

    await permission_cache.invalidate_permission_cache(code)
    await permission_cache.invalidate_category_cache(category)
    for role_id in role_ids:
        await permission_cache.invalidate_role_cache(role_id)


async def grant_permission_to_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession,
    permission_cache: PermissionCacheService,
) -> None:
    await _get_role_or_404(role_id, db)
    permission = await _get_permission_or_404(permission_id, db)
    if not permission.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive permissions cannot be granted",
        )

    stmt = select(role_permissions.c.role_id).where(
        role_permissions.c.role_id == role_id,
        role_permissions.c.permission_id == permission_id,
    )
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission already granted to this role",
        )

    await db.execute(insert(role_permissions).values(role_id=role_id, permission_id=permission_id))
    await db.commit()
    await permission_cache.invalidate_role_cache(role_id)


async def revoke_permission_from_role(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession,
    permission_cache: PermissionCacheService,
) -> None:
    stmt = delete(role_permissions).where(
        role_permissions.c.role_id == role_id,
        role_permissions.c.permission_id == permission_id,
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Permission is not granted to this role",
        )
    await db.commit()
    await permission_cache.invalidate_role_cache(role_id)
