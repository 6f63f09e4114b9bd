"""
Permission controller — permission catalogue, role grants, cache control.

Every protected route declares its requirement with
`Depends(require_policy(<marker>))`; the matching policies are
registered automatically when the app is created.  Controllers are
THIN: reads delegate to the permission cache service, writes to
`permission_service`.

`/health` is PUBLIC (no permission dependency).
"""

import logging
import uuid
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.attributes import HasAnyPermission, HasPermission
from app.rbac.dependencies import (
    get_permission_cache_service,
    get_verification_service,
    require_authenticated_user,
    require_policy,
)
from app.rbac.permission_cache import PermissionCacheService
from app.rbac.request_context import RequestContext
from app.rbac.verification import PermissionVerificationService
from app.schemas import (
    CallerPermissionsOut,
    CreatePermissionRequest,
    MessageResponse,
    PermissionCategoryStat,
    PermissionCheckResult,
    PermissionRecord,
    PermissionServiceHealth,
    UpdatePermissionRequest,
)
from app.services import permission_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/permissions", tags=["Permissions"])

view_config = require_policy(HasPermission("system.view_config"))
manage_roles = require_policy(HasAnyPermission("system.manage_roles", "system.admin"))
manage_permissions = require_policy(HasPermission("user.manage_permissions"))


# ── Catalogue reads ──────────────────────────────────────────────────
@router.get("", response_model=list[PermissionRecord], dependencies=[Depends(view_config)])
async def list_permissions(
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    """All permissions, active and inactive.  Cached for one hour."""
    return await permission_cache.get_all_permissions()


@router.get("/active", response_model=list[PermissionRecord], dependencies=[Depends(view_config)])
async def list_active_permissions(
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return await permission_cache.get_all_active_permissions()


@router.get("/health", response_model=PermissionServiceHealth)
async def permission_service_health(
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    """Basic statistics about the permission catalogue."""
    try:
        permissions = await permission_cache.get_all_permissions()
    except Exception as exc:
        logger.error("Error in permission service health check", exc_info=True)
        body = PermissionServiceHealth(
            is_healthy=False,
            error_message=str(exc),
            timestamp=datetime.now(timezone.utc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
        )

    per_category = Counter(p.category for p in permissions)
    return PermissionServiceHealth(
        is_healthy=True,
        total_permissions=len(permissions),
        categories=[
            PermissionCategoryStat(category=c, count=n) for c, n in sorted(per_category.items())
        ],
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/me", response_model=CallerPermissionsOut)
async def my_permissions(
    context: RequestContext = Depends(require_authenticated_user),
    verification: PermissionVerificationService = Depends(get_verification_service),
):
    """Permission codes held by the calling user's role."""
    role_id = verification.get_role_id(context)
    return CallerPermissionsOut(
        user_id=verification.get_user_id(context),
        role_id=str(role_id) if role_id else None,
        permissions=await verification.get_user_permissions(context),
    )


@router.get(
    "/code/{code}", response_model=PermissionRecord, dependencies=[Depends(view_config)]
)
async def get_permission_by_code(
    code: str,
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    permission = await permission_cache.get_permission_by_code(code)
    if permission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
    return permission


@router.get(
    "/category/{category}",
    response_model=list[PermissionRecord],
    dependencies=[Depends(view_config)],
)
async def list_permissions_by_category(
    category: str,
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return await permission_cache.get_permissions_by_category(category)


# ── Roles ────────────────────────────────────────────────────────────
@router.get(
    "/role/{role_id}", response_model=list[PermissionRecord], dependencies=[Depends(manage_roles)]
)
async def list_role_permissions(
    role_id: uuid.UUID,
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return await permission_cache.get_permissions_for_role(role_id)


@router.get(
    "/role/{role_id}/check/{permission_code}",
    response_model=PermissionCheckResult,
    dependencies=[Depends(view_config)],
)
async def check_role_permission(
    role_id: uuid.UUID,
    permission_code: str,
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return PermissionCheckResult(
        role_id=role_id,
        permission_code=permission_code,
        has_permission=await permission_cache.role_has_permission(role_id, permission_code),
    )


@router.post(
    "/role/{role_id}/grant/{permission_id}",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(manage_roles)],
)
async def grant_permission(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    await permission_service.grant_permission_to_role(role_id, permission_id, db, permission_cache)
    return MessageResponse(detail="Permission granted")


@router.delete(
    "/role/{role_id}/grant/{permission_id}",
    response_model=MessageResponse,
    dependencies=[Depends(manage_roles)],
)
async def revoke_permission(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    await permission_service.revoke_permission_from_role(
        role_id, permission_id, db, permission_cache
    )
    return MessageResponse(detail="Permission revoked")


# ── Cache ────────────────────────────────────────────────────────────
@router.post(
    "/cache/invalidate",
    response_model=MessageResponse,
    dependencies=[Depends(require_policy(HasAnyPermission("system.cache_management", "system.admin")))],
)
async def invalidate_permission_cache(
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    """Drop the aggregate cache entries (role / category entries expire by TTL)."""
    await permission_cache.invalidate_all_permission_cache()
    return MessageResponse(detail="Permission cache invalidated")


# ── Catalogue writes ─────────────────────────────────────────────────
@router.post(
    "",
    response_model=PermissionRecord,
    status_code=201,
    dependencies=[Depends(manage_permissions)],
)
async def create_permission(
    body: CreatePermissionRequest,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return await permission_service.create_permission(
        code=body.code,
        name=body.name,
        category=body.category,
        description=body.description,
        is_active=body.is_active,
        db=db,
        permission_cache=permission_cache,
    )


@router.get(
    "/{permission_id}", response_model=PermissionRecord, dependencies=[Depends(view_config)]
)
async def get_permission(
    permission_id: uuid.UUID,
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    permission = await permission_cache.get_permission_by_id(permission_id)
    if permission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")
    return permission


@router.patch(
    "/{permission_id}", response_model=PermissionRecord, dependencies=[Depends(manage_permissions)]
)
async def update_permission(
    permission_id: uuid.UUID,
    body: UpdatePermissionRequest,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    return await permission_service.update_permission(
        permission_id=permission_id,
        db=db,
        permission_cache=permission_cache,
        name=body.name,
        category=body.category,
        description=body.description,
        is_active=body.is_active,
    )


@router.delete(
    "/{permission_id}", response_model=MessageResponse, dependencies=[Depends(manage_permissions)]
)
async def delete_permission(
    permission_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
):
    await permission_service.delete_permission(permission_id, db, permission_cache)
    return MessageResponse(detail="Permission deleted")
