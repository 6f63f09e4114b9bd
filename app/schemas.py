"""
Pydantic schemas for request / response serialization.

Kept in a single file for now; split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface (and the cache payload format) can evolve independently
of the DB layer.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, TypeAdapter


# ── Permission ───────────────────────────────────────────────────────
class PermissionRecord(BaseModel):
    """
    Detached, immutable view of a permission row.

    This is what the permission store returns, what the distributed
    cache stores (as JSON), and what the API serves.
    """

    id: uuid.UUID
    code: str
    name: str
    category: str
    description: str | None = None
    is_active: bool = True
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}


PermissionRecordAdapter = TypeAdapter(PermissionRecord)
PermissionRecordListAdapter = TypeAdapter(list[PermissionRecord])


class CreatePermissionRequest(BaseModel):
    code: str = Field(min_length=1, max_length=128, pattern=r"^[^|\s]+$")
    name: str = Field(min_length=1, max_length=256)
    category: str = Field(min_length=1, max_length=64)
    description: str | None = None
    is_active: bool = True


class UpdatePermissionRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    category: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = None
    is_active: bool | None = None


class PermissionCheckResult(BaseModel):
    role_id: uuid.UUID
    permission_code: str
    has_permission: bool


class CallerPermissionsOut(BaseModel):
    user_id: str | None = None
    role_id: str | None = None
    permissions: list[str] = []


# ── Health ───────────────────────────────────────────────────────────
class PermissionCategoryStat(BaseModel):
    category: str
    count: int


class PermissionServiceHealth(BaseModel):
    is_healthy: bool
    total_permissions: int = 0
    categories: list[PermissionCategoryStat] = []
    error_message: str | None = None
    timestamp: datetime


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
