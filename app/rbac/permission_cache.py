"""
Permission cache service — cache-aside reads over the permission store.

Every lookup (except by-id) first consults the distributed cache under
its canonical key; on a miss it queries the store and, when the result
is non-empty, writes it back with a fixed TTL (one hour by default).

Cache keys:
    perm:code:{code}
    perm:category:{category}
    perm:role:{role_id}
    perm:active:all
    perm:all

The cache is never allowed to break a read:
- `get` failures (backend down) fall through to the store.
- Payloads that fail to deserialize are treated as a miss.
- `set` failures are logged and the store result is returned anyway.

Invalidation is deliberately narrow.  `invalidate_permission_cache`
drops one code key plus the two aggregates; `invalidate_all_permission_cache`
drops only the two aggregates.  Category and role keys are NOT swept
globally. Callers that know which role / category a mutation touched
must invalidate it explicitly, otherwise those entries age out by TTL.
"""

import logging
import uuid

from pydantic import TypeAdapter, ValidationError

from app.core.cache import DistributedCache
from app.rbac.permission_store import PermissionStore
from app.schemas import (
    PermissionRecord,
    PermissionRecordAdapter,
    PermissionRecordListAdapter,
)

logger = logging.getLogger("rbac.cache")

DEFAULT_TTL_SECONDS = 3600

ALL_ACTIVE_KEY = "perm:active:all"
ALL_KEY = "perm:all"


def code_key(code: str) -> str:
    return f"perm:code:{code}"


def category_key(category: str) -> str:
    return f"perm:category:{category}"


def role_key(role_id: uuid.UUID) -> str:
    return f"perm:role:{role_id}"


class PermissionCacheService:
    def __init__(
        self,
        store: PermissionStore,
        cache: DistributedCache,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    # ── Cache plumbing ───────────────────────────────────────────────

    async def _read(self, key: str, adapter: TypeAdapter):
        try:
            payload = await self.cache.get(key)
        except Exception:
            logger.warning("Cache read failed for %s, falling back to store", key, exc_info=True)
            return None
        if not payload:
            return None
        try:
            return adapter.validate_json(payload)
        except ValidationError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def _write(self, key: str, adapter: TypeAdapter, value) -> None:
        try:
            await self.cache.set(key, adapter.dump_json(value), self.ttl_seconds)
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    async def _cached_list(self, key: str, loader) -> list[PermissionRecord]:
        cached = await self._read(key, PermissionRecordListAdapter)
        if cached is not None:
            return cached

        permissions = list(await loader())
        if permissions:
            await self._write(key, PermissionRecordListAdapter, permissions)
        return permissions

    # ── Lookups ──────────────────────────────────────────────────────

    async def get_permission_by_id(self, permission_id: uuid.UUID) -> PermissionRecord | None:
        """Uncached: by-id lookups have too little reuse to be worth a key."""
        if permission_id is None or permission_id.int == 0:
            return None
        return await self.store.get_by_id(permission_id)

    async def get_permission_by_code(self, code: str) -> PermissionRecord | None:
        if not code or not code.strip():
            return None

        key = code_key(code)
        cached = await self._read(key, PermissionRecordAdapter)
        if cached is not None:
            return cached

        permission = await self.store.get_by_code(code)
        if permission is not None:
            await self._write(key, PermissionRecordAdapter, permission)
        return permission

    async def get_permissions_by_category(self, category: str) -> list[PermissionRecord]:
        if not category or not category.strip():
            return []
        return await self._cached_list(
            category_key(category), lambda: self.store.get_by_category(category)
        )

    async def get_all_active_permissions(self) -> list[PermissionRecord]:
        return await self._cached_list(ALL_ACTIVE_KEY, self.store.get_all_active)

    async def get_all_permissions(self) -> list[PermissionRecord]:
        return await self._cached_list(ALL_KEY, self.store.get_all)

    async def get_permissions_for_role(self, role_id: uuid.UUID) -> list[PermissionRecord]:
        return await self._cached_list(role_key(role_id), lambda: self.store.get_for_role(role_id))

    async def role_has_permission(self, role_id: uuid.UUID, permission_code: str) -> bool:
        """True iff the role holds an *active* permission with exactly this code."""
        if not permission_code or not permission_code.strip():
            return False
        permissions = await self.get_permissions_for_role(role_id)
        return any(p.code == permission_code and p.is_active for p in permissions)

    # ── Invalidation ─────────────────────────────────────────────────

    async def invalidate_permission_cache(self, code: str) -> None:
        """Drop one code entry and both aggregates (membership may have changed)."""
        if not code or not code.strip():
            return
        await self.cache.remove(code_key(code))
        await self.cache.remove(ALL_ACTIVE_KEY)
        await self.cache.remove(ALL_KEY)
        logger.info("Invalidated permission cache for %s", code)

    async def invalidate_all_permission_cache(self) -> None:
        """Drop the aggregate entries only; category / role keys are left to TTL."""
        await self.cache.remove(ALL_ACTIVE_KEY)
        await self.cache.remove(ALL_KEY)
        logger.info("Invalidated aggregate permission cache entries")

    async def invalidate_category_cache(self, category: str) -> None:
        if not category or not category.strip():
            return
        await self.cache.remove(category_key(category))

    async def invalidate_role_cache(self, role_id: uuid.UUID) -> None:
        await self.cache.remove(role_key(role_id))
        logger.info("Invalidated cached permission set for role %s", role_id)
