"""
Permission verification service.

Answers "does the caller of this request hold permission X / any of
X… / all of X…?" from the caller's token claims:

1. The `role_id` claim names the caller's role.  A missing or
   malformed claim means the caller holds no permissions; that is a
   normal outcome, not an error.
2. The role's permission codes come from the permission cache service
   and are memoized in the request context, so one request resolves
   its permission set at most once.
3. Any failure while resolving (cache or store down, bad data) degrades
   to an empty permission set.  Deny is the safe default either way.

Code comparison is case-insensitive.
"""

import logging
import uuid
from collections.abc import Iterable

from app.rbac.permission_cache import PermissionCacheService
from app.rbac.request_context import RequestContext

logger = logging.getLogger("rbac.verification")

USER_PERMISSIONS_ITEM = "user_permissions"


class PermissionVerificationService:
    def __init__(
        self,
        permission_cache: PermissionCacheService,
        role_id_claim: str = "role_id",
        user_id_claim: str = "sub",
    ):
        self.permission_cache = permission_cache
        self.role_id_claim = role_id_claim
        self.user_id_claim = user_id_claim

    # ── Identity ─────────────────────────────────────────────────────

    def get_user_id(self, context: RequestContext | None) -> str | None:
        """User id for log attribution only; never used for decisions."""
        if context is None:
            return None
        user_id = context.claim(self.user_id_claim) or context.claim("user_id")
        return str(user_id) if user_id else None

    def get_role_id(self, context: RequestContext) -> uuid.UUID | None:
        raw = context.claim(self.role_id_claim)
        if raw is None:
            return None
        try:
            return uuid.UUID(str(raw))
        except ValueError:
            logger.warning("Ignoring malformed %s claim: %r", self.role_id_claim, raw)
            return None

    # ── Permission set ───────────────────────────────────────────────

    async def get_user_permissions(self, context: RequestContext) -> list[str]:
        """Resolve (once per request) the caller's active permission codes."""
        if context is None:
            raise ValueError("A request context is required")

        cached = context.items.get(USER_PERMISSIONS_ITEM)
        if cached is not None:
            return cached

        codes: list[str] = []
        if not context.is_authenticated:
            logger.warning("User is not authenticated")
        else:
            role_id = self.get_role_id(context)
            if role_id is None:
                logger.warning(
                    "No role claim for user %s, treating as no permissions",
                    self.get_user_id(context) or "unknown",
                )
            else:
                try:
                    permissions = await self.permission_cache.get_permissions_for_role(role_id)
                    codes = [p.code for p in permissions if p.is_active]
                except Exception:
                    logger.error(
                        "Error resolving permissions for role %s", role_id, exc_info=True
                    )
                    codes = []

        context.items[USER_PERMISSIONS_ITEM] = codes
        return codes

    async def _granted(self, context: RequestContext) -> set[str]:
        return {code.casefold() for code in await self.get_user_permissions(context)}

    # ── Checks ───────────────────────────────────────────────────────

    async def user_has_permission(self, context: RequestContext, permission_code: str) -> bool:
        if not permission_code or not permission_code.strip():
            raise ValueError("Permission code cannot be blank")

        granted = await self._granted(context)
        result = permission_code.casefold() in granted

        logger.info(
            "Permission check for user %s: %s = %s",
            self.get_user_id(context) or "unknown",
            permission_code,
            result,
        )
        return result

    async def user_has_any_permission(
        self, context: RequestContext, permission_codes: Iterable[str]
    ) -> bool:
        codes = _require_codes(permission_codes)
        granted = await self._granted(context)
        result = any(code.casefold() in granted for code in codes)

        logger.info(
            "Permission check for user %s: ANY of %s = %s",
            self.get_user_id(context) or "unknown",
            ", ".join(codes),
            result,
        )
        return result

    async def user_has_all_permissions(
        self, context: RequestContext, permission_codes: Iterable[str]
    ) -> bool:
        codes = _require_codes(permission_codes)
        granted = await self._granted(context)
        result = all(code.casefold() in granted for code in codes)

        logger.info(
            "Permission check for user %s: ALL of %s = %s",
            self.get_user_id(context) or "unknown",
            ", ".join(codes),
            result,
        )
        return result


def _require_codes(permission_codes: Iterable[str] | None) -> list[str]:
    if permission_codes is None:
        raise ValueError("Permission codes are required")
    if isinstance(permission_codes, str):
        permission_codes = [permission_codes]
    codes = list(permission_codes)
    if not codes:
        raise ValueError("At least one permission code is required")
    return codes
