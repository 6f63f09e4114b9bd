"""
RBAC dependencies — wiring the authorization engine into FastAPI.

`require_policy` is a *dependency factory*: give it a permission marker
(or a registered policy name) and it returns a FastAPI dependency that
will:

1. Build the request's `RequestContext` from the bearer token claims.
2. Look up the declared policy in the app's `PolicyRegistry`.
3. Evaluate it through `AuthorizationService` (cache-first permission
   resolution, memoized per request).
4. Return 401 for anonymous callers and 403 for every other denial,
   with NO details about which permissions are missing (prevents
   enumeration) and no difference between a true negative and an
   internal fault.

Usage in a route:
    @router.get("/items", dependencies=[Depends(require_policy(HasPermission("item.read")))])
    async def list_items(...): ...

Or inject the caller's context:
    @router.get("/me")
    async def me(context: RequestContext = Depends(require_policy(HasPermission("item.read")))): ...

Policies are registered once, at app creation: `build_policy_registry`
pre-registers the default policies plus one policy per marker ever passed
to `require_policy`, then freezes the registry.  Markers declared after
that (a router imported late) resolve to 403 and log an error.
"""

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import DistributedCache
from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_token_claims
from app.rbac.attributes import PermissionAttribute
from app.rbac.handlers import (
    AuthorizationResult,
    AuthorizationService,
    ClaimRequirementHandler,
    PermissionRequirementHandler,
)
from app.rbac.permission_cache import PermissionCacheService
from app.rbac.permission_store import PermissionStore, SqlAlchemyPermissionStore
from app.rbac.policies import PolicyRegistry, create_single_permission_policy
from app.rbac.request_context import RequestContext
from app.rbac.requirements import PermissionConfigurationError
from app.rbac.verification import PermissionVerificationService

logger = logging.getLogger("rbac")

# Single-permission policies always available, whether or not a route
# declares them.
DEFAULT_POLICY_CODES = (
    "system.view_config",
    "system.manage_roles",
    "user.create",
    "user.update",
    "user.delete",
    "system.audit_logs",
)


# ── Per-request context ──────────────────────────────────────────────


async def get_request_context(
    request: Request,
    claims: dict[str, Any] | None = Depends(get_token_claims),
) -> RequestContext:
    """One context per request, shared by every dependency that asks."""
    context = getattr(request.state, "authz_context", None)
    if context is None:
        context = RequestContext.from_claims(claims)
        request.state.authz_context = context
    return context


async def require_authenticated_user(
    context: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Authentication only, no permission check."""
    if not context.is_authenticated:
        raise _unauthenticated()
    return context


# ── Service wiring ───────────────────────────────────────────────────


def get_distributed_cache(request: Request) -> DistributedCache:
    return request.app.state.permission_cache_backend


def get_policy_registry(request: Request) -> PolicyRegistry:
    return request.app.state.policy_registry


async def get_permission_store(db: AsyncSession = Depends(get_db)) -> PermissionStore:
    return SqlAlchemyPermissionStore(db)


async def get_permission_cache_service(
    store: PermissionStore = Depends(get_permission_store),
    cache: DistributedCache = Depends(get_distributed_cache),
) -> PermissionCacheService:
    return PermissionCacheService(store, cache, settings.PERMISSION_CACHE_TTL_SECONDS)


async def get_verification_service(
    permission_cache: PermissionCacheService = Depends(get_permission_cache_service),
) -> PermissionVerificationService:
    return PermissionVerificationService(
        permission_cache,
        role_id_claim=settings.ROLE_ID_CLAIM,
        user_id_claim=settings.USER_ID_CLAIM,
    )


async def get_authorization_service(
    verification: PermissionVerificationService = Depends(get_verification_service),
) -> AuthorizationService:
    return AuthorizationService(
        [PermissionRequirementHandler(verification), ClaimRequirementHandler()]
    )


# ── Route protection ─────────────────────────────────────────────────


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden() -> HTTPException:
    # Intentionally vague: do NOT reveal which codes are missing
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


class require_policy:
    """
    Dependency factory.

    Can be used as:
        Depends(require_policy(HasPermission("user.read")))
        Depends(require_policy(HasAnyPermission("user.create", "user.update")))
        Depends(require_policy("Permission:user.read"))   # already-registered name
    """

    def __init__(self, declaration: PermissionAttribute | str):
        if isinstance(declaration, PermissionAttribute):
            self.declaration: PermissionAttribute | None = declaration
            _declared_markers.append(declaration)
            self.policy_name = declaration.policy_name
        elif isinstance(declaration, str) and declaration.strip():
            self.declaration = None
            self.policy_name = declaration
        else:
            raise PermissionConfigurationError("A permission marker or policy name is required.")

    async def __call__(
        self,
        request: Request,
        context: RequestContext = Depends(get_request_context),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> RequestContext:
        policy = get_policy_registry(request).get(self.policy_name)
        if policy is None:
            logger.error("Authorization policy %s is not registered", self.policy_name)
            raise _forbidden()

        result = await authorization.authorize(context, policy)
        if result == AuthorizationResult.SUCCEEDED:
            return context

        if not context.is_authenticated:
            raise _unauthenticated()
        raise _forbidden()

    def __repr__(self) -> str:
        return f"<require_policy {self.policy_name}>"


# ── Startup registration pass ────────────────────────────────────────

# Every marker handed to `require_policy`, in declaration order.  Route
# modules are imported before the app factory builds the registry, so
# this list is complete by then regardless of how routers are mounted.
_declared_markers: list[PermissionAttribute] = []


def register_declared_policies(registry: PolicyRegistry) -> int:
    """Register a policy for every marker declared through `require_policy`."""
    for marker in _declared_markers:
        registry.register(marker.build())
    return len(_declared_markers)


def build_policy_registry(app: FastAPI) -> PolicyRegistry:
    registry = PolicyRegistry()
    for code in DEFAULT_POLICY_CODES:
        registry.register(create_single_permission_policy(code))

    declared = register_declared_policies(registry)
    registry.freeze()
    logger.info(
        "Registered %d authorization policies for %s (%d route declarations)",
        len(registry),
        app.title,
        declared,
    )
    return registry
