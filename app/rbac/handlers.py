"""
Authorization handlers — the runtime decision point.

Each handler turns (request context, requirement) into one of two
terminal results: SUCCEEDED or FAILED.  There is no third outcome.

Fail-closed rules enforced here:
- no request context            → FAILED
- unauthenticated caller        → FAILED
- unknown requirement mode      → FAILED (logged as an error)
- ANY exception while deciding  → FAILED (logged with caller id)

Only `Exception` is caught: `asyncio.CancelledError` propagates so a
cancelled request never resolves to a decision.

`AuthorizationService` evaluates a whole policy: the authenticated-user
precondition first, then every requirement through the handler
registered for its type.  All must succeed.
"""

import enum
import logging
from typing import Protocol

from app.rbac.policies import AuthorizationPolicy
from app.rbac.request_context import RequestContext
from app.rbac.requirements import (
    AuthorizationRequirement,
    ClaimRequirement,
    PermissionRequirement,
    PermissionRequirementType,
)
from app.rbac.verification import PermissionVerificationService

logger = logging.getLogger("rbac.handler")


class AuthorizationResult(str, enum.Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class RequirementHandler(Protocol):
    requirement_type: type[AuthorizationRequirement]

    async def handle(
        self, context: RequestContext | None, requirement: AuthorizationRequirement
    ) -> AuthorizationResult: ...


class PermissionRequirementHandler:
    requirement_type = PermissionRequirement

    def __init__(self, verification: PermissionVerificationService):
        self.verification = verification

    async def handle(
        self, context: RequestContext | None, requirement: PermissionRequirement
    ) -> AuthorizationResult:
        user_id = "unknown"
        try:
            if context is None:
                logger.warning("No request context available for permission verification")
                return AuthorizationResult.FAILED

            if not context.is_authenticated:
                logger.warning("Unauthenticated user attempting to access protected resource")
                return AuthorizationResult.FAILED

            user_id = self.verification.get_user_id(context) or "unknown"
            codes = requirement.permission_codes

            if requirement.requirement_type == PermissionRequirementType.ALL:
                allowed = await self.verification.user_has_all_permissions(context, codes)
            elif requirement.requirement_type == PermissionRequirementType.ANY:
                allowed = await self.verification.user_has_any_permission(context, codes)
            else:
                logger.error(
                    "Unknown requirement type %r for user %s",
                    requirement.requirement_type,
                    user_id,
                )
                return AuthorizationResult.FAILED

            if allowed:
                logger.info("User %s authorized for permissions: %s", user_id, ", ".join(codes))
                return AuthorizationResult.SUCCEEDED

            logger.warning(
                "User %s denied access. Required permissions: %s, Type: %s",
                user_id,
                ", ".join(codes),
                requirement.requirement_type.value,
            )
            return AuthorizationResult.FAILED
        except Exception:
            logger.error(
                "Error during permission verification for user %s (requirement: %s)",
                user_id,
                requirement,
                exc_info=True,
            )
            return AuthorizationResult.FAILED


class ClaimRequirementHandler:
    requirement_type = ClaimRequirement

    async def handle(
        self, context: RequestContext | None, requirement: ClaimRequirement
    ) -> AuthorizationResult:
        if context is None or not context.is_authenticated:
            return AuthorizationResult.FAILED
        value = context.claim(requirement.claim_type)
        if value is None:
            return AuthorizationResult.FAILED
        if requirement.allowed_values:
            values = value if isinstance(value, list) else [value]
            if not any(str(v) in requirement.allowed_values for v in values):
                return AuthorizationResult.FAILED
        return AuthorizationResult.SUCCEEDED


class AuthorizationService:
    def __init__(self, handlers: list[RequirementHandler]):
        self._handlers = {h.requirement_type: h for h in handlers}

    def _handler_for(self, requirement: AuthorizationRequirement) -> RequirementHandler | None:
        for cls in type(requirement).__mro__:
            handler = self._handlers.get(cls)
            if handler is not None:
                return handler
        return None

    async def authorize(
        self, context: RequestContext | None, policy: AuthorizationPolicy
    ) -> AuthorizationResult:
        try:
            if policy.require_authenticated_user and (
                context is None or not context.is_authenticated
            ):
                return AuthorizationResult.FAILED

            for requirement in policy.requirements:
                handler = self._handler_for(requirement)
                if handler is None:
                    logger.error("No handler registered for %s", type(requirement).__name__)
                    return AuthorizationResult.FAILED
                if await handler.handle(context, requirement) != AuthorizationResult.SUCCEEDED:
                    return AuthorizationResult.FAILED
            return AuthorizationResult.SUCCEEDED
        except Exception:
            logger.error("Error while evaluating authorization policy", exc_info=True)
            return AuthorizationResult.FAILED
