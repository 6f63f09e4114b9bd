"""
Declarative permission markers for route handlers.

    @router.get("/", dependencies=[Depends(require_policy(HasPermission("user.read")))])
    @router.post("/", dependencies=[Depends(require_policy(HasAnyPermission("user.create", "system.admin")))])
    @router.post("/{id}/approve", dependencies=[Depends(require_policy(HasAllPermissions("weighing.approve", "weighing.override")))])

A marker only validates its arguments and computes the policy name,
using the same helpers as the policy factory, so a marker and a
factory call for the same codes always resolve to the same registered
policy.  The startup registration pass (`register_route_policies`)
turns each marker into a registered policy via `build()`.
"""

from app.rbac.policies import (
    AuthorizationPolicy,
    all_policy_name,
    any_policy_name,
    create_all_permissions_policy,
    create_any_permission_policy,
    create_single_permission_policy,
    single_policy_name,
)
from app.rbac.requirements import PermissionConfigurationError, normalize_codes


class PermissionAttribute:
    policy_name: str

    def build(self) -> tuple[str, AuthorizationPolicy]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.policy_name}>"


class HasPermission(PermissionAttribute):
    """Caller must hold this one permission."""

    def __init__(self, permission_code: str):
        if not isinstance(permission_code, str):
            raise PermissionConfigurationError("Permission code cannot be null or whitespace.")
        self.permission_code = permission_code
        self.policy_name = single_policy_name(permission_code)

    def build(self) -> tuple[str, AuthorizationPolicy]:
        return create_single_permission_policy(self.permission_code)


class HasAnyPermission(PermissionAttribute):
    """Caller must hold at least one of these permissions (OR)."""

    def __init__(self, *permission_codes: str):
        self.permission_codes = normalize_codes(permission_codes)
        self.policy_name = any_policy_name(self.permission_codes)

    def build(self) -> tuple[str, AuthorizationPolicy]:
        return create_any_permission_policy(*self.permission_codes)


class HasAllPermissions(PermissionAttribute):
    """Caller must hold every one of these permissions (AND)."""

    def __init__(self, *permission_codes: str):
        self.permission_codes = normalize_codes(permission_codes)
        self.policy_name = all_policy_name(self.permission_codes)

    def build(self) -> tuple[str, AuthorizationPolicy]:
        return create_all_permissions_policy(*self.permission_codes)
