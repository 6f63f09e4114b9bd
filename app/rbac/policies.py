"""
Permission policy factory & registry.

Policy names are deterministic: they are the lookup key shared by
route declarations and the registry:

    Permission:{code}
    Permission:Any:{code1}|{code2}|...
    Permission:All:{code1}|{code2}|...

Codes are joined with a literal `|`, in caller order, with no escaping;
codes must therefore never contain `|`.

Every policy built here requires an authenticated caller plus its
requirement(s).  Factories raise `PermissionConfigurationError` on
blank input, so a bad declaration fails at startup.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from app.rbac.requirements import (
    AuthorizationRequirement,
    PermissionConfigurationError,
    PermissionRequirement,
    PermissionRequirementType,
    normalize_codes,
)

logger = logging.getLogger("rbac.policies")

POLICY_PREFIX = "Permission:"
ANY_POLICY_PREFIX = "Permission:Any:"
ALL_POLICY_PREFIX = "Permission:All:"


@dataclass(frozen=True)
class AuthorizationPolicy:
    requirements: tuple[AuthorizationRequirement, ...]
    require_authenticated_user: bool = True


# ── Names ────────────────────────────────────────────────────────────


def single_policy_name(permission_code: str) -> str:
    (code,) = normalize_codes(permission_code)
    return f"{POLICY_PREFIX}{code}"


def any_policy_name(permission_codes: Iterable[str]) -> str:
    return ANY_POLICY_PREFIX + "|".join(normalize_codes(permission_codes))


def all_policy_name(permission_codes: Iterable[str]) -> str:
    return ALL_POLICY_PREFIX + "|".join(normalize_codes(permission_codes))


# ── Factory ──────────────────────────────────────────────────────────


def create_single_permission_policy(permission_code: str) -> tuple[str, AuthorizationPolicy]:
    if not isinstance(permission_code, str):
        raise PermissionConfigurationError("Permission code cannot be null or whitespace.")
    name = single_policy_name(permission_code)
    policy = AuthorizationPolicy(requirements=(PermissionRequirement(permission_code),))
    return name, policy


def create_any_permission_policy(*permission_codes: str) -> tuple[str, AuthorizationPolicy]:
    codes = normalize_codes(permission_codes)
    policy = AuthorizationPolicy(
        requirements=(PermissionRequirement(codes, PermissionRequirementType.ANY),)
    )
    return any_policy_name(codes), policy


def create_all_permissions_policy(*permission_codes: str) -> tuple[str, AuthorizationPolicy]:
    codes = normalize_codes(permission_codes)
    policy = AuthorizationPolicy(
        requirements=(PermissionRequirement(codes, PermissionRequirementType.ALL),)
    )
    return all_policy_name(codes), policy


def create_combined_policy(
    policy_name: str,
    requirements: Iterable[AuthorizationRequirement] | None,
) -> tuple[str, AuthorizationPolicy]:
    """Policy with an arbitrary name and several requirements (all must pass)."""
    if not policy_name or not policy_name.strip():
        raise PermissionConfigurationError("Policy name cannot be null or whitespace.")
    requirement_list = tuple(requirements or ())
    if not requirement_list:
        raise PermissionConfigurationError("At least one requirement is required.")
    return policy_name, AuthorizationPolicy(requirements=requirement_list)


# ── Registry ─────────────────────────────────────────────────────────


class PolicyRegistry:
    """
    Name → policy map, filled once at startup and then frozen.

    Re-registering an identical policy under the same name is a no-op
    (several routes may declare the same permission); a *different*
    policy under an existing name is a configuration error.
    """

    def __init__(self) -> None:
        self._policies: dict[str, AuthorizationPolicy] = {}
        self._frozen = False

    def add(self, name: str, policy: AuthorizationPolicy) -> None:
        existing = self._policies.get(name)
        if existing is not None:
            if existing != policy:
                raise PermissionConfigurationError(f"Conflicting policy registered as {name!r}")
            return
        if self._frozen:
            raise PermissionConfigurationError(
                f"Cannot register {name!r}: policy registry is frozen"
            )
        self._policies[name] = policy
        logger.debug("Registered policy %s", name)

    def register(self, built: tuple[str, AuthorizationPolicy]) -> str:
        name, policy = built
        self.add(name, policy)
        return name

    def get(self, name: str) -> AuthorizationPolicy | None:
        return self._policies.get(name)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: str) -> bool:
        return name in self._policies

    def __len__(self) -> int:
        return len(self._policies)

    def names(self) -> list[str]:
        return sorted(self._policies)
