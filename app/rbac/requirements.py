"""
Authorization requirements — the data a policy checks.

`PermissionRequirement` holds a non-empty, ordered tuple of permission
codes plus an AND / OR mode.  A single code defaults to `ALL`, which
is the same as requiring that one code.

Requirements are immutable value objects; constructing one with no
codes or a blank code raises `PermissionConfigurationError`.  That
happens while policies are registered at startup, never per request.
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass


class PermissionConfigurationError(ValueError):
    """Static authorization misconfiguration (blank codes, bad policy names…)."""


class PermissionRequirementType(str, enum.Enum):
    ALL = "All"
    ANY = "Any"


class AuthorizationRequirement:
    """Marker base — every requirement a policy can carry derives from this."""


def normalize_codes(permission_codes: str | Iterable[str] | None) -> tuple[str, ...]:
    """Validate and freeze one code or a collection of codes."""
    if permission_codes is None:
        raise PermissionConfigurationError("At least one permission code is required.")
    if isinstance(permission_codes, str):
        permission_codes = (permission_codes,)
    codes = tuple(permission_codes)
    if not codes:
        raise PermissionConfigurationError("At least one permission code is required.")
    for code in codes:
        if not isinstance(code, str) or not code.strip():
            raise PermissionConfigurationError("Permission code cannot be null or whitespace.")
    return codes


@dataclass(frozen=True, init=False)
class PermissionRequirement(AuthorizationRequirement):
    permission_codes: tuple[str, ...]
    requirement_type: PermissionRequirementType

    def __init__(
        self,
        permission_codes: str | Iterable[str],
        requirement_type: PermissionRequirementType = PermissionRequirementType.ALL,
    ):
        object.__setattr__(self, "permission_codes", normalize_codes(permission_codes))
        object.__setattr__(self, "requirement_type", requirement_type)


@dataclass(frozen=True)
class ClaimRequirement(AuthorizationRequirement):
    """
    Caller must carry `claim_type`, optionally with one of `allowed_values`.

    Used to compose permission checks with other rules in a combined policy.
    """

    claim_type: str
    allowed_values: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.claim_type or not self.claim_type.strip():
            raise PermissionConfigurationError("Claim type cannot be null or whitespace.")
        object.__setattr__(self, "allowed_values", tuple(self.allowed_values))
