from __future__ import annotations

import pytest

from app.rbac.attributes import HasAllPermissions, HasAnyPermission, HasPermission
from app.rbac.policies import (
    AuthorizationPolicy,
    PolicyRegistry,
    create_all_permissions_policy,
    create_any_permission_policy,
    create_combined_policy,
    create_single_permission_policy,
)
from app.rbac.requirements import (
    ClaimRequirement,
    PermissionConfigurationError,
    PermissionRequirement,
    PermissionRequirementType,
)


# ── Requirements ─────────────────────────────────────────────────────
def test_single_code_requirement_defaults_to_all() -> None:
    requirement = PermissionRequirement("user.create")

    assert requirement.permission_codes == ("user.create",)
    assert requirement.requirement_type == PermissionRequirementType.ALL


def test_multi_code_requirement_keeps_order_and_mode() -> None:
    requirement = PermissionRequirement(["user.update", "user.create"], PermissionRequirementType.ANY)

    assert requirement.permission_codes == ("user.update", "user.create")
    assert requirement.requirement_type == PermissionRequirementType.ANY


@pytest.mark.parametrize("bad", [None, "", "   ", [], (), ["user.create", " "]])
def test_requirement_rejects_blank_or_empty_codes(bad) -> None:
    with pytest.raises(PermissionConfigurationError):
        PermissionRequirement(bad)


def test_requirements_are_value_objects() -> None:
    assert PermissionRequirement("a") == PermissionRequirement(["a"], PermissionRequirementType.ALL)
    assert PermissionRequirement(["a", "b"]) != PermissionRequirement(
        ["a", "b"], PermissionRequirementType.ANY
    )
    with pytest.raises(AttributeError):
        PermissionRequirement("a").permission_codes = ("b",)


# ── Factory ──────────────────────────────────────────────────────────
def test_policy_names_follow_grammar() -> None:
    assert create_any_permission_policy("a", "b")[0] == "Permission:Any:a|b"
    assert create_all_permissions_policy("x")[0] == "Permission:All:x"
    assert create_single_permission_policy("x")[0] == "Permission:x"


def test_any_policy_name_keeps_caller_order() -> None:
    assert create_any_permission_policy("b", "a")[0] == "Permission:Any:b|a"


def test_built_policies_carry_one_permission_requirement() -> None:
    _, single = create_single_permission_policy("weighing.create")
    _, any_policy = create_any_permission_policy("c", "b")
    _, all_policy = create_all_permissions_policy("a", "b")

    assert single.require_authenticated_user
    assert single.requirements == (PermissionRequirement("weighing.create"),)
    assert any_policy.requirements == (
        PermissionRequirement(["c", "b"], PermissionRequirementType.ANY),
    )
    assert all_policy.requirements == (
        PermissionRequirement(["a", "b"], PermissionRequirementType.ALL),
    )


@pytest.mark.parametrize("bad", [None, "", "  "])
def test_single_policy_rejects_blank_code(bad) -> None:
    with pytest.raises(PermissionConfigurationError):
        create_single_permission_policy(bad)


def test_multi_code_policies_reject_empty_input() -> None:
    with pytest.raises(PermissionConfigurationError):
        create_any_permission_policy()
    with pytest.raises(PermissionConfigurationError):
        create_all_permissions_policy()
    with pytest.raises(PermissionConfigurationError):
        create_all_permissions_policy("ok", "")


def test_combined_policy_keeps_every_requirement() -> None:
    requirements = [PermissionRequirement("case.close"), ClaimRequirement("station_id")]

    name, policy = create_combined_policy("CloseCaseAtStation", requirements)

    assert name == "CloseCaseAtStation"
    assert policy.requirements == tuple(requirements)
    assert policy.require_authenticated_user


def test_combined_policy_validation() -> None:
    with pytest.raises(PermissionConfigurationError):
        create_combined_policy(" ", [PermissionRequirement("a")])
    with pytest.raises(PermissionConfigurationError):
        create_combined_policy("Named", [])
    with pytest.raises(PermissionConfigurationError):
        create_combined_policy("Named", None)


# ── Markers ──────────────────────────────────────────────────────────
def test_markers_resolve_to_factory_policy_names() -> None:
    assert HasPermission("user.create").policy_name == create_single_permission_policy("user.create")[0]
    assert HasAnyPermission("a", "b").policy_name == create_any_permission_policy("a", "b")[0]
    assert HasAllPermissions("a", "b").policy_name == create_all_permissions_policy("a", "b")[0]


def test_marker_build_matches_factory() -> None:
    assert HasAnyPermission("a", "b").build() == create_any_permission_policy("a", "b")
    assert HasAllPermissions("x").build() == create_all_permissions_policy("x")


@pytest.mark.parametrize(
    "make",
    [
        lambda: HasPermission(None),
        lambda: HasPermission("  "),
        lambda: HasAnyPermission(),
        lambda: HasAllPermissions(),
        lambda: HasAnyPermission("a", ""),
    ],
)
def test_markers_fail_fast_on_bad_codes(make) -> None:
    with pytest.raises(PermissionConfigurationError):
        make()


# ── Registry ─────────────────────────────────────────────────────────
def test_registry_is_idempotent_for_identical_policies() -> None:
    registry = PolicyRegistry()
    registry.register(create_single_permission_policy("a"))
    registry.register(create_single_permission_policy("a"))

    assert len(registry) == 1
    assert registry.get("Permission:a") == create_single_permission_policy("a")[1]


def test_registry_rejects_conflicting_policy_under_same_name() -> None:
    registry = PolicyRegistry()
    registry.register(create_single_permission_policy("a"))

    with pytest.raises(PermissionConfigurationError):
        registry.add("Permission:a", AuthorizationPolicy(requirements=(PermissionRequirement("b"),)))


def test_frozen_registry_refuses_new_policies() -> None:
    registry = PolicyRegistry()
    registry.register(create_single_permission_policy("a"))
    registry.freeze()

    registry.register(create_single_permission_policy("a"))
    with pytest.raises(PermissionConfigurationError):
        registry.register(create_single_permission_policy("b"))
    assert "Permission:b" not in registry
