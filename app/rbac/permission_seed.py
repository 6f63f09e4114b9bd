"""
Permission & Role seeding script.

Run this once against a live database to populate the permission
catalogue and the built-in roles.  It is IDEMPOTENT and safe to re-run:
missing permissions are added, missing role ↔ permission links are
added, nothing is removed.

Role shape:
    • SYSTEM_ADMIN holds every permission
    • ADMIN holds everything except system.*
    • The operational roles hold hand-picked subsets

Usage:
    python -m app.rbac.permission_seed
"""

import asyncio
import logging
import uuid

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models.base import Base
from app.models.permission import Permission
from app.models.role import Role, role_permissions

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# 1.  CANONICAL PERMISSION LIST   (code, name, category, description)
# ────────────────────────────────────────────────────────────────────
PERMISSIONS: list[tuple[str, str, str, str]] = [
    # Weighing
    ("weighing.create", "Create Weighing", "Weighing", "Create new weighing records"),
    ("weighing.read", "Read All Weighing", "Weighing", "Read all weighing records"),
    ("weighing.read_own", "Read Own Weighing", "Weighing", "Read own weighing records only"),
    ("weighing.update", "Update Weighing", "Weighing", "Update existing weighing records"),
    ("weighing.approve", "Approve Weighing", "Weighing", "Approve weighing records"),
    ("weighing.override", "Override Weighing", "Weighing", "Override weighing validations and rules"),
    ("weighing.send_to_yard", "Send to Yard", "Weighing", "Send weighing to yard"),
    ("weighing.scale_test", "Scale Test", "Weighing", "Perform scale calibration and testing"),
    ("weighing.export", "Export Weighing", "Weighing", "Export weighing data"),
    ("weighing.delete", "Delete Weighing", "Weighing", "Delete weighing records"),
    ("weighing.audit", "Audit Weighing", "Weighing", "View weighing audit logs"),
    # Case
    ("case.create", "Create Case", "Case", "Create new cases"),
    ("case.read", "Read All Cases", "Case", "Read all cases"),
    ("case.read_own", "Read Own Cases", "Case", "Read own cases only"),
    ("case.update", "Update Case", "Case", "Update case details"),
    ("case.assign", "Assign Case", "Case", "Assign cases to users"),
    ("case.close", "Close Case", "Case", "Close cases"),
    ("case.escalate", "Escalate Case", "Case", "Escalate cases to higher level"),
    ("case.closure_review", "Review Closure", "Case", "Review case closures"),
    ("case.court_hearing", "Court Hearing", "Case", "Schedule and manage court hearings"),
    ("case.export", "Export Cases", "Case", "Export case data"),
    ("case.audit", "Audit Cases", "Case", "View case audit logs"),
    # Prosecution
    ("prosecution.create", "Create Prosecution", "Prosecution", "Create prosecution records"),
    ("prosecution.read", "Read All Prosecutions", "Prosecution", "Read all prosecutions"),
    ("prosecution.read_own", "Read Own Prosecutions", "Prosecution", "Read own prosecutions only"),
    ("prosecution.update", "Update Prosecution", "Prosecution", "Update prosecution records"),
    ("prosecution.compute_charges", "Compute Charges", "Prosecution", "Calculate prosecution charges"),
    ("prosecution.export", "Export Prosecutions", "Prosecution", "Export prosecution data"),
    ("prosecution.audit", "Audit Prosecutions", "Prosecution", "View prosecution audit logs"),
    # User
    ("user.create", "Create User", "User", "Create new users"),
    ("user.read", "Read All Users", "User", "Read all user records"),
    ("user.read_own", "Read Own User", "User", "Read own user record only"),
    ("user.update", "Update User", "User", "Update user details"),
    ("user.delete", "Delete User", "User", "Delete user accounts"),
    ("user.assign_roles", "Assign Roles", "User", "Assign roles to users"),
    ("user.manage_permissions", "Manage Permissions", "User", "Manage user permissions"),
    ("user.manage_shifts", "Manage Shifts", "User", "Assign and manage user shifts"),
    ("user.audit", "Audit Users", "User", "View user audit logs"),
    # Station
    ("station.read", "Read All Stations", "Station", "Read all station records"),
    ("station.read_own", "Read Own Station", "Station", "Read own station record only"),
    ("station.create", "Create Station", "Station", "Create new stations"),
    ("station.update", "Update Station", "Station", "Update station details"),
    ("station.delete", "Delete Station", "Station", "Delete stations"),
    ("station.manage_staff", "Manage Staff", "Station", "Assign and manage station staff"),
    ("station.manage_devices", "Manage Devices", "Station", "Manage station devices (scales, cameras)"),
    ("station.audit", "Audit Stations", "Station", "View station audit logs"),
    # Configuration
    ("config.read", "Read Configuration", "Configuration", "Read system configurations"),
    ("config.manage_axle", "Manage Axle", "Configuration", "Configure axle types and references"),
    ("config.manage_fees", "Manage Fees", "Configuration", "Configure fee schedules"),
    ("config.audit", "Audit Configuration", "Configuration", "View configuration change audit logs"),
    # Analytics
    ("analytics.read", "Read Analytics", "Analytics", "Read analytics and reports"),
    ("analytics.read_own", "Read Own Analytics", "Analytics", "Read own analytics only"),
    ("analytics.export", "Export Analytics", "Analytics", "Export analytics data"),
    ("analytics.audit", "Audit Analytics", "Analytics", "View analytics access audit logs"),
    # System
    ("system.admin", "System Admin", "System", "Full system administration access"),
    ("system.view_config", "View Configuration", "System", "View permissions and system configuration"),
    ("system.manage_roles", "Manage Roles", "System", "Grant and revoke role permissions"),
    ("system.audit_logs", "Audit Logs", "System", "View and manage audit logs"),
    ("system.cache_management", "Cache Management", "System", "Manage system cache"),
    ("system.security_policy", "Security Policy", "System", "Manage security policies and configurations"),
]

ALL_CODES = [p[0] for p in PERMISSIONS]

# ────────────────────────────────────────────────────────────────────
# 2.  ROLE → PERMISSION MAPPING
# ────────────────────────────────────────────────────────────────────
ROLE_PERMISSIONS: dict[str, list[str]] = {
    "SYSTEM_ADMIN": ALL_CODES,
    "ADMIN": [c for c in ALL_CODES if not c.startswith("system.")],
    "STATION_MANAGER": [
        "weighing.create", "weighing.read", "weighing.read_own", "weighing.update",
        "weighing.scale_test", "weighing.export", "weighing.audit",
        "case.create", "case.read", "case.read_own", "case.update", "case.assign",
        "case.export", "case.audit",
        "prosecution.read", "prosecution.read_own", "prosecution.export", "prosecution.audit",
        "user.read", "user.read_own", "user.audit",
        "station.read", "station.read_own", "station.update", "station.manage_staff",
        "station.manage_devices", "station.audit",
        "config.read",
        "analytics.read", "analytics.read_own", "analytics.export", "analytics.audit",
    ],
    "PROSECUTOR": [
        "weighing.read", "weighing.read_own", "weighing.export", "weighing.audit",
        "case.read", "case.read_own", "case.update", "case.assign", "case.escalate",
        "case.closure_review", "case.court_hearing", "case.export", "case.audit",
        "prosecution.create", "prosecution.read", "prosecution.read_own", "prosecution.update",
        "prosecution.compute_charges", "prosecution.export", "prosecution.audit",
        "user.read", "user.read_own", "user.audit",
        "analytics.read", "analytics.read_own", "analytics.export", "analytics.audit",
    ],
    "SCALE_OPERATOR": [
        "weighing.create", "weighing.read_own", "weighing.scale_test", "weighing.audit",
    ],
    "INSPECTOR": [
        "weighing.read", "weighing.read_own", "weighing.export", "weighing.audit",
        "case.read", "case.read_own", "case.assign", "case.export", "case.audit",
        "prosecution.read", "prosecution.read_own", "prosecution.export", "prosecution.audit",
        "user.read", "user.read_own", "user.audit",
        "analytics.read", "analytics.read_own", "analytics.export", "analytics.audit",
    ],
}


# ────────────────────────────────────────────────────────────────────
# 3.  SEED FUNCTION (idempotent)
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession) -> list[uuid.UUID]:
    """
    Create missing permissions, roles and role ↔ permission links.

    Returns the ids of roles whose permission set changed, so the
    caller can invalidate their cached permission sets.
    """

    # ── Permissions ──────────────────────────────────────────────────
    existing_perms = (await session.execute(select(Permission))).scalars().all()
    code_to_perm: dict[str, Permission] = {p.code: p for p in existing_perms}

    for code, name, category, description in PERMISSIONS:
        if code not in code_to_perm:
            perm = Permission(
                id=uuid.uuid4(),
                code=code,
                name=name,
                category=category,
                description=description,
            )
            session.add(perm)
            code_to_perm[code] = perm

    await session.flush()  # ensure IDs are available

    # ── Roles ────────────────────────────────────────────────────────
    existing_roles = (await session.execute(select(Role))).scalars().all()
    name_to_role: dict[str, Role] = {r.name: r for r in existing_roles}

    for role_name in ROLE_PERMISSIONS:
        if role_name not in name_to_role:
            role = Role(
                id=uuid.uuid4(),
                name=role_name,
                description=f"Built-in {role_name} role",
            )
            session.add(role)
            name_to_role[role_name] = role

    await session.flush()

    # ── Role ↔ permission links ──────────────────────────────────────
    existing_links = {
        (row.role_id, row.permission_id)
        for row in (await session.execute(select(role_permissions))).all()
    }

    changed_roles: list[uuid.UUID] = []
    for role_name, perm_codes in ROLE_PERMISSIONS.items():
        role = name_to_role[role_name]
        missing = [
            {"role_id": role.id, "permission_id": code_to_perm[code].id}
            for code in perm_codes
            if code in code_to_perm and (role.id, code_to_perm[code].id) not in existing_links
        ]
        if missing:
            await session.execute(insert(role_permissions), missing)
            changed_roles.append(role.id)

    await session.commit()
    logger.info(
        "Seeded %d permissions across %d roles (%d roles updated)",
        len(code_to_perm),
        len(name_to_role),
        len(changed_roles),
    )
    return changed_roles


# ────────────────────────────────────────────────────────────────────
# 4.  CLI entrypoint:  python -m app.rbac.permission_seed
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    async with async_session() as session:
        await seed(session)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
