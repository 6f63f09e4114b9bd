from __future__ import annotations

"""
Role model & the role ↔ permission association table.

`role_permissions` keeps one extra column (`assigned_at`) besides the
composite key, so it stays a plain association table; SQLAlchemy
`secondary` still handles it transparently and the column default
fills in on insert.

Any write to `role_permissions` must be followed by invalidating the
role's cached permission set (`perm:role:{role_id}`).
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from typing import TYPE_CHECKING

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from app.models.permission import Permission

# ── Association table ────────────────────────────────────────────────
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "assigned_at",
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    ),
)


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    permissions: Mapped[list["Permission"]] = relationship(  # noqa: F821
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
