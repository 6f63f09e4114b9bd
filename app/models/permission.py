from __future__ import annotations

"""
Permission model.

Permissions are *stable codes* that map to a single capability in the
system (e.g. `weighing.create`).  They are seeded at deploy time,
grouped by `category`, and referenced by role ↔ permission
associations, never checked by role name in endpoint logic.

Inactive permissions stay in the table (history, audit) but are
excluded from "active" queries and from grant eligibility.
"""

from sqlalchemy import Boolean, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from typing import TYPE_CHECKING

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from app.models.role import Role


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "permissions"

    code: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    category: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=true(),
        nullable=False,
    )

    # ── Relationships ────────────────────────────────────────────────
    roles: Mapped[list["Role"]] = relationship(  # noqa: F821
        secondary="role_permissions",
        back_populates="permissions",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Permission {self.code}>"
