"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.permission import Permission
from app.models.role import Role, role_permissions

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Permission",
    "Role",
    "role_permissions",
]
