from __future__ import annotations

import os
import uuid
from collections import Counter
from datetime import datetime, timezone

import pytest

os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("SEED_ON_STARTUP", "false")

from app.core.cache import MemoryCache
from app.schemas import PermissionRecord


def build_permission(code: str, category: str = "Weighing", is_active: bool = True) -> PermissionRecord:
    return PermissionRecord(
        id=uuid.uuid4(),
        code=code,
        name=code.replace(".", " ").title(),
        category=category,
        description=None,
        is_active=is_active,
        created_at=datetime(2025, 12, 9, tzinfo=timezone.utc),
    )


class FakePermissionStore:
    """In-memory `PermissionStore` that counts every call."""

    def __init__(self, permissions=(), role_grants=None) -> None:
        self.permissions: list[PermissionRecord] = list(permissions)
        self.role_grants: dict[uuid.UUID, list[str]] = dict(role_grants or {})
        self.calls: Counter[str] = Counter()
        self.fail_with: Exception | None = None

    def _hit(self, name: str) -> None:
        self.calls[name] += 1
        if self.fail_with is not None:
            raise self.fail_with

    @staticmethod
    def _ordered(permissions):
        return sorted(permissions, key=lambda p: (p.category, p.code))

    async def get_by_id(self, permission_id):
        self._hit("get_by_id")
        return next((p for p in self.permissions if p.id == permission_id), None)

    async def get_by_code(self, code):
        self._hit("get_by_code")
        return next((p for p in self.permissions if p.code == code), None)

    async def get_by_category(self, category):
        self._hit("get_by_category")
        return sorted((p for p in self.permissions if p.category == category), key=lambda p: p.code)

    async def get_all(self):
        self._hit("get_all")
        return self._ordered(self.permissions)

    async def get_all_active(self):
        self._hit("get_all_active")
        return self._ordered(p for p in self.permissions if p.is_active)

    async def get_for_role(self, role_id):
        self._hit("get_for_role")
        codes = set(self.role_grants.get(role_id, []))
        return self._ordered(p for p in self.permissions if p.code in codes)


class RecordingCache(MemoryCache):
    """MemoryCache that remembers writes and removals."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[tuple[str, int]] = []
        self.removed: list[str] = []

    async def set(self, key, value, ttl_seconds):
        self.writes.append((key, ttl_seconds))
        await super().set(key, value, ttl_seconds)

    async def remove(self, key):
        self.removed.append(key)
        await super().remove(key)


class BrokenCache:
    """Cache backend that is down: every call raises."""

    def __init__(self) -> None:
        self.calls = 0

    async def get(self, key):
        self.calls += 1
        raise ConnectionError("cache unavailable")

    async def set(self, key, value, ttl_seconds):
        self.calls += 1
        raise ConnectionError("cache unavailable")

    async def remove(self, key):
        self.calls += 1
        raise ConnectionError("cache unavailable")

    async def close(self):
        return None


@pytest.fixture()
def role_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def store(role_id) -> FakePermissionStore:
    permissions = [
        build_permission("weighing.create"),
        build_permission("weighing.read"),
        build_permission("weighing.approve", is_active=False),
        build_permission("user.create", category="User"),
        build_permission("system.view_config", category="System"),
    ]
    return FakePermissionStore(
        permissions,
        role_grants={role_id: ["weighing.create", "weighing.read", "weighing.approve"]},
    )


@pytest.fixture()
def cache() -> RecordingCache:
    return RecordingCache()
