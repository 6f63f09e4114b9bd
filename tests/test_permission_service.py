from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from app.models.permission import Permission
from app.models.role import Role
from app.rbac.permission_cache import PermissionCacheService
from app.services import permission_service
from conftest import FakePermissionStore, RecordingCache


def run(coro):
    return asyncio.run(coro)


class EventCache(RecordingCache):
    def __init__(self, events: list[str]) -> None:
        super().__init__()
        self.events = events

    async def remove(self, key):
        self.events.append(f"remove {key}")
        await super().remove(key)


class FakeResult:
    def __init__(self, row=None, rowcount=0) -> None:
        self._row = row
        self.rowcount = rowcount

    def scalar_one_or_none(self):
        return self._row

    def first(self):
        return self._row


class FakeSession:
    """Just enough of AsyncSession for the mutation paths; logs commits."""

    def __init__(self, events: list[str], rows=None, results=()) -> None:
        self.events = events
        self.rows = dict(rows or {})
        self.results = list(results)
        self.added: list = []
        self.deleted: list = []

    async def get(self, model, key):
        return self.rows.get((model, key))

    async def execute(self, statement):
        return self.results.pop(0) if self.results else FakeResult()

    def add(self, obj) -> None:
        self.added.append(obj)

    async def flush(self) -> None:
        for obj in self.added:
            if obj.created_at is None:
                obj.created_at = datetime.now(timezone.utc)

    async def delete(self, obj) -> None:
        self.deleted.append(obj)

    async def commit(self) -> None:
        self.events.append("commit")


def permission_row(code="weighing.create", category="Weighing", roles=(), is_active=True):
    return SimpleNamespace(
        id=uuid.uuid4(),
        code=code,
        name="Create Weighing",
        category=category,
        description=None,
        is_active=is_active,
        created_at=datetime(2025, 12, 9, tzinfo=timezone.utc),
        roles=[SimpleNamespace(id=r) for r in roles],
    )


@pytest.fixture()
def events() -> list[str]:
    return []


@pytest.fixture()
def permission_cache(events) -> PermissionCacheService:
    return PermissionCacheService(FakePermissionStore(), EventCache(events))


def test_create_commits_then_invalidates(events, permission_cache) -> None:
    db = FakeSession(events)

    record = run(
        permission_service.create_permission(
            code="yard.release",
            name="Release From Yard",
            category="Yard",
            description=None,
            is_active=True,
            db=db,
            permission_cache=permission_cache,
        )
    )

    assert record.code == "yard.release"
    assert isinstance(db.added[0], Permission)
    assert events == [
        "commit",
        "remove perm:code:yard.release",
        "remove perm:active:all",
        "remove perm:all",
        "remove perm:category:Yard",
    ]


def test_create_rejects_duplicate_code(events, permission_cache) -> None:
    db = FakeSession(events, results=[FakeResult(row=uuid.uuid4())])

    with pytest.raises(HTTPException) as exc:
        run(
            permission_service.create_permission(
                "weighing.create", "Create", "Weighing", None, True, db, permission_cache
            )
        )

    assert exc.value.status_code == 409
    assert events == []


def test_update_invalidates_old_and_new_category_and_holding_roles(events, permission_cache) -> None:
    holder = uuid.uuid4()
    row = permission_row(roles=[holder])
    db = FakeSession(events, rows={(Permission, row.id): row})

    record = run(
        permission_service.update_permission(
            row.id, db, permission_cache, category="Yard", is_active=False
        )
    )

    assert record.category == "Yard"
    assert record.is_active is False
    assert events == [
        "commit",
        "remove perm:code:weighing.create",
        "remove perm:active:all",
        "remove perm:all",
        "remove perm:category:Weighing",
        "remove perm:category:Yard",
        f"remove perm:role:{holder}",
    ]


def test_update_missing_permission_is_404(events, permission_cache) -> None:
    with pytest.raises(HTTPException) as exc:
        run(permission_service.update_permission(uuid.uuid4(), FakeSession(events), permission_cache))

    assert exc.value.status_code == 404


def test_delete_invalidates_holding_roles(events, permission_cache) -> None:
    holders = [uuid.uuid4(), uuid.uuid4()]
    row = permission_row(roles=holders)
    db = FakeSession(events, rows={(Permission, row.id): row})

    run(permission_service.delete_permission(row.id, db, permission_cache))

    assert db.deleted == [row]
    assert events[0] == "commit"
    assert events[-2:] == [f"remove perm:role:{h}" for h in holders]


def test_grant_commits_then_drops_role_entry(events, permission_cache) -> None:
    role_id = uuid.uuid4()
    row = permission_row()
    db = FakeSession(
        events,
        rows={(Role, role_id): SimpleNamespace(id=role_id), (Permission, row.id): row},
    )

    run(permission_service.grant_permission_to_role(role_id, row.id, db, permission_cache))

    assert events == ["commit", f"remove perm:role:{role_id}"]


def test_grant_refuses_inactive_permission(events, permission_cache) -> None:
    role_id = uuid.uuid4()
    row = permission_row(is_active=False)
    db = FakeSession(
        events,
        rows={(Role, role_id): SimpleNamespace(id=role_id), (Permission, row.id): row},
    )

    with pytest.raises(HTTPException) as exc:
        run(permission_service.grant_permission_to_role(role_id, row.id, db, permission_cache))

    assert exc.value.status_code == 400
    assert events == []


def test_grant_refuses_duplicate(events, permission_cache) -> None:
    role_id = uuid.uuid4()
    row = permission_row()
    db = FakeSession(
        events,
        rows={(Role, role_id): SimpleNamespace(id=role_id), (Permission, row.id): row},
        results=[FakeResult(row=(role_id,))],
    )

    with pytest.raises(HTTPException) as exc:
        run(permission_service.grant_permission_to_role(role_id, row.id, db, permission_cache))

    assert exc.value.status_code == 409


def test_grant_to_unknown_role_is_404(events, permission_cache) -> None:
    with pytest.raises(HTTPException) as exc:
        run(
            permission_service.grant_permission_to_role(
                uuid.uuid4(), uuid.uuid4(), FakeSession(events), permission_cache
            )
        )

    assert exc.value.status_code == 404


def test_revoke(events, permission_cache) -> None:
    role_id = uuid.uuid4()
    db = FakeSession(events, results=[FakeResult(rowcount=1)])

    run(permission_service.revoke_permission_from_role(role_id, uuid.uuid4(), db, permission_cache))

    assert events == ["commit", f"remove perm:role:{role_id}"]


def test_revoke_missing_grant_is_404(events, permission_cache) -> None:
    db = FakeSession(events, results=[FakeResult(rowcount=0)])

    with pytest.raises(HTTPException) as exc:
        run(
            permission_service.revoke_permission_from_role(
                uuid.uuid4(), uuid.uuid4(), db, permission_cache
            )
        )

    assert exc.value.status_code == 404
    assert events == []
