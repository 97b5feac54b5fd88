import json
from contextlib import asynccontextmanager
from dataclasses import replace

import pytest

from shared.migrations.runner import VERSIONS_DIR, MigrationRunner
from shared.repositories.audit_log import AuditLogRepository
from tests.fakes import GROUP_ID, T0, make_entry


class FakeConnection:
    def __init__(self, status="INSERT 0 1", rows=None):
        self.status = status
        self.rows = rows or []
        self.executed: list[tuple[str, tuple]] = []

    async def execute(self, sql, *args):
        self.executed.append((sql, args))
        return self.status

    async def fetch(self, sql, *args):
        self.executed.append((sql, args))
        return self.rows

    async def fetchval(self, sql, *args):
        self.executed.append((sql, args))
        return len(self.rows)

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self, timeout=None):
        yield self.conn


@pytest.mark.parametrize(("status", "inserted"), [("INSERT 0 1", True), ("INSERT 0 0", False)])
async def test_insert_reports_whether_row_was_new(status, inserted):
    conn = FakeConnection(status=status)
    entry = make_entry("gaud_1")

    assert await AuditLogRepository(FakePool(conn)).insert(entry) is inserted

    sql, args = conn.executed[0]
    assert "ON CONFLICT (id) DO NOTHING" in sql
    assert args[0] == "gaud_1"
    assert json.loads(args[-1]) == {}


async def test_rows_decode_to_entries():
    row = {
        "id": "gaud_1",
        "created_at": T0,
        "group_id": GROUP_ID,
        "actor_id": "usr_a",
        "actor_display_name": "Alice",
        "target_id": "usr_t",
        "event_type": "group.user.ban",
        "description": None,
        "data": '{"reason": "spam"}',
    }
    conn = FakeConnection(rows=[row])

    entries = await AuditLogRepository(FakePool(conn)).query_since(None)

    assert entries == [replace(make_entry("gaud_1", actor_display_name="Alice"), description="")]
    assert entries[0].data == {"reason": "spam"}
    assert entries[0].description == ""


async def test_migrations_apply_pending_versions_once():
    conn = FakeConnection(rows=[])
    runner = MigrationRunner(FakePool(conn))

    applied = await runner.run_pending()

    expected = sorted(p.stem for p in VERSIONS_DIR.glob("*.sql"))
    assert applied == expected
    assert "000_audit_logs" in applied

    conn.rows = [{"version": v} for v in expected]
    assert await runner.run_pending() == []
