import os

import psycopg
import pytest

from support_triage.schema import apply_migrations


class _Cursor:
    def __init__(self, conn):
        self._conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params=None):
        self._conn.statements.append(" ".join(str(statement).split()))

    def fetchall(self):
        return [(migration_id,) for migration_id in self._conn.applied]


class _RecordingConnection:
    """Collects the SQL a migration run would send to PostgreSQL."""

    def __init__(self, applied=()):
        self.applied = list(applied)
        self.statements = []
        self.commits = 0

    def cursor(self):
        return _Cursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):  # pragma: no cover - only on failure
        pass


def test_apply_migrations_creates_triage_tables():
    conn = _RecordingConnection()
    assert apply_migrations(conn) == ["001_create_triage_tables"]

    sql = "\n".join(conn.statements)
    for table in (
        "support_threads",
        "support_messages",
        "thread_events",
        "draft_generations",
        "human_observations",
        "kb_chunks",
    ):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql
    assert "REFERENCES support_threads (id) ON DELETE CASCADE" in sql
    assert "ADD COLUMN embedding vector(384)" in sql
    assert "lower(sender)" in sql
    assert "ix_human_observations_active ON human_observations (thread_id) WHERE ended_at IS NULL" in sql
    assert conn.statements[-1].startswith("INSERT INTO triage_migrations")


def test_applied_migrations_are_skipped():
    conn = _RecordingConnection(applied=["001_create_triage_tables"])
    assert apply_migrations(conn) == []
    assert not any("support_threads" in statement for statement in conn.statements)


@pytest.mark.integration
def test_migrations_against_postgres():
    url = os.getenv("TRIAGE_TEST_DATABASE_URL")
    if not url:
        pytest.skip("TRIAGE_TEST_DATABASE_URL not set")
    with psycopg.connect(url) as conn:
        apply_migrations(conn)
        assert apply_migrations(conn) == []
