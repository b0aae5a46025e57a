"""Apply the triage schema migrations to a PostgreSQL database.

Migration modules under ``support_triage/migrations`` are written against
Alembic's ``op`` API. They are run here in filename order through a small
psycopg-backed stand-in for ``op``, and recorded in ``triage_migrations`` so
that each one is applied once.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

import psycopg
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class _PsycopgOperations:
    """The subset of Alembic's ``op`` helpers used by the triage migrations."""

    def __init__(self, conn: psycopg.Connection):
        self._conn = conn
        self._dialect = postgresql.dialect()
        self._preparer = self._dialect.identifier_preparer
        # Every table created in this run; foreign keys resolve against it.
        self._metadata = sa.MetaData()

    def create_table(self, name: str, *columns: Any, **kwargs: Any) -> None:
        table = sa.Table(name, self._metadata, *columns, **kwargs)
        self._execute_ddl(sa.schema.CreateTable(table, if_not_exists=True))

    def drop_table(self, name: str) -> None:
        table = sa.Table(name, self._metadata)
        self._execute_ddl(sa.schema.DropTable(table, if_exists=True))

    def create_index(
        self,
        name: str,
        table_name: str,
        columns: Sequence[Any],
        *,
        unique: bool = False,
        postgresql_where: Any = None,
        **_: Any,
    ) -> None:
        column_sql = ", ".join(self._column_expression(column) for column in columns)
        unique_sql = "UNIQUE " if unique else ""
        statement = (
            f"CREATE {unique_sql}INDEX IF NOT EXISTS {self._preparer.quote(name)} "
            f"ON {self._preparer.quote(table_name)} ({column_sql})"
        )
        if postgresql_where is not None:
            statement += f" WHERE {self._column_expression(postgresql_where)}"
        self.execute(statement)

    def drop_index(self, name: str, **_: Any) -> None:
        self.execute(f"DROP INDEX IF EXISTS {self._preparer.quote(name)}")

    def execute(self, statement: str) -> None:
        with self._conn.cursor() as cur:
            cur.execute(statement)

    def _column_expression(self, column: Any) -> str:
        if isinstance(column, str):
            return self._preparer.quote(column)
        return str(column.compile(dialect=self._dialect))

    def _execute_ddl(self, ddl: Any) -> None:
        self.execute(str(ddl.compile(dialect=self._dialect)))


def _migration_files(migrations_dir: Path) -> List[Path]:
    return sorted(
        path for path in migrations_dir.glob("[0-9][0-9][0-9]_*.py") if path.is_file()
    )


def apply_migrations(
    conn: psycopg.Connection, migrations_dir: Optional[Path] = None
) -> List[str]:
    """Run pending migrations on ``conn`` and return the ids applied."""

    migrations_dir = migrations_dir or MIGRATIONS_DIR
    with conn.cursor() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS triage_migrations (
                id TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )
        cur.execute("SELECT id FROM triage_migrations")
        applied = {row[0] for row in cur.fetchall()}
    conn.commit()

    newly_applied: List[str] = []
    for path in _migration_files(migrations_dir):
        migration_id = path.stem
        if migration_id in applied:
            continue
        module = importlib.import_module(f"{__package__}.migrations.{migration_id}")
        original_op = getattr(module, "op", None)
        module.op = _PsycopgOperations(conn)
        try:
            module.upgrade()
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO triage_migrations (id) VALUES (%s) ON CONFLICT (id) DO NOTHING",
                    (migration_id,),
                )
        except Exception:
            conn.rollback()
            raise
        else:
            conn.commit()
        finally:
            module.op = original_op
        logger.info("Applied migration %s", migration_id)
        newly_applied.append(migration_id)
    return newly_applied


def ensure_schema(database_url: str) -> List[str]:
    """Open a short-lived connection and apply pending migrations."""

    with psycopg.connect(database_url) as conn:
        return apply_migrations(conn)
