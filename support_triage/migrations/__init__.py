"""Alembic-style schema migrations, applied by :mod:`support_triage.schema`."""
