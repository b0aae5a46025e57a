"""Create thread, draft, observation and knowledge-base tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001_create_triage_tables"
down_revision = None
branch_labels = None
depends_on = None


_UUID = postgresql.UUID(as_uuid=True)
_TEXT_ARRAY = postgresql.ARRAY(sa.Text())
_NOW = sa.text("now()")
_EMPTY_JSON_ARRAY = sa.text("'[]'::jsonb")

EMBEDDING_DIMENSIONS = 384


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        _UUID,
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _thread_fk() -> sa.Column:
    return sa.Column(
        "thread_id",
        _UUID,
        sa.ForeignKey("support_threads.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create the triage schema, including the pgvector chunk column."""

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "support_threads",
        _id_column(),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=False, server_default="email"),
        sa.Column("subject", sa.Text(), nullable=False, server_default=""),
        sa.Column("sender", sa.String(length=320), nullable=True),
        sa.Column("state", sa.String(length=32), nullable=False, server_default="NEW"),
        sa.Column("last_intent", sa.String(length=64), nullable=True),
        sa.Column("verification_status", sa.String(length=32), nullable=True),
        sa.Column(
            "human_handling_mode", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("human_handler", sa.String(length=320), nullable=True),
        sa.Column("human_handling_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
        sa.UniqueConstraint("external_id", name="uq_support_threads_external_id"),
    )
    op.create_index("ix_support_threads_sender", "support_threads", [sa.text("lower(sender)")])
    op.create_index("ix_support_threads_state", "support_threads", ["state"])

    op.create_table(
        "support_messages",
        _id_column(),
        _thread_fk(),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("from_identifier", sa.String(length=320), nullable=True),
        sa.Column("to_identifier", sa.String(length=320), nullable=True),
        sa.Column("body_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="normal"),
        sa.Column(
            "channel_metadata",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("dedup_key", sa.String(length=512), nullable=True),
        sa.Column("message_date", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
        sa.UniqueConstraint("thread_id", "dedup_key", name="uq_support_messages_dedup"),
    )
    op.create_index(
        "ix_support_messages_thread_date", "support_messages", ["thread_id", "message_date"]
    )

    op.create_table(
        "thread_events",
        _id_column(),
        _thread_fk(),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column(
            "payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
    )
    op.create_index("ix_thread_events_thread_id", "thread_events", ["thread_id", "created_at"])

    op.create_table(
        "intents",
        sa.Column("slug", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=64), nullable=False, server_default="support"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("examples", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column(
            "requires_verification", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("auto_escalate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "thread_intents",
        _thread_fk(),
        sa.Column("intent", sa.String(length=64), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("detected_from_message_id", _UUID, nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("thread_id", "intent", name="pk_thread_intents"),
    )

    op.create_table(
        "verifications",
        _id_column(),
        _thread_fk(),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("order_id", sa.String(length=128), nullable=True),
        sa.Column("customer_id", sa.String(length=128), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_email", sa.String(length=320), nullable=True),
        sa.Column("flags", postgresql.JSONB(), nullable=False, server_default=_EMPTY_JSON_ARRAY),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
    )
    op.create_index("ix_verifications_thread_id", "verifications", ["thread_id", "created_at"])

    op.create_table(
        "draft_generations",
        _id_column(),
        _thread_fk(),
        sa.Column("message_id", _UUID, nullable=True),
        sa.Column("intent", sa.String(length=64), nullable=False),
        sa.Column("kb_document_ids", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("kb_chunk_ids", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("raw_draft", sa.Text(), nullable=True),
        sa.Column("final_draft", sa.Text(), nullable=True),
        sa.Column(
            "citations", postgresql.JSONB(), nullable=False, server_default=_EMPTY_JSON_ARRAY
        ),
        sa.Column("policy_gate_passed", sa.Boolean(), nullable=True),
        sa.Column("policy_violations", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("model", sa.String(length=128), nullable=True),
        sa.Column("input_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("output_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("was_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("was_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edit_distance", sa.Integer(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW),
    )
    op.create_index(
        "ix_draft_generations_thread_id", "draft_generations", ["thread_id", "created_at"]
    )

    op.create_table(
        "human_observations",
        _id_column(),
        _thread_fk(),
        sa.Column("handler", sa.String(length=320), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("signal_type", sa.String(length=32), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "observed_messages",
            postgresql.JSONB(),
            nullable=False,
            server_default=_EMPTY_JSON_ARRAY,
        ),
        sa.Column("resolution_type", sa.String(length=32), nullable=True),
        sa.Column("resolution_summary", sa.Text(), nullable=True),
        sa.Column("questions_asked", postgresql.JSONB(), nullable=True),
        sa.Column("troubleshooting_steps", postgresql.JSONB(), nullable=True),
        sa.Column("new_information", postgresql.JSONB(), nullable=True),
    )
    op.create_index(
        "ix_human_observations_active",
        "human_observations",
        ["thread_id"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
    )

    op.create_table(
        "agent_instructions",
        sa.Column("section_key", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "kb_documents",
        _id_column(),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("intent_tags", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("vehicle_tags", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("product_tags", _TEXT_ARRAY, nullable=False, server_default="{}"),
        sa.Column("source_url", sa.Text(), nullable=True),
    )
    op.execute(
        "CREATE INDEX ix_kb_documents_fts ON kb_documents USING gin "
        "(to_tsvector('english', title || ' ' || coalesce(body, '')))"
    )

    op.create_table(
        "kb_document_intents",
        sa.Column(
            "document_id",
            _UUID,
            sa.ForeignKey("kb_documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("intent", sa.String(length=64), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="1.0"),
        sa.PrimaryKeyConstraint("document_id", "intent", name="pk_kb_document_intents"),
    )

    op.create_table(
        "kb_chunks",
        _id_column(),
        sa.Column(
            "document_id",
            _UUID,
            sa.ForeignKey("kb_documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
    )
    # sqlalchemy has no pgvector type; the column is added directly.
    op.execute(f"ALTER TABLE kb_chunks ADD COLUMN embedding vector({EMBEDDING_DIMENSIONS})")
    op.execute(
        "CREATE INDEX ix_kb_chunks_embedding ON kb_chunks "
        "USING hnsw (embedding vector_cosine_ops)"
    )


def downgrade() -> None:
    """Drop the triage schema."""

    op.execute("DROP INDEX IF EXISTS ix_kb_chunks_embedding")
    op.drop_table("kb_chunks")
    op.drop_table("kb_document_intents")
    op.execute("DROP INDEX IF EXISTS ix_kb_documents_fts")
    op.drop_table("kb_documents")
    op.drop_table("agent_instructions")
    op.drop_index("ix_human_observations_active", table_name="human_observations")
    op.drop_table("human_observations")
    op.drop_index("ix_draft_generations_thread_id", table_name="draft_generations")
    op.drop_table("draft_generations")
    op.drop_index("ix_verifications_thread_id", table_name="verifications")
    op.drop_table("verifications")
    op.drop_table("thread_intents")
    op.drop_table("intents")
    op.drop_index("ix_thread_events_thread_id", table_name="thread_events")
    op.drop_table("thread_events")
    op.drop_index("ix_support_messages_thread_date", table_name="support_messages")
    op.drop_table("support_messages")
    op.drop_index("ix_support_threads_state", table_name="support_threads")
    op.drop_index("ix_support_threads_sender", table_name="support_threads")
    op.drop_table("support_threads")
