"""Initial schema - documents, chunks, knowledge graph and run history.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

This migration creates:
- the pgvector extension
- documents: uploaded files with knowledge-graph status
- chunks: text segments with their embedding vectors
- graph_entities / entity_aliases: graph nodes keyed by canonical key
- events / event_participants: document events and who took part
- relations: subject-predicate-object facts per document
- kg_run_histories: one row per ingestion job run
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

from kgrag.core.config import settings

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Create the vector extension, all tables and indexes."""

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ==========================================================================
    # documents
    # ==========================================================================
    op.create_table(
        "documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("source_type", sa.String(50), nullable=False, server_default="upload"),
        sa.Column("fingerprint", sa.String(64), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("kg_status", sa.String(20), nullable=True),
        sa.Column("kg_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("kg_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("kg_error", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_documents"),
        sa.UniqueConstraint("fingerprint", name="uq_documents_fingerprint"),
    )
    op.create_index("ix_documents_category", "documents", ["category"])
    op.create_index("ix_documents_kg_status_created_at", "documents", ["kg_status", "created_at"])

    # ==========================================================================
    # chunks
    # ==========================================================================
    op.create_table(
        "chunks",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", Vector(settings.embedding_dimensions), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_chunks"),
        sa.ForeignKeyConstraint(
            ["document_id"],
            ["documents.id"],
            name="fk_chunks_document_id_documents",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_id"),
    )
    op.create_index("ix_chunks_document_id", "chunks", ["document_id"])

    # ==========================================================================
    # graph_entities / entity_aliases
    # ==========================================================================
    op.create_table(
        "graph_entities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("canonical_key", sa.String(500), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_graph_entities"),
        sa.UniqueConstraint("canonical_key", name="uq_graph_entities_canonical_key"),
    )
    op.create_index("ix_graph_entities_lower_name", "graph_entities", [sa.text("lower(name)")])

    op.create_table(
        "entity_aliases",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("alias", sa.String(500), nullable=False),
        sa.Column("language", sa.String(20), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_entity_aliases"),
        sa.ForeignKeyConstraint(
            ["entity_id"],
            ["graph_entities.id"],
            name="fk_entity_aliases_entity_id_graph_entities",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_entity_aliases_entity_id", "entity_aliases", ["entity_id"])
    op.create_index("ix_entity_aliases_lower_alias", "entity_aliases", [sa.text("lower(alias)")])

    # ==========================================================================
    # events / event_participants
    # ==========================================================================
    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("event_category", sa.String(100), nullable=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("chapter", sa.String(200), nullable=True),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column("start_year", sa.Integer(), nullable=True),
        sa.Column("end_year", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
        sa.ForeignKeyConstraint(
            ["document_id"],
            ["documents.id"],
            name="fk_events_document_id_documents",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_events_document_id", "events", ["document_id"])

    op.create_table(
        "event_participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(100), nullable=True),
        sa.Column("outcome", sa.String(100), nullable=True),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_event_participants"),
        sa.ForeignKeyConstraint(
            ["event_id"], ["events.id"],
            name="fk_event_participants_event_id_events", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["actor_id"], ["graph_entities.id"],
            name="fk_event_participants_actor_id_graph_entities", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["document_id"], ["documents.id"],
            name="fk_event_participants_document_id_documents", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["chunk_id"], ["chunks.id"],
            name="fk_event_participants_chunk_id_chunks", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_event_participants_event_id", "event_participants", ["event_id"])
    op.create_index("ix_event_participants_actor_id", "event_participants", ["actor_id"])
    op.create_index(
        "ix_event_participants_actor_outcome",
        "event_participants",
        ["actor_id", "outcome"],
    )

    # ==========================================================================
    # relations
    # ==========================================================================
    op.create_table(
        "relations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("predicate", sa.String(200), nullable=False),
        sa.Column("object_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("object_text", sa.Text(), nullable=True),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_relations"),
        sa.ForeignKeyConstraint(
            ["subject_id"], ["graph_entities.id"],
            name="fk_relations_subject_id_graph_entities", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["object_id"], ["graph_entities.id"],
            name="fk_relations_object_id_graph_entities", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["document_id"], ["documents.id"],
            name="fk_relations_document_id_documents", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["chunk_id"], ["chunks.id"],
            name="fk_relations_chunk_id_chunks", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_relations_subject_id", "relations", ["subject_id"])
    op.create_index("ix_relations_document_id", "relations", ["document_id"])
    op.create_index("ix_relations_lower_predicate", "relations", [sa.text("lower(predicate)")])

    # ==========================================================================
    # kg_run_histories
    # ==========================================================================
    op.create_table(
        "kg_run_histories",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp("started_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_kg_run_histories"),
    )
    op.create_index(
        "ix_kg_run_histories_started_at",
        "kg_run_histories",
        [sa.text("started_at DESC")],
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("kg_run_histories")
    op.drop_table("relations")
    op.drop_table("event_participants")
    op.drop_table("events")
    op.drop_table("entity_aliases")
    op.drop_table("graph_entities")
    op.drop_table("chunks")
    op.drop_table("documents")
