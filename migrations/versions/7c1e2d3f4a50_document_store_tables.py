"""document_store_tables

Create `documents` and `document_fields` for the SQL-backed document store
(churches, notifications, users, feedback, church_status_audit).

Revision ID: 7c1e2d3f4a50
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2d3f4a50"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("pk", sa.Integer(), nullable=False),
            sa.Column("collection", sa.String(length=80), nullable=False),
            sa.Column("doc_id", sa.String(length=64), nullable=False),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("pk"),
            sa.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        )
        op.create_index("ix_documents_collection_created", "documents", ["collection", "created_at"])

    if "document_fields" not in existing_tables:
        op.create_table(
            "document_fields",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("document_pk", sa.Integer(), nullable=False),
            sa.Column("path", sa.String(length=120), nullable=False),
            sa.Column("value", sa.String(length=255), nullable=False),
            sa.Column("is_array_item", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["document_pk"], ["documents.pk"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_document_fields_document_pk", "document_fields", ["document_pk"])
        op.create_index(
            "ix_document_fields_lookup", "document_fields", ["path", "value", "is_array_item"],
        )


def downgrade():
    op.drop_index("ix_document_fields_lookup", table_name="document_fields")
    op.drop_index("ix_document_fields_document_pk", table_name="document_fields")
    op.drop_table("document_fields")
    op.drop_index("ix_documents_collection_created", table_name="documents")
    op.drop_table("documents")
