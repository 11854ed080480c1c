"""Initial back-office schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates the tenant directory, resource stores and QA test run tables:
- tenants, tenant_products, admin_users, customer_users
- invoices, documents, document_chunks, document_processing_logs, chat_logs
- test_runs, test_questions
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _tenant_fk() -> sa.Column:
    return sa.Column(
        "tenant_id",
        sa.String(100),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create all tables."""
    # Tenant directory
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(100), nullable=False, comment="Tenant slug"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tenant_products",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column(
            "product_id",
            sa.String(50),
            nullable=False,
            comment="Catalog product key, e.g. hr_bot",
        ),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenant_products_tenant_id", "tenant_products", ["tenant_id"])

    op.create_table(
        "admin_users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)

    op.create_table(
        "customer_users",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default="user",
            comment="Role: admin, user",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customer_users_email", "customer_users", ["email"], unique=True)
    op.create_index("ix_customer_users_tenant_id", "customer_users", ["tenant_id"])

    # Resource stores
    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column(
            "file_path",
            sa.String(500),
            nullable=False,
            comment="Path in the invoices bucket",
        ),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("invoice_number", sa.String(100), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "is_paid_by_customer", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("customer_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_verified_by_admin", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("admin_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoices_tenant_id", "invoices", ["tenant_id"])
    op.create_index("ix_invoices_invoice_date", "invoices", ["invoice_date"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column(
            "tenant_product_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("tenant_products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column(
            "file_path",
            sa.String(500),
            nullable=True,
            comment="Path in the documents bucket",
        ),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column(
            "processing_status",
            sa.String(20),
            nullable=False,
            server_default="pending",
            comment="Status: pending, processing, completed, failed",
        ),
        sa.Column("total_chunks", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])
    op.create_index("ix_documents_tenant_product_id", "documents", ["tenant_product_id"])
    op.create_index("ix_documents_processing_status", "documents", ["processing_status"])

    op.create_table(
        "document_chunks",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "document_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("chunk_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_document_chunks_document_id", "document_chunks", ["document_id"])

    op.create_table(
        "document_processing_logs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column(
            "document_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column(
            "processing_status",
            sa.String(20),
            nullable=False,
            server_default="uploading",
            comment="Phase: uploading, parsing, chunking, embedding, metadata, completed, failed",
        ),
        sa.Column("chunks_created", sa.Integer(), nullable=True),
        sa.Column("total_pages", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_document_processing_logs_tenant_id", "document_processing_logs", ["tenant_id"]
    )
    op.create_index(
        "ix_document_processing_logs_document_id", "document_processing_logs", ["document_id"]
    )
    op.create_index(
        "ix_document_processing_logs_started_at", "document_processing_logs", ["started_at"]
    )

    op.create_table(
        "chat_logs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column(
            "tenant_product_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("tenant_products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=True),
        sa.Column("language", sa.String(10), nullable=True),
        sa.Column("total_cost", sa.Float(), nullable=True, comment="Cost in USD"),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_logs_tenant_id", "chat_logs", ["tenant_id"])
    op.create_index("ix_chat_logs_tenant_product_id", "chat_logs", ["tenant_product_id"])
    op.create_index("ix_chat_logs_created_at", "chat_logs", ["created_at"])

    # QA test runs
    op.create_table(
        "test_runs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        _tenant_fk(),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="generating",
            comment="Status: generating, running, evaluating, completed, failed",
        ),
        sa.Column(
            "config",
            postgresql.JSONB(),
            nullable=False,
            server_default="{}",
            comment="Categories and question counts for this run",
        ),
        sa.Column("total_questions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("questions_completed", sa.Integer(), nullable=False, server_default="0"),
        # Metrics (completed runs only)
        sa.Column("overall_score", sa.Float(), nullable=True, comment="Overall score (0-100)"),
        sa.Column("scores_by_category", postgresql.JSONB(), nullable=True),
        sa.Column("total_cost", sa.Float(), nullable=True, comment="Model cost of the run in USD"),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("summary", postgresql.JSONB(), nullable=True),
        # Failure detail (failed runs only)
        sa.Column("error_message", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_test_runs_tenant_id", "test_runs", ["tenant_id"])
    op.create_index("ix_test_runs_status", "test_runs", ["status"])
    op.create_index("ix_test_runs_created_at", "test_runs", ["created_at"])

    op.create_table(
        "test_questions",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "run_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("test_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("expected_answer", sa.Text(), nullable=True),
        sa.Column("actual_answer", sa.Text(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("evaluation", postgresql.JSONB(), nullable=True),
        sa.Column("source_document", sa.String(255), nullable=True),
        sa.Column("source_page", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_test_questions_run_id", "test_questions", ["run_id"])
    op.create_index("ix_test_questions_category", "test_questions", ["category"])
    op.create_index("ix_test_questions_passed", "test_questions", ["passed"])


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        "test_questions",
        "test_runs",
        "chat_logs",
        "document_processing_logs",
        "document_chunks",
        "documents",
        "invoices",
        "customer_users",
        "admin_users",
        "tenant_products",
        "tenants",
    ):
        op.drop_table(table)
