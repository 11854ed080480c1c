"""Add QA test templates.

Revision ID: 002_add_test_templates
Revises: 001_initial_schema
Create Date: 2026-10-19

Tenant-curated questions that admins want asked in test runs.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_add_test_templates"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create test_templates table."""
    op.create_table(
        "test_templates",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "tenant_id",
            sa.String(100),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
            comment="Owning tenant",
        ),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("expected_answer", sa.Text(), nullable=True),
        sa.Column(
            "expected_sources",
            postgresql.JSONB(),
            nullable=True,
            comment="Documents (and pages) the answer should cite",
        ),
        sa.Column("language", sa.String(10), nullable=False, server_default="nl"),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
            comment="Inactive templates are skipped",
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_test_templates_tenant_id", "test_templates", ["tenant_id"])
    op.create_index("ix_test_templates_is_active", "test_templates", ["is_active"])
    op.create_index("ix_test_templates_created_at", "test_templates", ["created_at"])


def downgrade() -> None:
    """Drop test_templates table."""
    op.drop_index("ix_test_templates_created_at", table_name="test_templates")
    op.drop_index("ix_test_templates_is_active", table_name="test_templates")
    op.drop_index("ix_test_templates_tenant_id", table_name="test_templates")
    op.drop_table("test_templates")
