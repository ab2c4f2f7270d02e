"""create document_nodes table

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the table backing the document store. Each row holds the JSON value
stored at one path; passRequests, students, warden and hod all live here.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c2e3f4b5d6"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the document_nodes table."""
    op.create_table(
        "document_nodes",
        sa.Column("path", sa.String(length=512), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("path"),
    )
    # Subtree reads use prefix matches on path
    op.create_index(
        "ix_document_nodes_path_prefix",
        "document_nodes",
        ["path"],
        postgresql_ops={"path": "varchar_pattern_ops"},
    )


def downgrade() -> None:
    """Drop the document_nodes table."""
    op.drop_index("ix_document_nodes_path_prefix", table_name="document_nodes")
    op.drop_table("document_nodes")
