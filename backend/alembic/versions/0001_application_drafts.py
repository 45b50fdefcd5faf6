"""Create application_drafts table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

One row per draft key holding the form snapshot (JSON) and the step
index it was saved on. File fields are stored as metadata only.
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

import sqlalchemy as sa
from alembic import op


def upgrade() -> None:
    op.create_table(
        "application_drafts",
        sa.Column("draft_key", sa.String(120), primary_key=True),
        sa.Column("data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("step_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("application_drafts")
