"""Add briefing style and research depth user preferences."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("users", sa.Column("briefing_style", sa.String(), nullable=True))
    op.add_column("users", sa.Column("research_depth", sa.String(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("research_depth")
        batch_op.drop_column("briefing_style")
