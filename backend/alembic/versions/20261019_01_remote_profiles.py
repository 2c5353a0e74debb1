"""Remote learner profile snapshots."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_remote_profiles"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "remote_profiles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("profile_id", sa.String(length=255), nullable=False),
        sa.Column("auth_method", sa.String(length=32), nullable=False, server_default="authenticated"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_remote_profiles_profile_id", "remote_profiles", ["profile_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_remote_profiles_profile_id", table_name="remote_profiles")
    op.drop_table("remote_profiles")
