"""create tappass_users and access_logs

Revision ID: 3b9e1c7d20a4
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7d20a4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tappass_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=True, unique=True),
        sa.Column("digital_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("access_level", sa.String(length=32), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
    )
    op.create_table(
        "access_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("digital_id", sa.String(length=128), nullable=False),
        sa.Column("reader_user_id", sa.String(length=128), nullable=False),
        sa.Column("reader_id", sa.String(length=128), nullable=False),
        sa.Column("access_granted", sa.Boolean(), nullable=False),
        sa.Column("access_reason", sa.String(length=64), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column(
            "escort_required", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("operator_note", sa.Text(), nullable=True),
        sa.Column("original_granted", sa.Boolean(), nullable=True),
        sa.Column("original_reason", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_access_logs_digital_id_created_at",
        "access_logs",
        ["digital_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_access_logs_digital_id_created_at", table_name="access_logs")
    op.drop_table("access_logs")
    op.drop_table("tappass_users")
