"""Create device_tokens table.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.VARCHAR(length=128), nullable=False),
        sa.Column("device_token", sa.Text(), nullable=False),
        sa.Column("token_type", sa.VARCHAR(length=8), nullable=False),
        sa.Column("platform", sa.VARCHAR(length=32), nullable=False),
        sa.Column("device_id", sa.VARCHAR(length=255), nullable=True),
        sa.Column("device_name", sa.VARCHAR(length=255), nullable=True),
        sa.Column("app_version", sa.VARCHAR(length=64), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "token_type IN ('fcm', 'apns')",
            name="device_tokens_token_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "device_token", name="uq_device_tokens_user_token"),
    )

    # Delivery reads enabled tokens per user; revoke looks up by token alone
    op.create_index("idx_device_tokens_user_enabled", "device_tokens", ["user_id", "enabled"])
    op.create_index("idx_device_tokens_device_token", "device_tokens", ["device_token"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_device_tokens_device_token", table_name="device_tokens")
    op.drop_index("idx_device_tokens_user_enabled", table_name="device_tokens")
    op.drop_table("device_tokens")
