"""Device tokens model definition using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    true,
)

metadata = MetaData()

device_tokens = Table(
    "device_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(128), nullable=False),
    Column("device_token", Text, nullable=False),
    Column("token_type", String(8), nullable=False),
    Column("platform", String(32), nullable=False),
    Column("device_id", String(255), nullable=True),
    Column("device_name", String(255), nullable=True),
    Column("app_version", String(64), nullable=True),
    Column("enabled", Boolean, nullable=False, server_default=true()),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("user_id", "device_token", name="uq_device_tokens_user_token"),
    CheckConstraint(
        "token_type IN ('fcm', 'apns')",
        name="device_tokens_token_type_check",
    ),
    Index("idx_device_tokens_user_enabled", "user_id", "enabled"),
    Index("idx_device_tokens_device_token", "device_token"),
)
