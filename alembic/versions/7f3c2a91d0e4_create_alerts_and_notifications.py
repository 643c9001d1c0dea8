"""create alerts and notifications tables

Revision ID: 7f3c2a91d0e4
Revises:
Create Date: 2025-08-24 09:48:38.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '7f3c2a91d0e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOTIFICATION_TYPES = ("ALERT_TRIGGERED", "ORDER_UPDATE", "POSITION_UPDATE", "SYSTEM_MESSAGE", "MARKET_UPDATE")
NOTIFICATION_CHANNELS = ("EMAIL", "WEBHOOK", "IN_APP", "PUSH", "DISCORD", "TELEGRAM")
NOTIFICATION_STATUSES = ("PENDING", "SENT", "FAILED", "DELIVERED")


def upgrade() -> None:
    op.create_table(
        "alerts",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("asset", sa.Text, nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Index("ix_alerts_user_id", "user_id"),
    )
    op.create_table(
        "notifications",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("alert_id", sa.Text, sa.ForeignKey("alerts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("type", sa.Enum(*NOTIFICATION_TYPES, name="notificationtype"), nullable=False),
        sa.Column("channel", sa.Enum(*NOTIFICATION_CHANNELS, name="notificationchannel"), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*NOTIFICATION_STATUSES, name="notificationstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", postgresql.JSONB, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        # inbox listing + unread counts
        sa.Index("ix_notifications_user_created", "user_id", sa.text("created_at DESC"), sa.text("id DESC")),
        sa.Index("ix_notifications_user_is_read", "user_id", "is_read"),
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("alerts")
    op.execute("DROP TYPE IF EXISTS notificationtype")
    op.execute("DROP TYPE IF EXISTS notificationchannel")
    op.execute("DROP TYPE IF EXISTS notificationstatus")
