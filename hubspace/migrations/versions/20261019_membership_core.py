"""Hub, membership, change feed and member-count ledger tables.

Revision ID: 20261019_membership_core
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_membership_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "hubs_hub",
        sa.Column("hub_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("hub_type", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("member_count >= 0", name="ck_hubs_hub_member_count_non_negative"),
        sa.PrimaryKeyConstraint("hub_id"),
    )
    op.create_index("ix_hubs_hub_type_active", "hubs_hub", ["hub_type", "is_active"])

    op.create_table(
        "memberships_membership",
        sa.Column("hub_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.Column("last_seen", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("hub_id", "user_id"),
    )
    op.create_index(
        "ix_memberships_membership_last_seen", "memberships_membership", ["last_seen"]
    )
    op.create_index("ix_memberships_membership_user", "memberships_membership", ["user_id"])

    op.create_table(
        "platform_change_feed",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("partition_key", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_platform_change_feed_event_type", "platform_change_feed", ["event_type"]
    )
    op.create_index(
        "ix_platform_change_feed_status_available_at",
        "platform_change_feed",
        ["status", "available_at"],
    )
    op.create_index(
        "ix_platform_change_feed_partition_key",
        "platform_change_feed",
        ["partition_key", "id"],
    )

    op.create_table(
        "readmodel_member_count_applied_event",
        sa.Column("event_key", sa.String(length=255), nullable=False),
        sa.Column("hub_id", sa.String(length=64), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("applied_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("event_key"),
    )
    op.create_index(
        "ix_readmodel_member_count_applied_event_applied_at",
        "readmodel_member_count_applied_event",
        ["applied_at"],
    )
    op.create_index(
        "ix_readmodel_member_count_applied_event_hub",
        "readmodel_member_count_applied_event",
        ["hub_id"],
    )


def downgrade() -> None:
    op.drop_table("readmodel_member_count_applied_event")
    op.drop_table("platform_change_feed")
    op.drop_table("memberships_membership")
    op.drop_table("hubs_hub")
