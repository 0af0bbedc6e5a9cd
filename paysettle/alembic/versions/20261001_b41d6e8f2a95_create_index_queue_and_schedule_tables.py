"""create settlement_index_queue and settlement_schedule_config tables

Revision ID: b41d6e8f2a95
Revises: 7c2e5b9a4d13
Create Date: 2026-10-01 00:00:02.000000

"""

import uuid

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "b41d6e8f2a95"
down_revision = "7c2e5b9a4d13"
branch_labels = None
depends_on = None

DEFAULT_SCHEDULES = [
    ("SETTLEMENT_CREATE", "0 0 1 * * *", "Create settlements for the previous day"),
    ("SETTLEMENT_CONFIRM", "0 0 2 * * *", "Confirm the previous day's settlements"),
    ("ADJUSTMENT_CONFIRM", "0 30 2 * * *", "Confirm the previous day's refund adjustments"),
]


def upgrade() -> None:
    op.create_table(
        "settlement_index_queue",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("settlement_id", sa.String(length=36), nullable=False),
        sa.Column("operation", sa.String(length=20), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_settlement_index_queue_status_next_retry_at",
        "settlement_index_queue",
        ["status", "next_retry_at"],
        unique=False,
    )
    op.create_index(
        "ix_settlement_index_queue_settlement_id",
        "settlement_index_queue",
        ["settlement_id"],
        unique=False,
    )
    schedule_table = op.create_table(
        "settlement_schedule_config",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("config_key", sa.String(length=100), nullable=False),
        sa.Column("cron_expression", sa.String(length=100), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("merchant_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("config_key"),
    )
    op.bulk_insert(
        schedule_table,
        [
            {
                "id": str(uuid.uuid4()),
                "config_key": key,
                "cron_expression": cron,
                "enabled": True,
                "description": description,
            }
            for key, cron, description in DEFAULT_SCHEDULES
        ],
    )


def downgrade() -> None:
    op.drop_table("settlement_schedule_config")
    op.drop_index("ix_settlement_index_queue_settlement_id", table_name="settlement_index_queue")
    op.drop_index("ix_settlement_index_queue_status_next_retry_at", table_name="settlement_index_queue")
    op.drop_table("settlement_index_queue")
