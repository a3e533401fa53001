"""v1_draw_core_data_model

Revision ID: 3c9e7a1f5b20
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3c9e7a1f5b20"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "rewards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("face_value", sa.String(64), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("weight", sa.Numeric(10, 4), nullable=False),
        sa.Column("stock_initial", sa.Integer(), nullable=False),
        sa.Column("stock_remaining", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("code_generation", sa.String(16), nullable=False, server_default=sa.text("'AUTO'")),
        sa.Column("code_prefix", sa.String(10), nullable=False, server_default=sa.text("'LV'")),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "category IN ('PERCENT_DISCOUNT','FIXED_AMOUNT_DISCOUNT','FREE_ITEM')",
            name="ck_rewards_category",
        ),
        sa.CheckConstraint("status IN ('DRAFT','ACTIVE','INACTIVE')", name="ck_rewards_status"),
        sa.CheckConstraint("code_generation IN ('AUTO','PRE_SEEDED')", name="ck_rewards_code_generation"),
        sa.CheckConstraint("weight >= 0", name="ck_rewards_weight_non_negative"),
        sa.CheckConstraint("stock_remaining >= 0", name="ck_rewards_stock_remaining_non_negative"),
        sa.CheckConstraint("stock_remaining <= stock_initial", name="ck_rewards_stock_remaining_le_initial"),
        sa.CheckConstraint(
            "valid_from IS NULL OR valid_to IS NULL OR valid_from < valid_to",
            name="ck_rewards_valid_window",
        ),
    )
    op.create_index("idx_rewards_status", "rewards", ["status"])
    op.create_index("idx_rewards_valid_window", "rewards", ["valid_from", "valid_to"])

    op.create_table(
        "redemption_codes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("reward_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("issued_to_participant_id", sa.String(64), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('AVAILABLE','ISSUED','REDEEMED')", name="ck_redemption_codes_status"),
        sa.CheckConstraint(
            "(status = 'AVAILABLE' AND issued_at IS NULL) "
            "OR (status IN ('ISSUED','REDEEMED') AND issued_at IS NOT NULL)",
            name="ck_redemption_codes_issued_consistency",
        ),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("code", name="uq_redemption_codes_code"),
    )
    op.create_index(
        "idx_redemption_codes_reward_status",
        "redemption_codes",
        ["reward_id", "status", "created_at", "id"],
    )

    op.create_table(
        "participation_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("participant_id", sa.String(64), nullable=False),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(8), nullable=False),
        sa.Column("reward_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("redemption_code_id", sa.BigInteger(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("outcome IN ('WIN','LOSE')", name="ck_participation_attempts_outcome"),
        sa.CheckConstraint(
            "(outcome = 'WIN' AND reward_id IS NOT NULL AND redemption_code_id IS NOT NULL) "
            "OR (outcome = 'LOSE' AND redemption_code_id IS NULL)",
            name="ck_participation_attempts_outcome_payload",
        ),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"]),
        sa.ForeignKeyConstraint(["redemption_code_id"], ["redemption_codes.id"]),
        sa.UniqueConstraint(
            "participant_id",
            "device_id",
            name="uq_participation_attempts_participant_device",
        ),
        sa.UniqueConstraint("redemption_code_id", name="uq_participation_attempts_redemption_code"),
    )
    op.create_index("idx_participation_attempts_outcome", "participation_attempts", ["outcome"])
    op.create_index("idx_participation_attempts_reward", "participation_attempts", ["reward_id"])
    op.create_index("idx_participation_attempts_created_at", "participation_attempts", ["created_at"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("reward_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("previous_stock", sa.Integer(), nullable=False),
        sa.Column("new_stock", sa.Integer(), nullable=False),
        sa.Column("codes_provisioned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("delta <> 0", name="ck_stock_adjustments_delta_non_zero"),
        sa.CheckConstraint("new_stock >= 0", name="ck_stock_adjustments_new_stock_non_negative"),
        sa.CheckConstraint(
            "new_stock = previous_stock + delta",
            name="ck_stock_adjustments_delta_consistency",
        ),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_stock_adjustments_reward_created",
        "stock_adjustments",
        ["reward_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_stock_adjustments_reward_created", table_name="stock_adjustments")
    op.drop_table("stock_adjustments")
    op.drop_index("idx_participation_attempts_created_at", table_name="participation_attempts")
    op.drop_index("idx_participation_attempts_reward", table_name="participation_attempts")
    op.drop_index("idx_participation_attempts_outcome", table_name="participation_attempts")
    op.drop_table("participation_attempts")
    op.drop_index("idx_redemption_codes_reward_status", table_name="redemption_codes")
    op.drop_table("redemption_codes")
    op.drop_index("idx_rewards_status", table_name="rewards")
    op.drop_index("idx_rewards_valid_window", table_name="rewards")
    op.drop_table("rewards")
