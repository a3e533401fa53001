from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from voucherdraw.db.models.base import Base


class Reward(Base):
    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint(
            "category IN ('PERCENT_DISCOUNT','FIXED_AMOUNT_DISCOUNT','FREE_ITEM')",
            name="ck_rewards_category",
        ),
        CheckConstraint("status IN ('DRAFT','ACTIVE','INACTIVE')", name="ck_rewards_status"),
        CheckConstraint(
            "code_generation IN ('AUTO','PRE_SEEDED')",
            name="ck_rewards_code_generation",
        ),
        CheckConstraint("weight >= 0", name="ck_rewards_weight_non_negative"),
        CheckConstraint("stock_remaining >= 0", name="ck_rewards_stock_remaining_non_negative"),
        CheckConstraint(
            "stock_remaining <= stock_initial",
            name="ck_rewards_stock_remaining_le_initial",
        ),
        CheckConstraint(
            "valid_from IS NULL OR valid_to IS NULL OR valid_from < valid_to",
            name="ck_rewards_valid_window",
        ),
        Index("idx_rewards_status", "status"),
        Index("idx_rewards_valid_window", "valid_from", "valid_to"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    face_value: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    stock_initial: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'DRAFT'")
    )
    code_generation: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text("'AUTO'")
    )
    code_prefix: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=text("'LV'")
    )
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
