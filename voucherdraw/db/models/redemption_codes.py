from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from voucherdraw.db.models.base import Base


class RedemptionCode(Base):
    __tablename__ = "redemption_codes"
    __table_args__ = (
        CheckConstraint(
            "status IN ('AVAILABLE','ISSUED','REDEEMED')",
            name="ck_redemption_codes_status",
        ),
        CheckConstraint(
            "(status = 'AVAILABLE' AND issued_at IS NULL) "
            "OR (status IN ('ISSUED','REDEEMED') AND issued_at IS NOT NULL)",
            name="ck_redemption_codes_issued_consistency",
        ),
        Index("idx_redemption_codes_reward_status", "reward_id", "status", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    reward_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("rewards.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    issued_to_participant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
