from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from voucherdraw.db.models.base import Base


class ParticipationAttempt(Base):
    __tablename__ = "participation_attempts"
    __table_args__ = (
        CheckConstraint("outcome IN ('WIN','LOSE')", name="ck_participation_attempts_outcome"),
        CheckConstraint(
            "(outcome = 'WIN' AND reward_id IS NOT NULL AND redemption_code_id IS NOT NULL) "
            "OR (outcome = 'LOSE' AND redemption_code_id IS NULL)",
            name="ck_participation_attempts_outcome_payload",
        ),
        UniqueConstraint(
            "participant_id",
            "device_id",
            name="uq_participation_attempts_participant_device",
        ),
        Index("idx_participation_attempts_outcome", "outcome"),
        Index("idx_participation_attempts_reward", "reward_id"),
        Index("idx_participation_attempts_created_at", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str] = mapped_column(String(64), nullable=False)
    outcome: Mapped[str] = mapped_column(String(8), nullable=False)
    reward_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("rewards.id"),
        nullable=True,
    )
    redemption_code_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("redemption_codes.id"),
        unique=True,
        nullable=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
