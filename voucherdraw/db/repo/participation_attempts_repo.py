from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from voucherdraw.db.models.participation_attempts import ParticipationAttempt


def _created_between(
    date_from: datetime | None,
    date_to: datetime | None,
) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    if date_from is not None:
        clauses.append(ParticipationAttempt.created_at >= date_from)
    if date_to is not None:
        clauses.append(ParticipationAttempt.created_at <= date_to)
    return clauses


class ParticipationAttemptsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, attempt_id: UUID) -> ParticipationAttempt | None:
        return await session.get(ParticipationAttempt, attempt_id)

    @staticmethod
    async def get_by_identity(
        session: AsyncSession,
        *,
        participant_id: str,
        device_id: str,
    ) -> ParticipationAttempt | None:
        stmt = select(ParticipationAttempt).where(
            ParticipationAttempt.participant_id == participant_id,
            ParticipationAttempt.device_id == device_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        attempt: ParticipationAttempt,
    ) -> ParticipationAttempt:
        session.add(attempt)
        await session.flush()
        return attempt

    @staticmethod
    async def get_overview(
        session: AsyncSession,
        *,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict[str, int]:
        stmt = select(
            func.count(ParticipationAttempt.id),
            func.count(distinct(ParticipationAttempt.participant_id)),
            func.count(distinct(ParticipationAttempt.device_id)),
            func.coalesce(
                func.sum(case((ParticipationAttempt.outcome == "WIN", 1), else_=0)),
                0,
            ),
        ).where(*_created_between(date_from, date_to))
        result = await session.execute(stmt)
        total, participants, devices, wins = result.one()
        return {
            "total_attempts": int(total or 0),
            "unique_participants": int(participants or 0),
            "unique_devices": int(devices or 0),
            "total_wins": int(wins or 0),
        }

    @staticmethod
    async def count_wins_by_reward(
        session: AsyncSession,
        *,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict[UUID, int]:
        stmt = (
            select(ParticipationAttempt.reward_id, func.count(ParticipationAttempt.id))
            .where(
                ParticipationAttempt.outcome == "WIN",
                *_created_between(date_from, date_to),
            )
            .group_by(ParticipationAttempt.reward_id)
        )
        result = await session.execute(stmt)
        return {reward_id: int(count) for reward_id, count in result.all() if reward_id is not None}
