from voucherdraw.db.repo.participation_attempts_repo import ParticipationAttemptsRepo
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.db.repo.stock_adjustments_repo import StockAdjustmentsRepo

__all__ = [
    "ParticipationAttemptsRepo",
    "RedemptionCodesRepo",
    "RewardsRepo",
    "StockAdjustmentsRepo",
]
