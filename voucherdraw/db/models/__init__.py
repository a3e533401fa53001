from voucherdraw.db.models.participation_attempts import ParticipationAttempt
from voucherdraw.db.models.redemption_codes import RedemptionCode
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.models.stock_adjustments import StockAdjustment

__all__ = [
    "ParticipationAttempt",
    "RedemptionCode",
    "Reward",
    "StockAdjustment",
]
