class DrawError(Exception):
    pass


class AlreadyParticipatedError(DrawError):
    pass


class NoStockAvailableError(DrawError):
    pass


class DrawStoreUnavailableError(DrawError):
    """The store failed before any stock was touched; the whole draw may be retried."""


class AllocationRaceError(DrawError):
    """Stock or code inventory changed between selection and commit."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RewardNotFoundError(DrawError):
    pass


class RewardValidationError(DrawError):
    pass


class StockAdjustmentInvalidError(DrawError):
    pass


class RedemptionCodeNotFoundError(DrawError):
    pass


class RedemptionCodeStateError(DrawError):
    pass
