from __future__ import annotations

OUTCOME_WIN = "win"
OUTCOME_LOSE = "lose"

ATTEMPT_OUTCOME_WIN = "WIN"
ATTEMPT_OUTCOME_LOSE = "LOSE"

REWARD_CATEGORIES = ("PERCENT_DISCOUNT", "FIXED_AMOUNT_DISCOUNT", "FREE_ITEM")
REWARD_STATUSES = ("DRAFT", "ACTIVE", "INACTIVE")
CODE_GENERATION_POLICIES = ("AUTO", "PRE_SEEDED")
DEFAULT_CODE_PREFIX = "LV"

CODE_STATUS_AVAILABLE = "AVAILABLE"
CODE_STATUS_ISSUED = "ISSUED"
CODE_STATUS_REDEEMED = "REDEEMED"

INELIGIBLE_ALREADY_PARTICIPATED = "ALREADY_PARTICIPATED"
INELIGIBLE_NO_STOCK = "NO_STOCK"

LOSS_NO_CANDIDATE = "NO_CANDIDATE"
LOSS_STOCK_RACE = "STOCK_RACE"
LOSS_CODE_INVENTORY_EMPTY = "CODE_INVENTORY_EMPTY"
LOSS_ALLOCATION_TIMEOUT = "ALLOCATION_TIMEOUT"
LOSS_STORE_FAILURE = "STORE_FAILURE"

# PostgreSQL lock_not_available, raised when lock_timeout expires
LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"
