# Application Layer
# =================
# Use cases and orchestration:
# - points_ledger.py: balances, once-a-day earning
# - rewards.py: reward catalog, voucher redemption
# - feedback.py: transcribe -> analyze -> store -> earn

from .feedback import FeedbackService, FeedbackOutcome, ShareOutcome, FeedbackTooShortError, ReviewNotFoundError
from .points_ledger import PointsLedger
from .rewards import RewardCatalog, RedemptionService, end_of_day

__all__ = [
    "FeedbackService",
    "FeedbackOutcome",
    "ShareOutcome",
    "FeedbackTooShortError",
    "ReviewNotFoundError",
    "PointsLedger",
    "RewardCatalog",
    "RedemptionService",
    "end_of_day",
]
