"""
Points Ledger - Balances and the Once-a-Day Earning Rule
=========================================================

A user earns points at most once per calendar day (local midnight), no
matter how many qualifying actions happen. The first one wins.

The daily check and the increment are a single conditional update in the
store, so concurrent requests from one user cannot double-earn.
"""

import logging
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..domain.models import (
    EarnReason,
    EarnResult,
    EarnStatus,
    PointAccount,
    PointTransaction,
    RewardCatalogEntry,
)
from ..infrastructure.config import PointsSettings
from ..infrastructure.persistence import Database

logger = logging.getLogger(__name__)


class PointsLedger:
    """
    Owns point balances and the transaction log.

    USAGE:
        ledger = PointsLedger(db)
        result = ledger.earn("user-1", 2, EarnReason.FEEDBACK_SAVED)
        if not result.earned:
            print("Come back tomorrow!")
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[PointsSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._db = db
        self._settings = settings or PointsSettings()
        self._clock = clock

    def award_for(self, reason: EarnReason) -> int:
        """Configured points for a qualifying action."""
        if reason is EarnReason.REVIEW_SHARED:
            return self._settings.review_shared
        return self._settings.feedback_saved

    def _today(self) -> date:
        return self._clock().date()

    def get_account(self, user_id: str) -> PointAccount:
        return self._db.get_account(user_id, self._today())

    def get_balance(self, user_id: str) -> int:
        return self.get_account(user_id).points_balance

    def can_earn_today(self, user_id: str) -> bool:
        return self.get_account(user_id).can_earn_on(self._today())

    def earn(self, user_id: str, amount: int, reason: EarnReason) -> EarnResult:
        """
        Award ``amount`` points unless the user already earned today.

        Returns:
            EarnResult with status EARNED, or ALREADY_EARNED_TODAY with no
            state changed.
        """
        if amount <= 0:
            raise ValueError(f"Earned points must be positive, got {amount}")

        balance = self._db.apply_earn(user_id, amount, reason.value, self._clock())
        if balance is None:
            logger.info(f"User {user_id} already earned points today ({reason.value} ignored)")
            return EarnResult(status=EarnStatus.ALREADY_EARNED_TODAY, balance=self.get_balance(user_id))

        return EarnResult(status=EarnStatus.EARNED, points_awarded=amount, balance=balance)

    def earn_for(self, user_id: str, reason: EarnReason) -> EarnResult:
        """Earn the configured award for ``reason``."""
        return self.earn(user_id, self.award_for(reason), reason)

    def get_summary(self, user_id: str) -> Dict[str, object]:
        account = self.get_account(user_id)
        return {
            "total_points": account.points_balance,
            "can_earn_today": account.can_earn_on(self._today()),
            "earn_count_today": account.earn_count_today,
        }

    def history(self, user_id: str, limit: int = 50) -> List[PointTransaction]:
        return self._db.get_transactions(user_id, limit)

    def next_reward(self, user_id: str, rewards: Iterable[RewardCatalogEntry]) -> Optional[Dict[str, object]]:
        """Cheapest active reward the user cannot afford yet."""
        balance = self.get_balance(user_id)
        out_of_reach = sorted(
            (r for r in rewards if r.active and r.point_cost > balance),
            key=lambda r: r.point_cost,
        )
        if not out_of_reach:
            return None
        reward = out_of_reach[0]
        return {
            "name": reward.name,
            "points_needed": reward.point_cost - balance,
            "total_cost": reward.point_cost,
        }
