"""
Rewards - Catalog Management and Voucher Redemption
====================================================

RewardCatalog is the operator-facing side: a per-restaurant list of rewards.
RedemptionService is the diner-facing side: trade points for a voucher.

Redemption rules, checked in order:
1. reward exists and is active       -> else REWARD_NOT_FOUND
2. balance covers the point cost     -> else INSUFFICIENT_POINTS
3. no other redemption today         -> else DAILY_REDEMPTION_LIMIT_REACHED

Check 1 is repeated against the stored row, and checks 2 and 3, the debit
and the voucher insert all share one write transaction, so a second
concurrent request (or a concurrent catalog edit) is seen.
"""

import logging
from datetime import datetime, time
from typing import Callable, List, Optional

from ..domain.models import (
    DEFAULT_REWARDS,
    RedemptionError,
    RedemptionResult,
    RewardCatalogEntry,
    Voucher,
)
from ..infrastructure.persistence import Database, generate_voucher_code

logger = logging.getLogger(__name__)

DEFAULT_RESTAURANT_ID = "default_restaurant"


class RewardCatalog:
    """Operator-maintained rewards for one restaurant."""

    def __init__(
        self,
        db: Database,
        restaurant_id: str = DEFAULT_RESTAURANT_ID,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._db = db
        self.restaurant_id = restaurant_id
        self._clock = clock

    def list_rewards(self, include_inactive: bool = False) -> List[RewardCatalogEntry]:
        rewards = self._db.get_catalog(self.restaurant_id)
        if rewards is None:
            rewards = [RewardCatalogEntry(**r.to_dict()) for r in DEFAULT_REWARDS]
        if include_inactive:
            return rewards
        return [r for r in rewards if r.active]

    def get(self, reward_id: int) -> Optional[RewardCatalogEntry]:
        """Active reward by id, or None."""
        for reward in self.list_rewards():
            if reward.id == reward_id:
                return reward
        return None

    def initialize_defaults(self) -> List[RewardCatalogEntry]:
        """Store the default rewards unless a catalog already exists."""
        existing = self._db.get_catalog(self.restaurant_id)
        if existing is not None:
            logger.info(f"Rewards already exist for restaurant: {self.restaurant_id}")
            return existing
        return self._db.update_catalog(self.restaurant_id, lambda current: current, DEFAULT_REWARDS, self._clock())

    def upsert(self, entry: RewardCatalogEntry) -> RewardCatalogEntry:
        """
        Add or replace a reward. Entries without an id (id <= 0) get the next
        free one.
        """
        _validate(entry)
        saved: List[RewardCatalogEntry] = []

        def mutate(current: List[RewardCatalogEntry]) -> List[RewardCatalogEntry]:
            new_entry = RewardCatalogEntry(**entry.to_dict())
            if new_entry.id <= 0:
                new_entry.id = max((r.id for r in current), default=0) + 1
            saved.append(new_entry)
            replaced = [new_entry if r.id == new_entry.id else r for r in current]
            if not any(r.id == new_entry.id for r in current):
                replaced.append(new_entry)
            return replaced

        self._db.update_catalog(self.restaurant_id, mutate, DEFAULT_REWARDS, self._clock())
        logger.info(f"Reward upserted: {saved[0].name} ({saved[0].point_cost} points)")
        return saved[0]

    def deactivate(self, reward_id: int) -> bool:
        """Hide a reward from diners. Issued vouchers are unaffected."""
        found = []

        def mutate(current: List[RewardCatalogEntry]) -> List[RewardCatalogEntry]:
            for reward in current:
                if reward.id == reward_id:
                    reward.active = False
                    found.append(reward)
            return current

        self._db.update_catalog(self.restaurant_id, mutate, DEFAULT_REWARDS, self._clock())
        return bool(found)

    def replace_all(self, entries: List[RewardCatalogEntry]) -> List[RewardCatalogEntry]:
        """Overwrite the whole catalog, as the operator's bulk editor does."""
        ids = [e.id for e in entries]
        if len(set(ids)) != len(ids):
            raise ValueError("Reward ids must be unique")
        for entry in entries:
            _validate(entry)
            if entry.id <= 0:
                raise ValueError("Reward ids must be positive")
        return self._db.update_catalog(
            self.restaurant_id, lambda current: list(entries), DEFAULT_REWARDS, self._clock()
        )

    def reset_to_defaults(self) -> List[RewardCatalogEntry]:
        return self.replace_all([RewardCatalogEntry(**r.to_dict()) for r in DEFAULT_REWARDS])


def _validate(entry: RewardCatalogEntry) -> None:
    if not entry.name.strip():
        raise ValueError("Reward name is required")
    if entry.point_cost <= 0:
        raise ValueError("Reward point cost must be a positive integer")


def end_of_day(moment: datetime) -> datetime:
    """23:59:59 on the same calendar day."""
    return datetime.combine(moment.date(), time(23, 59, 59))


class RedemptionService:
    """
    Trades points for vouchers.

    USAGE:
        service = RedemptionService(db, catalog)
        result = service.redeem("user-1", reward_id=1)
        if result.ok:
            print(result.voucher.code)
        else:
            print(result.error.message)
    """

    def __init__(
        self,
        db: Database,
        catalog: RewardCatalog,
        clock: Callable[[], datetime] = datetime.now,
        code_factory: Callable[[], str] = generate_voucher_code,
    ):
        self._db = db
        self._catalog = catalog
        self._clock = clock
        self._code_factory = code_factory

    def redeem(self, user_id: str, reward_id: int) -> RedemptionResult:
        reward = self._catalog.get(reward_id)
        if reward is None:
            logger.info(f"User {user_id} tried to redeem unknown/inactive reward {reward_id}")
            return RedemptionResult(error=RedemptionError.REWARD_NOT_FOUND)

        now = self._clock()
        day_start = datetime.combine(now.date(), time.min)
        result = self._db.redeem(
            user_id,
            self._catalog.restaurant_id,
            reward,
            now=now,
            day_start=day_start,
            expires_at=end_of_day(now),
            code_factory=self._code_factory,
        )
        if result.error is not None:
            logger.info(f"Redemption refused for user {user_id}: {result.error.value}")
        return result

    def active_vouchers(self, user_id: str) -> List[Voucher]:
        return self._db.get_active_vouchers(user_id, self._clock())

    def find_voucher_by_code(self, code: str) -> Optional[Voucher]:
        return self._db.find_voucher_by_code(code)

    def mark_used(self, voucher_id: str) -> bool:
        """Staff action. False when the voucher is unknown, used, or expired."""
        now = self._clock()
        if self._db.mark_voucher_used(voucher_id, now):
            logger.info(f"Voucher {voucher_id} marked used")
            return True

        voucher = self._db.get_voucher(voucher_id)
        if voucher is None:
            reason = "unknown voucher"
        elif voucher.is_used:
            reason = "already used"
        else:
            reason = "expired"
        logger.warning(f"Voucher {voucher_id} could not be marked used: {reason}")
        return False
