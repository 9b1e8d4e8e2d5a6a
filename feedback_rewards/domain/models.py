"""
Domain Models - Reviews, Points and Vouchers
=============================================

Plain dataclasses and enums shared by every layer. No I/O happens here.

DESIGN: user-actionable outcomes (already earned today, insufficient points,
...) are Enum values carried on result objects rather than exceptions, so
callers can map each one to its own message.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional


# ── Structured reviews ─────────────────────────────────────────────

@dataclass
class StructuredReview:
    """Validated, schema-conformant output of the analysis stage."""
    summary: str
    food: str
    service: str
    atmosphere: str
    music: str
    sentiment_score: int
    key_points: List[str] = field(default_factory=list)
    improvement_suggestions: List[str] = field(default_factory=list)
    source: str = "model"  # "model" or "fallback"

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class Review:
    """A persisted review. Created once, never edited."""
    id: str
    user_id: str
    restaurant_id: str
    restaurant_name: str
    transcript: str
    analysis: StructuredReview
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "restaurant_id": self.restaurant_id,
            "restaurant_name": self.restaurant_name,
            "transcript": self.transcript,
            "created_at": self.created_at.isoformat(),
        }
        data.update(self.analysis.to_dict())
        return data


# ── Points ─────────────────────────────────────────────────────────

class EarnReason(Enum):
    """Qualifying actions. Only the first one each day earns points."""
    FEEDBACK_SAVED = "Feedback Saved"
    REVIEW_SHARED = "Copied to Google Reviews"


class EarnStatus(Enum):
    EARNED = "earned"
    ALREADY_EARNED_TODAY = "already_earned_today"


@dataclass
class PointAccount:
    """A user's balance and daily-earning flags."""
    user_id: str
    points_balance: int = 0
    last_earn_date: Optional[date] = None
    earn_count_today: int = 0

    def can_earn_on(self, day: date) -> bool:
        return self.last_earn_date != day


@dataclass
class PointTransaction:
    """Append-only audit record of a balance change."""
    id: int
    user_id: str
    delta: int
    reason: str
    created_at: datetime
    voucher_id: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class EarnResult:
    status: EarnStatus
    points_awarded: int = 0
    balance: int = 0

    @property
    def earned(self) -> bool:
        return self.status is EarnStatus.EARNED


# ── Rewards & vouchers ─────────────────────────────────────────────

@dataclass
class RewardCatalogEntry:
    """A redeemable reward, owned by the restaurant operator."""
    id: int
    name: str
    point_cost: int
    category: str = "other"
    icon: str = ""
    active: bool = True

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "RewardCatalogEntry":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data.get("name", "")).strip(),
            point_cost=int(data.get("point_cost", data.get("pointCost", 0)) or 0),
            category=str(data.get("category") or "other"),
            icon=str(data.get("icon") or ""),
            active=bool(data.get("active", True)),
        )


DEFAULT_REWARDS = [
    RewardCatalogEntry(id=1, name="Free Coffee", point_cost=30, category="beverage", icon="☕"),
    RewardCatalogEntry(id=2, name="Free Dessert", point_cost=60, category="food", icon="🍰"),
    RewardCatalogEntry(id=3, name="10% Discount", point_cost=100, category="discount", icon="💰"),
    RewardCatalogEntry(id=4, name="Free Appetizer", point_cost=120, category="food", icon="🥗"),
    RewardCatalogEntry(id=5, name="Free Main Course", point_cost=250, category="food", icon="🍽️"),
]


@dataclass
class Voucher:
    """
    Redemption receipt. The reward name/cost/icon are copied at redemption
    time; later catalog edits never change an issued voucher.
    """
    id: str
    user_id: str
    restaurant_id: str
    reward_id: int
    reward_name: str
    point_cost: int
    icon: str
    code: str
    redeemed_at: datetime
    expires_at: datetime
    is_used: bool = False
    used_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_redeemable(self, now: datetime) -> bool:
        return not self.is_used and not self.is_expired(now)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["redeemed_at"] = self.redeemed_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        data["used_at"] = self.used_at.isoformat() if self.used_at else None
        return data


class RedemptionError(Enum):
    REWARD_NOT_FOUND = "reward_not_found"
    INSUFFICIENT_POINTS = "insufficient_points"
    DAILY_REDEMPTION_LIMIT_REACHED = "daily_redemption_limit_reached"

    @property
    def message(self) -> str:
        return _REDEMPTION_MESSAGES[self]


_REDEMPTION_MESSAGES = {
    RedemptionError.REWARD_NOT_FOUND: "This reward is not available.",
    RedemptionError.INSUFFICIENT_POINTS: "You don't have enough points for this reward.",
    RedemptionError.DAILY_REDEMPTION_LIMIT_REACHED: "You can only redeem one reward per day.",
}


@dataclass
class RedemptionResult:
    voucher: Optional[Voucher] = None
    error: Optional[RedemptionError] = None

    @property
    def ok(self) -> bool:
        return self.voucher is not None and self.error is None


# ── Transcription ──────────────────────────────────────────────────

class TranscriptionFailureReason(Enum):
    NOT_CONFIGURED = "not_configured"
    NO_USABLE_TRANSCRIPT = "no_usable_transcript"


@dataclass
class TranscriptionFailure:
    """
    Returned instead of a transcript when no provider produced usable text.
    Never an empty string, so it cannot be mistaken for real content.
    """
    reason: TranscriptionFailureReason
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.reason is TranscriptionFailureReason.NOT_CONFIGURED:
            return "Voice feedback is unavailable right now. Please type your feedback instead."
        return "We couldn't understand the recording. Please try again or type your feedback."
