"""
SQLite Database Repository - Reviews, Points and Vouchers
==========================================================

Stores every document the feedback-to-reward pipeline produces.

ARCHITECTURAL DECISION:
- Every balance change runs as ONE write transaction (BEGIN IMMEDIATE) that
  re-checks its guard predicate inside the transaction, so two concurrent
  requests for the same user serialize and the second sees the first
- Balance change and transaction log row commit together or not at all
- The reward catalog is written to the settings document AND the per-reward
  rows inside the same transaction
"""

import json
import logging
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, List, Optional

from ...domain.models import (
    PointAccount,
    PointTransaction,
    RedemptionError,
    RedemptionResult,
    Review,
    RewardCatalogEntry,
    StructuredReview,
    Voucher,
)

logger = logging.getLogger(__name__)

DATABASE_FILE = "feedback_rewards.db"
VOUCHER_CODE_DIGITS = 6


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def generate_voucher_code() -> str:
    """Short numeric code staff can read out loud."""
    low = 10 ** (VOUCHER_CODE_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


class Database:
    """
    SQLite database for Feedback Rewards.

    Usage:
        db = Database("feedback_rewards.db")
        db.init()

        balance = db.apply_earn("user-1", 2, "Feedback Saved", datetime.now())
    """

    def __init__(self, db_path: str = DATABASE_FILE, busy_timeout: float = 30.0):
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self):
        """Write transaction holding the database write lock from the start."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    def init(self):
        """Initialize database tables."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    points_balance INTEGER NOT NULL DEFAULT 0 CHECK (points_balance >= 0),
                    last_earn_date TEXT,
                    earn_count_today INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reviews (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    restaurant_id TEXT NOT NULL,
                    restaurant_name TEXT NOT NULL DEFAULT '',
                    transcript TEXT NOT NULL DEFAULT '',
                    summary TEXT NOT NULL,
                    food TEXT NOT NULL,
                    service TEXT NOT NULL,
                    atmosphere TEXT NOT NULL,
                    music TEXT NOT NULL,
                    sentiment_score INTEGER NOT NULL CHECK (sentiment_score BETWEEN 1 AND 5),
                    key_points TEXT NOT NULL,
                    improvement_suggestions TEXT NOT NULL,
                    source TEXT NOT NULL DEFAULT 'model',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reviews_user ON reviews (user_id, created_at)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS point_transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    delta INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    voucher_id TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_transactions_user ON point_transactions (user_id)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS vouchers (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    restaurant_id TEXT NOT NULL,
                    reward_id INTEGER NOT NULL,
                    reward_name TEXT NOT NULL,
                    point_cost INTEGER NOT NULL,
                    icon TEXT NOT NULL DEFAULT '',
                    code TEXT NOT NULL UNIQUE,
                    is_used INTEGER NOT NULL DEFAULT 0,
                    redeemed_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    used_at TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_vouchers_user ON vouchers (user_id, redeemed_at)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS restaurant_settings (
                    restaurant_id TEXT PRIMARY KEY,
                    rewards TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS rewards (
                    restaurant_id TEXT NOT NULL,
                    id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    point_cost INTEGER NOT NULL CHECK (point_cost > 0),
                    category TEXT NOT NULL DEFAULT 'other',
                    icon TEXT NOT NULL DEFAULT '',
                    active INTEGER NOT NULL DEFAULT 1,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (restaurant_id, id)
                )
            """)

            logger.info(f"Database initialized: {self.db_path}")

    # ── Users / points ─────────────────────────────────────────────

    def _ensure_user(self, conn, user_id: str, now: datetime):
        conn.execute(
            "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
            (user_id, _ts(now))
        )

    def get_account(self, user_id: str, today: date) -> PointAccount:
        """Get a user's point account; unknown users read as an empty account."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            return PointAccount(user_id=user_id)
        return self._row_to_account(row, today)

    def apply_earn(self, user_id: str, amount: int, reason: str, now: datetime) -> Optional[int]:
        """
        Award points unless the user already earned today.

        Returns:
            New balance, or None when today's earn has already happened.
        """
        today = now.date().isoformat()
        with self._transaction() as conn:
            self._ensure_user(conn, user_id, now)
            # First earn of the day: the counter restarts at 1
            cursor = conn.execute(
                """UPDATE users
                   SET points_balance = points_balance + ?,
                       last_earn_date = ?,
                       earn_count_today = 1
                   WHERE id = ? AND (last_earn_date IS NULL OR last_earn_date != ?)""",
                (amount, today, user_id, today)
            )
            if cursor.rowcount == 0:
                return None

            conn.execute(
                "INSERT INTO point_transactions (user_id, delta, reason, created_at) VALUES (?, ?, ?, ?)",
                (user_id, amount, reason, _ts(now))
            )
            balance = conn.execute(
                "SELECT points_balance FROM users WHERE id = ?", (user_id,)
            ).fetchone()[0]

        logger.info(f"User {user_id} earned {amount} points ({reason}), balance {balance}")
        return balance

    def get_transactions(self, user_id: str, limit: int = 50) -> List[PointTransaction]:
        """Get a user's transactions, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM point_transactions WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit)
            ).fetchall()
            return [self._row_to_transaction(row) for row in rows]

    # ── Reviews ────────────────────────────────────────────────────

    def add_review(
        self,
        user_id: str,
        restaurant_id: str,
        restaurant_name: str,
        transcript: str,
        analysis: StructuredReview,
        now: datetime,
    ) -> Review:
        """Persist an analyzed review."""
        review = Review(
            id=uuid.uuid4().hex,
            user_id=user_id,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_name,
            transcript=transcript or "",
            analysis=analysis,
            created_at=now,
        )
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO reviews (id, user_id, restaurant_id, restaurant_name, transcript,
                                        summary, food, service, atmosphere, music, sentiment_score,
                                        key_points, improvement_suggestions, source, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    review.id, user_id, restaurant_id, restaurant_name, review.transcript,
                    analysis.summary, analysis.food, analysis.service, analysis.atmosphere,
                    analysis.music, analysis.sentiment_score,
                    json.dumps(analysis.key_points), json.dumps(analysis.improvement_suggestions),
                    analysis.source, _ts(now),
                )
            )
        return review

    def get_review(self, review_id: str) -> Optional[Review]:
        """Get review by ID."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
            return self._row_to_review(row) if row else None

    def get_reviews_for_user(self, user_id: str) -> List[Review]:
        """Get a user's reviews, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM reviews WHERE user_id = ? ORDER BY created_at DESC", (user_id,)
            ).fetchall()
            return [self._row_to_review(row) for row in rows]

    # ── Reward catalog ─────────────────────────────────────────────

    def get_catalog(self, restaurant_id: str) -> Optional[List[RewardCatalogEntry]]:
        """Read the settings document; None when the restaurant has no catalog yet."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT rewards FROM restaurant_settings WHERE restaurant_id = ?", (restaurant_id,)
            ).fetchone()
        if not row:
            return None
        return [RewardCatalogEntry.from_dict(item) for item in json.loads(row["rewards"])]

    def get_reward_rows(self, restaurant_id: str) -> List[RewardCatalogEntry]:
        """Read the per-reward documents."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM rewards WHERE restaurant_id = ? ORDER BY id", (restaurant_id,)
            ).fetchall()
            return [self._row_to_reward(row) for row in rows]

    def update_catalog(
        self,
        restaurant_id: str,
        mutate: Callable[[List[RewardCatalogEntry]], List[RewardCatalogEntry]],
        defaults: List[RewardCatalogEntry],
        now: datetime,
    ) -> List[RewardCatalogEntry]:
        """
        Read-modify-write the catalog in one transaction.

        ``mutate`` receives the current list (``defaults`` when none is stored)
        and returns the new one. Both representations are rewritten before
        commit.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT rewards FROM restaurant_settings WHERE restaurant_id = ?", (restaurant_id,)
            ).fetchone()
            current = (
                [RewardCatalogEntry.from_dict(item) for item in json.loads(row["rewards"])]
                if row else [RewardCatalogEntry(**e.to_dict()) for e in defaults]
            )
            updated = mutate(current)

            document = json.dumps([entry.to_dict() for entry in updated])
            conn.execute(
                """INSERT INTO restaurant_settings (restaurant_id, rewards, created_at, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (restaurant_id) DO UPDATE
                   SET rewards = excluded.rewards, updated_at = excluded.updated_at""",
                (restaurant_id, document, _ts(now), _ts(now))
            )
            conn.execute("DELETE FROM rewards WHERE restaurant_id = ?", (restaurant_id,))
            conn.executemany(
                """INSERT INTO rewards (restaurant_id, id, name, point_cost, category, icon, active, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (restaurant_id, e.id, e.name, e.point_cost, e.category, e.icon, int(e.active), _ts(now))
                    for e in updated
                ]
            )

        logger.info(f"Catalog for {restaurant_id} saved ({len(updated)} rewards)")
        return updated

    # ── Vouchers ───────────────────────────────────────────────────

    def redeem(
        self,
        user_id: str,
        restaurant_id: str,
        reward: RewardCatalogEntry,
        now: datetime,
        day_start: datetime,
        expires_at: datetime,
        code_factory: Callable[[], str] = generate_voucher_code,
    ) -> RedemptionResult:
        """
        Debit points and issue a voucher as one unit.

        The reward is re-read, then balance and today's-redemption checks
        run, all inside the write transaction and in that order. A stored
        catalog row wins over the caller's copy, so a concurrent edit or
        deactivation is seen.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM rewards WHERE restaurant_id = ? AND id = ?", (restaurant_id, reward.id)
            ).fetchone()
            if row is not None:
                reward = self._row_to_reward(row)
            elif conn.execute("SELECT 1 FROM rewards WHERE restaurant_id = ?", (restaurant_id,)).fetchone():
                return RedemptionResult(error=RedemptionError.REWARD_NOT_FOUND)
            if not reward.active:
                return RedemptionResult(error=RedemptionError.REWARD_NOT_FOUND)

            self._ensure_user(conn, user_id, now)
            balance = conn.execute(
                "SELECT points_balance FROM users WHERE id = ?", (user_id,)
            ).fetchone()[0]
            if balance < reward.point_cost:
                return RedemptionResult(error=RedemptionError.INSUFFICIENT_POINTS)

            redeemed_today = conn.execute(
                "SELECT COUNT(*) FROM vouchers WHERE user_id = ? AND redeemed_at >= ?",
                (user_id, _ts(day_start))
            ).fetchone()[0]
            if redeemed_today > 0:
                return RedemptionResult(error=RedemptionError.DAILY_REDEMPTION_LIMIT_REACHED)

            code = code_factory()
            while conn.execute("SELECT 1 FROM vouchers WHERE code = ?", (code,)).fetchone():
                code = code_factory()

            conn.execute(
                "UPDATE users SET points_balance = points_balance - ? WHERE id = ? AND points_balance >= ?",
                (reward.point_cost, user_id, reward.point_cost)
            )

            voucher = Voucher(
                id=uuid.uuid4().hex,
                user_id=user_id,
                restaurant_id=restaurant_id,
                reward_id=reward.id,
                reward_name=reward.name,
                point_cost=reward.point_cost,
                icon=reward.icon,
                code=code,
                redeemed_at=now,
                expires_at=expires_at,
            )
            conn.execute(
                """INSERT INTO vouchers (id, user_id, restaurant_id, reward_id, reward_name, point_cost,
                                         icon, code, is_used, redeemed_at, expires_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
                (
                    voucher.id, user_id, restaurant_id, reward.id, reward.name, reward.point_cost,
                    reward.icon, code, _ts(now), _ts(expires_at),
                )
            )
            conn.execute(
                """INSERT INTO point_transactions (user_id, delta, reason, voucher_id, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, -reward.point_cost, f"Redeemed: {reward.name}", voucher.id, _ts(now))
            )

        logger.info(f"User {user_id} redeemed '{reward.name}' for {reward.point_cost} points")
        return RedemptionResult(voucher=voucher)

    def get_voucher(self, voucher_id: str) -> Optional[Voucher]:
        """Get voucher by ID."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM vouchers WHERE id = ?", (voucher_id,)).fetchone()
            return self._row_to_voucher(row) if row else None

    def find_voucher_by_code(self, code: str) -> Optional[Voucher]:
        """Get voucher by its staff-facing code."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM vouchers WHERE code = ?", (code.strip(),)).fetchone()
            return self._row_to_voucher(row) if row else None

    def get_active_vouchers(self, user_id: str, now: datetime) -> List[Voucher]:
        """Unused vouchers that have not expired yet."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT * FROM vouchers
                   WHERE user_id = ? AND is_used = 0 AND expires_at >= ?
                   ORDER BY redeemed_at DESC""",
                (user_id, _ts(now))
            ).fetchall()
            return [self._row_to_voucher(row) for row in rows]

    def mark_voucher_used(self, voucher_id: str, now: datetime) -> bool:
        """Mark an unused, unexpired voucher as used."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE vouchers SET is_used = 1, used_at = ? WHERE id = ? AND is_used = 0 AND expires_at >= ?",
                (_ts(now), voucher_id, _ts(now))
            )
            return cursor.rowcount == 1

    # ── Row mapping ────────────────────────────────────────────────

    def _row_to_account(self, row: sqlite3.Row, today: date) -> PointAccount:
        """Convert database row to PointAccount object."""
        last_earn = date.fromisoformat(row["last_earn_date"]) if row["last_earn_date"] else None
        return PointAccount(
            user_id=row["id"],
            points_balance=row["points_balance"],
            last_earn_date=last_earn,
            earn_count_today=row["earn_count_today"] if last_earn == today else 0,
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> PointTransaction:
        return PointTransaction(
            id=row["id"],
            user_id=row["user_id"],
            delta=row["delta"],
            reason=row["reason"],
            created_at=_parse_ts(row["created_at"]),
            voucher_id=row["voucher_id"],
        )

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        analysis = StructuredReview(
            summary=row["summary"],
            food=row["food"],
            service=row["service"],
            atmosphere=row["atmosphere"],
            music=row["music"],
            sentiment_score=row["sentiment_score"],
            key_points=json.loads(row["key_points"]),
            improvement_suggestions=json.loads(row["improvement_suggestions"]),
            source=row["source"],
        )
        return Review(
            id=row["id"],
            user_id=row["user_id"],
            restaurant_id=row["restaurant_id"],
            restaurant_name=row["restaurant_name"],
            transcript=row["transcript"],
            analysis=analysis,
            created_at=_parse_ts(row["created_at"]),
        )

    def _row_to_reward(self, row: sqlite3.Row) -> RewardCatalogEntry:
        return RewardCatalogEntry(
            id=row["id"],
            name=row["name"],
            point_cost=row["point_cost"],
            category=row["category"],
            icon=row["icon"],
            active=bool(row["active"]),
        )

    def _row_to_voucher(self, row: sqlite3.Row) -> Voucher:
        """Convert database row to Voucher object."""
        return Voucher(
            id=row["id"],
            user_id=row["user_id"],
            restaurant_id=row["restaurant_id"],
            reward_id=row["reward_id"],
            reward_name=row["reward_name"],
            point_cost=row["point_cost"],
            icon=row["icon"],
            code=row["code"],
            redeemed_at=_parse_ts(row["redeemed_at"]),
            expires_at=_parse_ts(row["expires_at"]),
            is_used=bool(row["is_used"]),
            used_at=_parse_ts(row["used_at"]),
        )


def init_database(db_path: str = DATABASE_FILE) -> Database:
    """Create and initialize a database."""
    db = Database(db_path)
    db.init()
    return db
