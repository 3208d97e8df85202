"""
Focusly — SQLite storage.

Users, checklists and payments persist in SQLite across restarts. A checklist
is stored as a single row with its tasks embedded as a JSON array, so it is
read and written as one document. UNIQUE(user_id, date) guarantees at most
one checklist per user per day.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from focusly.data.models import (
    Checklist,
    OnboardingStep,
    Payment,
    SubscriptionPlan,
    SubscriptionStatus,
    Task,
    User,
)

logger = logging.getLogger(__name__)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _d(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class _SQLiteDB:
    """Shared connection handling for the Focusly tables."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from focusly.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class UserDB(_SQLiteDB):
    """SQLite-backed storage for bot users."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id                   TEXT    PRIMARY KEY,
                    name                      TEXT,
                    focus                     TEXT,
                    focus_set_at              TEXT,
                    onboarding_step           TEXT    NOT NULL DEFAULT 'awaiting_name',
                    subscription_status       TEXT    NOT NULL DEFAULT 'trial',
                    subscription_plan         TEXT    NOT NULL DEFAULT 'none',
                    subscription_expires_at   TEXT,
                    trial_started_at          TEXT    NOT NULL,
                    usage_count               INTEGER NOT NULL DEFAULT 0,
                    usage_period_anchor       TEXT,
                    last_check_in_date        TEXT,
                    has_checked_in_today      INTEGER NOT NULL DEFAULT 0,
                    current_streak            INTEGER NOT NULL DEFAULT 0,
                    longest_streak            INTEGER NOT NULL DEFAULT 0,
                    missed_check_ins          INTEGER NOT NULL DEFAULT 0,
                    awaiting_reflection       INTEGER NOT NULL DEFAULT 0,
                    last_weekly_reflection_at TEXT,
                    timezone                  TEXT    NOT NULL,
                    locale                    TEXT    NOT NULL DEFAULT 'en',
                    created_at                TEXT    NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            user_id=row["user_id"],
            name=row["name"],
            focus=row["focus"],
            focus_set_at=_dt(row["focus_set_at"]),
            onboarding_step=OnboardingStep(row["onboarding_step"]),
            subscription_status=SubscriptionStatus(row["subscription_status"]),
            subscription_plan=SubscriptionPlan(row["subscription_plan"]),
            subscription_expires_at=_dt(row["subscription_expires_at"]),
            trial_started_at=_dt(row["trial_started_at"]),
            usage_count=row["usage_count"],
            usage_period_anchor=row["usage_period_anchor"],
            last_check_in_date=_d(row["last_check_in_date"]),
            has_checked_in_today=bool(row["has_checked_in_today"]),
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            missed_check_ins=row["missed_check_ins"],
            awaiting_reflection=bool(row["awaiting_reflection"]),
            last_weekly_reflection_at=_dt(row["last_weekly_reflection_at"]),
            timezone=row["timezone"],
            locale=row["locale"],
            created_at=_dt(row["created_at"]),
        )

    def get_user(self, user_id: str) -> User | None:
        """Fetch a user by external (Telegram) id."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (str(user_id),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_or_create(
        self, user_id: str, name: str | None = None, now: datetime | None = None,
    ) -> User:
        """Return the user with this id, creating a fresh trial user if absent."""
        from focusly.config import settings

        if now is None:
            now = datetime.now(ZoneInfo(settings.TIMEZONE))

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO users
                    (user_id, name, trial_started_at, timezone, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(user_id), name, now.isoformat(), settings.TIMEZONE, now.isoformat()),
            )
            created = cursor.rowcount > 0

        if created:
            logger.info("New user created: %s", user_id)
        return self.get_user(user_id)

    def save_user(self, user: User) -> None:
        """Write every mutable field of the user back to its row."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE users SET
                    name = ?, focus = ?, focus_set_at = ?, onboarding_step = ?,
                    subscription_status = ?, subscription_plan = ?,
                    subscription_expires_at = ?, trial_started_at = ?,
                    usage_count = ?, usage_period_anchor = ?,
                    last_check_in_date = ?, has_checked_in_today = ?,
                    current_streak = ?, longest_streak = ?, missed_check_ins = ?,
                    awaiting_reflection = ?,
                    last_weekly_reflection_at = ?, timezone = ?, locale = ?
                WHERE user_id = ?
                """,
                (
                    user.name, user.focus, _iso(user.focus_set_at),
                    user.onboarding_step.value,
                    user.subscription_status.value, user.subscription_plan.value,
                    _iso(user.subscription_expires_at), _iso(user.trial_started_at),
                    user.usage_count, user.usage_period_anchor,
                    _iso(user.last_check_in_date), int(user.has_checked_in_today),
                    user.current_streak, user.longest_streak, user.missed_check_ins,
                    int(user.awaiting_reflection),
                    _iso(user.last_weekly_reflection_at), user.timezone, user.locale,
                    user.user_id,
                ),
            )

    def list_users(self) -> list[User]:
        """Return all users, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users ORDER BY created_at"
            ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def prune_expired(self, now: datetime, retention_days: int) -> int:
        """Delete users (and their checklists) older than the retention window."""
        cutoff = now - timedelta(days=retention_days)
        with self._connect() as conn:
            rows = conn.execute("SELECT user_id, created_at FROM users").fetchall()
            expired = [
                r["user_id"] for r in rows
                if datetime.fromisoformat(r["created_at"]) < cutoff
            ]
            has_checklists = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'checklists'"
            ).fetchone() is not None
            for user_id in expired:
                conn.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
                if has_checklists:
                    conn.execute(
                        "DELETE FROM checklists WHERE user_id = ?", (user_id,),
                    )
        if expired:
            logger.info("Pruned %d users past %d-day retention", len(expired), retention_days)
        return len(expired)


class ChecklistDB(_SQLiteDB):
    """SQLite-backed storage for daily checklists."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checklists (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id     TEXT    NOT NULL,
                    date        TEXT    NOT NULL,
                    tasks       TEXT    NOT NULL DEFAULT '[]',
                    checked_in  INTEGER NOT NULL DEFAULT 0,
                    weekly_goal TEXT,
                    message_id  INTEGER,
                    reflection  TEXT,
                    UNIQUE (user_id, date)
                )
            """)
        logger.debug("Checklists table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_checklist(row: sqlite3.Row) -> Checklist:
        return Checklist(
            id=row["id"],
            user_id=row["user_id"],
            date=date.fromisoformat(row["date"]),
            tasks=[Task(**t) for t in json.loads(row["tasks"])],
            checked_in=bool(row["checked_in"]),
            weekly_goal=row["weekly_goal"],
            message_id=row["message_id"],
            reflection=row["reflection"],
        )

    def get_checklist(self, checklist_id: int) -> Checklist | None:
        """Fetch a single checklist by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM checklists WHERE id = ?", (checklist_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_checklist(row)

    def find_by_date(self, user_id: str, day: date) -> Checklist | None:
        """Fetch the user's checklist for a calendar date."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM checklists WHERE user_id = ? AND date = ?",
                (str(user_id), day.isoformat()),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_checklist(row)

    def create_checklist(
        self,
        user_id: str,
        day: date,
        weekly_goal: str | None = None,
        tasks: list[Task] | None = None,
    ) -> Checklist:
        """Insert a checklist for (user, day); returns the existing one on conflict."""
        tasks = tasks or []
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO checklists (user_id, date, tasks, weekly_goal)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        str(user_id), day.isoformat(),
                        json.dumps([asdict(t) for t in tasks]), weekly_goal,
                    ),
                )
                checklist_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.debug("Checklist for %s on %s already exists", user_id, day)
            return self.find_by_date(user_id, day)

        logger.info("Checklist #%d created for user %s on %s", checklist_id, user_id, day)
        return Checklist(
            id=checklist_id,
            user_id=str(user_id),
            date=day,
            tasks=list(tasks),
            weekly_goal=weekly_goal,
        )

    def save_checklist(self, checklist: Checklist) -> None:
        """Persist tasks, check-in flag, message id and reflection (last write wins)."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE checklists
                SET tasks = ?, checked_in = ?, weekly_goal = ?, message_id = ?,
                    reflection = ?
                WHERE id = ?
                """,
                (
                    json.dumps([asdict(t) for t in checklist.tasks]),
                    int(checklist.checked_in),
                    checklist.weekly_goal,
                    checklist.message_id,
                    checklist.reflection,
                    checklist.id,
                ),
            )

    def list_between(self, user_id: str, start: date, end: date) -> list[Checklist]:
        """Return the user's checklists with start <= date <= end, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM checklists
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date
                """,
                (str(user_id), start.isoformat(), end.isoformat()),
            ).fetchall()
        return [self._row_to_checklist(r) for r in rows]


class PaymentDB(_SQLiteDB):
    """SQLite-backed audit log of successful payments."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS payments (
                    id        INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id   TEXT    NOT NULL,
                    plan      TEXT    NOT NULL,
                    amount    INTEGER NOT NULL DEFAULT 0,
                    reference TEXT    NOT NULL DEFAULT '',
                    status    TEXT    NOT NULL,
                    paid_at   TEXT    NOT NULL
                )
            """)
        logger.debug("Payments table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_payment(row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["id"],
            user_id=row["user_id"],
            plan=SubscriptionPlan(row["plan"]),
            amount=row["amount"],
            reference=row["reference"],
            status=row["status"],
            paid_at=datetime.fromisoformat(row["paid_at"]),
        )

    def record_payment(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        amount: int,
        reference: str,
        status: str,
        paid_at: datetime,
    ) -> Payment:
        """Insert a payment row."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO payments (user_id, plan, amount, reference, status, paid_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (str(user_id), plan.value, amount, reference, status, paid_at.isoformat()),
            )
            payment_id = cursor.lastrowid
        logger.info("Payment #%d recorded for user %s (%s)", payment_id, user_id, plan.value)
        return Payment(
            id=payment_id,
            user_id=str(user_id),
            plan=plan,
            amount=amount,
            reference=reference,
            status=status,
            paid_at=paid_at,
        )

    def has_reference(self, reference: str) -> bool:
        """True if a payment with this provider reference was already recorded."""
        if not reference:
            return False
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM payments WHERE reference = ? LIMIT 1", (reference,),
            ).fetchone()
        return row is not None

    def list_for_user(self, user_id: str) -> list[Payment]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM payments WHERE user_id = ? ORDER BY paid_at",
                (str(user_id),),
            ).fetchall()
        return [self._row_to_payment(r) for r in rows]
