"""
Focusly — Data Models.

One canonical shape per entity: a User carries identity plus subscription and
usage policy state; a Checklist holds one calendar day of tasks for one user.
Tasks are embedded in their checklist and have no lifecycle of their own.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


class SubscriptionPlan(str, enum.Enum):
    NONE = "none"
    BASIC = "basic"
    PREMIUM = "premium"


class OnboardingStep(str, enum.Enum):
    AWAITING_NAME = "awaiting_name"
    AWAITING_FOCUS = "awaiting_focus"
    AWAITING_TASKS = "awaiting_tasks"
    ONBOARDED = "onboarded"


@dataclass
class User:
    """A bot user, keyed by their Telegram user id (stored as text)."""

    user_id: str
    trial_started_at: datetime
    created_at: datetime
    name: str | None = None
    focus: str | None = None
    focus_set_at: datetime | None = None
    onboarding_step: OnboardingStep = OnboardingStep.AWAITING_NAME
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    subscription_plan: SubscriptionPlan = SubscriptionPlan.NONE
    subscription_expires_at: datetime | None = None
    usage_count: int = 0
    usage_period_anchor: str | None = None   # "YYYY-MM-DD" or "YYYY-Www"
    last_check_in_date: date | None = None
    has_checked_in_today: bool = False
    current_streak: int = 0
    longest_streak: int = 0
    missed_check_ins: int = 0
    awaiting_reflection: bool = False   # next free text answers the check-in question
    last_weekly_reflection_at: datetime | None = None
    timezone: str = "Africa/Lagos"
    locale: str = "en"

    @property
    def is_onboarded(self) -> bool:
        return self.onboarding_step == OnboardingStep.ONBOARDED


@dataclass
class Task:
    """One checklist line. Its id is its index in Checklist.tasks."""

    text: str
    completed: bool = False
    carried_over: bool = False


@dataclass
class TaskDraft:
    """A task proposed by generation, not yet attached to a checklist."""

    text: str
    carried_over: bool = False


@dataclass
class Checklist:
    """The tasks a user is tracking for one calendar day."""

    id: int
    user_id: str
    date: date
    tasks: list[Task] = field(default_factory=list)
    checked_in: bool = False
    weekly_goal: str | None = None
    message_id: int | None = None   # last Telegram message rendering it
    reflection: str | None = None

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.completed)

    def incomplete_tasks(self) -> list[Task]:
        return [t for t in self.tasks if not t.completed]

    def has_task_text(self, text: str) -> bool:
        return any(t.text == text for t in self.tasks)


@dataclass
class Payment:
    """Audit record of a successful charge reported by the payment webhook."""

    id: int
    user_id: str
    plan: SubscriptionPlan
    amount: int           # smallest currency unit (kobo)
    reference: str
    status: str
    paid_at: datetime
