"""
Focusly — Access Policy.

Decides whether a user may invoke AI generation right now and at which tier.

Rules, first match wins:
1. Active premium subscription: always allowed, HIGH tier.
2. Active basic subscription: 10 uses per ISO week, STANDARD tier.
3. Trial within its 14-day window: 5 uses per day, HIGH tier.
4. Anything else: denied, access expired.

Usage is counted per period (day for trial, ISO week for basic) and the
counter is reset only when the period marker changes. Callers record usage
with `record_usage()` after a successful AI response, never before.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from focusly.core.clock import day_marker, local_date, week_marker
from focusly.core.errors import (
    AccessExpired,
    DailyLimitReached,
    FocuslyError,
    WeeklyLimitReached,
)
from focusly.data.models import SubscriptionPlan, SubscriptionStatus, User

logger = logging.getLogger(__name__)


class Tier(str, enum.Enum):
    HIGH = "high"
    STANDARD = "standard"


@dataclass
class AccessDecision:
    """Outcome of evaluate_access(). `reason` is set only when denied."""

    allowed: bool
    tier: Tier | None = None
    reason: FocuslyError | None = None


def _limits() -> tuple[int, int, int]:
    from focusly.config import settings
    return settings.TRIAL_DAYS, settings.TRIAL_DAILY_LIMIT, settings.BASIC_WEEKLY_LIMIT


def refresh_subscription_status(user: User, now: datetime) -> bool:
    """Expire an active subscription whose paid period has ended.

    Returns True if the user was changed.
    """
    if (
        user.subscription_status == SubscriptionStatus.ACTIVE
        and user.subscription_expires_at is not None
        and now >= user.subscription_expires_at
    ):
        logger.info("Subscription for user %s expired", user.user_id)
        user.subscription_status = SubscriptionStatus.EXPIRED
        user.subscription_plan = SubscriptionPlan.NONE
        return True
    return False


def is_trial_active(user: User, now: datetime) -> bool:
    trial_days, _, _ = _limits()
    return (
        user.subscription_status == SubscriptionStatus.TRIAL
        and now < user.trial_started_at + timedelta(days=trial_days)
    )


def current_plan(user: User, now: datetime) -> str:
    """Effective plan name: 'premium', 'basic', 'trial' or 'none'."""
    refresh_subscription_status(user, now)
    if user.subscription_status == SubscriptionStatus.ACTIVE:
        if user.subscription_plan in (SubscriptionPlan.PREMIUM, SubscriptionPlan.BASIC):
            return user.subscription_plan.value
        return "none"
    return "trial" if is_trial_active(user, now) else "none"


def _period_marker(user: User, now: datetime) -> str:
    today = local_date(now, user.timezone)
    if (
        user.subscription_status == SubscriptionStatus.ACTIVE
        and user.subscription_plan == SubscriptionPlan.BASIC
    ):
        return week_marker(today)
    return day_marker(today)


def _reset_if_new_period(user: User, marker: str) -> None:
    if user.usage_period_anchor != marker:
        if user.usage_count:
            logger.debug(
                "Usage reset for user %s (%s -> %s)",
                user.user_id, user.usage_period_anchor, marker,
            )
        user.usage_count = 0
        user.usage_period_anchor = marker


def evaluate_access(user: User, now: datetime) -> AccessDecision:
    """Decide whether the user may call the AI now.

    May reset `usage_count` in place on period rollover; the caller persists
    the user.
    """
    _, trial_daily_limit, basic_weekly_limit = _limits()
    refresh_subscription_status(user, now)

    if user.subscription_status == SubscriptionStatus.ACTIVE:
        if user.subscription_plan == SubscriptionPlan.PREMIUM:
            return AccessDecision(allowed=True, tier=Tier.HIGH)
        if user.subscription_plan == SubscriptionPlan.BASIC:
            _reset_if_new_period(user, _period_marker(user, now))
            if user.usage_count < basic_weekly_limit:
                return AccessDecision(allowed=True, tier=Tier.STANDARD)
            return AccessDecision(allowed=False, reason=WeeklyLimitReached())

    if is_trial_active(user, now):
        _reset_if_new_period(user, _period_marker(user, now))
        if user.usage_count < trial_daily_limit:
            return AccessDecision(allowed=True, tier=Tier.HIGH)
        return AccessDecision(allowed=False, reason=DailyLimitReached())

    return AccessDecision(allowed=False, reason=AccessExpired())


def record_usage(user: User, now: datetime) -> None:
    """Count one successful AI call against the user's current period."""
    _reset_if_new_period(user, _period_marker(user, now))
    user.usage_count += 1
    logger.info(
        "AI usage for user %s: %d in %s",
        user.user_id, user.usage_count, user.usage_period_anchor,
    )
