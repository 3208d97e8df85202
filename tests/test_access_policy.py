"""Tests for focusly.core.access_policy — plan rules, limits and usage rollover."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from focusly.core.access_policy import (
    Tier,
    current_plan,
    evaluate_access,
    is_trial_active,
    record_usage,
    refresh_subscription_status,
)
from focusly.core.errors import AccessExpired, DailyLimitReached, WeeklyLimitReached
from focusly.data.models import SubscriptionPlan, SubscriptionStatus, User

LAGOS = ZoneInfo("Africa/Lagos")
START = datetime(2026, 3, 2, 9, 0, tzinfo=LAGOS)  # Monday


def _user(**overrides) -> User:
    user = User(user_id="42", trial_started_at=START, created_at=START)
    for key, value in overrides.items():
        setattr(user, key, value)
    return user


def _active(plan: SubscriptionPlan, **overrides) -> User:
    return _user(
        subscription_status=SubscriptionStatus.ACTIVE,
        subscription_plan=plan,
        subscription_expires_at=START + timedelta(days=30),
        **overrides,
    )


# ---------------------------------------------------------------------------
# Trial
# ---------------------------------------------------------------------------


class TestTrial:
    def test_new_trial_user_allowed_high_tier(self):
        decision = evaluate_access(_user(), START)
        assert decision.allowed is True
        assert decision.tier == Tier.HIGH
        assert decision.reason is None

    def test_five_uses_per_day_then_denied(self):
        user = _user()
        for _ in range(5):
            assert evaluate_access(user, START).allowed
            record_usage(user, START)

        decision = evaluate_access(user, START)
        assert decision.allowed is False
        assert isinstance(decision.reason, DailyLimitReached)

    def test_counter_resets_next_day(self):
        user = _user(usage_count=5, usage_period_anchor="2026-03-02")
        decision = evaluate_access(user, START + timedelta(days=1))
        assert decision.allowed is True
        assert user.usage_count == 0
        assert user.usage_period_anchor == "2026-03-03"

    def test_counter_not_reset_mid_period(self):
        user = _user(usage_count=3, usage_period_anchor="2026-03-02")
        evaluate_access(user, START + timedelta(hours=10))
        assert user.usage_count == 3

    def test_day_14_allowed_day_15_expired(self):
        user = _user()
        assert evaluate_access(user, START + timedelta(days=13, hours=23)).allowed
        decision = evaluate_access(user, START + timedelta(days=14))
        assert decision.allowed is False
        assert isinstance(decision.reason, AccessExpired)

    def test_trial_scenario_sixth_call_denied(self):
        user = _user()
        day = START + timedelta(days=2)
        for _ in range(5):
            record_usage(user, day)
        assert isinstance(evaluate_access(user, day).reason, DailyLimitReached)

    def test_is_trial_active_requires_trial_status(self):
        assert is_trial_active(_user(), START) is True
        assert is_trial_active(_user(subscription_status=SubscriptionStatus.EXPIRED), START) is False


# ---------------------------------------------------------------------------
# Basic / Premium
# ---------------------------------------------------------------------------


class TestBasic:
    def test_standard_tier(self):
        decision = evaluate_access(_active(SubscriptionPlan.BASIC), START)
        assert decision.allowed is True
        assert decision.tier == Tier.STANDARD

    def test_ten_uses_per_week(self):
        user = _active(SubscriptionPlan.BASIC)
        for i in range(10):
            now = START + timedelta(hours=i * 12)
            assert evaluate_access(user, now).allowed
            record_usage(user, now)
        assert user.usage_period_anchor == "2026-W10"

        decision = evaluate_access(user, START + timedelta(days=5))
        assert decision.allowed is False
        assert isinstance(decision.reason, WeeklyLimitReached)

    def test_resets_on_new_iso_week(self):
        user = _active(SubscriptionPlan.BASIC, usage_count=10, usage_period_anchor="2026-W10")
        next_monday = START + timedelta(days=7)
        assert evaluate_access(user, next_monday).allowed is True
        assert user.usage_count == 0
        assert user.usage_period_anchor == "2026-W11"


class TestPremium:
    def test_always_allowed_high_tier(self):
        user = _active(SubscriptionPlan.PREMIUM, usage_count=500)
        decision = evaluate_access(user, START)
        assert decision.allowed is True
        assert decision.tier == Tier.HIGH


# ---------------------------------------------------------------------------
# Expiry and plan names
# ---------------------------------------------------------------------------


class TestSubscriptionExpiry:
    def test_refresh_expires_lapsed_subscription(self):
        user = _active(SubscriptionPlan.PREMIUM)
        changed = refresh_subscription_status(user, START + timedelta(days=30))
        assert changed is True
        assert user.subscription_status == SubscriptionStatus.EXPIRED
        assert user.subscription_plan == SubscriptionPlan.NONE

    def test_refresh_leaves_current_subscription(self):
        user = _active(SubscriptionPlan.PREMIUM)
        assert refresh_subscription_status(user, START + timedelta(days=29)) is False
        assert user.subscription_status == SubscriptionStatus.ACTIVE

    def test_lapsed_subscriber_is_denied(self):
        user = _active(SubscriptionPlan.BASIC)
        decision = evaluate_access(user, START + timedelta(days=31))
        assert decision.allowed is False
        assert isinstance(decision.reason, AccessExpired)


class TestCurrentPlan:
    def test_plan_names(self):
        assert current_plan(_user(), START) == "trial"
        assert current_plan(_active(SubscriptionPlan.BASIC), START) == "basic"
        assert current_plan(_active(SubscriptionPlan.PREMIUM), START) == "premium"
        assert current_plan(_user(), START + timedelta(days=20)) == "none"
