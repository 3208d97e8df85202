"""
Focusly — Subscriptions.

Payment links for the Paystack payment pages and activation of a paid plan
once the charge webhook arrives.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from urllib.parse import quote

from focusly.config import settings
from focusly.core.errors import UserNotFound
from focusly.core.messages import PLAN_DETAILS, activation_message
from focusly.data.models import SubscriptionPlan, SubscriptionStatus, User

if TYPE_CHECKING:
    from focusly.data.db import PaymentDB
    from focusly.ports.notification_port import NotificationPort
    from focusly.ports.store_port import UserStore

logger = logging.getLogger(__name__)


def parse_plan(value: str | None) -> SubscriptionPlan | None:
    """'basic' / 'Premium' -> SubscriptionPlan; None for anything unpurchasable."""
    if not value:
        return None
    try:
        plan = SubscriptionPlan(str(value).strip().lower())
    except ValueError:
        return None
    return plan if plan in PLAN_DETAILS else None


def payment_link(user_id: str, plan: SubscriptionPlan) -> str:
    """Paystack page URL carrying {userId, plan} as metadata."""
    base = (
        settings.PAYSTACK_PREMIUM_URL
        if plan == SubscriptionPlan.PREMIUM
        else settings.PAYSTACK_BASIC_URL
    )
    metadata = json.dumps({"userId": user_id, "plan": plan.value})
    return f"{base}?metadata={quote(metadata)}"


async def activate_subscription(
    users: UserStore,
    notifier: NotificationPort,
    user_id: str,
    plan: SubscriptionPlan,
    now: datetime,
    payments: PaymentDB | None = None,
    reference: str = "",
    amount: int | None = None,
) -> User:
    """Activate `plan` for SUBSCRIPTION_DAYS and send one confirmation.

    Raises UserNotFound if the user does not exist. A failed confirmation
    message is logged; the activation stands.
    """
    user = users.get_user(user_id)
    if user is None:
        raise UserNotFound(f"user {user_id}")

    expires_at = now + timedelta(days=settings.SUBSCRIPTION_DAYS)
    user.subscription_status = SubscriptionStatus.ACTIVE
    user.subscription_plan = plan
    user.subscription_expires_at = expires_at
    user.usage_count = 0
    user.usage_period_anchor = None
    users.save_user(user)
    logger.info("Activated %s for user %s until %s", plan.value, user_id, expires_at.isoformat())

    if payments is not None:
        payments.record_payment(
            user_id=user_id,
            plan=plan,
            amount=amount if amount is not None else PLAN_DETAILS[plan].amount_kobo,
            reference=reference,
            status="success",
            paid_at=now,
        )

    try:
        await notifier.send_message(user_id, activation_message(plan, expires_at))
    except Exception as exc:
        logger.error("Failed to send activation message to user %s: %s", user_id, exc)

    return user
