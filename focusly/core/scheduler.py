"""
Focusly — Scheduled ticks.

The job queue calls `run_tick()` at each tick hour (see triggers.TICK_HOURS)
with the app-timezone wall clock. Every user is evaluated against the
trigger table; the resulting action's state change is applied and its
message dispatched.

A failure for one user is logged and the loop moves on to the next; domain
errors also reach the user as their canned message.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from focusly.config import settings
from focusly.core.access_policy import refresh_subscription_status
from focusly.core.dispatch import format_and_send
from focusly.core.errors import FocuslyError
from focusly.core.messages import checklist_keyboard
from focusly.core.triggers import Action, decide_action

if TYPE_CHECKING:
    from focusly.core.checklist_service import ChecklistService
    from focusly.data.models import User
    from focusly.ports.notification_port import NotificationPort
    from focusly.ports.store_port import ChecklistStore, UserStore

logger = logging.getLogger(__name__)


async def run_tick(
    now: datetime,
    users: UserStore,
    checklists: ChecklistStore,
    service: ChecklistService,
    notifier: NotificationPort,
) -> int:
    """Evaluate every user for this tick. Returns how many users had an action."""
    if now.hour == 0:
        pruned = users.prune_expired(now, settings.USER_RETENTION_DAYS)
        if pruned:
            logger.info("Pruned %d users past retention", pruned)

    acted = 0
    for user in users.list_users():
        try:
            action = await _run_for_user(now, user, users, checklists, service, notifier)
        except FocuslyError as exc:
            logger.warning("Tick %02d:00 for user %s: %s", now.hour, user.user_id, exc.detail)
            await _send_error(notifier, user, exc)
            continue
        except Exception as exc:
            logger.error("Tick %02d:00 failed for user %s: %s", now.hour, user.user_id, exc)
            continue
        if action is not None:
            acted += 1

    logger.info("Tick %02d:00 done: %d users acted on", now.hour, acted)
    return acted


async def _send_error(notifier: NotificationPort, user: User, exc: FocuslyError) -> None:
    try:
        await notifier.send_message(user.user_id, exc.user_message)
    except Exception as send_exc:
        logger.error("Could not notify user %s about %s: %s", user.user_id, type(exc).__name__, send_exc)


async def _run_for_user(
    now: datetime,
    user: User,
    users: UserStore,
    checklists: ChecklistStore,
    service: ChecklistService,
    notifier: NotificationPort,
) -> Action | None:
    if refresh_subscription_status(user, now):
        users.save_user(user)

    checklist = checklists.find_by_date(user.user_id, service.today_for(user, now))
    action = decide_action(user, checklist, now)
    if action is None:
        return None

    if action == Action.RESET_CHECK_IN_FLAG:
        service.reset_daily_flag(user, now)
        return action

    context: dict = {"hour": now.hour, "checklist": checklist}

    if action == Action.GENERATE_WEEKLY_CHECKLIST:
        result = await service.plan_today(user, now)
        context["checklist"] = result.checklist
        context["keyboard"] = checklist_keyboard(result.checklist)
        if result.generation.denial is not None:
            context["note"] = result.generation.denial.user_message
        elif result.generation.source == "fallback":
            context["note"] = result.generation.drafts[0].text

    elif action == Action.WEEKLY_REFLECTION:
        context["summary"] = service.weekly_summary(user, now)

    sent = await format_and_send(notifier, user, action, context)

    if sent and action == Action.GENERATE_WEEKLY_CHECKLIST:
        # keep message_id set by dispatch
        checklists.save_checklist(context["checklist"])
    if sent and action == Action.WEEKLY_REFLECTION:
        user.last_weekly_reflection_at = now
        users.save_user(user)
    return action
