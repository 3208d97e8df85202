"""
Focusly — Message Templates.

Everything the bot says outside of direct command replies: checklist
rendering, inline keyboards, check-in summaries and the scheduled prompts.
Scheduled prompts are keyed by (locale, action) and fall back to English.

Texts are Telegram legacy Markdown; user-supplied text goes through `_md()`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from focusly.core import action_token
from focusly.core.triggers import Action
from focusly.data.models import Checklist, SubscriptionPlan, User
from focusly.ports.notification_port import Button, Keyboard

if TYPE_CHECKING:
    from focusly.core.checklist_service import WeeklySummary

DEFAULT_LOCALE = "en"

_BUTTON_TEXT_LEN = 20


def _md(text: str) -> str:
    """Escape legacy-Markdown control characters in user text."""
    for ch in ("\\", "_", "*", "`", "["):
        text = text.replace(ch, "\\" + ch)
    return text


# ---------------------------------------------------------------------------
# Checklist rendering
# ---------------------------------------------------------------------------


def format_checklist(checklist: Checklist) -> str:
    goal = _md(checklist.weekly_goal) if checklist.weekly_goal else "No goal set? Use /setgoal!"

    if not checklist.tasks:
        return (
            "📋 *Your Daily Checklist*\n\n"
            f"🎯 *Goal:* {goal}\n\n"
            "You have no tasks for today yet.\n"
            "Send them to me separated by commas, or use /plan."
        )

    lines = [
        "✨ *Your Daily Action Plan* ✨",
        "",
        f"🎯 *Goal:* {goal}",
        "",
        "📝 *Today's Tasks:*",
    ]
    for index, task in enumerate(checklist.tasks):
        status = "✅" if task.completed else "⬜️"
        carried = " _(carried over)_" if task.carried_over else ""
        lines.append(f"{status} *{index + 1}.* {_md(task.text)}{carried}")

    lines.append("")
    if checklist.checked_in:
        lines.append(f"🔒 Checked in: {checklist.completed_count}/{len(checklist.tasks)} done.")
    else:
        lines.append("Tap a task to mark it done, then submit your check-in.")
    return "\n".join(lines)


def checklist_keyboard(checklist: Checklist) -> Keyboard | None:
    """Toggle button per task plus submit/refresh. None once checked in."""
    if checklist.checked_in:
        return None

    rows: Keyboard = []
    for index, task in enumerate(checklist.tasks):
        status = "✅" if task.completed else "⬜️"
        rows.append([Button(
            f"{status} {task.text[:_BUTTON_TEXT_LEN]}",
            action_token.toggle(checklist.id, index),
        )])
    rows.append([Button("✅ Submit Check-in", action_token.submit(checklist.id))])
    rows.append([Button("🔄 Refresh", action_token.refresh(checklist.id))])
    return rows


# ---------------------------------------------------------------------------
# Check-in summary
# ---------------------------------------------------------------------------


class CompletionTier(str, enum.Enum):
    ALL = "all"
    SOME = "some"
    NONE = "none"
    EMPTY = "empty"


def completion_tier(completed: int, total: int) -> CompletionTier:
    if total == 0:
        return CompletionTier.EMPTY
    if completed >= total:
        return CompletionTier.ALL
    if completed == 0:
        return CompletionTier.NONE
    return CompletionTier.SOME


def check_in_message(tier: CompletionTier, completed: int, total: int) -> str:
    header = "🎉 *Check-in Complete!*\n\n"
    if tier == CompletionTier.ALL:
        body = f"✨ *Perfect score!* You completed all {total} tasks today!\n\n🔥 Great job!"
    elif tier == CompletionTier.SOME:
        body = (
            f"👍 *Progress made.* {completed}/{total} tasks done.\n\n"
            "Unfinished tasks will carry over to tomorrow. Stay focused!"
        )
    elif tier == CompletionTier.NONE:
        body = f"💀 *Zero tasks completed* out of {total}. Your goals need attention!"
    else:
        body = "📭 Your checklist was empty today. Plan a few tasks tomorrow with /plan."
    return header + body + "\n\n🌟 *Tomorrow's challenge:* Beat today's score!"


def reflection_question(tier: CompletionTier) -> str:
    """The question asked right after a check-in; the next free text answers it."""
    if tier in (CompletionTier.ALL, CompletionTier.SOME):
        return "💬 What helped you stay focused today?"
    return "💡 What got in the way today? Let's be honest."


REFLECTION_THANKS = "Thanks for reflecting. Let's keep going 🚀"


# ---------------------------------------------------------------------------
# Scheduled prompts
# ---------------------------------------------------------------------------

_CHECK_IN_BY_HOUR = {
    15: "⏰ It's 3 PM! How's your day going? Have you made progress on your tasks?",
    18: "⏰ It's 6 PM! Hope you're almost done with your tasks. No excuses!",
    20: "👋 Hey! You haven't checked in today. Let me know how your day went.",
    21: "🌙 It's 9 PM! Time to check in. How did you do with your tasks today?",
}


def _greeting(user: User) -> str:
    return f" {_md(user.name)}" if user.name else ""


def _prompt_set_focus(user: User, context: dict[str, Any]) -> str:
    return (
        f"☀️ Good morning{_greeting(user)}! What's your focus today?\n\n"
        "Set it with /setgoal <your goal>, then use /plan and I'll draft your checklist."
    )


def _prompt_submit_tasks(user: User, context: dict[str, Any]) -> str:
    return (
        "📝 Your checklist for today is still empty.\n\n"
        "Send me your tasks separated by commas, or use /plan and I'll draft them for you."
    )


def _prompt_check_in(user: User, context: dict[str, Any]) -> str:
    text = _CHECK_IN_BY_HOUR.get(context.get("hour"), "⏰ Don't forget to check in today!")
    checklist = context.get("checklist")
    if checklist is not None and checklist.tasks:
        text += f"\n\nSo far: {checklist.completed_count}/{len(checklist.tasks)} tasks done. Use /checkin when you're ready."
    return text


def _generate_weekly_checklist(user: User, context: dict[str, Any]) -> str:
    intro = f"🚀 New week{_greeting(user)}! Here's your plan for today.\n\n"
    note = context.get("note")
    body = format_checklist(context["checklist"])
    return intro + body + (f"\n\n{note}" if note else "")


def _weekly_reflection(user: User, context: dict[str, Any]) -> str:
    summary: WeeklySummary = context["summary"]
    lines = [
        "📊 *Weekly Reflection*",
        "",
        f"✅ Tasks completed: {summary.tasks_completed}/{summary.tasks_total}",
        f"📅 Days checked in: {summary.days_checked_in}",
        f"❌ Missed check-ins: {summary.missed_check_ins}",
        "",
    ]
    if summary.tasks_completed == 0:
        lines.append("This week slipped away. Pick one small task tomorrow and start again.")
    elif summary.missed_check_ins > summary.days_checked_in:
        lines.append("You did some work, but you missed more check-ins than you made. Show up daily!")
    else:
        lines.append("Solid week! Consistency is your superpower. Keep it going.")
    if user.current_streak:
        lines.append(f"\n🔥 Current streak: {user.current_streak} days")
    return "\n".join(lines)


_Template = Callable[[User, dict[str, Any]], str]

TEMPLATES: dict[str, dict[Action, _Template]] = {
    "en": {
        Action.PROMPT_SET_FOCUS: _prompt_set_focus,
        Action.PROMPT_SUBMIT_TASKS: _prompt_submit_tasks,
        Action.PROMPT_CHECK_IN: _prompt_check_in,
        Action.GENERATE_WEEKLY_CHECKLIST: _generate_weekly_checklist,
        Action.WEEKLY_REFLECTION: _weekly_reflection,
    },
}


def template_for(locale: str | None, action: Action) -> _Template | None:
    """Template for (locale, action), falling back to English; None if none exists."""
    localized = TEMPLATES.get(locale or DEFAULT_LOCALE, {})
    return localized.get(action) or TEMPLATES[DEFAULT_LOCALE].get(action)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanDetails:
    title: str
    price_naira: int
    features: tuple[str, ...]

    @property
    def amount_kobo(self) -> int:
        return self.price_naira * 100


PLAN_DETAILS: dict[SubscriptionPlan, PlanDetails] = {
    SubscriptionPlan.BASIC: PlanDetails(
        "Basic", 1000, ("10 AI checklists per week", "Daily reminders and check-ins"),
    ),
    SubscriptionPlan.PREMIUM: PlanDetails(
        "Premium", 1500, ("Unlimited AI checklists", "Smarter AI model", "Daily reminders and check-ins"),
    ),
}


def subscribe_message() -> str:
    lines = ["🔥 *Focusly Plans*", "", "Choose a plan to keep your AI coach working for you.", ""]
    for details in PLAN_DETAILS.values():
        lines.append(f"*{details.title} – ₦{details.price_naira:,}/month*")
        lines.extend(f"• {feature}" for feature in details.features)
        lines.append("")
    lines.append("_Select a plan below to continue:_")
    return "\n".join(lines)


def subscribe_keyboard() -> Keyboard:
    return [
        [Button(f"{d.title} (₦{d.price_naira:,})", action_token.subscribe(plan.value))]
        for plan, d in PLAN_DETAILS.items()
    ]


def payment_message(plan: SubscriptionPlan, link: str) -> str:
    details = PLAN_DETAILS[plan]
    return (
        f"You're choosing the *{details.title}* plan (₦{details.price_naira:,}).\n\n"
        f"[💳 Pay securely with Paystack]({link})"
    )


def activation_message(plan: SubscriptionPlan, expires_at: datetime) -> str:
    return (
        f"✅ Payment received! Your *{PLAN_DETAILS[plan].title}* plan is active "
        f"until {expires_at:%d %b %Y}. Let's get to work. 💪"
    )


def status_message(user: User, plan: str, now: datetime) -> str:
    lines = ["📈 *Your Focusly status*", ""]
    if plan in ("basic", "premium"):
        expires = user.subscription_expires_at
        until = f" until {expires:%d %b %Y}" if expires else ""
        lines.append(f"Plan: *{plan.title()}*{until}")
    elif plan == "trial":
        from focusly.config import settings

        days_left = settings.TRIAL_DAYS - (now - user.trial_started_at).days
        lines.append(f"Plan: *Free trial* ({max(days_left, 0)} days left)")
    else:
        lines.append("Plan: *None*. Use /subscribe to continue with AI planning.")

    lines.append(f"Focus: {_md(user.focus) if user.focus else 'not set (/setgoal)'}")
    lines.append(f"🔥 Streak: {user.current_streak} days (best {user.longest_streak})")
    lines.append(f"❌ Missed check-ins: {user.missed_check_ins}")
    return "\n".join(lines)
