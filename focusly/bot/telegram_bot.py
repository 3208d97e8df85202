"""
Focusly — Telegram Bot.

Telegram is the only user interface. Onboarding (name → focus → first
tasks), the daily checklist with its inline buttons, check-ins and their
reflection question, coach replies to free text, subscriptions and the
scheduled prompts all flow through this bot.

Handlers get their stores and services from `bot_data`; every handler runs
behind a per-user error boundary that turns domain errors into their
canned message.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.error import BadRequest
from telegram.helpers import escape_markdown
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from focusly.adapters.telegram_notifier import to_markup
from focusly.config import settings
from focusly.core.access_policy import current_plan
from focusly.core.callback_router import handle_action
from focusly.core.clock import now_local
from focusly.core.errors import FocuslyError
from focusly.core.messages import (
    REFLECTION_THANKS,
    checklist_keyboard,
    format_checklist,
    status_message,
    subscribe_keyboard,
    subscribe_message,
)
from focusly.core.triggers import TICK_HOURS
from focusly.data.models import OnboardingStep

if TYPE_CHECKING:
    from focusly.core.checklist_service import ChecklistService
    from focusly.core.coach import CoachService
    from focusly.data.db import PaymentDB
    from focusly.data.models import Checklist, User
    from focusly.ports.completion_port import CompletionPort
    from focusly.ports.notification_port import Keyboard, NotificationPort
    from focusly.ports.store_port import ChecklistStore, UserStore

logger = logging.getLogger(__name__)

_Handler = Callable[[Update, ContextTypes.DEFAULT_TYPE, "User"], Coroutine[Any, Any, None]]

HELP_TEXT = (
    "*Available commands:*\n"
    "/checklist — Today's checklist\n"
    "/plan — Let AI draft today's tasks\n"
    "/add <task, task> — Add tasks to today's checklist\n"
    "/setgoal <goal> — Set your focus\n"
    "/checkin — Close today and see your score\n"
    "/status — Plan, streak and usage\n"
    "/subscribe — Upgrade your plan\n"
    "/help — Show this message\n\n"
    "Anything else you send goes to your coach."
)


# ---------------------------------------------------------------------------
# Per-user boundary
# ---------------------------------------------------------------------------


def with_user(func: _Handler) -> Callable[..., Coroutine[Any, Any, None]]:
    """Resolve (or create) the sender's User and map errors to replies."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        tg_user = update.effective_user
        if tg_user is None:
            return
        users: UserStore = context.bot_data["users"]
        user = users.find_or_create(str(tg_user.id))
        try:
            await func(update, context, user)
        except FocuslyError as exc:
            logger.info("User %s: %s", user.user_id, exc)
            await _reply(update, exc.user_message)
        except Exception as exc:
            logger.error("Handler %s failed for user %s: %s", func.__name__, user.user_id, exc)
            await _reply(update, "Sorry, something went wrong. Please try again.")

    return wrapper


async def _reply(update: Update, text: str, keyboard: Keyboard | None = None) -> int | None:
    if update.effective_message is None:
        return None
    message = await update.effective_message.reply_text(
        text, parse_mode="Markdown", reply_markup=to_markup(keyboard),
    )
    return getattr(message, "message_id", None)


async def _send_checklist(
    update: Update, context: ContextTypes.DEFAULT_TYPE, checklist: Checklist, prefix: str = "",
) -> None:
    """Reply with the checklist and remember which message renders it."""
    text = f"{prefix}{format_checklist(checklist)}"
    message_id = await _reply(update, text, checklist_keyboard(checklist))
    if isinstance(message_id, int):
        checklist.message_id = message_id
        checklists: ChecklistStore = context.bot_data["checklists"]
        checklists.save_checklist(checklist)


def _split_tasks(text: str) -> list[str]:
    return [part.strip() for part in text.replace("\n", ",").split(",") if part.strip()]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@with_user
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /start — greet and begin (or resume) onboarding."""
    if user.is_onboarded:
        await _reply(update, f"Welcome back, {escape_markdown(user.name or 'friend')}! 👋\n\n{HELP_TEXT}")
        return

    users: UserStore = context.bot_data["users"]
    user.onboarding_step = OnboardingStep.AWAITING_NAME
    users.save_user(user)
    await _reply(
        update,
        "👋 Welcome to *Focusly*, your accountability coach.\n\n"
        "I'll help you turn your goal into a short daily checklist and keep you on it.\n\n"
        "First, what should I call you?",
    )


@with_user
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    await _reply(update, HELP_TEXT)


@with_user
async def cmd_setgoal(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /setgoal <text>."""
    goal = " ".join(context.args or []).strip()
    if not goal:
        await _reply(update, "Usage: /setgoal <your goal>\nExample: /setgoal Launch my portfolio site")
        return

    users: UserStore = context.bot_data["users"]
    user.focus = goal
    user.focus_set_at = now_local(user.timezone)
    if user.onboarding_step == OnboardingStep.AWAITING_FOCUS:
        user.onboarding_step = OnboardingStep.AWAITING_TASKS
    users.save_user(user)
    logger.info("User %s set focus", user.user_id)
    await _reply(update, f"🎯 Goal set: *{escape_markdown(goal)}*\n\nUse /plan and I'll turn it into today's checklist.")


@with_user
async def cmd_checklist(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    service: ChecklistService = context.bot_data["service"]
    checklist = service.get_or_create_today(user, now_local(user.timezone))
    await _send_checklist(update, context, checklist)


@with_user
async def cmd_plan(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /plan — AI checklist for today (or manual suggestions)."""
    service: ChecklistService = context.bot_data["service"]
    await _reply(update, "🧠 Planning your day...")
    result = await service.plan_today(user, now_local(user.timezone))

    generation = result.generation
    if generation.source == "manual":
        tips = "\n".join(f"• {draft.text}" for draft in generation.drafts)
        reason = generation.denial.user_message if generation.denial else ""
        prefix = f"{reason}\n\nPlan it yourself for now:\n{tips}\n\n"
    elif generation.source == "fallback":
        prefix = f"{generation.drafts[0].text}\n\n"
    else:
        prefix = f"Added {len(result.added)} tasks.\n\n" if result.added else ""
    await _send_checklist(update, context, result.checklist, prefix=prefix)


@with_user
async def cmd_checkin(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    service: ChecklistService = context.bot_data["service"]
    checklists: ChecklistStore = context.bot_data["checklists"]

    today = service.today_for(user, now_local(user.timezone))
    checklist = checklists.find_by_date(user.user_id, today)
    if checklist is None:
        await _reply(update, "You have no checklist for today yet. Start one with /checklist or /plan.")
        return

    summary = service.submit_check_in(checklist, user, now_local(user.timezone))
    streak = f"\n\n📅 Current streak: {user.current_streak} days" if user.current_streak else ""
    await _reply(update, summary.message + streak)
    if summary.reflection_question:
        await _reply(update, summary.reflection_question)


@with_user
async def cmd_add(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Handle /add <task, task> — manual task entry."""
    text = " ".join(context.args or []).strip()
    if not text:
        await _reply(update, "Usage: /add <task, task>\nExample: /add Draft outline, Email Bola")
        return
    await _add_tasks(update, context, user, text)


@with_user
async def cmd_subscribe(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    await _reply(update, subscribe_message(), subscribe_keyboard())


@with_user
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    users: UserStore = context.bot_data["users"]
    now = now_local(user.timezone)
    plan = current_plan(user, now)
    users.save_user(user)
    await _reply(update, status_message(user, plan, now))


# ---------------------------------------------------------------------------
# Text messages: onboarding, reflections and the coach
# ---------------------------------------------------------------------------


@with_user
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE, user: User) -> None:
    """Advance onboarding, take a check-in reflection, or ask the coach."""
    users: UserStore = context.bot_data["users"]
    service: ChecklistService = context.bot_data["service"]
    text = (update.message.text or "").strip()
    if not text:
        return

    step = user.onboarding_step
    if step == OnboardingStep.AWAITING_NAME:
        user.name = text[:64]
        user.onboarding_step = OnboardingStep.AWAITING_FOCUS
        users.save_user(user)
        await _reply(update, f"Nice to meet you, {escape_markdown(user.name)}! 🎯\n\nWhat's the main goal you want to focus on this week?")
        return

    if step == OnboardingStep.AWAITING_FOCUS:
        user.focus = text
        user.focus_set_at = now_local(user.timezone)
        user.onboarding_step = OnboardingStep.AWAITING_TASKS
        users.save_user(user)
        await _reply(
            update,
            "Great goal. 💪\n\nNow send me today's tasks separated by commas.\n"
            "Example: _Draft outline, Email 3 clients, Review budget_",
        )
        return

    if step == OnboardingStep.AWAITING_TASKS:
        await _add_tasks(update, context, user, text)
        return

    if user.awaiting_reflection:
        service.record_reflection(user, text, now_local(user.timezone))
        await _reply(update, REFLECTION_THANKS)
        return

    coach: CoachService = context.bot_data["coach"]
    reply = await coach.reply(user, text, now_local(user.timezone))
    await _reply(update, escape_markdown(reply.text) if reply.source == "ai" else reply.text)


async def _add_tasks(
    update: Update, context: ContextTypes.DEFAULT_TYPE, user: User, text: str,
) -> None:
    """Add comma-separated tasks to today's checklist; finishes onboarding."""
    users: UserStore = context.bot_data["users"]
    service: ChecklistService = context.bot_data["service"]

    tasks = _split_tasks(text)
    if not tasks:
        await _reply(update, "Send your tasks separated by commas.")
        return

    checklist = service.get_or_create_today(user, now_local(user.timezone))
    added = service.add_tasks(checklist, tasks)

    if user.onboarding_step == OnboardingStep.AWAITING_TASKS:
        user.onboarding_step = OnboardingStep.ONBOARDED
        users.save_user(user)
        logger.info("User %s completed onboarding", user.user_id)
        prefix = "✅ You're all set! I'll check in with you during the day.\n\n"
    elif added:
        prefix = f"Added {len(added)} tasks.\n\n"
    else:
        prefix = "Those tasks are already on your list.\n\n"
    await _send_checklist(update, context, checklist, prefix=prefix)


# ---------------------------------------------------------------------------
# Inline buttons
# ---------------------------------------------------------------------------


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Single entry point for every inline button press."""
    query = update.callback_query
    if query is None or update.effective_user is None:
        return

    users: UserStore = context.bot_data["users"]
    notifier: NotificationPort = context.bot_data["notifier"]
    user = users.find_or_create(str(update.effective_user.id))

    try:
        reply = await handle_action(
            query.data or "", user, context.bot_data["service"], context.bot_data["checklists"],
        )
    except FocuslyError as exc:
        logger.info("Callback %r from user %s rejected: %s", query.data, user.user_id, exc)
        await notifier.answer_callback(query.id, exc.user_message)
        return
    except Exception as exc:
        logger.error("Callback %r failed for user %s: %s", query.data, user.user_id, exc)
        await notifier.answer_callback(query.id, "Something went wrong. Please try again.")
        return

    await notifier.answer_callback(query.id, reply.answer)
    if reply.edit and query.message is not None:
        try:
            await notifier.edit_message(user.user_id, query.message.message_id, reply.text, reply.keyboard)
        except BadRequest as exc:
            # "message is not modified" on a no-op refresh
            logger.debug("Edit skipped for user %s: %s", user.user_id, exc)
    else:
        await notifier.send_message(user.user_id, reply.text, reply.keyboard)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    users: UserStore | None = None,
    checklists: ChecklistStore | None = None,
    payments: PaymentDB | None = None,
    notifier: NotificationPort | None = None,
    complete: CompletionPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Any port not given gets its default: SQLite stores, the configured LLM
    provider and a TelegramNotifier over the app's bot.
    """
    from focusly.core.checklist_service import ChecklistService
    from focusly.core.coach import CoachService
    from focusly.data.db import ChecklistDB, PaymentDB, UserDB

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_start_webhook_server)
        .post_shutdown(_stop_webhook_server)
        .build()
    )

    if users is None:
        users = UserDB()
    if checklists is None:
        checklists = ChecklistDB()
    if payments is None:
        payments = PaymentDB()
    if complete is None:
        from focusly.core.llm import complete_prompt
        complete = complete_prompt
    if notifier is None:
        from focusly.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    service = ChecklistService(checklists, users, complete)

    # Store ports in bot_data for handler access
    app.bot_data["users"] = users
    app.bot_data["checklists"] = checklists
    app.bot_data["payments"] = payments
    app.bot_data["notifier"] = notifier
    app.bot_data["service"] = service
    app.bot_data["coach"] = CoachService(users, complete)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("setgoal", cmd_setgoal))
    app.add_handler(CommandHandler("checklist", cmd_checklist))
    app.add_handler(CommandHandler("plan", cmd_plan))
    app.add_handler(CommandHandler("add", cmd_add))
    app.add_handler(CommandHandler("checkin", cmd_checkin))
    app.add_handler(CommandHandler("subscribe", cmd_subscribe))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    _setup_triggers(app, users, checklists, service, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_triggers(
    app: Application,
    users: UserStore,
    checklists: ChecklistStore,
    service: ChecklistService,
    notifier: NotificationPort,
) -> None:
    """Register one daily job per trigger hour in the app timezone."""
    from focusly.core.scheduler import run_tick

    tz = ZoneInfo(settings.TIMEZONE)

    async def _tick_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await run_tick(now_local(settings.TIMEZONE), users, checklists, service, notifier)

    for hour in TICK_HOURS:
        app.job_queue.run_daily(
            _tick_callback,
            time=dt_time(hour=hour, minute=0, tzinfo=tz),
            name=f"tick_{hour:02d}",
        )

    logger.info(
        "Trigger ticks scheduled at %s %s",
        ", ".join(f"{h:02d}:00" for h in TICK_HOURS),
        settings.TIMEZONE,
    )


# ---------------------------------------------------------------------------
# Payment webhook (same event loop)
# ---------------------------------------------------------------------------


async def _start_webhook_server(app: Application) -> None:
    if not settings.WEBHOOK_PORT:
        return
    if not settings.PAYSTACK_SECRET_KEY:
        logger.warning("WEBHOOK_PORT set but PAYSTACK_SECRET_KEY is empty; webhook disabled")
        return

    import uvicorn

    from focusly.api.payment_webhook import create_app

    webhook_app = create_app(
        app.bot_data["users"],
        app.bot_data["notifier"],
        settings.PAYSTACK_SECRET_KEY,
        payments=app.bot_data["payments"],
    )
    server = uvicorn.Server(uvicorn.Config(
        webhook_app, host=settings.WEBHOOK_HOST, port=settings.WEBHOOK_PORT, log_level="info",
    ))
    app.bot_data["webhook_server"] = server
    app.bot_data["webhook_task"] = asyncio.create_task(server.serve())
    logger.info("Payment webhook listening on %s:%d", settings.WEBHOOK_HOST, settings.WEBHOOK_PORT)


async def _stop_webhook_server(app: Application) -> None:
    server = app.bot_data.get("webhook_server")
    if server is None:
        return
    server.should_exit = True
    await app.bot_data["webhook_task"]


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Focusly bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
