"""
Focusly — Inline button routing.

Decodes an action token and runs it against the checklist service. The
result says what to show: `edit=True` replaces the message the button sits
on, otherwise a new message is sent. Domain errors propagate so the caller
can answer the button press with the error's user message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from focusly.core import action_token
from focusly.core.errors import ChecklistNotFound
from focusly.core.messages import (
    checklist_keyboard,
    format_checklist,
    payment_message,
)
from focusly.core.subscriptions import parse_plan, payment_link
from focusly.data.models import Checklist, User
from focusly.ports.notification_port import Keyboard

if TYPE_CHECKING:
    from focusly.core.checklist_service import ChecklistService
    from focusly.ports.store_port import ChecklistStore

logger = logging.getLogger(__name__)


@dataclass
class CallbackReply:
    text: str
    keyboard: Keyboard | None = None
    answer: str | None = None
    edit: bool = True


def _owned_checklist(checklists: ChecklistStore, checklist_id: int, user: User) -> Checklist:
    checklist = checklists.get_checklist(checklist_id)
    if checklist is None or checklist.user_id != user.user_id:
        raise ChecklistNotFound(f"checklist {checklist_id} for user {user.user_id}")
    return checklist


async def handle_action(
    token: str,
    user: User,
    service: ChecklistService,
    checklists: ChecklistStore,
) -> CallbackReply:
    """Run one button press. Raises InvalidActionToken or another FocuslyError."""
    action = action_token.decode(token)
    logger.info("User %s pressed %s", user.user_id, token)

    if action.verb == action_token.SUBSCRIBE:
        plan = parse_plan(action.plan)
        return CallbackReply(
            text=payment_message(plan, payment_link(user.user_id, plan)),
            edit=False,
        )

    checklist = _owned_checklist(checklists, action.checklist_id, user)

    if action.verb == action_token.TOGGLE:
        service.toggle_task(checklist, action.task_id)
        return CallbackReply(
            text=format_checklist(checklist),
            keyboard=checklist_keyboard(checklist),
            answer="Updated ✅",
        )

    if action.verb == action_token.SUBMIT:
        summary = service.submit_check_in(checklist, user)
        text = f"{format_checklist(checklist)}\n\n{summary.message}"
        if summary.reflection_question:
            text = f"{text}\n\n{summary.reflection_question}"
        return CallbackReply(
            text=text,
            answer="Checked in!",
        )

    # refresh
    return CallbackReply(
        text=format_checklist(checklist),
        keyboard=checklist_keyboard(checklist),
        answer="Refreshed",
    )
