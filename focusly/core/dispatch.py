"""Render a scheduled action for a user and push it through the messaging port."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from focusly.core.messages import template_for
from focusly.core.triggers import Action

if TYPE_CHECKING:
    from focusly.data.models import User
    from focusly.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def format_and_send(
    channel: NotificationPort,
    user: User,
    action: Action,
    context: dict[str, Any] | None = None,
) -> bool:
    """Send the (locale, action) template to the user once.

    Returns False when there is nothing to send or delivery failed; delivery
    is never retried.
    """
    context = context or {}
    template = template_for(user.locale, action)
    if template is None:
        return False

    text = template(user, context)
    try:
        message_id = await channel.send_message(user.user_id, text, context.get("keyboard"))
    except Exception as exc:
        logger.error("Failed to send %s to user %s: %s", action.value, user.user_id, exc)
        return False

    checklist = context.get("checklist")
    if checklist is not None and message_id is not None and context.get("keyboard"):
        checklist.message_id = message_id

    logger.info("Sent %s to user %s", action.value, user.user_id)
    return True
