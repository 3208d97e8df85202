"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
Keyboards are rendered as inline keyboards whose callback_data is the
button's action token.
"""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup

from focusly.ports.notification_port import Keyboard

logger = logging.getLogger(__name__)


def to_markup(keyboard: Keyboard | None) -> InlineKeyboardMarkup | None:
    if not keyboard:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(button.label, callback_data=button.action_token) for button in row]
        for row in keyboard
    ])


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self, user_id: str, text: str, keyboard: Keyboard | None = None,
    ) -> int | None:
        message = await self._bot.send_message(
            chat_id=int(user_id),
            text=text,
            parse_mode="Markdown",
            reply_markup=to_markup(keyboard),
        )
        return message.message_id

    async def edit_message(
        self, user_id: str, message_id: int, text: str, keyboard: Keyboard | None = None,
    ) -> None:
        await self._bot.edit_message_text(
            chat_id=int(user_id),
            message_id=message_id,
            text=text,
            parse_mode="Markdown",
            reply_markup=to_markup(keyboard),
        )

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        await self._bot.answer_callback_query(callback_query_id=callback_id, text=text)
