"""Notification port — abstract interface for sending messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Button:
    """An inline keyboard button carrying an encoded action token."""

    label: str
    action_token: str


# Rows of buttons, top to bottom
Keyboard = list[list[Button]]


class NotificationPort(Protocol):
    """Abstract messaging channel used by core modules."""

    async def send_message(
        self, user_id: str, text: str, keyboard: Keyboard | None = None,
    ) -> int | None: ...

    async def edit_message(
        self,
        user_id: str,
        message_id: int,
        text: str,
        keyboard: Keyboard | None = None,
    ) -> None: ...

    async def answer_callback(
        self, callback_id: str, text: str | None = None,
    ) -> None: ...
