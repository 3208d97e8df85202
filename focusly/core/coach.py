"""
Focusly — Coach replies.

Free text that is not part of onboarding or a check-in reflection gets a
short reply from the AI coach. Access is gated the same way as task
generation: a denied user gets the denial's canned message, and usage is
recorded only when the provider answers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from focusly.core.access_policy import evaluate_access, record_usage
from focusly.core.clock import now_local
from focusly.core.errors import ProviderError
from focusly.data.models import User

if TYPE_CHECKING:
    from focusly.ports.completion_port import CompletionPort
    from focusly.ports.store_port import UserStore

logger = logging.getLogger(__name__)

COACH_FALLBACK_TEXT = "Sorry, I couldn't think of a smart reply right now."

MAX_MESSAGE_CHARS = 1000


@dataclass
class CoachReply:
    """Reply text plus where it came from: 'ai', 'denied' or 'fallback'."""

    text: str
    source: str


def _build_prompt(user: User, message: str) -> str:
    goal = user.focus or "No specific goal provided"
    return (
        f'This user\'s goal is: "{goal}"\n'
        f'User just said: "{message}"\n\n'
        "Reply with a short, direct message about what they said that guides or "
        "challenges them. Greetings are not tasks. If they are stuck or making "
        "excuses, be strict but encouraging. If they are overwhelmed, break the "
        "next step down. Plain text, at most four sentences."
    )


class CoachService:
    def __init__(self, users: UserStore, complete: CompletionPort) -> None:
        self._users = users
        self._complete = complete

    async def reply(self, user: User, message: str, now: datetime | None = None) -> CoachReply:
        now = now or now_local(user.timezone)
        decision = evaluate_access(user, now)
        if not decision.allowed:
            # evaluate_access may have rolled the usage period over
            self._users.save_user(user)
            logger.info(
                "Coach reply denied for user %s: %s",
                user.user_id, type(decision.reason).__name__,
            )
            return CoachReply(text=decision.reason.user_message, source="denied")

        prompt = _build_prompt(user, message[:MAX_MESSAGE_CHARS])
        try:
            text = await self._complete(prompt, decision.tier)
        except ProviderError as exc:
            logger.warning("Coach reply failed for user %s: %s", user.user_id, exc)
            return CoachReply(text=COACH_FALLBACK_TEXT, source="fallback")

        text = (text or "").strip()
        if not text:
            logger.warning("AI returned an empty coach reply for user %s", user.user_id)
            return CoachReply(text=COACH_FALLBACK_TEXT, source="fallback")

        record_usage(user, now)
        self._users.save_user(user)
        return CoachReply(text=text, source="ai")
