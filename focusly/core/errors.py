"""Focusly error kinds.

Every error raised by the check-in lifecycle carries a canned, user-facing
message. Handlers catch FocuslyError at the per-user boundary, log it and
reply with `user_message` instead of aborting the surrounding batch.
"""

from __future__ import annotations


class FocuslyError(Exception):
    """Base class for all domain errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class UserNotFound(FocuslyError):
    user_message = "I couldn't find your profile. Send /start to set it up."


class ChecklistNotFound(FocuslyError):
    user_message = "That checklist no longer exists. Use /checklist to see today's."


class ChecklistFrozen(FocuslyError):
    user_message = "You've already checked in — this checklist is locked for today."


class TaskNotFound(FocuslyError):
    user_message = "That task doesn't exist anymore. Use /checklist to refresh."


class AlreadyCheckedIn(FocuslyError):
    user_message = "⏳ You've already checked in today! Come back tomorrow."


class AccessExpired(FocuslyError):
    user_message = "🔒 Your access has expired. Use /subscribe to keep using Focusly."


class DailyLimitReached(FocuslyError):
    user_message = "You've used all your AI requests for today. Try again tomorrow or /subscribe."


class WeeklyLimitReached(FocuslyError):
    user_message = "You've used all your AI requests for this week. Upgrade with /subscribe."


class ProviderError(FocuslyError):
    user_message = "Sorry, I'm currently unable to respond. Please try again later."


class InvalidWebhookSignature(FocuslyError):
    user_message = "Invalid webhook signature."


class InvalidActionToken(FocuslyError):
    user_message = "I don't know how to handle that action."
