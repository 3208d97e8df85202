"""
Inline-button action tokens.

Format: `verb|arg[|arg]`, at most 64 bytes encoded (Telegram's callback_data
limit):

    toggle|<checklist_id>|<task_id>
    submit|<checklist_id>
    refresh|<checklist_id>
    subscribe|<plan>
"""

from __future__ import annotations

from dataclasses import dataclass

from focusly.core.errors import InvalidActionToken

MAX_TOKEN_BYTES = 64
SEPARATOR = "|"

TOGGLE = "toggle"
SUBMIT = "submit"
REFRESH = "refresh"
SUBSCRIBE = "subscribe"

_PLANS = ("basic", "premium")


@dataclass(frozen=True)
class ActionToken:
    verb: str
    checklist_id: int | None = None
    task_id: int | None = None
    plan: str | None = None

    def encode(self) -> str:
        if self.verb == TOGGLE:
            parts = [self.verb, str(self.checklist_id), str(self.task_id)]
        elif self.verb in (SUBMIT, REFRESH):
            parts = [self.verb, str(self.checklist_id)]
        elif self.verb == SUBSCRIBE:
            parts = [self.verb, str(self.plan)]
        else:
            raise InvalidActionToken(f"unknown verb {self.verb!r}")

        token = SEPARATOR.join(parts)
        if len(token.encode("utf-8")) > MAX_TOKEN_BYTES:
            raise InvalidActionToken(f"token too long: {token!r}")
        return token


def toggle(checklist_id: int, task_id: int) -> str:
    return ActionToken(TOGGLE, checklist_id=checklist_id, task_id=task_id).encode()


def submit(checklist_id: int) -> str:
    return ActionToken(SUBMIT, checklist_id=checklist_id).encode()


def refresh(checklist_id: int) -> str:
    return ActionToken(REFRESH, checklist_id=checklist_id).encode()


def subscribe(plan: str) -> str:
    return ActionToken(SUBSCRIBE, plan=plan).encode()


def _parse_id(value: str, token: str) -> int:
    if not value.isdigit():
        raise InvalidActionToken(f"bad id in {token!r}")
    return int(value)


def decode(token: str) -> ActionToken:
    """Parse a callback payload. Raises InvalidActionToken on anything malformed."""
    if not token or len(token.encode("utf-8")) > MAX_TOKEN_BYTES:
        raise InvalidActionToken(f"bad token {token!r}")

    verb, *args = token.split(SEPARATOR)

    if verb == TOGGLE and len(args) == 2:
        return ActionToken(
            verb,
            checklist_id=_parse_id(args[0], token),
            task_id=_parse_id(args[1], token),
        )
    if verb in (SUBMIT, REFRESH) and len(args) == 1:
        return ActionToken(verb, checklist_id=_parse_id(args[0], token))
    if verb == SUBSCRIBE and len(args) == 1:
        plan = args[0].lower()
        if plan not in _PLANS:
            raise InvalidActionToken(f"unknown plan in {token!r}")
        return ActionToken(verb, plan=plan)

    raise InvalidActionToken(f"unrecognised token {token!r}")
