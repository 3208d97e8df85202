"""
Focusly — Trigger decision table.

Pure function from (user, today's checklist, local wall clock) to the action
the scheduler should take on this tick. Rows are checked top to bottom and
the first match wins:

    00:00               always                          ResetCheckInFlag
    08:00               no checklist for today          PromptSetFocus
    09:00               checklist with zero tasks       PromptSubmitTasks
    15:00/18:00/21:00   checklist not checked in        PromptCheckIn
    20:00               has_checked_in_today is false   PromptCheckIn
    Monday 08:00        trial, basic or premium         GenerateWeeklyChecklist
    Sunday 09:00        onboarding complete             WeeklyReflection
"""

from __future__ import annotations

import enum
from datetime import datetime

from focusly.core.access_policy import current_plan
from focusly.data.models import Checklist, User

TICK_HOURS = (0, 8, 9, 15, 18, 20, 21)

_MONDAY = 0
_SUNDAY = 6


class Action(str, enum.Enum):
    RESET_CHECK_IN_FLAG = "reset_check_in_flag"
    PROMPT_SET_FOCUS = "prompt_set_focus"
    PROMPT_SUBMIT_TASKS = "prompt_submit_tasks"
    PROMPT_CHECK_IN = "prompt_check_in"
    GENERATE_WEEKLY_CHECKLIST = "generate_weekly_checklist"
    WEEKLY_REFLECTION = "weekly_reflection"


def decide_action(user: User, checklist: Checklist | None, now: datetime) -> Action | None:
    """Return the action for this tick, or None. Only the hour of `now` matters."""
    hour = now.hour
    weekday = now.weekday()

    if hour == 0:
        return Action.RESET_CHECK_IN_FLAG
    if hour == 8 and checklist is None:
        return Action.PROMPT_SET_FOCUS
    if hour == 9 and checklist is not None and not checklist.tasks:
        return Action.PROMPT_SUBMIT_TASKS
    if hour in (15, 18, 21) and checklist is not None and not checklist.checked_in:
        return Action.PROMPT_CHECK_IN
    if hour == 20 and not user.has_checked_in_today:
        return Action.PROMPT_CHECK_IN
    # Shadowed by PromptSetFocus above: only reached when today's checklist
    # already exists at the Monday 08:00 tick.
    if weekday == _MONDAY and hour == 8 and current_plan(user, now) != "none":
        return Action.GENERATE_WEEKLY_CHECKLIST
    if weekday == _SUNDAY and hour == 9 and user.is_onboarded:
        return Action.WEEKLY_REFLECTION
    return None
