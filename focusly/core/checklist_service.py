"""
Focusly — Checklist Lifecycle.

Creates and finds today's checklist, toggles tasks, carries incomplete tasks
over to the next day and closes a day out with a check-in. AI task generation
is gated by the access policy; quota is consumed only by a successful AI
response.

The service receives its stores and the completion provider as constructor
arguments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Sequence

from focusly.core.access_policy import evaluate_access, record_usage
from focusly.core.clock import local_date, now_local
from focusly.core.errors import (
    AlreadyCheckedIn,
    ChecklistFrozen,
    FocuslyError,
    ProviderError,
    TaskNotFound,
)
from focusly.core.messages import (
    CompletionTier,
    check_in_message,
    completion_tier,
    reflection_question,
)
from focusly.data.models import Checklist, Task, TaskDraft, User

if TYPE_CHECKING:
    from focusly.ports.completion_port import CompletionPort
    from focusly.ports.store_port import ChecklistStore, UserStore

logger = logging.getLogger(__name__)

MANUAL_PLANNING_TASKS = (
    "Write down the one outcome that would make today a win",
    "Break your goal into 3 small, realistic tasks",
    "Block 30 minutes on your calendar to start the first one",
)

AI_FALLBACK_TEXT = (
    "I couldn't generate a checklist right now. "
    "Add your own tasks or try /plan again later."
)

MAX_GENERATED_TASKS = 5

# "- task", "* task", "• task", "1. task", "2) task"
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d{1,2}[.)])\s+(.+?)\s*$")


@dataclass
class GenerationResult:
    """Task drafts plus where they came from: 'ai', 'manual' or 'fallback'."""

    drafts: list[TaskDraft]
    source: str
    denial: FocuslyError | None = None


@dataclass
class PlanResult:
    checklist: Checklist
    generation: GenerationResult
    added: list[Task] = field(default_factory=list)


@dataclass
class CheckInSummary:
    completed: int
    total: int
    tier: CompletionTier
    message: str
    reflection_question: str | None = None   # set when today's checklist was closed


@dataclass
class WeeklySummary:
    start: date
    end: date
    days_checked_in: int
    missed_check_ins: int
    tasks_completed: int
    tasks_total: int


def parse_task_lines(reply: str) -> list[str]:
    """Keep only the lines of an AI reply that look like list items."""
    tasks: list[str] = []
    for line in (reply or "").splitlines():
        match = _LIST_ITEM_RE.match(line)
        if not match:
            continue
        text = match.group(1).replace("**", "").strip()
        if text and text not in tasks:
            tasks.append(text)
        if len(tasks) == MAX_GENERATED_TASKS:
            break
    return tasks


def _build_prompt(goal: str, previous_incomplete: Sequence[str]) -> str:
    previous = ", ".join(previous_incomplete) if previous_incomplete else "None"
    return (
        "Help the user break down their goal into a checklist for today.\n\n"
        f'Goal: "{goal}"\n\n'
        f"Unfinished tasks from yesterday: {previous}\n\n"
        "Generate a short checklist of 3-5 short, imperative, concrete tasks for today. "
        "Be strict but supportive. Respond ONLY with a bulleted list, one task per "
        "line, each line starting with '- '."
    )


class ChecklistService:
    """Daily checklist lifecycle over injected stores."""

    def __init__(
        self,
        checklists: ChecklistStore,
        users: UserStore,
        complete: CompletionPort,
    ) -> None:
        self._checklists = checklists
        self._users = users
        self._complete = complete

    # ------------------------------------------------------------------
    # Lookup / creation
    # ------------------------------------------------------------------

    @staticmethod
    def today_for(user: User, now: datetime) -> date:
        return local_date(now, user.timezone)

    def get_or_create_today(self, user: User, now: datetime | None = None) -> Checklist:
        """Find the user's checklist for today, creating an empty one if absent."""
        now = now or now_local(user.timezone)
        today = self.today_for(user, now)
        checklist = self._checklists.find_by_date(user.user_id, today)
        if checklist is None:
            checklist = self._checklists.create_checklist(
                user.user_id, today, weekly_goal=user.focus,
            )
        return checklist

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _generate(
        self,
        user: User,
        goal: str,
        previous_incomplete: Sequence[str],
        now: datetime,
    ) -> GenerationResult:
        decision = evaluate_access(user, now)
        if not decision.allowed:
            # evaluate_access may have rolled the usage period over
            self._users.save_user(user)
            logger.info(
                "AI generation denied for user %s: %s",
                user.user_id, type(decision.reason).__name__,
            )
            return GenerationResult(
                drafts=[TaskDraft(text) for text in MANUAL_PLANNING_TASKS],
                source="manual",
                denial=decision.reason,
            )

        prompt = _build_prompt(goal, previous_incomplete)
        try:
            reply = await self._complete(prompt, decision.tier)
        except ProviderError as exc:
            logger.warning("Checklist generation failed for user %s: %s", user.user_id, exc)
            return GenerationResult(drafts=[TaskDraft(AI_FALLBACK_TEXT)], source="fallback")

        lines = parse_task_lines(reply)
        if not lines:
            logger.warning(
                "AI returned no usable checklist for user %s: %r",
                user.user_id, (reply or "")[:200],
            )
            return GenerationResult(drafts=[TaskDraft(AI_FALLBACK_TEXT)], source="fallback")

        record_usage(user, now)
        self._users.save_user(user)
        return GenerationResult(drafts=[TaskDraft(line) for line in lines], source="ai")

    async def generate_tasks(
        self,
        user: User,
        goal: str,
        previous_incomplete: Sequence[str] = (),
        now: datetime | None = None,
    ) -> list[TaskDraft]:
        """Propose today's tasks for `goal`.

        Denied users get MANUAL_PLANNING_TASKS without an AI call. An empty or
        malformed AI reply yields a single explanatory line and is not retried.
        """
        now = now or now_local(user.timezone)
        result = await self._generate(user, goal, previous_incomplete, now)
        return result.drafts

    async def plan_today(self, user: User, now: datetime | None = None) -> PlanResult:
        """Carry yesterday over, then fill today's checklist with AI tasks."""
        now = now or now_local(user.timezone)
        today = self.today_for(user, now)

        checklist = self.carry_over_incomplete(user, today - timedelta(days=1), today)
        if checklist is None:
            checklist = self.get_or_create_today(user, now)
        if checklist.checked_in:
            raise ChecklistFrozen(f"checklist {checklist.id}")

        previous = [t.text for t in checklist.tasks if t.carried_over and not t.completed]
        goal = user.focus or checklist.weekly_goal or "Make steady progress today"
        generation = await self._generate(user, goal, previous, now)

        added: list[Task] = []
        if generation.source == "ai":
            added = self.add_tasks(checklist, [d.text for d in generation.drafts])
        return PlanResult(checklist=checklist, generation=generation, added=added)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_tasks(self, checklist: Checklist, texts: Sequence[str]) -> list[Task]:
        """Append tasks by text, skipping blanks and texts already present."""
        if checklist.checked_in:
            raise ChecklistFrozen(f"checklist {checklist.id}")

        added: list[Task] = []
        for raw in texts:
            text = raw.strip()
            if not text or checklist.has_task_text(text):
                continue
            task = Task(text=text)
            checklist.tasks.append(task)
            added.append(task)

        if added:
            self._checklists.save_checklist(checklist)
            logger.info("Added %d tasks to checklist #%d", len(added), checklist.id)
        return added

    def toggle_task(self, checklist: Checklist, task_id: int) -> Checklist:
        """Flip one task's completion. Not idempotent: each call flips."""
        if checklist.checked_in:
            raise ChecklistFrozen(f"checklist {checklist.id}")
        if not 0 <= task_id < len(checklist.tasks):
            raise TaskNotFound(f"task {task_id} in checklist {checklist.id}")

        task = checklist.tasks[task_id]
        task.completed = not task.completed
        self._checklists.save_checklist(checklist)
        logger.info(
            "Checklist #%d task %d -> %s", checklist.id, task_id,
            "done" if task.completed else "open",
        )
        return checklist

    def carry_over_incomplete(
        self, user: User, from_date: date, to_date: date,
    ) -> Checklist | None:
        """Copy from_date's incomplete tasks into to_date's checklist.

        Tasks whose text already exists in the destination are skipped.
        Returns the destination checklist, or None if there was nothing to
        carry and no destination exists yet.
        """
        source = self._checklists.find_by_date(user.user_id, from_date)
        incomplete = source.incomplete_tasks() if source is not None else []

        destination = self._checklists.find_by_date(user.user_id, to_date)
        if not incomplete:
            return destination

        if destination is None:
            destination = self._checklists.create_checklist(
                user.user_id, to_date, weekly_goal=user.focus,
            )
        if destination.checked_in:
            raise ChecklistFrozen(f"checklist {destination.id}")

        carried = 0
        for task in incomplete:
            if destination.has_task_text(task.text):
                continue
            destination.tasks.append(Task(text=task.text, completed=False, carried_over=True))
            carried += 1

        if carried:
            self._checklists.save_checklist(destination)
            logger.info(
                "Carried %d tasks for user %s from %s to %s",
                carried, user.user_id, from_date, to_date,
            )
        return destination

    def submit_check_in(
        self,
        checklist: Checklist,
        user: User | None = None,
        now: datetime | None = None,
    ) -> CheckInSummary:
        """Freeze the checklist and summarize the day.

        With a user, also records the check-in date, the legacy daily flag
        and the streak. A late submit of an older checklist freezes it but
        never moves the user's check-in state backwards.
        """
        if checklist.checked_in:
            raise AlreadyCheckedIn(f"checklist {checklist.id}")

        checklist.checked_in = True
        self._checklists.save_checklist(checklist)

        completed = checklist.completed_count
        total = len(checklist.tasks)
        tier = completion_tier(completed, total)

        question = None
        if user is not None:
            if self._record_check_in(user, checklist.date, now or now_local(user.timezone)):
                question = reflection_question(tier)

        logger.info(
            "User %s checked in checklist #%d: %d/%d",
            checklist.user_id, checklist.id, completed, total,
        )
        return CheckInSummary(
            completed=completed,
            total=total,
            tier=tier,
            message=check_in_message(tier, completed, total),
            reflection_question=question,
        )

    def _record_check_in(self, user: User, day: date, now: datetime) -> bool:
        """Update streak and daily flag. Returns True if `day` is today."""
        last = user.last_check_in_date
        if last is None or day > last:
            if last == day - timedelta(days=1):
                user.current_streak += 1
            else:
                user.current_streak = 1
            user.longest_streak = max(user.longest_streak, user.current_streak)
            user.last_check_in_date = day
        # the daily flag only describes today's checklist
        is_today = day == self.today_for(user, now)
        if is_today:
            user.has_checked_in_today = True
            user.awaiting_reflection = True
        self._users.save_user(user)
        return is_today

    def record_reflection(self, user: User, text: str, now: datetime | None = None) -> Checklist | None:
        """Store the answer to the check-in question on today's checklist."""
        now = now or now_local(user.timezone)
        checklist = self._checklists.find_by_date(user.user_id, self.today_for(user, now))
        if checklist is not None:
            checklist.reflection = text.strip()
            self._checklists.save_checklist(checklist)
        user.awaiting_reflection = False
        self._users.save_user(user)
        logger.info("User %s reflected on their day", user.user_id)
        return checklist

    def reset_daily_flag(self, user: User, now: datetime) -> None:
        """Midnight rollover: count a missed check-in and clear the daily flags."""
        yesterday = self.today_for(user, now) - timedelta(days=1)
        if not user.has_checked_in_today:
            previous = self._checklists.find_by_date(user.user_id, yesterday)
            if previous is not None and not previous.checked_in:
                user.missed_check_ins += 1
                user.current_streak = 0
                logger.info("User %s missed check-in for %s", user.user_id, yesterday)
        user.has_checked_in_today = False
        user.awaiting_reflection = False
        self._users.save_user(user)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def weekly_summary(self, user: User, now: datetime) -> WeeklySummary:
        """Aggregate the last 7 days (today included)."""
        end = self.today_for(user, now)
        start = end - timedelta(days=6)
        checklists = self._checklists.list_between(user.user_id, start, end)

        return WeeklySummary(
            start=start,
            end=end,
            days_checked_in=sum(1 for c in checklists if c.checked_in),
            missed_check_ins=sum(
                1 for c in checklists if not c.checked_in and c.date < end
            ),
            tasks_completed=sum(c.completed_count for c in checklists),
            tasks_total=sum(len(c.tasks) for c in checklists),
        )
