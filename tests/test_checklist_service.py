"""Tests for focusly.core.checklist_service — the daily checklist lifecycle.

Stores are real temp-file SQLite; the AI completer is an AsyncMock.
"""

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from focusly.core.access_policy import Tier
from focusly.core.checklist_service import (
    AI_FALLBACK_TEXT,
    MANUAL_PLANNING_TASKS,
    ChecklistService,
    parse_task_lines,
)
from focusly.core.errors import (
    AlreadyCheckedIn,
    ChecklistFrozen,
    DailyLimitReached,
    ProviderError,
    TaskNotFound,
)
from focusly.core.messages import CompletionTier
from focusly.data.models import SubscriptionStatus, Task

LAGOS = ZoneInfo("Africa/Lagos")
NOW = datetime(2026, 3, 3, 9, 0, tzinfo=LAGOS)  # Tuesday
TODAY = date(2026, 3, 3)
YESTERDAY = date(2026, 3, 2)

AI_REPLY = "Here's your plan:\n- Outline chapter 2\n- Email the editor\n- Review notes\n"


@pytest.fixture
def completer():
    return AsyncMock(return_value=AI_REPLY)


@pytest.fixture
def service(checklist_db, user_db, completer):
    return ChecklistService(checklist_db, user_db, completer)


def _with_tasks(checklist_db, user_id, day, tasks, checked_in=False):
    checklist = checklist_db.create_checklist(user_id, day)
    checklist.tasks = tasks
    checklist.checked_in = checked_in
    checklist_db.save_checklist(checklist)
    return checklist


# ---------------------------------------------------------------------------
# parse_task_lines
# ---------------------------------------------------------------------------


class TestParseTaskLines:
    def test_keeps_list_items_only(self):
        reply = "Sure!\n- One\n* Two\n• Three\n1. Four\n2) Five\nGood luck!"
        assert parse_task_lines(reply) == ["One", "Two", "Three", "Four", "Five"]

    def test_caps_at_five(self):
        reply = "\n".join(f"- Task {i}" for i in range(8))
        assert len(parse_task_lines(reply)) == 5

    def test_strips_bold_and_dedupes(self):
        assert parse_task_lines("- **Write**\n- Write") == ["Write"]

    def test_prose_yields_nothing(self):
        assert parse_task_lines("I think you should rest today.") == []
        assert parse_task_lines("") == []


# ---------------------------------------------------------------------------
# get_or_create_today
# ---------------------------------------------------------------------------


class TestGetOrCreateToday:
    def test_creates_empty_checklist_with_goal_snapshot(self, service, make_user):
        user = make_user(focus="Finish the thesis")
        checklist = service.get_or_create_today(user, NOW)
        assert checklist.date == TODAY
        assert checklist.tasks == []
        assert checklist.weekly_goal == "Finish the thesis"

    def test_returns_same_checklist(self, service, make_user):
        user = make_user()
        first = service.get_or_create_today(user, NOW)
        second = service.get_or_create_today(user, NOW + timedelta(hours=5))
        assert first.id == second.id

    def test_uses_user_local_date(self, service, make_user):
        user = make_user()
        # 23:30 UTC on the 2nd is 00:30 on the 3rd in Lagos
        late = datetime(2026, 3, 2, 23, 30, tzinfo=ZoneInfo("UTC"))
        assert service.get_or_create_today(user, late).date == TODAY


# ---------------------------------------------------------------------------
# generate_tasks
# ---------------------------------------------------------------------------


class TestGenerateTasks:
    @pytest.mark.asyncio
    async def test_allowed_user_gets_ai_tasks_and_usage_recorded(
        self, service, make_user, completer, user_db,
    ):
        user = make_user()
        drafts = await service.generate_tasks(user, "Write a book", ["Old task"], NOW)

        assert [d.text for d in drafts] == ["Outline chapter 2", "Email the editor", "Review notes"]
        prompt, tier = completer.call_args.args
        assert "Write a book" in prompt
        assert "Old task" in prompt
        assert tier == Tier.HIGH
        assert user_db.get_user(user.user_id).usage_count == 1

    @pytest.mark.asyncio
    async def test_denied_user_gets_manual_suggestions_without_ai(
        self, service, make_user, completer, user_db,
    ):
        user = make_user(usage_count=5, usage_period_anchor="2026-03-03")
        drafts = await service.generate_tasks(user, "Write a book", [], NOW)

        assert [d.text for d in drafts] == list(MANUAL_PLANNING_TASKS)
        completer.assert_not_called()
        assert user_db.get_user(user.user_id).usage_count == 5

    @pytest.mark.asyncio
    async def test_expired_user_gets_manual_suggestions(self, service, make_user, completer):
        user = make_user(subscription_status=SubscriptionStatus.EXPIRED)
        drafts = await service.generate_tasks(user, "Goal", [], NOW)
        assert len(drafts) == 3
        completer.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_without_quota(
        self, service, make_user, completer, user_db,
    ):
        completer.side_effect = ProviderError("timeout")
        user = make_user()
        drafts = await service.generate_tasks(user, "Goal", [], NOW)

        assert [d.text for d in drafts] == [AI_FALLBACK_TEXT]
        assert completer.await_count == 1
        assert user_db.get_user(user.user_id).usage_count == 0

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back_without_quota(
        self, service, make_user, completer, user_db,
    ):
        completer.return_value = "You can do it!"
        user = make_user()
        drafts = await service.generate_tasks(user, "Goal", [], NOW)

        assert [d.text for d in drafts] == [AI_FALLBACK_TEXT]
        assert user_db.get_user(user.user_id).usage_count == 0


# ---------------------------------------------------------------------------
# toggle_task
# ---------------------------------------------------------------------------


class TestToggleTask:
    def test_flips_and_persists(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [Task("A"), Task("B")])
        service.toggle_task(checklist, 1)
        assert checklist_db.get_checklist(checklist.id).tasks[1].completed is True

        service.toggle_task(checklist, 1)
        assert checklist_db.get_checklist(checklist.id).tasks[1].completed is False

    def test_unknown_task(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [Task("A")])
        with pytest.raises(TaskNotFound):
            service.toggle_task(checklist, 3)
        with pytest.raises(TaskNotFound):
            service.toggle_task(checklist, -1)

    def test_frozen_checklist_rejected(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [Task("A")], checked_in=True)
        with pytest.raises(ChecklistFrozen):
            service.toggle_task(checklist, 0)
        assert checklist_db.get_checklist(checklist.id).tasks[0].completed is False


# ---------------------------------------------------------------------------
# carry_over_incomplete
# ---------------------------------------------------------------------------


class TestCarryOver:
    def test_copies_incomplete_tasks(self, service, make_user, checklist_db):
        user = make_user()
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [
            Task("Done already", completed=True),
            Task("Still open"),
        ])

        destination = service.carry_over_incomplete(user, YESTERDAY, TODAY)

        assert destination.date == TODAY
        assert destination.tasks == [Task("Still open", completed=False, carried_over=True)]

    def test_skips_texts_already_present(self, service, make_user, checklist_db):
        user = make_user()
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A"), Task("B")])
        _with_tasks(checklist_db, user.user_id, TODAY, [Task("A")])

        destination = service.carry_over_incomplete(user, YESTERDAY, TODAY)
        assert [t.text for t in destination.tasks] == ["A", "B"]

        again = service.carry_over_incomplete(user, YESTERDAY, TODAY)
        assert [t.text for t in again.tasks] == ["A", "B"]

    def test_duplicate_source_texts_carried_once(self, service, make_user, checklist_db):
        user = make_user()
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [
            Task("Call mum"), Task("Call mum"), Task("Gym", completed=True),
        ])

        destination = service.carry_over_incomplete(user, YESTERDAY, TODAY)

        texts = [t.text for t in destination.tasks]
        assert texts == ["Call mum"]
        assert len(texts) == len(set(texts))

    def test_nothing_to_carry(self, service, make_user):
        user = make_user()
        assert service.carry_over_incomplete(user, YESTERDAY, TODAY) is None


# ---------------------------------------------------------------------------
# submit_check_in
# ---------------------------------------------------------------------------


class TestSubmitCheckIn:
    def test_summary_scenario(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [
            Task("A"), Task("B", completed=True), Task("C"),
        ])
        summary = service.submit_check_in(checklist)

        assert summary.completed == 1
        assert summary.total == 3
        assert summary.tier == CompletionTier.SOME
        assert "1/3" in summary.message
        assert checklist_db.get_checklist(checklist.id).checked_in is True

    def test_two_of_three(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [
            Task("A", completed=True), Task("B", completed=True), Task("C"),
        ])
        summary = service.submit_check_in(checklist)
        assert (summary.completed, summary.total) == (2, 3)
        assert "2/3" in summary.message

    def test_second_submit_rejected(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [Task("A")])
        service.submit_check_in(checklist)
        with pytest.raises(AlreadyCheckedIn):
            service.submit_check_in(checklist)

    def test_tiers(self, service, checklist_db):
        cases = [
            ([Task("A", completed=True)], CompletionTier.ALL),
            ([Task("A")], CompletionTier.NONE),
            ([], CompletionTier.EMPTY),
        ]
        for offset, (tasks, tier) in enumerate(cases):
            checklist = _with_tasks(checklist_db, "42", TODAY + timedelta(days=offset), tasks)
            assert service.submit_check_in(checklist).tier == tier

    def test_updates_user_streak(self, service, make_user, checklist_db, user_db):
        user = make_user(last_check_in_date=YESTERDAY, current_streak=3, longest_streak=3)
        checklist = _with_tasks(checklist_db, user.user_id, TODAY, [Task("A")])

        service.submit_check_in(checklist, user, NOW)

        saved = user_db.get_user(user.user_id)
        assert saved.current_streak == 4
        assert saved.longest_streak == 4
        assert saved.last_check_in_date == TODAY
        assert saved.has_checked_in_today is True

    def test_gap_restarts_streak(self, service, make_user, checklist_db):
        user = make_user(last_check_in_date=TODAY - timedelta(days=3), current_streak=5, longest_streak=5)
        checklist = _with_tasks(checklist_db, user.user_id, TODAY, [])
        service.submit_check_in(checklist, user, NOW)
        assert user.current_streak == 1
        assert user.longest_streak == 5

    def test_late_submit_of_yesterday_keeps_todays_state(self, service, make_user, checklist_db, user_db):
        user = make_user(last_check_in_date=YESTERDAY - timedelta(days=1), current_streak=2, longest_streak=2)
        yesterday = _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")])
        today = _with_tasks(checklist_db, user.user_id, TODAY, [Task("B")])

        service.submit_check_in(today, user, NOW)
        service.submit_check_in(yesterday, user, NOW)

        saved = user_db.get_user(user.user_id)
        assert saved.last_check_in_date == TODAY
        assert saved.current_streak == 1
        assert saved.longest_streak == 2
        assert saved.has_checked_in_today is True
        assert checklist_db.get_checklist(yesterday.id).checked_in is True

    def test_late_submit_of_yesterday_does_not_set_daily_flag(self, service, make_user, checklist_db, user_db):
        user = make_user()
        yesterday = _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")])

        service.submit_check_in(yesterday, user, NOW)

        saved = user_db.get_user(user.user_id)
        assert saved.has_checked_in_today is False
        assert saved.last_check_in_date == YESTERDAY

    def test_late_submit_then_reset_counts_todays_miss(self, service, make_user, checklist_db, user_db):
        user = make_user()
        yesterday = _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")])
        _with_tasks(checklist_db, user.user_id, TODAY, [Task("B")])

        service.submit_check_in(yesterday, user, NOW)
        service.reset_daily_flag(user, datetime(2026, 3, 4, 0, 0, tzinfo=LAGOS))

        assert user_db.get_user(user.user_id).missed_check_ins == 1


# ---------------------------------------------------------------------------
# add_tasks / plan_today / weekly_summary / reset_daily_flag
# ---------------------------------------------------------------------------


class TestAddTasks:
    def test_appends_and_dedupes(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [Task("A")])
        added = service.add_tasks(checklist, ["A", " B ", "", "B", "C"])
        assert [t.text for t in added] == ["B", "C"]
        assert [t.text for t in checklist_db.get_checklist(checklist.id).tasks] == ["A", "B", "C"]

    def test_frozen(self, service, checklist_db):
        checklist = _with_tasks(checklist_db, "42", TODAY, [], checked_in=True)
        with pytest.raises(ChecklistFrozen):
            service.add_tasks(checklist, ["A"])


class TestPlanToday:
    @pytest.mark.asyncio
    async def test_carries_over_then_adds_ai_tasks(self, service, make_user, checklist_db, completer):
        user = make_user(focus="Write a book")
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("Email the editor")])

        result = await service.plan_today(user, NOW)

        texts = [t.text for t in result.checklist.tasks]
        assert texts == ["Email the editor", "Outline chapter 2", "Review notes"]
        assert result.checklist.tasks[0].carried_over is True
        assert result.generation.source == "ai"
        assert "Email the editor" in completer.call_args.args[0]

    @pytest.mark.asyncio
    async def test_denied_keeps_checklist_and_reports_reason(self, service, make_user, completer):
        user = make_user(usage_count=5, usage_period_anchor="2026-03-03")
        result = await service.plan_today(user, NOW)

        assert result.generation.source == "manual"
        assert isinstance(result.generation.denial, DailyLimitReached)
        assert result.checklist.tasks == []
        assert result.added == []
        completer.assert_not_called()

    @pytest.mark.asyncio
    async def test_frozen_today(self, service, make_user, checklist_db):
        user = make_user()
        _with_tasks(checklist_db, user.user_id, TODAY, [Task("A")], checked_in=True)
        with pytest.raises(ChecklistFrozen):
            await service.plan_today(user, NOW)


class TestWeeklySummary:
    def test_aggregates_last_seven_days(self, service, make_user, checklist_db):
        user = make_user()
        _with_tasks(checklist_db, user.user_id, TODAY - timedelta(days=7), [Task("too old", completed=True)])
        _with_tasks(checklist_db, user.user_id, TODAY - timedelta(days=2), [
            Task("A", completed=True), Task("B"),
        ], checked_in=True)
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("C")])
        _with_tasks(checklist_db, user.user_id, TODAY, [Task("D", completed=True)])

        summary = service.weekly_summary(user, NOW)

        assert summary.start == TODAY - timedelta(days=6)
        assert summary.end == TODAY
        assert summary.days_checked_in == 1
        assert summary.missed_check_ins == 1
        assert summary.tasks_completed == 2
        assert summary.tasks_total == 4


class TestReflection:
    def test_todays_check_in_asks_for_reflection(self, service, make_user, checklist_db, user_db):
        user = make_user()
        checklist = _with_tasks(checklist_db, user.user_id, TODAY, [Task("A", completed=True)])

        summary = service.submit_check_in(checklist, user, NOW)

        assert summary.reflection_question == "💬 What helped you stay focused today?"
        assert user_db.get_user(user.user_id).awaiting_reflection is True

    def test_late_check_in_asks_nothing(self, service, make_user, checklist_db, user_db):
        user = make_user()
        checklist = _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")])

        summary = service.submit_check_in(checklist, user, NOW)

        assert summary.reflection_question is None
        assert user_db.get_user(user.user_id).awaiting_reflection is False

    def test_record_reflection_on_todays_checklist(self, service, make_user, checklist_db, user_db):
        user = make_user(awaiting_reflection=True)
        checklist = _with_tasks(checklist_db, user.user_id, TODAY, [Task("A")], checked_in=True)

        service.record_reflection(user, "  Phone stayed in the drawer ", NOW)

        assert checklist_db.get_checklist(checklist.id).reflection == "Phone stayed in the drawer"
        assert user_db.get_user(user.user_id).awaiting_reflection is False


class TestResetDailyFlag:
    def test_clears_pending_reflection(self, service, make_user, user_db):
        user = make_user(awaiting_reflection=True, has_checked_in_today=True)
        service.reset_daily_flag(user, datetime(2026, 3, 4, 0, 0, tzinfo=LAGOS))
        assert user_db.get_user(user.user_id).awaiting_reflection is False

    def test_missed_yesterday_counts_and_breaks_streak(self, service, make_user, checklist_db, user_db):
        user = make_user(current_streak=4)
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")])

        service.reset_daily_flag(user, datetime(2026, 3, 3, 0, 0, tzinfo=LAGOS))

        saved = user_db.get_user(user.user_id)
        assert saved.missed_check_ins == 1
        assert saved.current_streak == 0
        assert saved.has_checked_in_today is False

    def test_checked_in_yesterday_only_clears_flag(self, service, make_user, checklist_db, user_db):
        user = make_user(current_streak=4, has_checked_in_today=True)
        _with_tasks(checklist_db, user.user_id, YESTERDAY, [Task("A")], checked_in=True)

        service.reset_daily_flag(user, datetime(2026, 3, 3, 0, 0, tzinfo=LAGOS))

        saved = user_db.get_user(user.user_id)
        assert saved.missed_check_ins == 0
        assert saved.current_streak == 4
        assert saved.has_checked_in_today is False
