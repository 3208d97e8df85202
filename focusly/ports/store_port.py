"""Store ports — abstract interfaces for user and checklist persistence.

Core modules receive implementations of these protocols as arguments and
never open a database themselves.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from focusly.data.models import Checklist, Task, User


class UserStore(Protocol):
    """Find, create and update users."""

    def get_user(self, user_id: str) -> User | None: ...

    def find_or_create(
        self, user_id: str, name: str | None = None, now: datetime | None = None,
    ) -> User: ...

    def save_user(self, user: User) -> None: ...

    def list_users(self) -> list[User]: ...

    def prune_expired(self, now: datetime, retention_days: int) -> int: ...


class ChecklistStore(Protocol):
    """Checklists, uniquely keyed by (user_id, date)."""

    def get_checklist(self, checklist_id: int) -> Checklist | None: ...

    def find_by_date(self, user_id: str, day: date) -> Checklist | None: ...

    def create_checklist(
        self,
        user_id: str,
        day: date,
        weekly_goal: str | None = None,
        tasks: list[Task] | None = None,
    ) -> Checklist: ...

    def save_checklist(self, checklist: Checklist) -> None: ...

    def list_between(self, user_id: str, start: date, end: date) -> list[Checklist]: ...
