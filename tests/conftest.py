"""Shared test fixtures and configuration.

Sets up fake environment variables so focusly.config doesn't sys.exit(),
and provides temp-file SQLite stores plus a User factory.
"""

import os

# Patch env vars BEFORE any focusly imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MAX_RETRIES", "1")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Africa/Lagos")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")

from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

LAGOS = ZoneInfo("Africa/Lagos")


def at(year, month, day, hour=10, minute=0):
    """Aware datetime on the Africa/Lagos wall clock."""
    return datetime(year, month, day, hour, minute, tzinfo=LAGOS)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by all stores in a test."""
    return str(tmp_path / "test_focusly.db")


@pytest.fixture
def user_db(tmp_db_path):
    from focusly.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def checklist_db(tmp_db_path):
    from focusly.data.db import ChecklistDB
    return ChecklistDB(db_path=tmp_db_path)


@pytest.fixture
def payment_db(tmp_db_path):
    from focusly.data.db import PaymentDB
    return PaymentDB(db_path=tmp_db_path)


@pytest.fixture
def make_user(user_db):
    """Create and persist a user; keyword overrides are applied then saved."""

    def _make(user_id="12345", created=None, **overrides):
        created = created or at(2026, 3, 2, 7)
        user = user_db.find_or_create(user_id, now=created)
        for key, value in overrides.items():
            setattr(user, key, value)
        user_db.save_user(user)
        return user

    return _make


@pytest.fixture
def notifier():
    """A NotificationPort double whose send_message returns message id 777."""
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value=777)
    mock.edit_message = AsyncMock(return_value=None)
    mock.answer_callback = AsyncMock(return_value=None)
    return mock
