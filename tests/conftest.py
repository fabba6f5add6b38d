"""
Pytest configuration and shared fixtures for audit forensics tests.

Provides record builders for both audit trails and a clean correlation
context per test.
"""

import pytest

from src.forensics.models import ChangeRecord, build_timeline_index
from src.utils.correlation import clear_correlation_id


def make_user_record(record_id="user-1", action="trip.updated", created_at="2026-03-01T10:00:00Z", **kwargs):
    """Build a user change record."""
    return ChangeRecord(
        id=record_id,
        source="user",
        created_at=created_at,
        action=action,
        target_type=kwargs.pop("target_type", "trip"),
        target_id=kwargs.pop("target_id", "trip-1"),
        actor_user_id=kwargs.pop("actor_user_id", "owner-1"),
        actor_email=kwargs.pop("actor_email", "owner@example.com"),
        **kwargs
    )


def make_admin_record(record_id="admin-1", action="admin.trip.override_commit",
                      created_at="2026-03-01T11:00:00Z", **kwargs):
    """Build an admin audit record."""
    return ChangeRecord(
        id=record_id,
        source="admin",
        created_at=created_at,
        action=action,
        target_type=kwargs.pop("target_type", "trip"),
        target_id=kwargs.pop("target_id", "trip-1"),
        actor_user_id=kwargs.pop("actor_user_id", "admin-actor"),
        actor_email=kwargs.pop("actor_email", "admin@example.com"),
        **kwargs
    )


@pytest.fixture
def user_record():
    return make_user_record


@pytest.fixture
def admin_record():
    return make_admin_record


@pytest.fixture
def title_change():
    """User edit renaming a trip."""
    return make_user_record(
        record_id="evt-1",
        before_data={"title": "A"},
        after_data={"title": "B"},
    )


@pytest.fixture
def timeline_index():
    return build_timeline_index


@pytest.fixture(autouse=True)
def clean_correlation_id():
    """Ensure each test starts without a correlation ID."""
    clear_correlation_id()
    yield
    clear_correlation_id()
