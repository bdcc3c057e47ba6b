"""
Shared fixtures for the verification workflow tests.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from core.errors import TransportError, TransportErrorKind
from core.guest.schema import FormSnapshot
from core.storage import MemoryStore
from core.verification.services import (
    InMemoryIdentityService,
    InMemorySubmissionSink,
    InMemoryVerificationService,
)
from core.workflow.state_machine import WorkflowStateMachine

TODAY = date(2026, 6, 1)
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

# A small but well-formed PNG data URL
PNG_DATA_URL = "data:image/png;base64," + "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk" * 4


def iso(days: int) -> str:
    """ISO date string relative to TODAY."""
    return (TODAY + timedelta(days=days)).isoformat()


IDENTITY_FIELDS = {
    "name": "Jordan Example",
    "email": "jordan@example.com",
    "phone": "+1 (555) 123-4567",
    "address": "123 Main Street, Springfield",
}

PROFILE_FIELDS = {"airbnb_profile": "https://www.airbnb.com/users/show/12345"}

BOOKING_FIELDS = {
    "platform": "Airbnb",
    "listing_link": "https://www.airbnb.com/rooms/42",
    "check_in_date": iso(14),
    "check_out_date": iso(17),
}

STAY_FIELDS = {
    "stay_purpose": "Vacation",
    "total_guests": 2,
    "used_str_before": True,
    "previous_stay_links": "https://www.airbnb.com/rooms/1",
}

AGREEMENT_FIELDS = {
    "agree_to_rules": True,
    "agree_no_parties": True,
    "understand_flagging": True,
}

STEP_INPUTS = (
    {**IDENTITY_FIELDS, **PROFILE_FIELDS},
    BOOKING_FIELDS,
    STAY_FIELDS,
    AGREEMENT_FIELDS,
)


class Clock:
    """Adjustable clock for expiry tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingIdentityService(InMemoryIdentityService):
    """Identity service that raises queued transport errors before answering."""

    def __init__(self, *failures: TransportError):
        super().__init__()
        self.failures = list(failures)

    async def check_or_create_identity(self, name, email, phone, address):
        if self.failures:
            self.calls += 1
            raise self.failures.pop(0)
        return await super().check_or_create_identity(name, email, phone, address)


def transport_error(kind: TransportErrorKind, operation: str = "identity lookup") -> TransportError:
    return TransportError(kind, operation, status_code=401 if kind == TransportErrorKind.SESSION else None)


@pytest.fixture
def complete_snapshot():
    """Snapshot with every step filled in validly."""
    fields = {}
    for step_fields in STEP_INPUTS:
        fields.update(step_fields)
    return FormSnapshot(**fields)


@pytest.fixture
def identity_service():
    return InMemoryIdentityService()


@pytest.fixture
def verification_service():
    return InMemoryVerificationService()


@pytest.fixture
def submission_sink():
    return InMemorySubmissionSink()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def make_workflow(identity_service, verification_service, submission_sink, store, clock):
    """Factory for workflows wired to in-memory collaborators with fast timers."""

    def _make(**overrides) -> WorkflowStateMachine:
        options = {
            "store": store,
            "poll_interval": 0.001,
            "debounce_delay": 0.01,
            "today_fn": lambda: TODAY,
            "clock": clock,
        }
        options.update(overrides)
        return WorkflowStateMachine(
            options.pop("identity_service", identity_service),
            options.pop("verification_service", verification_service),
            options.pop("submission_sink", submission_sink),
            **options,
        )

    return _make
