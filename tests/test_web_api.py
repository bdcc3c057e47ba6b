"""
Tests for the Session API

Tests covering:
1. Healthcheck endpoints
2. Session lifecycle (create, state, delete)
3. Field updates and step validation responses
4. Full walkthrough to submission
5. Error mapping (422 user input, 409 invalid state, 503 retry)
6. Verification artifacts and trust preview
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from core.errors import TransportErrorKind
from core.verification.services import (
    InMemoryIdentityService,
    InMemorySubmissionSink,
    InMemoryVerificationService,
)
from utils.config import Config
from web.app import create_app
from web.sessions import Collaborators

from tests.conftest import (
    AGREEMENT_FIELDS,
    IDENTITY_FIELDS,
    PNG_DATA_URL,
    PROFILE_FIELDS,
    STAY_FIELDS,
    FailingIdentityService,
    transport_error,
)


def booking_fields() -> dict:
    today = date.today()
    return {
        "platform": "Airbnb",
        "listing_link": "https://www.airbnb.com/rooms/42",
        "check_in_date": (today + timedelta(days=14)).isoformat(),
        "check_out_date": (today + timedelta(days=17)).isoformat(),
    }


def step_inputs() -> tuple:
    return (
        {**IDENTITY_FIELDS, **PROFILE_FIELDS},
        booking_fields(),
        STAY_FIELDS,
        AGREEMENT_FIELDS,
    )


def make_config(**overrides) -> Config:
    options = {
        "log_level": "WARNING",
        "casl_api_base_url": None,
        "data_dir": None,
        "verification_poll_interval_ms": 1,
        "validation_debounce_ms": 1,
    }
    options.update(overrides)
    return Config(**options)


def make_collaborators(identity_service=None) -> Collaborators:
    return Collaborators(
        identity_service=identity_service if identity_service is not None else InMemoryIdentityService(),
        verification_service=InMemoryVerificationService(),
        submission_sink=InMemorySubmissionSink(),
    )


@pytest.fixture
def collaborators():
    return make_collaborators()


@pytest.fixture
def client(collaborators):
    app = create_app(make_config(), collaborators)
    with TestClient(app) as test_client:
        yield test_client


def create_session(client) -> str:
    response = client.post("/api/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def fill_and_advance(client, session_id: str, fields: dict):
    response = client.patch(f"/api/sessions/{session_id}/fields", json={"fields": fields})
    assert response.status_code == 200
    return client.post(f"/api/sessions/{session_id}/advance")


# =============================================================================
# Healthchecks
# =============================================================================


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"


# =============================================================================
# Session Lifecycle
# =============================================================================


class TestSessions:

    def test_create_returns_initial_state(self, client):
        response = client.post("/api/sessions")

        data = response.json()
        assert response.status_code == 201
        assert data["state"]["current_step"] == 0
        assert data["state"]["submitted"] is False

        state = client.get(f"/api/sessions/{data['session_id']}").json()
        assert state["current_step"] == 0
        assert state["errors"] == {}

    def test_unknown_session(self, client):
        response = client.get("/api/sessions/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found"

    def test_delete(self, client):
        session_id = create_session(client)

        assert client.delete(f"/api/sessions/{session_id}").status_code == 204
        assert client.delete(f"/api/sessions/{session_id}").status_code == 404
        assert client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_session_resumes_after_restart(self, tmp_path):
        config = make_config(data_dir=str(tmp_path))

        with TestClient(create_app(config, make_collaborators())) as first:
            session_id = create_session(first)
            assert fill_and_advance(first, session_id, step_inputs()[0]).status_code == 200

        with TestClient(create_app(config, make_collaborators())) as second:
            response = second.get(f"/api/sessions/{session_id}")
            missing = second.get(f"/api/sessions/{'0' * 32}")
            preview = second.get(f"/api/sessions/{session_id}/preview")

        assert response.status_code == 200
        assert response.json()["current_step"] == 1
        assert missing.status_code == 404
        assert preview.json()["caslKeyId"] is not None


# =============================================================================
# Form Commands
# =============================================================================


class TestFormCommands:

    def test_unknown_field(self, client):
        session_id = create_session(client)

        response = client.patch(
            f"/api/sessions/{session_id}/fields",
            json={"fields": {"favourite_colour": "blue"}},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "unknown_field"
        assert response.json()["category"] == "user_input"

    def test_empty_step_is_rejected(self, client):
        session_id = create_session(client)

        response = client.post(f"/api/sessions/{session_id}/advance")

        data = response.json()
        assert response.status_code == 422
        assert data["code"] == "validation_failed"
        assert data["step"] == 0
        assert data["errors"]["email"] == "Email is required"
        assert "verification" in data["errors"]

    def test_checkbox_error_reported_on_update(self, client):
        session_id = create_session(client)

        response = client.patch(
            f"/api/sessions/{session_id}/fields",
            json={"fields": {"consent_to_background_check": False}},
        )

        assert list(response.json()["errors"]) == ["verification"]

    def test_retreat_at_first_step(self, client):
        session_id = create_session(client)

        data = client.post(f"/api/sessions/{session_id}/retreat").json()

        assert data["moved"] is False
        assert data["state"]["current_step"] == 0

    def test_advance_then_retreat(self, client):
        session_id = create_session(client)
        advanced = fill_and_advance(client, session_id, step_inputs()[0]).json()
        assert advanced["result"] == "advanced"
        assert advanced["to_step"] == 1
        assert advanced["preview"]["trustLevel"] == "verified"

        data = client.post(f"/api/sessions/{session_id}/retreat").json()

        assert data["moved"] is True
        assert data["state"]["current_step"] == 0

    def test_reset(self, client):
        session_id = create_session(client)
        fill_and_advance(client, session_id, step_inputs()[0])

        data = client.post(f"/api/sessions/{session_id}/reset").json()

        assert data["current_step"] == 0

    def test_restore_without_progress(self, client):
        session_id = create_session(client)

        data = client.post(f"/api/sessions/{session_id}/restore").json()

        assert data["restored"] is False


# =============================================================================
# Submission
# =============================================================================


class TestSubmission:

    def test_full_walkthrough(self, client, collaborators):
        session_id = create_session(client)
        inputs = step_inputs()
        for fields in inputs[:-1]:
            assert fill_and_advance(client, session_id, fields).json()["result"] == "advanced"

        response = fill_and_advance(client, session_id, inputs[-1])

        data = response.json()
        assert response.status_code == 200
        assert data["result"] == "submitted"
        assert data["submission"]["score"] == 100
        assert data["submission"]["trustLevel"] == "verified"
        assert data["trust_label"] == "Verified"
        assert "Previous stays provided with links (+3)" in data["breakdown"]
        assert collaborators.submission_sink.last_payload["caslKeyId"] == data["submission"]["caslKeyId"]

        again = client.post(f"/api/sessions/{session_id}/advance")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "invalid_state"

        update = client.patch(
            f"/api/sessions/{session_id}/fields",
            json={"fields": {"name": "Someone Else"}},
        )
        assert update.status_code == 409

    def test_identity_service_failure(self):
        identity = FailingIdentityService(transport_error(TransportErrorKind.SERVER))
        app = create_app(make_config(), make_collaborators(identity))

        with TestClient(app) as client:
            session_id = create_session(client)
            response = fill_and_advance(client, session_id, step_inputs()[0])
            state = client.get(f"/api/sessions/{session_id}").json()

        data = response.json()
        assert response.status_code == 503
        assert data["category"] == "retry"
        assert data["error"]["kind"] == "server"
        assert data["step"] == 0
        assert state["current_step"] == 0


# =============================================================================
# Verification
# =============================================================================


class TestVerification:

    def test_unknown_method(self, client):
        session_id = create_session(client)

        response = client.post(
            f"/api/sessions/{session_id}/artifacts/fingerprint",
            json={"payload": {}},
        )

        assert response.status_code == 404

    def test_bad_artifact(self, client):
        session_id = create_session(client)
        client.patch(f"/api/sessions/{session_id}/fields", json={"fields": IDENTITY_FIELDS})

        response = client.post(
            f"/api/sessions/{session_id}/artifacts/screenshot",
            json={"payload": {"image_data": "not an image"}},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "artifact_invalid"

    def test_artifact_needs_contact_details(self, client):
        session_id = create_session(client)

        response = client.post(
            f"/api/sessions/{session_id}/artifacts/screenshot",
            json={"payload": {"image_data": PNG_DATA_URL}},
        )

        data = response.json()
        assert response.status_code == 422
        assert data["error"]["code"] == "invalid_state"
        assert set(data["errors"]) == {"name", "email", "phone", "address"}

    def test_artifact_accepted(self, client, collaborators):
        session_id = create_session(client)
        client.patch(f"/api/sessions/{session_id}/fields", json={"fields": IDENTITY_FIELDS})

        response = client.post(
            f"/api/sessions/{session_id}/artifacts/screenshot",
            json={"payload": {"image_data": PNG_DATA_URL}},
        )

        data = response.json()
        assert response.status_code == 202
        assert data["ticket"]["method"] == "screenshot"
        assert len(collaborators.verification_service.submissions) == 1

    def test_preview(self, client):
        session_id = create_session(client)
        client.patch(
            f"/api/sessions/{session_id}/fields",
            json={"fields": {"total_guests": 8, "stay_purpose": "Special Occasion"}},
        )

        data = client.get(f"/api/sessions/{session_id}/preview").json()

        assert data["flags"]["highGuestCount"] is True
        assert data["flags"]["noSTRHistory"] is True
        assert data["scoreRange"] == "85-100"
