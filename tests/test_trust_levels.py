"""
Tests for Trust Level Mapping and the Host Summary

Tests covering:
1. Threshold boundaries
2. Score ranges and result messages
3. Redacted host summary (no guest identity ever included)
"""

from __future__ import annotations

import json

import pytest

from core.guest.schema import FormSnapshot
from core.trust.levels import (
    DEFAULT_RESULT_MESSAGE,
    TrustLevel,
    build_host_summary,
    result_message,
    score_range_for,
    trust_flags,
    trust_level_for,
)
from core.verification.schema import VerificationFacts, VerificationMethod, VerificationStatus
from utils.formatting import format_trust_level

from tests.conftest import IDENTITY_FIELDS, TODAY


class TestTrustLevelBoundaries:

    @pytest.mark.parametrize(
        "score,level",
        [
            (100, TrustLevel.VERIFIED),
            (85, TrustLevel.VERIFIED),
            (84, TrustLevel.REVIEW),
            (70, TrustLevel.REVIEW),
            (69, TrustLevel.MANUAL_REVIEW),
            (50, TrustLevel.MANUAL_REVIEW),
            (49, TrustLevel.NOT_ELIGIBLE),
            (0, TrustLevel.NOT_ELIGIBLE),
        ],
    )
    def test_threshold(self, score, level):
        assert trust_level_for(score) == level

    @pytest.mark.parametrize(
        "score,label",
        [(90, "85-100"), (75, "70-84"), (55, "50-69"), (10, "Below 50")],
    )
    def test_score_range(self, score, label):
        assert score_range_for(score) == label

    def test_result_messages(self):
        assert result_message(TrustLevel.VERIFIED).startswith("You're officially CASL Key Verified!")
        assert result_message(None) == DEFAULT_RESULT_MESSAGE

    def test_display_labels(self):
        assert format_trust_level(TrustLevel.REVIEW) == "Additional Context Needed"
        assert format_trust_level(TrustLevel.NOT_ELIGIBLE) == "Not Eligible at This Time"


class TestHostSummary:
    """The host sees flags and fixed sentences, never guest identity."""

    @pytest.fixture
    def snapshot(self):
        return FormSnapshot(
            **IDENTITY_FIELDS,
            airbnb_profile="https://www.airbnb.com/users/show/12345",
            total_guests=7,
            traveling_near_home=True,
            zip_code="12345",
        )

    def test_summary_contains_no_identity(self, snapshot):
        summary = build_host_summary("CKABCDE", 72, snapshot, today=TODAY)
        rendered = json.dumps(summary.to_dict())

        for value in ("Jordan", "Example", "jordan@example.com", "555", "Main Street", "airbnb.com"):
            assert value not in rendered

    def test_summary_fields(self, snapshot):
        facts = VerificationFacts(casl_key_id="CKABCDE")
        facts.apply_status(VerificationMethod.BACKGROUND_CHECK, VerificationStatus.VERIFIED)
        facts.apply_status(VerificationMethod.SCREENSHOT, VerificationStatus.VERIFIED)

        summary = build_host_summary("CKABCDE", 72, snapshot, facts, today=TODAY).to_dict()

        assert summary["caslKeyId"] == "CKABCDE"
        assert summary["trustLevel"] == "review"
        assert summary["scoreRange"] == "70-84"
        assert summary["platformVerified"] is True
        assert summary["backgroundCheckStatus"] == "completed"
        assert summary["flags"] == {
            "localBooking": True,
            "highGuestCount": True,
            "noSTRHistory": True,
            "lastMinuteBooking": False,
        }

    def test_background_check_processing_not_completed(self, snapshot):
        facts = VerificationFacts()
        facts.apply_status(VerificationMethod.BACKGROUND_CHECK, VerificationStatus.PROCESSING)

        summary = build_host_summary(None, 90, snapshot, facts, today=TODAY)

        assert summary.background_check_status == "not_completed"
        assert summary.platform_verified is False

    def test_flags_for_quiet_booking(self):
        flags = trust_flags(FormSnapshot(used_str_before=True), TODAY)
        assert not flags.any_raised
