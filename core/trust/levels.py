"""
Trust Level Mapping - Score Thresholds and Redacted Host Summary

Maps a trust score onto one of four trust levels and builds the
host-facing summary.

Trust levels:
- verified       85-100
- review         70-84
- manual_review  50-69
- not_eligible   below 50

The host summary is PII-free: it carries the CASL Key ID, level, score
range, verification booleans, neutral booking flags and fixed sentences.
It never includes the guest's name, email, phone or address.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Final, Optional

from core.guest.schema import FormSnapshot
from core.trust.scoring import HIGH_GUEST_COUNT_THRESHOLD, is_last_minute_booking
from core.verification.schema import VerificationFacts


# =============================================================================
# Enums
# =============================================================================


class TrustLevel(Enum):
    """Categorical trust level derived from the score."""

    VERIFIED = "verified"
    REVIEW = "review"
    MANUAL_REVIEW = "manual_review"
    NOT_ELIGIBLE = "not_eligible"


# =============================================================================
# Constants
# =============================================================================

VERIFIED_THRESHOLD: Final[int] = 85
REVIEW_THRESHOLD: Final[int] = 70
MANUAL_REVIEW_THRESHOLD: Final[int] = 50

SCORE_RANGES: Final[dict[TrustLevel, str]] = {
    TrustLevel.VERIFIED: "85-100",
    TrustLevel.REVIEW: "70-84",
    TrustLevel.MANUAL_REVIEW: "50-69",
    TrustLevel.NOT_ELIGIBLE: "Below 50",
}

TRUST_LEVEL_DISPLAY: Final[dict[TrustLevel, dict[str, str]]] = {
    TrustLevel.VERIFIED: {
        "label": "Verified",
        "description": "Verified guest. Meets CASL Key's recommended trust standards.",
    },
    TrustLevel.REVIEW: {
        "label": "Additional Context Needed",
        "description": "Some traits require review. We recommend reviewing booking context.",
    },
    TrustLevel.MANUAL_REVIEW: {
        "label": "Manual Review Pending",
        "description": "We're completing a review of this guest's profile. You'll be notified soon.",
    },
    TrustLevel.NOT_ELIGIBLE: {
        "label": "Not Eligible at This Time",
        "description": "This guest does not currently meet platform-wide trust requirements.",
    },
}

# Guest-facing result messages
RESULT_MESSAGES: Final[dict[TrustLevel, str]] = {
    TrustLevel.VERIFIED: (
        "You're officially CASL Key Verified! Your trust badge is valid for 12 months "
        "and can be shared with any CASL Key host. Keep your badge active by booking responsibly."
    ),
    TrustLevel.REVIEW: (
        "You're almost there! While you're verified, your Trust Score indicates a few flags "
        "(e.g., local booking or large group). Hosts may ask additional questions."
    ),
    TrustLevel.MANUAL_REVIEW: (
        "We're completing a review of your profile. This typically takes 24-48 hours. "
        "We'll notify you once your profile has been reviewed."
    ),
    TrustLevel.NOT_ELIGIBLE: (
        "We're unable to approve your CASL Key at this time. You may reapply in 90 days "
        "or contact support to resolve outstanding concerns."
    ),
}

DEFAULT_RESULT_MESSAGE: Final[str] = "Thank you for completing your CASL Key verification."

# Host-facing (recommendation, summary) sentences
HOST_SENTENCES: Final[dict[TrustLevel, tuple[str, str]]] = {
    TrustLevel.VERIFIED: (
        "This guest meets CASL Key trust standards.",
        "ID verified. Platform account confirmed. No safety concerns flagged.",
    ),
    TrustLevel.REVIEW: (
        "This guest is verified but has traits that may require additional context.",
        "ID verified. Some booking characteristics suggest reviewing context.",
    ),
    TrustLevel.MANUAL_REVIEW: (
        "This guest is pending manual review. You'll be notified when complete.",
        "Guest has initiated verification process. Review in progress.",
    ),
    TrustLevel.NOT_ELIGIBLE: (
        "This guest does not currently meet eligibility requirements.",
        "Not eligible at this time.",
    ),
}


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class TrustFlags:
    """Neutral booking flags shown to hosts."""

    local_booking: bool
    high_guest_count: bool
    no_str_history: bool
    last_minute_booking: bool

    @property
    def any_raised(self) -> bool:
        return any((
            self.local_booking,
            self.high_guest_count,
            self.no_str_history,
            self.last_minute_booking,
        ))

    def to_dict(self) -> dict[str, bool]:
        return {
            "localBooking": self.local_booking,
            "highGuestCount": self.high_guest_count,
            "noSTRHistory": self.no_str_history,
            "lastMinuteBooking": self.last_minute_booking,
        }


@dataclass(frozen=True)
class HostSummary:
    """Redacted, PII-free summary of the guest's trust status for hosts."""

    casl_key_id: Optional[str]
    trust_level: TrustLevel
    score_range: str
    platform_verified: bool
    background_check_status: str
    flags: TrustFlags
    recommendation: str
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "caslKeyId": self.casl_key_id,
            "trustLevel": self.trust_level.value,
            "scoreRange": self.score_range,
            "platformVerified": self.platform_verified,
            "backgroundCheckStatus": self.background_check_status,
            "flags": self.flags.to_dict(),
            "recommendation": self.recommendation,
            "summary": self.summary,
        }


# =============================================================================
# Mapping Functions
# =============================================================================


def trust_level_for(score: int) -> TrustLevel:
    """Map a trust score onto its trust level."""
    if score >= VERIFIED_THRESHOLD:
        return TrustLevel.VERIFIED
    if score >= REVIEW_THRESHOLD:
        return TrustLevel.REVIEW
    if score >= MANUAL_REVIEW_THRESHOLD:
        return TrustLevel.MANUAL_REVIEW
    return TrustLevel.NOT_ELIGIBLE


def score_range_for(score: int) -> str:
    """Display label for the score range a score falls into."""
    return SCORE_RANGES[trust_level_for(score)]


def result_message(level: Optional[TrustLevel]) -> str:
    """Guest-facing message for a trust level."""
    if level is None:
        return DEFAULT_RESULT_MESSAGE
    return RESULT_MESSAGES.get(level, DEFAULT_RESULT_MESSAGE)


def trust_flags(snapshot: FormSnapshot, today: Optional[date] = None) -> TrustFlags:
    """Derive the neutral host flags from the form snapshot."""
    return TrustFlags(
        local_booking=bool(snapshot.traveling_near_home),
        high_guest_count=snapshot.guest_count > HIGH_GUEST_COUNT_THRESHOLD,
        no_str_history=not snapshot.used_str_before,
        last_minute_booking=is_last_minute_booking(snapshot, today),
    )


def build_host_summary(
    casl_key_id: Optional[str],
    score: int,
    snapshot: FormSnapshot,
    facts: Optional[VerificationFacts] = None,
    today: Optional[date] = None,
) -> HostSummary:
    """
    Build the redacted host-facing summary.

    Only booleans, enum values and fixed sentences are copied into the
    summary, so no guest-supplied text can leak through it.

    Args:
        casl_key_id: Opaque CASL Key identifier (may be None before lookup)
        score: Trust score (0-100)
        snapshot: Guest form snapshot (used for flags only)
        facts: Verification facts (used for verification booleans only)
        today: Calendar date for the last-minute flag

    Returns:
        HostSummary
    """
    facts = facts or VerificationFacts()
    level = trust_level_for(score)
    recommendation, summary = HOST_SENTENCES[level]

    return HostSummary(
        casl_key_id=casl_key_id,
        trust_level=level,
        score_range=SCORE_RANGES[level],
        platform_verified=facts.platform_verified,
        background_check_status="completed" if facts.background_check_completed else "not_completed",
        flags=trust_flags(snapshot, today),
        recommendation=recommendation,
        summary=summary,
    )
