"""
Submission Payload - External Verification Record

Assembles the JSON record sent to the SubmissionSink on final submission:
booking and stay details from the form, verification facts, the score with
its adjustments, the trust level and the redacted host summary.

Raw identity fields (name, email, phone, address) are left out unless the
sink lists them in ``required_identity_fields``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from core.guest.schema import IDENTITY_FIELDS, FormSnapshot
from core.trust.levels import HostSummary, TrustLevel, result_message
from core.trust.scoring import ScoreResult
from core.verification.schema import VerificationFacts


def _whole(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


def booking_details(snapshot: FormSnapshot) -> dict[str, Any]:
    return {
        "platform": snapshot.platform,
        "listingLink": snapshot.listing_link,
        "checkInDate": snapshot.check_in.isoformat() if snapshot.check_in else None,
        "checkOutDate": snapshot.check_out.isoformat() if snapshot.check_out else None,
    }


def stay_details(snapshot: FormSnapshot) -> dict[str, Any]:
    details: dict[str, Any] = {
        "purpose": snapshot.stay_purpose,
        "otherPurpose": snapshot.other_purpose or None,
        "totalGuests": _whole(snapshot.guest_count),
        "childrenUnder12": _whole(snapshot.children_count),
        "nonOvernightGuests": _whole(snapshot.non_overnight_count),
        "travelingNearHome": bool(snapshot.traveling_near_home),
        "previousExperience": bool(snapshot.used_str_before),
        "previousStayLinks": snapshot.stay_links if snapshot.used_str_before else [],
    }
    # ZIP code is only collected for local bookings
    if snapshot.traveling_near_home:
        details["zipCode"] = snapshot.zip_code
    return details


def agreements(snapshot: FormSnapshot) -> dict[str, bool]:
    return {
        "agreeToRules": bool(snapshot.agree_to_rules),
        "agreeNoParties": bool(snapshot.agree_no_parties),
        "understandFlagging": bool(snapshot.understand_flagging),
    }


def identity_fields(snapshot: FormSnapshot, required: Iterable[str]) -> dict[str, str]:
    """
    Raw identity fields explicitly required by the sink.

    Raises:
        ValueError: If a required field is not an identity field
    """
    fields: dict[str, str] = {}
    for name in required:
        if name not in IDENTITY_FIELDS:
            raise ValueError(f"Unknown identity field required by sink: {name}")
        fields[name] = str(getattr(snapshot, name)).strip()
    return fields


def build_submission_payload(
    snapshot: FormSnapshot,
    facts: VerificationFacts,
    score_result: ScoreResult,
    trust_level: TrustLevel,
    host_summary: HostSummary,
    required_identity_fields: Iterable[str] = (),
    submitted_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Build the verification record for the submission sink.

    Args:
        snapshot: Final form snapshot
        facts: Final verification facts
        score_result: Score and adjustments
        trust_level: Trust level for the score
        host_summary: Redacted host summary
        required_identity_fields: Raw identity fields the sink needs
        submitted_at: Submission time (defaults to now, UTC)

    Returns:
        JSON-serialisable payload
    """
    submitted_at = submitted_at or datetime.now(timezone.utc)

    payload: dict[str, Any] = {
        "caslKeyId": facts.casl_key_id,
        "booking": booking_details(snapshot),
        "stayDetails": stay_details(snapshot),
        "agreements": agreements(snapshot),
        "verification": facts.to_dict(),
        "score": score_result.score,
        "adjustments": [adjustment.to_dict() for adjustment in score_result.adjustments],
        "trustLevel": trust_level.value,
        "message": result_message(trust_level),
        "hostSummary": host_summary.to_dict(),
        "submittedAt": submitted_at.isoformat(),
    }

    user = identity_fields(snapshot, required_identity_fields)
    if user:
        payload["user"] = user

    return payload
