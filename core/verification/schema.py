"""
Verification Schema - Side-Channel Verification Results

Defines the verification status lifecycle, the supported verification
methods, the VerificationFacts record owned by the workflow, and the
JSON-serialisable objects exchanged with the identity, verification and
submission collaborators.

Status lifecycle (per method):
    NOT_SUBMITTED -> PROCESSING -> {VERIFIED, MANUAL_REVIEW, REJECTED}

PROCESSING is the only non-terminal, pollable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Enums
# =============================================================================


class VerificationStatus(Enum):
    """Status of an out-of-band verification check."""

    NOT_SUBMITTED = "NOT_SUBMITTED"
    PROCESSING = "PROCESSING"
    VERIFIED = "VERIFIED"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        """Terminal statuses stop polling."""
        return self in TERMINAL_STATUSES

    @classmethod
    def from_string(cls, value: str) -> "VerificationStatus":
        """
        Parse a status string from a collaborator response.

        Accepts any case and a few synonyms used by verification backends.

        Raises:
            ValueError: If the value does not map onto the five-state enum
        """
        normalised = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        normalised = STATUS_SYNONYMS.get(normalised, normalised)
        return cls(normalised)


class VerificationMethod(Enum):
    """Supported out-of-band verification methods."""

    SCREENSHOT = "screenshot"
    GOVERNMENT_ID = "government_id"
    PHONE = "phone"
    SOCIAL = "social"
    BACKGROUND_CHECK = "background_check"

    @classmethod
    def from_string(cls, value: str) -> "VerificationMethod":
        """Parse a method name, accepting dashes (``government-id``)."""
        return cls(str(value).strip().lower().replace("-", "_"))


# =============================================================================
# Constants
# =============================================================================

TERMINAL_STATUSES: Final[frozenset[VerificationStatus]] = frozenset({
    VerificationStatus.VERIFIED,
    VerificationStatus.MANUAL_REVIEW,
    VerificationStatus.REJECTED,
})

STATUS_SYNONYMS: Final[dict[str, str]] = {
    "PENDING": "PROCESSING",
    "IN_PROGRESS": "PROCESSING",
    "COMPLETE": "VERIFIED",
    "APPROVED": "VERIFIED",
    "REVIEW": "MANUAL_REVIEW",
    "FAILED": "REJECTED",
}

# Statuses that count as "already verified" for the step-0 verification rule
ACCEPTED_STATUSES: Final[frozenset[VerificationStatus]] = frozenset({
    VerificationStatus.VERIFIED,
    VerificationStatus.MANUAL_REVIEW,
})

# Verification types that mean the guest's platform account is confirmed
PLATFORM_VERIFICATION_TYPES: Final[tuple[str, ...]] = ("platform", "screenshot", "existing")


# =============================================================================
# Verification Facts
# =============================================================================


@dataclass(frozen=True)
class PlatformData:
    """External review signal from the guest's booking platform account."""

    review_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"reviewCount": self.review_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlatformData":
        return cls(review_count=int(data.get("reviewCount", data.get("review_count", 0)) or 0))


@dataclass
class VerificationFacts:
    """
    Accumulated results of identity, background and method-specific checks.

    Owned exclusively by the workflow. Mutated only through completed
    verification calls, never directly from guest input.
    """

    casl_key_id: Optional[str] = None
    is_existing_user: bool = False
    is_verified: bool = False
    verification_type: Optional[str] = None
    background_check_status: Optional[str] = None
    id_verified: bool = False
    phone_verified: bool = False
    social_verified: bool = False
    platform_data: Optional[PlatformData] = None
    method_statuses: dict[VerificationMethod, VerificationStatus] = field(default_factory=dict)

    def status_for(self, method: VerificationMethod) -> VerificationStatus:
        """Last known status for a method."""
        return self.method_statuses.get(method, VerificationStatus.NOT_SUBMITTED)

    @property
    def screenshot_status(self) -> VerificationStatus:
        return self.status_for(VerificationMethod.SCREENSHOT)

    @property
    def has_background_check_status(self) -> bool:
        return self.background_check_status is not None

    @property
    def background_check_completed(self) -> bool:
        return self.background_check_status == VerificationStatus.VERIFIED.value

    @property
    def platform_verified(self) -> bool:
        """Check if the guest's platform account has been confirmed."""
        return self.verification_type in PLATFORM_VERIFICATION_TYPES

    @property
    def review_count(self) -> int:
        return self.platform_data.review_count if self.platform_data else 0

    def apply_identity(self, record: "IdentityRecord") -> None:
        """
        Record the outcome of an identity lookup.

        Facts already gathered for the same identity are kept; a verified
        flag is never cleared by a later lookup.
        """
        self.casl_key_id = record.id
        self.is_existing_user = record.existing
        self.is_verified = self.is_verified or record.verified
        if record.existing and self.verification_type is None:
            self.verification_type = "existing"
        if record.platform_review_count is not None:
            self.platform_data = PlatformData(review_count=record.platform_review_count)
        if record.id_verified:
            self.id_verified = True

    def apply_status(self, method: VerificationMethod, status: VerificationStatus) -> None:
        """
        Record a verification status for a method.

        VERIFIED marks the method's fact as verified. Background checks
        mirror every status into ``background_check_status``.
        """
        self.method_statuses[method] = status

        if method == VerificationMethod.BACKGROUND_CHECK:
            self.background_check_status = status.value

        if status != VerificationStatus.VERIFIED:
            return

        if method == VerificationMethod.SCREENSHOT:
            self.is_verified = True
            self.verification_type = "screenshot"
        elif method == VerificationMethod.GOVERNMENT_ID:
            self.id_verified = True
        elif method == VerificationMethod.PHONE:
            self.phone_verified = True
        elif method == VerificationMethod.SOCIAL:
            self.social_verified = True

    def to_dict(self) -> dict[str, Any]:
        """Convert facts to the JSON shape used in submission payloads."""
        return {
            "caslKeyId": self.casl_key_id,
            "isExistingUser": self.is_existing_user,
            "isVerified": self.is_verified,
            "verificationType": self.verification_type,
            "backgroundCheckStatus": self.background_check_status,
            "idVerified": self.id_verified,
            "phoneVerified": self.phone_verified,
            "socialVerified": self.social_verified,
            "platformData": self.platform_data.to_dict() if self.platform_data else None,
            "methodStatuses": {
                method.value: status.value for method, status in self.method_statuses.items()
            },
        }


# =============================================================================
# Collaborator Objects
# =============================================================================


@dataclass(frozen=True)
class IdentityRecord:
    """Result of an identity lookup/creation."""

    id: str
    existing: bool
    verified: bool
    platform_review_count: Optional[int] = None
    id_verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "existing": self.existing,
            "verified": self.verified,
            "platformReviewCount": self.platform_review_count,
            "idVerified": self.id_verified,
        }


@dataclass(frozen=True)
class VerificationTicket:
    """Acknowledgement that an artifact was accepted for verification."""

    ticket_id: str
    method: VerificationMethod
    status: VerificationStatus = VerificationStatus.PROCESSING

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "method": self.method.value,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class StatusResponse:
    """Result of a status check, with an optional detail payload."""

    status: VerificationStatus
    detail: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class SubmissionAck:
    """Acknowledgement from the submission sink."""

    submission_id: str
    accepted: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"submissionId": self.submission_id, "accepted": self.accepted}
