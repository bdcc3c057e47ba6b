"""
Error Taxonomy - User-Fixable vs Retryable Failures

Every externally visible failure carries a category so callers can tell
"the guest must fix their input" apart from "the system must be retried".

Categories:
- user_input: field or artifact problems, fixed by the guest
- retry: transport and polling failures, fixed by trying again later

Field-level validation failures are NOT exceptions. The validation engine
returns a field -> message map and the workflow wraps it in a result object.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Categories
# =============================================================================

CATEGORY_USER_INPUT: Final[str] = "user_input"
CATEGORY_RETRY: Final[str] = "retry"


class TransportErrorKind(Enum):
    """Classification of a failed collaborator call."""

    SESSION = "session"  # Token expired / unauthorized - refresh and retry once
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVER = "server"  # 5xx
    CLIENT = "client"  # Other 4xx


# Stable user-facing messages, one per transport failure kind
TRANSPORT_MESSAGES: Final[dict[TransportErrorKind, str]] = {
    TransportErrorKind.SESSION: "Your session has expired. Please sign in again.",
    TransportErrorKind.TIMEOUT: "The verification service took too long to respond. Please try again.",
    TransportErrorKind.NETWORK: "We couldn't reach the verification service. Check your connection and try again.",
    TransportErrorKind.SERVER: "The verification service is temporarily unavailable. Please try again shortly.",
    TransportErrorKind.CLIENT: "The verification request could not be processed. Please try again.",
}


# =============================================================================
# Exceptions
# =============================================================================


class CaslError(Exception):
    """Base class for all workflow errors surfaced to callers."""

    category: str = CATEGORY_RETRY
    code: str = "casl_error"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message

    @property
    def is_user_fixable(self) -> bool:
        """True when the guest can resolve this by changing their input."""
        return self.category == CATEGORY_USER_INPUT

    @property
    def is_retryable(self) -> bool:
        """True when repeating the same action later may succeed."""
        return self.category == CATEGORY_RETRY

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "code": self.code,
            "category": self.category,
            "message": self.user_message,
        }


class ArtifactValidationError(CaslError):
    """Raised when a verification artifact is malformed or too large."""

    category = CATEGORY_USER_INPUT
    code = "artifact_invalid"


class TransportError(CaslError):
    """Raised when an identity, verification or submission call fails."""

    category = CATEGORY_RETRY
    code = "transport_error"

    def __init__(
        self,
        kind: TransportErrorKind,
        operation: str,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        message = f"{operation} failed ({kind.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, user_message=TRANSPORT_MESSAGES[kind])

    @property
    def is_session_error(self) -> bool:
        """Check if this failure should trigger a session refresh."""
        return self.kind == TransportErrorKind.SESSION

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["operation"] = self.operation
        data["status_code"] = self.status_code
        return data


class PollingError(CaslError):
    """
    Raised when a status check fails while a verification is processing.

    The poll loop stops; the last known status is preserved and no terminal
    outcome is assumed.
    """

    category = CATEGORY_RETRY
    code = "polling_error"

    def __init__(self, method: str, last_status: str, cause: Optional[BaseException] = None):
        self.method = method
        self.last_status = last_status
        self.cause = cause
        super().__init__(
            f"Status check for {method} failed while {last_status}: {cause}",
            user_message="We couldn't check your verification status. Please try again.",
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["method"] = self.method
        data["last_status"] = self.last_status
        return data


class WorkflowStateError(CaslError):
    """Raised when a command is not valid in the current workflow state."""

    category = CATEGORY_USER_INPUT
    code = "invalid_state"


class WorkflowResetError(WorkflowStateError):
    """
    Raised when the workflow was reset while a command awaited a collaborator.

    The command's outcome is discarded; the fresh attempt is left untouched.
    """

    code = "workflow_reset"


class UnknownFieldError(CaslError):
    """Raised when a field update names a field the form does not have."""

    category = CATEGORY_USER_INPUT
    code = "unknown_field"
