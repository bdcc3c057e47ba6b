"""
CASL Key - Verification Module

Out-of-band verification: status lifecycle, verification facts,
collaborator contracts (in-memory and HTTP), artifact checks and the
per-method status poller.
"""

from core.verification.schema import (
    VerificationStatus,
    VerificationMethod,
    VerificationFacts,
    PlatformData,
    IdentityRecord,
    VerificationTicket,
    StatusResponse,
    SubmissionAck,
    TERMINAL_STATUSES,
)
from core.verification.services import (
    IdentityService,
    VerificationService,
    SubmissionSink,
    InMemoryIdentityService,
    InMemoryVerificationService,
    InMemorySubmissionSink,
)
from core.verification.artifacts import (
    validate_artifact,
    validate_image_data,
)
from core.verification.poller import VerificationStatusPoller

__all__ = [
    # Schema
    "VerificationStatus",
    "VerificationMethod",
    "VerificationFacts",
    "PlatformData",
    "IdentityRecord",
    "VerificationTicket",
    "StatusResponse",
    "SubmissionAck",
    "TERMINAL_STATUSES",
    # Services
    "IdentityService",
    "VerificationService",
    "SubmissionSink",
    "InMemoryIdentityService",
    "InMemoryVerificationService",
    "InMemorySubmissionSink",
    # Artifacts
    "validate_artifact",
    "validate_image_data",
    # Polling
    "VerificationStatusPoller",
]
