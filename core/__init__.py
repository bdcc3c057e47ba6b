"""
CASL Key - Core Verification Logic

This package provides the guest verification workflow:
1. Guest form (FormSnapshot and per-step validation)
2. Verification (identity lookup, artifacts, status polling)
3. Trust (score engine, trust levels, host summary, preview cache)
4. Workflow (step state machine and final submission)
"""

from .errors import (
    CaslError,
    ArtifactValidationError,
    TransportError,
    TransportErrorKind,
    PollingError,
    WorkflowStateError,
    WorkflowResetError,
    UnknownFieldError,
)
from .guest import FormSnapshot, StayPurpose, validate_step
from .trust import TrustLevel, calculate_score, trust_level_for, build_host_summary, PreviewCache
from .verification import (
    VerificationStatus,
    VerificationMethod,
    VerificationFacts,
    VerificationStatusPoller,
)
from .workflow import WorkflowStateMachine

__all__ = [
    # Errors
    "CaslError",
    "ArtifactValidationError",
    "TransportError",
    "TransportErrorKind",
    "PollingError",
    "WorkflowStateError",
    "WorkflowResetError",
    "UnknownFieldError",
    # Guest form
    "FormSnapshot",
    "StayPurpose",
    "validate_step",
    # Trust
    "TrustLevel",
    "calculate_score",
    "trust_level_for",
    "build_host_summary",
    "PreviewCache",
    # Verification
    "VerificationStatus",
    "VerificationMethod",
    "VerificationFacts",
    "VerificationStatusPoller",
    # Workflow
    "WorkflowStateMachine",
]
