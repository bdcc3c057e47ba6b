"""
CASL Key - Workflow Module

The step state machine for one verification attempt, its debounce timer
and the submission payload it produces.
"""

from core.workflow.timers import RestartableTimer
from core.workflow.payload import build_submission_payload
from core.workflow.state_machine import (
    WorkflowStateMachine,
    WorkflowState,
    SubmissionResult,
    StepAdvanced,
    StepRejected,
    TransportFailed,
    WorkflowSubmitted,
    ArtifactAccepted,
    ArtifactRejected,
    AdvanceResult,
    ArtifactResult,
)

__all__ = [
    "RestartableTimer",
    "build_submission_payload",
    "WorkflowStateMachine",
    "WorkflowState",
    "SubmissionResult",
    "StepAdvanced",
    "StepRejected",
    "TransportFailed",
    "WorkflowSubmitted",
    "ArtifactAccepted",
    "ArtifactRejected",
    "AdvanceResult",
    "ArtifactResult",
]
