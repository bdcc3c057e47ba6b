"""
Session Routes - JSON API for the Guest Verification Workflow

Each session wraps one WorkflowStateMachine. Commands map onto routes:

    POST   /api/sessions                          create
    GET    /api/sessions/{id}                     state
    PATCH  /api/sessions/{id}/fields              update fields
    POST   /api/sessions/{id}/advance             validate and move forward / submit
    POST   /api/sessions/{id}/retreat             move back
    POST   /api/sessions/{id}/reset               start over
    POST   /api/sessions/{id}/restore             resume saved progress
    POST   /api/sessions/{id}/artifacts/{method}  submit a verification artifact
    GET    /api/sessions/{id}/preview             trust preview
    DELETE /api/sessions/{id}                     close

Status codes:
- 422: the guest must fix something (``"category": "user_input"``)
- 409: the command is not valid in the current state
- 503: a collaborator failed, try again (``"category": "retry"``)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from core.errors import CATEGORY_USER_INPUT, CaslError, UnknownFieldError, WorkflowStateError
from core.verification.schema import VerificationMethod
from core.workflow.state_machine import (
    ArtifactAccepted,
    ArtifactRejected,
    StepAdvanced,
    StepRejected,
    TransportFailed,
    WorkflowStateMachine,
    WorkflowSubmitted,
)
from utils.formatting import format_adjustment, format_trust_level
from web.sessions import SessionRegistry


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class FieldUpdate(BaseModel):
    """Form field changes, keyed by field name."""

    fields: dict[str, Any]


class ArtifactSubmission(BaseModel):
    """Verification artifact payload."""

    payload: dict[str, Any] = Field(default_factory=dict)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def get_workflow(session_id: str, request: Request) -> WorkflowStateMachine:
    """
    Look up a session's workflow, resuming saved progress after a restart.

    Raises:
        HTTPException(404) if the session does not exist
    """
    try:
        return await get_registry(request).load(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


def error_response(error: CaslError, **extra: Any) -> JSONResponse:
    """Map a CaslError onto a JSON error response."""
    if isinstance(error, WorkflowStateError) and not extra:
        status_code = 409
    elif error.category == CATEGORY_USER_INPUT:
        status_code = 422
    else:
        status_code = 503

    content = {"error": error.to_dict(), "category": error.category}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def validation_response(errors: dict[str, str], step: int) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "category": CATEGORY_USER_INPUT,
            "code": "validation_failed",
            "step": step,
            "errors": errors,
        },
    )


# =============================================================================
# Session Lifecycle
# =============================================================================


@router.post("", status_code=201)
async def create_session(request: Request):
    """Start a new verification session."""
    registry = get_registry(request)
    await registry.evict_expired()
    session_id, workflow = registry.create()
    return {"session_id": session_id, "state": workflow.state.to_dict()}


@router.get("/{session_id}")
async def get_state(session_id: str, request: Request):
    """Current step, errors and verification statuses."""
    workflow = await get_workflow(session_id, request)
    return workflow.state.to_dict()


@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str, request: Request):
    """Close the session and cancel its polls and timers."""
    if not await get_registry(request).close(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)


# =============================================================================
# Form Commands
# =============================================================================


@router.patch("/{session_id}/fields")
async def update_fields(session_id: str, body: FieldUpdate, request: Request):
    """Apply field changes. Errors are reported for touched fields only."""
    workflow = await get_workflow(session_id, request)
    try:
        state = workflow.update_fields(body.fields)
    except (UnknownFieldError, WorkflowStateError) as e:
        return error_response(e)
    return state.to_dict()


@router.post("/{session_id}/advance")
async def advance(session_id: str, request: Request):
    """Validate the current step and move forward, or submit from the last step."""
    workflow = await get_workflow(session_id, request)
    try:
        result = await workflow.advance()
    except WorkflowStateError as e:
        return error_response(e)

    if isinstance(result, StepRejected):
        return validation_response(result.errors, result.step)

    if isinstance(result, TransportFailed):
        return error_response(result.error, step=result.step)

    if isinstance(result, WorkflowSubmitted):
        submission = result.result
        return {
            "result": "submitted",
            "submission": submission.to_dict(),
            "trust_label": format_trust_level(submission.trust_level),
            "breakdown": [format_adjustment(adjustment) for adjustment in submission.adjustments],
        }

    assert isinstance(result, StepAdvanced)
    return {
        "result": "advanced",
        "from_step": result.from_step,
        "to_step": result.to_step,
        "preview": result.preview.to_dict() if result.preview else None,
        "state": workflow.state.to_dict(),
    }


@router.post("/{session_id}/retreat")
async def retreat(session_id: str, request: Request):
    """Move back one step."""
    workflow = await get_workflow(session_id, request)
    try:
        moved = workflow.retreat()
    except WorkflowStateError as e:
        return error_response(e)
    return {"moved": moved, "state": workflow.state.to_dict()}


@router.post("/{session_id}/reset")
async def reset(session_id: str, request: Request):
    """Discard the attempt and start again at the first step."""
    workflow = await get_workflow(session_id, request)
    return workflow.reset().to_dict()


@router.post("/{session_id}/restore")
async def restore(session_id: str, request: Request):
    """Resume saved progress for this session, if any."""
    workflow = await get_workflow(session_id, request)
    restored = await workflow.restore()
    return {"restored": restored, "state": workflow.state.to_dict()}


# =============================================================================
# Verification
# =============================================================================


@router.post("/{session_id}/artifacts/{method}", status_code=202)
async def submit_artifact(
    session_id: str,
    method: str,
    body: ArtifactSubmission,
    request: Request,
):
    """Submit a verification artifact and start polling its status."""
    workflow = await get_workflow(session_id, request)
    try:
        verification_method = VerificationMethod.from_string(method)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown verification method: {method}")

    try:
        result = await workflow.submit_artifact(verification_method, body.payload)
    except WorkflowStateError as e:
        return error_response(e)

    if isinstance(result, ArtifactRejected):
        return error_response(result.error, errors=result.errors)

    if isinstance(result, TransportFailed):
        return error_response(result.error, step=result.step)

    assert isinstance(result, ArtifactAccepted)
    return {"ticket": result.ticket.to_dict(), "state": workflow.state.to_dict()}


@router.get("/{session_id}/preview")
async def preview(session_id: str, request: Request):
    """Trust preview for the current answers."""
    workflow = await get_workflow(session_id, request)
    return workflow.preview().to_dict()
