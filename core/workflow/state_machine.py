"""
Workflow State Machine - Step Sequencing for One Verification Attempt

Drives a guest through the four data steps and on to submission:

    0 User Identification -> 1 Booking Info -> 2 Stay Intent -> 3 Agreement -> submitted

Commands:
- set_field / update_fields: edit the form, with debounced validation for typed fields
- advance: validate the current step and move forward (or submit from the last step)
- retreat: move back one step, no validation and no side effects
- submit_artifact: send a verification artifact and poll its status
- reset: discard the attempt and start again at step 0
- restore / close: resume saved progress, cancel background work

Every command returns a structured result. Field errors are returned as a
map, never raised. Transport failures leave the workflow at its current
step. A session failure is retried once after refreshing the session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Final, Iterable, Optional, TypeVar, Union

from core.errors import (
    ArtifactValidationError,
    CaslError,
    TransportError,
    TransportErrorKind,
    UnknownFieldError,
    WorkflowResetError,
    WorkflowStateError,
)
from core.guest.schema import (
    FINAL_STEP,
    FREE_TEXT_FIELDS,
    IDENTITY_FIELDS,
    STEP_NAMES,
    FormSnapshot,
)
from core.guest.validation import STEP_FIELDS, error_key_for, validate_step
from core.storage import (
    DEFAULT_EXPIRY_HOURS,
    KeyValueStore,
    MemoryStore,
    clear_all,
    load_progress,
    save_progress,
    utc_now,
)
from core.trust.levels import (
    HostSummary,
    TrustLevel,
    build_host_summary,
    result_message,
    trust_level_for,
)
from core.trust.preview import PreviewCache, TrustPreview
from core.trust.scoring import ScoreAdjustment, ScoreFunction, calculate_score
from core.verification.artifacts import (
    DEFAULT_ALLOWED_IMAGE_TYPES,
    DEFAULT_MAX_ARTIFACT_BYTES,
    validate_artifact,
)
from core.verification.poller import DEFAULT_POLL_INTERVAL, VerificationStatusPoller
from core.verification.schema import (
    StatusResponse,
    VerificationFacts,
    VerificationMethod,
    VerificationStatus,
    VerificationTicket,
)
from core.workflow.payload import build_submission_payload
from core.workflow.timers import RestartableTimer

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEBOUNCE_DELAY: Final[float] = 0.3  # seconds

SessionRefresher = Callable[[], Awaitable[None]]


# =============================================================================
# State and Results
# =============================================================================


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of the workflow for callers."""

    current_step: int
    errors: dict[str, str]
    is_valid: bool
    submitted: bool
    verifications: dict[str, str] = field(default_factory=dict)
    polling_errors: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def step_name(self) -> str:
        return STEP_NAMES[self.current_step]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "step_name": self.step_name,
            "errors": dict(self.errors),
            "is_valid": self.is_valid,
            "submitted": self.submitted,
            "verifications": dict(self.verifications),
            "polling_errors": dict(self.polling_errors),
        }


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a successful final submission."""

    casl_key_id: Optional[str]
    score: int
    adjustments: tuple[ScoreAdjustment, ...]
    trust_level: TrustLevel
    message: str
    host_summary: HostSummary
    submission_id: str
    submitted_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "caslKeyId": self.casl_key_id,
            "score": self.score,
            "adjustments": [adjustment.to_dict() for adjustment in self.adjustments],
            "trustLevel": self.trust_level.value,
            "message": self.message,
            "hostSummary": self.host_summary.to_dict(),
            "submissionId": self.submission_id,
            "submittedAt": self.submitted_at.isoformat(),
        }


@dataclass(frozen=True)
class StepAdvanced:
    """Returned when the step was valid and the workflow moved forward."""

    from_step: int
    to_step: int
    preview: Optional[TrustPreview] = None


@dataclass(frozen=True)
class StepRejected:
    """Returned when the current step has field errors. The step is unchanged."""

    step: int
    errors: dict[str, str]


@dataclass(frozen=True)
class TransportFailed:
    """Returned when a collaborator call failed. The step is unchanged."""

    step: int
    error: TransportError


@dataclass(frozen=True)
class WorkflowSubmitted:
    """Returned when the final step was submitted."""

    result: SubmissionResult


@dataclass(frozen=True)
class ArtifactAccepted:
    """Returned when a verification artifact was accepted for review."""

    method: VerificationMethod
    ticket: VerificationTicket


@dataclass(frozen=True)
class ArtifactRejected:
    """Returned when an artifact cannot be sent. The guest must fix it."""

    method: VerificationMethod
    error: CaslError
    errors: dict[str, str] = field(default_factory=dict)


AdvanceResult = Union[StepAdvanced, StepRejected, TransportFailed, WorkflowSubmitted]
ArtifactResult = Union[ArtifactAccepted, ArtifactRejected, TransportFailed]


# =============================================================================
# State Machine
# =============================================================================


class WorkflowStateMachine:
    """
    Orchestrates one guest verification attempt.

    Collaborators are injected; nothing is looked up globally. Each
    instance owns its own snapshot, facts, preview cache, timers and polls.
    """

    def __init__(
        self,
        identity_service: Any,
        verification_service: Any,
        submission_sink: Any,
        *,
        store: Optional[KeyValueStore] = None,
        session_refresher: Optional[SessionRefresher] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        expiry_hours: float = DEFAULT_EXPIRY_HOURS,
        max_artifact_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES,
        allowed_image_types: Iterable[str] = DEFAULT_ALLOWED_IMAGE_TYPES,
        score_fn: ScoreFunction = calculate_score,
        today_fn: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialise workflow.

        Args:
            identity_service: IdentityService implementation
            verification_service: VerificationService implementation
            submission_sink: SubmissionSink implementation
            store: Durable store for saved progress and the trust preview
            session_refresher: Coroutine that refreshes an expired session
            poll_interval: Seconds between verification status checks
            debounce_delay: Seconds to wait before validating typed fields
            expiry_hours: Age after which saved progress is discarded
            max_artifact_bytes: Maximum image artifact size
            allowed_image_types: Accepted image MIME types
            score_fn: Score engine
            today_fn: Source of the calendar date for date rules
            clock: Source of the current time for timestamps
        """
        self._identity = identity_service
        self._verification = verification_service
        self._sink = submission_sink
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._session_refresher = session_refresher
        self._debounce_delay = debounce_delay
        self._expiry_hours = expiry_hours
        self._max_artifact_bytes = max_artifact_bytes
        self._allowed_image_types = tuple(allowed_image_types)
        self._score_fn = score_fn
        self._today_fn = today_fn
        self._clock = clock

        self._preview_cache = PreviewCache(self._store, score_fn=score_fn, today_fn=today_fn)
        self._poller = VerificationStatusPoller(
            verification_service,
            interval=poll_interval,
            on_terminal=self._on_verification_terminal,
        )
        self._timers: dict[str, RestartableTimer] = {}
        self._lock = asyncio.Lock()
        # Bumped by reset(); commands started under an older epoch are discarded
        self._epoch = 0

        self._snapshot = FormSnapshot()
        self._facts = VerificationFacts()
        self._step = 0
        self._errors: dict[str, str] = {}
        self._touched: set[str] = set()
        self._result: Optional[SubmissionResult] = None

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def snapshot(self) -> FormSnapshot:
        return self._snapshot

    @property
    def facts(self) -> VerificationFacts:
        """Verification facts. Owned by the workflow; do not mutate."""
        return self._facts

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def submitted(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Optional[SubmissionResult]:
        return self._result

    @property
    def poller(self) -> VerificationStatusPoller:
        return self._poller

    @property
    def preview_cache(self) -> PreviewCache:
        return self._preview_cache

    @property
    def state(self) -> WorkflowState:
        """Current workflow state."""
        step_errors = self._validate(self._step)
        polling_errors = {}
        for method in VerificationMethod:
            error = self._poller.last_error(method)
            if error is not None:
                polling_errors[method.value] = error.to_dict()

        return WorkflowState(
            current_step=self._step,
            errors=dict(self._errors),
            is_valid=not step_errors,
            submitted=self.submitted,
            verifications={
                method.value: status.value
                for method, status in self._facts.method_statuses.items()
            },
            polling_errors=polling_errors,
        )

    def preview(self) -> TrustPreview:
        """Trust preview for the current snapshot (memoised)."""
        return self._preview_cache.get_or_compute(self._snapshot, self._facts)

    # =========================================================================
    # Field Updates
    # =========================================================================

    def set_field(self, name: str, value: Any) -> WorkflowState:
        """Update a single form field."""
        return self.update_fields({name: value})

    def update_fields(self, changes: dict[str, Any]) -> WorkflowState:
        """
        Update form fields.

        Typed fields are validated after the debounce delay; checkboxes,
        selects and counts are validated immediately. Only fields the guest
        has touched on this pass report errors.

        Raises:
            WorkflowStateError: If the workflow was already submitted
            UnknownFieldError: If a field is not part of the form
        """
        self._ensure_not_submitted()
        try:
            self._snapshot = self._snapshot.with_changes(**changes)
        except KeyError as e:
            raise UnknownFieldError(str(e.args[0]), user_message="Unknown form field") from e

        immediate = False
        for name in changes:
            self._touched.add(name)
            if name in FREE_TEXT_FIELDS:
                self._schedule_validation(name)
            else:
                immediate = True

        if immediate:
            self._revalidate_touched()

        self._save_progress()
        return self.state

    def _schedule_validation(self, name: str) -> None:
        timer = self._timers.get(name)
        if timer is None:
            timer = RestartableTimer(self._debounce_delay)
            self._timers[name] = timer
        timer.restart(self._revalidate_touched)

    def _cancel_timers(self) -> None:
        for timer in self._timers.values():
            timer.cancel()

    def _validate(self, step: int) -> dict[str, str]:
        return validate_step(self._snapshot, step, self._facts, today=self._today_fn())

    def _revalidate_touched(self) -> None:
        """Refresh errors for touched fields of the current step."""
        step_errors = self._validate(self._step)
        for name in STEP_FIELDS[self._step]:
            if name not in self._touched:
                continue
            key = error_key_for(name)
            if key in step_errors:
                self._errors[key] = step_errors[key]
            else:
                self._errors.pop(key, None)

    # =========================================================================
    # Navigation
    # =========================================================================

    async def advance(self) -> AdvanceResult:
        """
        Validate the current step and move forward.

        Step 0 runs the identity lookup, optional background check and a
        preview refresh before the step changes. Step 3 submits.

        Raises:
            WorkflowStateError: If the workflow was already submitted
            WorkflowResetError: If the workflow was reset while this ran
        """
        async with self._lock:
            self._ensure_not_submitted()
            self._cancel_timers()

            step = self._step
            errors = self._validate(step)
            if errors:
                self._errors = dict(errors)
                self._touched.update(STEP_FIELDS[step])
                logger.warning(
                    "Step %s rejected: %s",
                    step,
                    ", ".join(sorted(errors)),
                )
                return StepRejected(step=step, errors=dict(errors))

            try:
                if step == FINAL_STEP:
                    result = await self._submit()
                    return WorkflowSubmitted(result=result)
                if step == 0:
                    await self._complete_identification()
            except TransportError as e:
                logger.warning("Step %s not advanced: %s", step, e)
                return TransportFailed(step=step, error=e)

            self._step = step + 1
            self._errors = {}
            self._touched = set()
            self._save_progress()

            logger.info("Advanced from step %s to %s", step, self._step)
            return StepAdvanced(from_step=step, to_step=self._step, preview=self._preview_cache.last)

    def retreat(self) -> bool:
        """
        Move back one step without validation or side effects.

        Errors for the re-entered step are cleared and shown again only for
        fields the guest touches.

        Returns:
            True if the step changed

        Raises:
            WorkflowStateError: If the workflow was already submitted
        """
        self._ensure_not_submitted()
        if self._step == 0:
            return False

        self._cancel_timers()
        self._step -= 1
        self._errors = {}
        self._touched = set()
        self._save_progress()

        logger.info("Retreated to step %s", self._step)
        return True

    def reset(self) -> WorkflowState:
        """
        Discard the attempt.

        Clears the snapshot, facts, preview cache and its persisted copy and
        saved progress, cancels polls and debounce timers, returns to step 0.
        A command still awaiting a collaborator discards its outcome.
        """
        self._epoch += 1
        self._cancel_timers()
        self._poller.reset()
        self._preview_cache.clear()
        clear_all(self._store)

        self._snapshot = FormSnapshot()
        self._facts = VerificationFacts()
        self._step = 0
        self._errors = {}
        self._touched = set()
        self._result = None

        logger.info("Workflow reset")
        return self.state

    async def restore(self) -> bool:
        """
        Resume saved progress if it exists and has not expired.

        Verification facts are not stored; when resuming past step 0 they
        are recovered through the identity lookup. If that lookup fails the
        guest resumes at step 0 with their answers kept.

        Returns:
            True if progress was restored
        """
        progress = load_progress(self._store, self._expiry_hours, self._clock)
        if progress is None:
            return False

        self._snapshot = progress.snapshot
        self._step = progress.current_step
        self._errors = {}
        self._touched = set()
        self._preview_cache.load_persisted()

        if self._step > 0:
            try:
                await self._lookup_identity()
            except TransportError as e:
                logger.warning("Identity not recovered on restore, resuming at step 0: %s", e)
                self._step = 0
            except WorkflowResetError:
                return False

        logger.info("Restored saved progress at step %s", self._step)
        return True

    async def close(self) -> None:
        """Cancel background work when the session is abandoned."""
        self._cancel_timers()
        await self._poller.aclose()

    # =========================================================================
    # Verification Artifacts
    # =========================================================================

    async def submit_artifact(
        self,
        method: VerificationMethod,
        payload: Optional[dict[str, Any]] = None,
    ) -> ArtifactResult:
        """
        Send a verification artifact and start polling its status.

        The identity is looked up first if it is not known yet, which needs
        valid contact details.

        Raises:
            WorkflowStateError: If the workflow was already submitted
            WorkflowResetError: If the workflow was reset while this ran
        """
        async with self._lock:
            self._ensure_not_submitted()

            try:
                artifact = validate_artifact(
                    method,
                    payload,
                    max_bytes=self._max_artifact_bytes,
                    allowed_types=self._allowed_image_types,
                )
            except ArtifactValidationError as e:
                logger.warning("Rejected %s artifact: %s", method.value, e)
                return ArtifactRejected(method=method, error=e)

            if self._facts.casl_key_id is None:
                identity_errors = {
                    key: message
                    for key, message in self._validate(0).items()
                    if key in IDENTITY_FIELDS
                }
                if identity_errors:
                    error = WorkflowStateError(
                        "identity fields invalid",
                        user_message="Please complete your contact details before verifying.",
                    )
                    return ArtifactRejected(method=method, error=error, errors=identity_errors)

            try:
                if self._facts.casl_key_id is None:
                    await self._lookup_identity()
                ticket = await self._start_verification(method, artifact)
            except TransportError as e:
                logger.warning("%s artifact not submitted: %s", method.value, e)
                return TransportFailed(step=self._step, error=e)

            return ArtifactAccepted(method=method, ticket=ticket)

    async def _start_verification(
        self,
        method: VerificationMethod,
        artifact: dict[str, Any],
    ) -> VerificationTicket:
        casl_key_id = self._facts.casl_key_id
        ticket = await self._invoke(
            f"{method.value} submission",
            lambda: self._verification.submit_artifact(method, artifact, casl_key_id),
        )

        if ticket.status.is_terminal:
            await self._on_verification_terminal(method, ticket.status, StatusResponse(ticket.status))
        else:
            self._facts.apply_status(method, VerificationStatus.PROCESSING)
            self._poller.start(method, casl_key_id)

        logger.info("%s verification started for %s", method.value, casl_key_id)
        return ticket

    async def _on_verification_terminal(
        self,
        method: VerificationMethod,
        status: VerificationStatus,
        response: StatusResponse,
    ) -> None:
        self._facts.apply_status(method, status)
        if status == VerificationStatus.VERIFIED:
            self._preview_cache.refresh(self._snapshot, self._facts, force=True)
        self._revalidate_touched()

    # =========================================================================
    # Step Side Effects
    # =========================================================================

    async def _lookup_identity(self) -> None:
        snapshot = self._snapshot
        record = await self._invoke(
            "identity lookup",
            lambda: self._identity.check_or_create_identity(
                snapshot.name.strip(),
                snapshot.email.strip(),
                snapshot.phone.strip(),
                snapshot.address.strip(),
            ),
        )

        if self._facts.casl_key_id is not None and self._facts.casl_key_id != record.id:
            # A different guest: start from empty facts
            self._poller.reset()
            self._facts = VerificationFacts()

        self._facts.apply_identity(record)
        logger.info(
            "Identity %s (%s)",
            record.id,
            "existing" if record.existing else "new",
        )

    async def _complete_identification(self) -> None:
        await self._lookup_identity()

        if (
            self._snapshot.consent_to_background_check
            and not self._facts.has_background_check_status
        ):
            await self._start_verification(VerificationMethod.BACKGROUND_CHECK, {})

        self._preview_cache.refresh(self._snapshot, self._facts, force=True)

    async def _submit(self) -> SubmissionResult:
        snapshot = self._snapshot
        facts = self._facts
        today = self._today_fn()

        score_result = self._score_fn(snapshot, facts, today=today)
        level = trust_level_for(score_result.score)
        host_summary = build_host_summary(facts.casl_key_id, score_result.score, snapshot, facts, today)
        submitted_at = self._clock()

        payload = build_submission_payload(
            snapshot,
            facts,
            score_result,
            level,
            host_summary,
            required_identity_fields=getattr(self._sink, "required_identity_fields", ()),
            submitted_at=submitted_at,
        )

        ack = await self._invoke("verification submission", lambda: self._sink.submit(payload))
        if not ack.accepted:
            raise TransportError(
                TransportErrorKind.CLIENT,
                "verification submission",
                detail="submission was not accepted",
            )

        self._result = SubmissionResult(
            casl_key_id=facts.casl_key_id,
            score=score_result.score,
            adjustments=score_result.adjustments,
            trust_level=level,
            message=result_message(level),
            host_summary=host_summary,
            submission_id=ack.submission_id,
            submitted_at=submitted_at,
        )

        self._poller.stop_all()
        self._preview_cache.clear()
        clear_all(self._store)
        self._errors = {}

        logger.info(
            "Verification submitted for %s: %s (%s)",
            facts.casl_key_id,
            level.value,
            ack.submission_id,
        )
        return self._result

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _invoke(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """
        Run a collaborator call, retrying once after a session refresh.

        Raises:
            TransportError: If the call (or its retry) fails
            WorkflowResetError: If the workflow was reset while the call ran
        """
        epoch = self._epoch
        try:
            result = await call()
        except TransportError as e:
            if not e.is_session_error or self._session_refresher is None:
                self._ensure_epoch(epoch, operation)
                raise
            logger.info("Session expired during %s, refreshing", operation)
            await self._session_refresher()
            self._ensure_epoch(epoch, operation)
            result = await call()

        self._ensure_epoch(epoch, operation)
        return result

    def _ensure_epoch(self, epoch: int, operation: str) -> None:
        if epoch != self._epoch:
            logger.warning("Workflow reset during %s, discarding its outcome", operation)
            raise WorkflowResetError(
                f"workflow reset during {operation}",
                user_message="This verification was restarted.",
            )

    def _ensure_not_submitted(self) -> None:
        if self._result is not None:
            raise WorkflowStateError(
                "workflow already submitted",
                user_message="This verification has already been submitted.",
            )

    def _save_progress(self) -> None:
        if self._result is None:
            save_progress(self._store, self._snapshot, self._step, now=self._clock())
