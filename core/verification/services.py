"""
Verification Collaborators - Contracts and In-Memory Implementations

The workflow talks to three collaborators:

- IdentityService: look up or create the guest's CASL Key identity
- VerificationService: accept artifacts and report per-method status
- SubmissionSink: receive the final verification record

Contracts are async ``typing.Protocol`` classes, so any object with the
right coroutine methods can be injected. The in-memory implementations
are used for development and tests. ``core.verification.http`` provides
the JSON-over-HTTP versions.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from typing import Any, Optional, Protocol

from core.ids import generate_casl_key_id, identity_seed
from core.verification.schema import (
    IdentityRecord,
    StatusResponse,
    SubmissionAck,
    VerificationMethod,
    VerificationStatus,
    VerificationTicket,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Contracts
# =============================================================================


class IdentityService(Protocol):
    """Looks up or creates the guest's CASL Key identity."""

    async def check_or_create_identity(
        self,
        name: str,
        email: str,
        phone: str,
        address: str,
    ) -> IdentityRecord:
        """Must be idempotent: the same identity always yields the same id."""
        ...


class VerificationService(Protocol):
    """Accepts verification artifacts and reports their status."""

    async def submit_artifact(
        self,
        method: VerificationMethod,
        payload: dict[str, Any],
        casl_key_id: str,
    ) -> VerificationTicket:
        ...

    async def get_status(self, method: VerificationMethod, casl_key_id: str) -> StatusResponse:
        ...


class SubmissionSink(Protocol):
    """Receives the final verification record."""

    # Raw identity fields the sink needs for record-keeping (default none)
    required_identity_fields: tuple[str, ...]

    async def submit(self, payload: dict[str, Any]) -> SubmissionAck:
        ...


# =============================================================================
# In-Memory Implementations
# =============================================================================


class InMemoryIdentityService:
    """
    Identity directory held in memory.

    Identities are keyed by normalised email + phone. The first lookup
    creates the identity; later lookups return it as existing.
    """

    def __init__(self):
        self._records: dict[str, IdentityRecord] = {}
        self.calls = 0

    def register(
        self,
        email: str,
        phone: str,
        verified: bool = False,
        platform_review_count: Optional[int] = None,
        id_verified: bool = False,
    ) -> IdentityRecord:
        """Pre-register a known guest (used to model returning users)."""
        seed = identity_seed(email, phone)
        record = IdentityRecord(
            id=generate_casl_key_id(seed),
            existing=True,
            verified=verified,
            platform_review_count=platform_review_count,
            id_verified=id_verified,
        )
        self._records[seed] = record
        return record

    async def check_or_create_identity(
        self,
        name: str,
        email: str,
        phone: str,
        address: str,
    ) -> IdentityRecord:
        self.calls += 1
        seed = identity_seed(email, phone)

        existing = self._records.get(seed)
        if existing is not None:
            return existing

        created = IdentityRecord(id=generate_casl_key_id(seed), existing=False, verified=False)
        # Later lookups see the identity as existing
        self._records[seed] = IdentityRecord(
            id=created.id,
            existing=True,
            verified=False,
        )
        logger.info("Created identity %s", created.id)
        return created

    def __len__(self) -> int:
        return len(self._records)


class InMemoryVerificationService:
    """
    Verification backend held in memory.

    After an artifact is submitted, status checks return scripted statuses
    in order. Once the script is exhausted the last status repeats. Without
    a script, a submission completes as ``outcome`` after
    ``checks_until_complete`` status checks.
    """

    def __init__(
        self,
        outcome: VerificationStatus = VerificationStatus.VERIFIED,
        checks_until_complete: int = 1,
    ):
        self.outcome = outcome
        self.checks_until_complete = checks_until_complete
        self._scripts: dict[VerificationMethod, deque[Any]] = {}
        self._submitted: dict[tuple[VerificationMethod, str], int] = {}
        self.submissions: list[tuple[VerificationMethod, str]] = []
        self.status_checks: dict[VerificationMethod, int] = {}

    def script(self, method: VerificationMethod, *responses: Any) -> None:
        """
        Queue responses for status checks of a method.

        A response is a VerificationStatus, or an exception instance to raise.
        """
        self._scripts[method] = deque(responses)

    async def submit_artifact(
        self,
        method: VerificationMethod,
        payload: dict[str, Any],
        casl_key_id: str,
    ) -> VerificationTicket:
        self._submitted[(method, casl_key_id)] = 0
        self.submissions.append((method, casl_key_id))
        return VerificationTicket(
            ticket_id=f"vt_{uuid.uuid4().hex[:12]}",
            method=method,
            status=VerificationStatus.PROCESSING,
        )

    async def get_status(self, method: VerificationMethod, casl_key_id: str) -> StatusResponse:
        self.status_checks[method] = self.status_checks.get(method, 0) + 1

        script = self._scripts.get(method)
        if script:
            response = script.popleft() if len(script) > 1 else script[0]
            if isinstance(response, BaseException):
                raise response
            return StatusResponse(status=response)

        key = (method, casl_key_id)
        if key not in self._submitted:
            return StatusResponse(status=VerificationStatus.NOT_SUBMITTED)

        self._submitted[key] += 1
        if self._submitted[key] >= self.checks_until_complete:
            return StatusResponse(status=self.outcome)
        return StatusResponse(status=VerificationStatus.PROCESSING)


class InMemorySubmissionSink:
    """Collects submitted payloads in a list."""

    def __init__(self, required_identity_fields: tuple[str, ...] = ()):
        self.required_identity_fields = tuple(required_identity_fields)
        self.payloads: list[dict[str, Any]] = []

    async def submit(self, payload: dict[str, Any]) -> SubmissionAck:
        self.payloads.append(payload)
        submission_id = f"sub_{uuid.uuid4().hex[:12]}"
        logger.info("Stored submission %s for %s", submission_id, payload.get("caslKeyId"))
        return SubmissionAck(submission_id=submission_id, accepted=True)

    @property
    def last_payload(self) -> Optional[dict[str, Any]]:
        return self.payloads[-1] if self.payloads else None
