"""
Workflow Sessions - One State Machine per Guest

Holds the live WorkflowStateMachine instances served by the web API and
wires each one to the configured collaborators:

- CASL_API_BASE_URL set: HTTP identity, verification and submission services
- otherwise: in-memory services (local development and tests)

Saved progress is kept per session, in DATA_DIR when configured. A session
that is not live (e.g. after a restart) is resumed from its file on first
use. Sessions idle for longer than the saved-progress expiry are evicted.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Final, Optional

import httpx

from core.storage import JsonFileStore, KeyValueStore, MemoryStore, utc_now
from core.verification.http import (
    CaslApiClient,
    HttpIdentityService,
    HttpSubmissionSink,
    HttpVerificationService,
)
from core.verification.services import (
    InMemoryIdentityService,
    InMemorySubmissionSink,
    InMemoryVerificationService,
)
from core.workflow.state_machine import WorkflowStateMachine
from utils.config import Config

logger = logging.getLogger(__name__)

SESSION_ID_REGEX: Final = re.compile(r"^[0-9a-f]{32}$")


@dataclass
class Collaborators:
    """External services shared by every session."""

    identity_service: Any
    verification_service: Any
    submission_sink: Any
    client: Optional[CaslApiClient] = None

    @property
    def session_refresher(self):
        return self.client.refresh_session if self.client is not None else None

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Collaborators":
        """
        Build collaborators for the configured backend.

        Args:
            config: Application configuration
            transport: Custom httpx transport for the API client
        """
        if config.casl_api_base_url:
            client = CaslApiClient(
                config.casl_api_base_url,
                timeout=config.request_timeout,
                token=config.casl_api_token,
                refresh_endpoint=config.casl_api_refresh_endpoint,
                transport=transport,
            )
            logger.info("Using verification API at %s", config.casl_api_base_url)
            return cls(
                identity_service=HttpIdentityService(client),
                verification_service=HttpVerificationService(client),
                submission_sink=HttpSubmissionSink(client),
                client=client,
            )

        logger.info("No verification API configured, using in-memory services")
        return cls(
            identity_service=InMemoryIdentityService(),
            verification_service=InMemoryVerificationService(),
            submission_sink=InMemorySubmissionSink(),
        )

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


class SessionRegistry:
    """
    Live workflow sessions keyed by session id.

    Usage:
        registry = SessionRegistry(config)
        session_id, workflow = registry.create()
        workflow = await registry.load(session_id)
    """

    def __init__(
        self,
        config: Config,
        collaborators: Optional[Collaborators] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._collaborators = collaborators or Collaborators.from_config(config)
        self._clock = clock
        self._sessions: dict[str, WorkflowStateMachine] = {}
        self._last_seen: dict[str, datetime] = {}

    @property
    def collaborators(self) -> Collaborators:
        return self._collaborators

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _session_path(self, session_id: str) -> Optional[Path]:
        if not self._config.data_dir:
            return None
        return Path(self._config.data_dir) / "sessions" / f"{session_id}.json"

    def _store_for(self, session_id: str) -> KeyValueStore:
        path = self._session_path(session_id)
        return JsonFileStore(path) if path is not None else MemoryStore()

    def _build(self, session_id: str) -> WorkflowStateMachine:
        config = self._config
        collaborators = self._collaborators

        workflow = WorkflowStateMachine(
            collaborators.identity_service,
            collaborators.verification_service,
            collaborators.submission_sink,
            store=self._store_for(session_id),
            session_refresher=collaborators.session_refresher,
            poll_interval=config.poll_interval_seconds,
            debounce_delay=config.debounce_seconds,
            expiry_hours=config.saved_form_expiry_hours,
            max_artifact_bytes=config.max_artifact_bytes,
            allowed_image_types=config.allowed_image_types,
        )
        self._sessions[session_id] = workflow
        self._last_seen[session_id] = self._clock()
        return workflow

    def create(self) -> tuple[str, WorkflowStateMachine]:
        """Start a new session."""
        session_id = uuid.uuid4().hex
        workflow = self._build(session_id)
        logger.info("Session %s created", session_id)
        return session_id, workflow

    def get(self, session_id: str) -> WorkflowStateMachine:
        """
        Return a live session.

        Raises:
            KeyError: If the session is not live
        """
        workflow = self._sessions[session_id]
        self._last_seen[session_id] = self._clock()
        return workflow

    async def load(self, session_id: str) -> WorkflowStateMachine:
        """
        Return a live session, resuming it from its saved progress if needed.

        Raises:
            KeyError: If the session is unknown or its progress has expired
        """
        if session_id in self._sessions:
            return self.get(session_id)

        path = self._session_path(session_id)
        if path is None or not SESSION_ID_REGEX.match(session_id) or not path.exists():
            raise KeyError(session_id)

        workflow = self._build(session_id)
        if not await workflow.restore():
            await self.close(session_id)
            raise KeyError(session_id)

        logger.info("Session %s resumed at step %s", session_id, workflow.current_step)
        return workflow

    async def close(self, session_id: str) -> bool:
        """Close a session and cancel its background work."""
        workflow = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if workflow is None:
            return False
        await workflow.close()
        logger.info("Session %s closed", session_id)
        return True

    async def evict_expired(self) -> int:
        """
        Close sessions idle for longer than the saved-progress expiry.

        Saved progress stays on disk, so an evicted session can still be
        resumed until the progress itself expires.

        Returns:
            Number of sessions evicted
        """
        cutoff = self._clock() - timedelta(hours=self._config.saved_form_expiry_hours)
        idle = [
            session_id
            for session_id, last_seen in self._last_seen.items()
            if last_seen < cutoff
        ]
        for session_id in idle:
            await self.close(session_id)
        if idle:
            logger.info("Evicted %s idle sessions", len(idle))
        return len(idle)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
        await self._collaborators.aclose()
