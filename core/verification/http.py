"""
HTTP Collaborators - CASL Key Verification API over JSON

Implements IdentityService, VerificationService and SubmissionSink against
the CASL Key verification API using ``httpx.AsyncClient``.

Endpoints:
    POST user-check              identity lookup
    POST upload | verify-id | verify-phone/request | verify-social | background-check
    GET  status?userId=&method=  verification status
    POST verify                  final submission

Failures are classified into TransportError kinds:
    401/403 -> session, 5xx -> server, other 4xx -> client,
    timeouts -> timeout, connection problems -> network
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable, Final, Optional

import httpx

from core.errors import TransportError, TransportErrorKind
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

DEFAULT_TIMEOUT: Final[float] = 30.0

ARTIFACT_ENDPOINTS: Final[dict[VerificationMethod, str]] = {
    VerificationMethod.SCREENSHOT: "upload",
    VerificationMethod.GOVERNMENT_ID: "verify-id",
    VerificationMethod.PHONE: "verify-phone/request",
    VerificationMethod.SOCIAL: "verify-social",
    VerificationMethod.BACKGROUND_CHECK: "background-check",
}

# Artifact payload keys -> API body keys
PAYLOAD_KEYS: Final[dict[str, str]] = {
    "image_data": "imageData",
    "id_image_data": "idImageData",
    "selfie_image_data": "selfieImageData",
    "phone_number": "phoneNumber",
    "platform": "platform",
    "profile_url": "profileUrl",
}

TokenProvider = Callable[[], Awaitable[str]]


# =============================================================================
# API Client
# =============================================================================


class CaslApiClient:
    """
    Thin JSON client for the CASL Key verification API.

    Usage:
        client = CaslApiClient("https://api.example.com/prod", token_provider=fetch_token)
        data = await client.request("POST", "user-check", "identity lookup", json={...})
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        refresh_endpoint: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialise client.

        Args:
            base_url: API base URL
            timeout: Request timeout in seconds
            token: Initial bearer token (optional)
            token_provider: Coroutine returning a fresh token for session refresh
            refresh_endpoint: Endpoint that exchanges the current token for a
                fresh one, used when no token_provider is given
            transport: Custom httpx transport (``httpx.MockTransport`` in tests)
        """
        self._token = token
        self._token_provider = token_provider
        self._refresh_endpoint = refresh_endpoint
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CaslApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def refresh_session(self) -> None:
        """
        Obtain a fresh token from the token provider or the refresh endpoint.

        Raises:
            TransportError: If neither is configured, the refresh call fails
                or its response carries no token
        """
        if self._token_provider is not None:
            self._token = await self._token_provider()
        elif self._refresh_endpoint:
            result = await self.request("POST", self._refresh_endpoint, "session refresh")
            token = result.get("token") or result.get("accessToken")
            if not token:
                raise TransportError(
                    TransportErrorKind.SESSION,
                    "session refresh",
                    detail="refresh response carried no token",
                )
            self._token = str(token)
        else:
            raise TransportError(
                TransportErrorKind.SESSION,
                "session refresh",
                detail="no token provider configured",
            )
        logger.info("Session token refreshed")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Request-ID": f"req_{uuid.uuid4().hex[:12]}",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        operation: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            operation: Human-readable operation name for errors and logs
            json: Request body
            params: Query parameters

        Returns:
            Decoded response body (``{"data": <text>}`` for non-JSON bodies)

        Raises:
            TransportError: On timeout, connection failure or non-2xx status
        """
        try:
            response = await self._client.request(
                method,
                endpoint,
                json=json,
                params=params,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            logger.warning("%s timed out", operation)
            raise TransportError(TransportErrorKind.TIMEOUT, operation, detail=str(e)) from e
        except httpx.TransportError as e:
            logger.warning("%s failed: network error %s", operation, type(e).__name__)
            raise TransportError(TransportErrorKind.NETWORK, operation, detail=str(e)) from e

        if response.is_success:
            return _decode(response)

        kind = classify_status(response.status_code)
        detail = _error_detail(response)
        logger.warning("%s failed with HTTP %s (%s)", operation, response.status_code, kind.value)
        raise TransportError(kind, operation, detail=detail, status_code=response.status_code)


def classify_status(status_code: int) -> TransportErrorKind:
    """Classify a non-2xx HTTP status into a transport error kind."""
    if status_code in (401, 403):
        return TransportErrorKind.SESSION
    if status_code >= 500:
        return TransportErrorKind.SERVER
    return TransportErrorKind.CLIENT


def _decode(response: httpx.Response) -> dict[str, Any]:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            return {"data": response.text}
        return data if isinstance(data, dict) else {"data": data}
    return {"data": response.text}


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"API Error: {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"API Error: {response.status_code}"


# =============================================================================
# Collaborators
# =============================================================================


class HttpIdentityService:
    """IdentityService backed by ``POST user-check``."""

    def __init__(self, client: CaslApiClient):
        self._client = client

    async def check_or_create_identity(
        self,
        name: str,
        email: str,
        phone: str,
        address: str,
    ) -> IdentityRecord:
        result = await self._client.request(
            "POST",
            "user-check",
            "identity lookup",
            json={"email": email, "name": name, "phone": phone, "address": address},
        )

        if result.get("found"):
            return _parse_identity(result.get("userData"))

        # New guests get an ID derived from their identity, so retries agree
        return IdentityRecord(
            id=generate_casl_key_id(identity_seed(email, phone)),
            existing=False,
            verified=False,
        )


def _parse_identity(user_data: Any) -> IdentityRecord:
    """
    Build an IdentityRecord from a ``user-check`` match.

    Raises:
        TransportError: SERVER kind if the response is malformed
    """
    try:
        platform_data = user_data.get("platformData") or {}
        id_data = user_data.get("idVerificationData") or {}
        review_count = platform_data.get("reviewCount")
        casl_key_id = user_data["caslKeyId"]
        if not casl_key_id:
            raise ValueError("empty caslKeyId")
        return IdentityRecord(
            id=str(casl_key_id),
            existing=True,
            verified=bool(user_data.get("isVerified")),
            platform_review_count=int(review_count) if review_count is not None else None,
            id_verified=bool(id_data.get("verified")),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise TransportError(
            TransportErrorKind.SERVER,
            "identity lookup",
            detail=f"malformed identity response: {type(e).__name__}",
        ) from e


class HttpVerificationService:
    """VerificationService backed by the per-method upload endpoints and ``GET status``."""

    def __init__(self, client: CaslApiClient):
        self._client = client

    async def submit_artifact(
        self,
        method: VerificationMethod,
        payload: dict[str, Any],
        casl_key_id: str,
    ) -> VerificationTicket:
        body: dict[str, Any] = {"userId": casl_key_id}
        for key, value in payload.items():
            body[PAYLOAD_KEYS.get(key, key)] = value

        result = await self._client.request(
            "POST",
            ARTIFACT_ENDPOINTS[method],
            f"{method.value} submission",
            json=body,
        )
        status = _parse_status(
            result.get("status"),
            "artifact submission",
            default=VerificationStatus.PROCESSING,
        )
        ticket_id = (
            result.get("ticketId")
            or result.get("verificationId")
            or f"vt_{uuid.uuid4().hex[:12]}"
        )
        return VerificationTicket(ticket_id=str(ticket_id), method=method, status=status)

    async def get_status(self, method: VerificationMethod, casl_key_id: str) -> StatusResponse:
        result = await self._client.request(
            "GET",
            "status",
            f"{method.value} status check",
            params={"userId": casl_key_id, "method": method.value},
        )
        status = _parse_status(result.get("status"), "status check")
        detail = {key: value for key, value in result.items() if key != "status"} or None
        return StatusResponse(status=status, detail=detail)


class HttpSubmissionSink:
    """SubmissionSink backed by ``POST verify``."""

    def __init__(self, client: CaslApiClient, required_identity_fields: tuple[str, ...] = ()):
        self._client = client
        self.required_identity_fields = tuple(required_identity_fields)

    async def submit(self, payload: dict[str, Any]) -> SubmissionAck:
        result = await self._client.request("POST", "verify", "verification submission", json=payload)
        submission_id = result.get("submissionId") or result.get("id") or ""
        accepted = result.get("accepted", result.get("success", True))
        return SubmissionAck(submission_id=str(submission_id), accepted=bool(accepted))


def _parse_status(
    value: Any,
    operation: str,
    default: Optional[VerificationStatus] = None,
) -> VerificationStatus:
    if value is None and default is not None:
        return default
    try:
        return VerificationStatus.from_string(value)
    except ValueError as e:
        raise TransportError(
            TransportErrorKind.SERVER,
            operation,
            detail=f"unrecognised verification status {value!r}",
        ) from e
