"""
Verification Artifacts - Payload Checks Before Upload

Each verification method expects a specific payload:

- screenshot:       {"image_data": <data URL>}
- government_id:    {"id_image_data": <data URL>, "selfie_image_data": <data URL>}
- phone:            {"phone_number": <digits, optional +>}
- social:           {"platform": <facebook|linkedin|...>, "profile_url": <http(s) URL>}
- background_check: {} (consent is taken from the form)

Images are base64 data URLs. Size is estimated from the encoded length the
same way the upload endpoint measures it.
"""

from __future__ import annotations

import math
import re
from typing import Any, Final, Iterable, Optional

from core.errors import ArtifactValidationError
from core.guest.schema import PHONE_REGEX, PHONE_STRIP_REGEX, is_valid_url
from core.verification.schema import VerificationMethod

DEFAULT_MAX_ARTIFACT_BYTES: Final[int] = 5 * 1024 * 1024
DEFAULT_ALLOWED_IMAGE_TYPES: Final[tuple[str, ...]] = ("image/jpeg", "image/png", "image/webp")

DATA_URL_TYPE_REGEX: Final = re.compile(r"^data:(image/[a-zA-Z0-9+.-]+);base64,")

SOCIAL_PLATFORMS: Final[frozenset[str]] = frozenset({
    "facebook",
    "linkedin",
    "instagram",
    "twitter",
    "tiktok",
})


def estimated_size(data_url: str) -> int:
    """Decoded size estimate for a base64 data URL, in bytes."""
    return math.ceil(len(data_url) * 3 / 4)


def validate_image_data(
    data_url: Any,
    max_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES,
    allowed_types: Iterable[str] = DEFAULT_ALLOWED_IMAGE_TYPES,
) -> str:
    """
    Check an image data URL.

    Args:
        data_url: ``data:image/<type>;base64,...`` string
        max_bytes: Maximum estimated size
        allowed_types: Accepted MIME types

    Returns:
        The image MIME type

    Raises:
        ArtifactValidationError: If the image is missing, malformed, too large
            or of a disallowed type
    """
    if not data_url:
        raise ArtifactValidationError("Image data is required")

    if not isinstance(data_url, str) or not data_url.startswith("data:image/"):
        raise ArtifactValidationError("Invalid image data format")

    if estimated_size(data_url) > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise ArtifactValidationError(f"Image size exceeds maximum allowed size of {limit_mb}MB")

    match = DATA_URL_TYPE_REGEX.match(data_url)
    if not match or match.group(1) not in tuple(allowed_types):
        raise ArtifactValidationError("Image type not allowed")

    return match.group(1)


def validate_artifact(
    method: VerificationMethod,
    payload: Optional[dict[str, Any]],
    max_bytes: int = DEFAULT_MAX_ARTIFACT_BYTES,
    allowed_types: Iterable[str] = DEFAULT_ALLOWED_IMAGE_TYPES,
) -> dict[str, Any]:
    """
    Validate and normalise an artifact payload for a verification method.

    Returns:
        Normalised payload containing only the keys the method uses

    Raises:
        ArtifactValidationError: If the payload is unusable
    """
    payload = payload or {}
    allowed_types = tuple(allowed_types)

    if method == VerificationMethod.SCREENSHOT:
        image_data = payload.get("image_data")
        validate_image_data(image_data, max_bytes, allowed_types)
        return {"image_data": image_data}

    if method == VerificationMethod.GOVERNMENT_ID:
        id_image = payload.get("id_image_data")
        selfie_image = payload.get("selfie_image_data")
        validate_image_data(id_image, max_bytes, allowed_types)
        validate_image_data(selfie_image, max_bytes, allowed_types)
        return {"id_image_data": id_image, "selfie_image_data": selfie_image}

    if method == VerificationMethod.PHONE:
        phone_number = str(payload.get("phone_number") or "").strip()
        if not phone_number:
            raise ArtifactValidationError("Phone number is required")
        clean_phone = PHONE_STRIP_REGEX.sub("", phone_number)
        if not PHONE_REGEX.match(clean_phone):
            raise ArtifactValidationError("Please enter a valid phone number (10-15 digits)")
        return {"phone_number": clean_phone}

    if method == VerificationMethod.SOCIAL:
        platform = str(payload.get("platform") or "").strip().lower()
        profile_url = str(payload.get("profile_url") or "").strip()
        if not platform or not profile_url:
            raise ArtifactValidationError("Please select a platform and enter your profile URL")
        if platform not in SOCIAL_PLATFORMS:
            raise ArtifactValidationError("Social platform not supported")
        if not is_valid_url(profile_url):
            raise ArtifactValidationError("Profile URL must be a valid URL")
        return {"platform": platform, "profile_url": profile_url}

    # Background checks carry no artifact
    return {}
