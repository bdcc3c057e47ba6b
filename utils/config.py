"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_ALLOWED_IMAGE_TYPES = "image/jpeg,image/png,image/webp"


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Verification API
    casl_api_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("CASL_API_BASE_URL") or None
    )
    casl_api_token: Optional[str] = field(
        default_factory=lambda: os.getenv("CASL_API_TOKEN") or None
    )
    casl_api_refresh_endpoint: str = field(
        default_factory=lambda: os.getenv("CASL_API_REFRESH_ENDPOINT", "auth/refresh")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )

    # Workflow timing
    verification_poll_interval_ms: int = field(
        default_factory=lambda: int(os.getenv("VERIFICATION_POLL_INTERVAL_MS", "3000"))
    )
    validation_debounce_ms: int = field(
        default_factory=lambda: int(os.getenv("VALIDATION_DEBOUNCE_MS", "300"))
    )
    saved_form_expiry_hours: float = field(
        default_factory=lambda: float(os.getenv("SAVED_FORM_EXPIRY_HOURS", "24"))
    )

    # Artifacts
    max_artifact_bytes: int = field(
        default_factory=lambda: int(os.getenv("MAX_ARTIFACT_BYTES", str(5 * 1024 * 1024)))
    )
    allowed_image_types: tuple[str, ...] = field(
        default_factory=lambda: _split_list(
            os.getenv("ALLOWED_IMAGE_TYPES", DEFAULT_ALLOWED_IMAGE_TYPES)
        )
    )

    # Data
    data_dir: Optional[str] = field(default_factory=lambda: os.getenv("DATA_DIR") or None)

    @property
    def poll_interval_seconds(self) -> float:
        return self.verification_poll_interval_ms / 1000

    @property
    def debounce_seconds(self) -> float:
        return self.validation_debounce_ms / 1000

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "casl_api_base_url": self.casl_api_base_url,
            "casl_api_token": "***" if self.casl_api_token else None,
            "casl_api_refresh_endpoint": self.casl_api_refresh_endpoint,
            "request_timeout": self.request_timeout,
            "verification_poll_interval_ms": self.verification_poll_interval_ms,
            "validation_debounce_ms": self.validation_debounce_ms,
            "saved_form_expiry_hours": self.saved_form_expiry_hours,
            "max_artifact_bytes": self.max_artifact_bytes,
            "allowed_image_types": list(self.allowed_image_types),
            "data_dir": self.data_dir,
        }
