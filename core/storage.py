"""
Workflow Storage - Durable Local State for Resuming a Session

Two keys are written to a small key/value store:

- ``saved_progress``: in-progress FormSnapshot, step index and saved-at time
- ``trust_preview``: last computed TrustPreview

Both are cleared on successful submission or explicit reset. Saved progress
older than the configured expiry is discarded on load.

JsonFileStore keeps the whole store in one JSON file. MemoryStore is used
when no data directory is configured and in tests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Final, Optional, Protocol, Union

from core.guest.schema import FINAL_STEP, FormSnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Keys
# =============================================================================

SAVED_PROGRESS_KEY: Final[str] = "saved_progress"
TRUST_PREVIEW_KEY: Final[str] = "trust_preview"

DEFAULT_EXPIRY_HOURS: Final[int] = 24


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Stores
# =============================================================================


class KeyValueStore(Protocol):
    """Minimal durable key/value store holding JSON-serialisable values."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store. Values are JSON round-tripped so they behave like the file store."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    """
    Key/value store persisted to a single JSON file.

    The file is rewritten on every change, through a temporary file that
    replaces it. A missing or corrupt file is treated as an empty store.
    """

    def __init__(self, persist_path: Union[str, Path]):
        """
        Initialise store.

        Args:
            persist_path: Path of the JSON file backing the store
        """
        self._persist_path = Path(persist_path)
        self._data: dict[str, Any] = {}

        if self._persist_path.exists():
            self._load_from_file()

    @property
    def persist_path(self) -> Path:
        return self._persist_path

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load store %s, starting empty: %s", self._persist_path, e)
            return
        if isinstance(data, dict):
            self._data = data

    def _save_to_file(self) -> None:
        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._persist_path.with_name(self._persist_path.name + ".tmp")
        temp_path.write_text(json.dumps(self._data, indent=2))
        temp_path.replace(self._persist_path)

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save_to_file()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save_to_file()

    def __contains__(self, key: str) -> bool:
        return key in self._data


# =============================================================================
# Saved Progress
# =============================================================================


@dataclass(frozen=True)
class SavedProgress:
    """In-progress form snapshot and step index written after each change."""

    snapshot: FormSnapshot
    current_step: int
    saved_at: datetime

    def is_expired(self, now: datetime, expiry_hours: float = DEFAULT_EXPIRY_HOURS) -> bool:
        """Check if the saved progress is too old to resume."""
        return now - self.saved_at >= timedelta(hours=expiry_hours)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot": self.snapshot.to_dict(),
            "current_step": self.current_step,
            "saved_at": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SavedProgress":
        """
        Create from a stored dictionary.

        Raises:
            KeyError, ValueError, TypeError: If the stored value is malformed
        """
        saved_at = datetime.fromisoformat(data["saved_at"])
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)
        step = int(data.get("current_step", 0))
        return cls(
            snapshot=FormSnapshot.from_dict(data["snapshot"]),
            current_step=min(max(step, 0), FINAL_STEP),
            saved_at=saved_at,
        )


def save_progress(
    store: KeyValueStore,
    snapshot: FormSnapshot,
    current_step: int,
    now: Optional[datetime] = None,
) -> SavedProgress:
    """Write the in-progress snapshot and step to the store."""
    progress = SavedProgress(snapshot=snapshot, current_step=current_step, saved_at=now or utc_now())
    store.set(SAVED_PROGRESS_KEY, progress.to_dict())
    return progress


def load_progress(
    store: KeyValueStore,
    expiry_hours: float = DEFAULT_EXPIRY_HOURS,
    clock: Callable[[], datetime] = utc_now,
) -> Optional[SavedProgress]:
    """
    Load saved progress if present and not expired.

    Expired or unreadable progress is deleted from the store.
    """
    data = store.get(SAVED_PROGRESS_KEY)
    if not data:
        return None

    try:
        progress = SavedProgress.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        logger.warning("Discarding unreadable saved progress: %s", e)
        clear_progress(store)
        return None

    if progress.is_expired(clock(), expiry_hours):
        logger.info("Discarding saved progress from %s (expired)", progress.saved_at.isoformat())
        clear_progress(store)
        return None

    return progress


def clear_progress(store: KeyValueStore) -> None:
    """Remove saved progress from the store."""
    store.delete(SAVED_PROGRESS_KEY)


def clear_all(store: KeyValueStore) -> None:
    """Remove saved progress and the persisted trust preview."""
    store.delete(SAVED_PROGRESS_KEY)
    store.delete(TRUST_PREVIEW_KEY)
