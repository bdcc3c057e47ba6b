"""
Trust Preview Cache - Memoised Host-Facing Preview

Lets the guest see what a host will see before submitting. Previews are
memoised on the few inputs that move the score during data collection:

    (traveling_near_home, total_guests, used_str_before, has_background_check_status)

A hit returns the stored object without recomputing. A miss runs the score
engine and trust level mapper, stores the result and persists it to the
durable store under ``trust_preview`` so a reload can show it again.

The cache is unbounded. Its key space is tiny, so no eviction is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from core.guest.schema import FormSnapshot
from core.storage import TRUST_PREVIEW_KEY, KeyValueStore
from core.trust.levels import TrustFlags, TrustLevel, score_range_for, trust_flags, trust_level_for
from core.trust.scoring import ScoreFunction, calculate_score
from core.verification.schema import VerificationFacts

logger = logging.getLogger(__name__)

PreviewKey = tuple[bool, float, bool, bool]


# =============================================================================
# Trust Preview
# =============================================================================


@dataclass(frozen=True)
class TrustPreview:
    """Derived preview of the host-facing result. Never the system of record."""

    casl_key_id: Optional[str]
    trust_level: TrustLevel
    score_range: str
    flags: TrustFlags

    def to_dict(self) -> dict[str, Any]:
        return {
            "caslKeyId": self.casl_key_id,
            "trustLevel": self.trust_level.value,
            "scoreRange": self.score_range,
            "flags": self.flags.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrustPreview":
        """
        Create a preview from its persisted form.

        Raises:
            KeyError, ValueError: If the stored value is malformed
        """
        flags = data["flags"]
        return cls(
            casl_key_id=data.get("caslKeyId"),
            trust_level=TrustLevel(data["trustLevel"]),
            score_range=data["scoreRange"],
            flags=TrustFlags(
                local_booking=bool(flags["localBooking"]),
                high_guest_count=bool(flags["highGuestCount"]),
                no_str_history=bool(flags["noSTRHistory"]),
                last_minute_booking=bool(flags["lastMinuteBooking"]),
            ),
        )


def preview_key(snapshot: FormSnapshot, facts: VerificationFacts) -> PreviewKey:
    """Build the cache key from the inputs that affect the preview."""
    return (
        bool(snapshot.traveling_near_home),
        snapshot.guest_count,
        bool(snapshot.used_str_before),
        facts.has_background_check_status,
    )


# =============================================================================
# Preview Cache
# =============================================================================


class PreviewCache:
    """
    Memoises TrustPreview values per preview key.

    Usage:
        cache = PreviewCache(store)
        preview = cache.get_or_compute(snapshot, facts)
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        score_fn: ScoreFunction = calculate_score,
        today_fn: Callable[[], date] = date.today,
    ):
        """
        Initialise cache.

        Args:
            store: Durable store for the most recent preview (optional)
            score_fn: Score engine, injectable for call-count instrumentation
            today_fn: Source of the calendar date used by date rules
        """
        self._store = store
        self._score_fn = score_fn
        self._today_fn = today_fn
        self._entries: dict[PreviewKey, TrustPreview] = {}
        self._last: Optional[TrustPreview] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: PreviewKey) -> bool:
        return key in self._entries

    @property
    def last(self) -> Optional[TrustPreview]:
        """Most recently returned preview."""
        return self._last

    def get_or_compute(self, snapshot: FormSnapshot, facts: VerificationFacts) -> TrustPreview:
        """Return the cached preview for this key, computing it on a miss."""
        return self.refresh(snapshot, facts, force=False)

    def refresh(
        self,
        snapshot: FormSnapshot,
        facts: VerificationFacts,
        force: bool = False,
    ) -> TrustPreview:
        """
        Return the preview for the snapshot's key.

        Args:
            snapshot: Current form snapshot
            facts: Current verification facts
            force: Recompute and overwrite the entry even on a hit

        Returns:
            TrustPreview (the identical object on a non-forced hit)
        """
        key = preview_key(snapshot, facts)

        cached = self._entries.get(key)
        if cached is not None and not force:
            self._last = cached
            return cached

        preview = self._compute(snapshot, facts)
        self._entries[key] = preview
        self._last = preview
        self._persist(preview)

        logger.debug("Trust preview computed for key %s: %s", key, preview.trust_level.value)
        return preview

    def clear(self) -> None:
        """Empty the cache and delete the persisted preview."""
        self._entries.clear()
        self._last = None
        if self._store is not None:
            self._store.delete(TRUST_PREVIEW_KEY)

    def load_persisted(self) -> Optional[TrustPreview]:
        """
        Restore the last persisted preview after a reload.

        The restored value is shown as ``last`` but is not entered into the
        cache, so the next lookup recomputes from current inputs.
        """
        if self._store is None:
            return None

        data = self._store.get(TRUST_PREVIEW_KEY)
        if not data:
            return None

        try:
            preview = TrustPreview.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Discarding unreadable persisted trust preview: %s", e)
            self._store.delete(TRUST_PREVIEW_KEY)
            return None

        self._last = preview
        return preview

    def _compute(self, snapshot: FormSnapshot, facts: VerificationFacts) -> TrustPreview:
        today = self._today_fn()
        result = self._score_fn(snapshot, facts, today=today)
        return TrustPreview(
            casl_key_id=facts.casl_key_id,
            trust_level=trust_level_for(result.score),
            score_range=score_range_for(result.score),
            flags=trust_flags(snapshot, today),
        )

    def _persist(self, preview: TrustPreview) -> None:
        if self._store is not None:
            self._store.set(TRUST_PREVIEW_KEY, preview.to_dict())
