"""
Trust Score Engine - Deterministic Score Adjustments

Reduces a FormSnapshot and VerificationFacts to a 0-100 trust score with
an itemised list of adjustments.

Scoring methodology:
- Start at 100
- Apply every rule independently, in a fixed order (deductions first)
- Clamp the total to [0, 100]

The function is pure: identical inputs (including ``today``) always yield
identical results. Adjustment order is significant for display only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Final, Optional

from core.guest.schema import FormSnapshot, StayPurpose
from core.verification.schema import VerificationFacts


# =============================================================================
# Constants
# =============================================================================

BASE_SCORE: Final[int] = 100
MIN_SCORE: Final[int] = 0
MAX_SCORE: Final[int] = 100

HIGH_GUEST_COUNT_THRESHOLD: Final[int] = 5  # More than 5 guests
LAST_MINUTE_DAYS: Final[int] = 2  # Check-in within 2 days
LONG_STAY_NIGHTS: Final[int] = 7  # More than 7 nights
WELL_REVIEWED_THRESHOLD: Final[int] = 5  # More than 5 platform reviews

# Deductions
SPECIAL_OCCASION_POINTS: Final[int] = -5
HIGH_GUEST_COUNT_POINTS: Final[int] = -3
NON_OVERNIGHT_GUESTS_POINTS: Final[int] = -2
NEAR_HOME_POINTS: Final[int] = -3
FIRST_TIME_POINTS: Final[int] = -5
LAST_MINUTE_POINTS: Final[int] = -3

# Bonuses
CHILDREN_POINTS: Final[int] = 1
LONG_STAY_POINTS: Final[int] = 2
WELL_REVIEWED_POINTS: Final[int] = 3
HAS_REVIEWS_POINTS: Final[int] = 1
ID_VERIFIED_POINTS: Final[int] = 5
PREVIOUS_STAYS_POINTS: Final[int] = 3


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class ScoreAdjustment:
    """A single score adjustment with a human-readable reason."""

    reason: str
    points: int

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "points": self.points}


@dataclass(frozen=True)
class ScoreResult:
    """Final trust score and the adjustments that produced it."""

    score: int
    adjustments: tuple[ScoreAdjustment, ...] = ()

    @property
    def total_adjustment(self) -> int:
        """Sum of all adjustments before clamping."""
        return sum(adjustment.points for adjustment in self.adjustments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "adjustments": [adjustment.to_dict() for adjustment in self.adjustments],
        }


ScoreFunction = Callable[..., ScoreResult]


# =============================================================================
# Date Helpers
# =============================================================================


def days_until_check_in(snapshot: FormSnapshot, today: Optional[date] = None) -> Optional[int]:
    """
    Whole calendar days from today to check-in.

    Returns None when no check-in date is set or it cannot be parsed.
    Negative when check-in is in the past.
    """
    check_in = snapshot.check_in
    if check_in is None:
        return None
    return (check_in - (today or date.today())).days


def is_last_minute_booking(snapshot: FormSnapshot, today: Optional[date] = None) -> bool:
    """Check if check-in is within two days of today."""
    days = days_until_check_in(snapshot, today)
    return days is not None and days <= LAST_MINUTE_DAYS


def stay_length(snapshot: FormSnapshot) -> Optional[int]:
    """Number of nights between check-in and check-out, or None if either is missing."""
    check_in = snapshot.check_in
    check_out = snapshot.check_out
    if check_in is None or check_out is None:
        return None
    return (check_out - check_in).days


# =============================================================================
# Score Engine
# =============================================================================


def calculate_score(
    snapshot: FormSnapshot,
    facts: Optional[VerificationFacts] = None,
    today: Optional[date] = None,
) -> ScoreResult:
    """
    Calculate the trust score for a guest.

    Args:
        snapshot: Guest form snapshot
        facts: Verification facts gathered so far (empty facts if None)
        today: Calendar date for the last-minute rule (defaults to today)

    Returns:
        ScoreResult with the clamped score and ordered adjustments
    """
    facts = facts or VerificationFacts()
    adjustments: list[ScoreAdjustment] = []

    # === Deductions ===

    if snapshot.purpose == StayPurpose.SPECIAL_OCCASION:
        adjustments.append(ScoreAdjustment("Special occasion/birthday", SPECIAL_OCCASION_POINTS))

    if snapshot.guest_count > HIGH_GUEST_COUNT_THRESHOLD:
        adjustments.append(ScoreAdjustment("6+ guests", HIGH_GUEST_COUNT_POINTS))

    if snapshot.non_overnight_count > 0:
        adjustments.append(
            ScoreAdjustment("Additional (non-overnight) visitors", NON_OVERNIGHT_GUESTS_POINTS)
        )

    if snapshot.traveling_near_home:
        adjustments.append(ScoreAdjustment("Booking within 20 miles of home", NEAR_HOME_POINTS))

    if not snapshot.used_str_before:
        adjustments.append(ScoreAdjustment("First-time STR guest", FIRST_TIME_POINTS))

    if is_last_minute_booking(snapshot, today):
        adjustments.append(
            ScoreAdjustment("Booking within 48 hours of check-in", LAST_MINUTE_POINTS)
        )

    # === Bonuses ===

    if snapshot.children_count > 0:
        adjustments.append(ScoreAdjustment("Group includes minors under 12", CHILDREN_POINTS))

    nights = stay_length(snapshot)
    if nights is not None and nights > LONG_STAY_NIGHTS:
        adjustments.append(ScoreAdjustment("Booking for over 7 nights", LONG_STAY_POINTS))

    if facts.review_count > WELL_REVIEWED_THRESHOLD:
        adjustments.append(ScoreAdjustment("Well-reviewed on platform", WELL_REVIEWED_POINTS))
    elif facts.review_count > 0:
        adjustments.append(ScoreAdjustment("Has platform reviews", HAS_REVIEWS_POINTS))

    if facts.id_verified:
        adjustments.append(ScoreAdjustment("Verified background check", ID_VERIFIED_POINTS))

    if snapshot.used_str_before and snapshot.stay_links:
        adjustments.append(
            ScoreAdjustment("Previous stays provided with links", PREVIOUS_STAYS_POINTS)
        )

    total = BASE_SCORE + sum(adjustment.points for adjustment in adjustments)
    score = max(MIN_SCORE, min(MAX_SCORE, total))

    return ScoreResult(score=score, adjustments=tuple(adjustments))
