"""
CASL Key - Trust Module

Score engine, trust level mapping, redacted host summary and the memoised
trust preview.
"""

from core.trust.scoring import (
    ScoreAdjustment,
    ScoreResult,
    calculate_score,
    days_until_check_in,
    is_last_minute_booking,
    stay_length,
)
from core.trust.levels import (
    TrustLevel,
    TrustFlags,
    HostSummary,
    SCORE_RANGES,
    TRUST_LEVEL_DISPLAY,
    trust_level_for,
    score_range_for,
    result_message,
    trust_flags,
    build_host_summary,
)
from core.trust.preview import (
    TrustPreview,
    PreviewCache,
    preview_key,
)

__all__ = [
    # Scoring
    "ScoreAdjustment",
    "ScoreResult",
    "calculate_score",
    "days_until_check_in",
    "is_last_minute_booking",
    "stay_length",
    # Levels
    "TrustLevel",
    "TrustFlags",
    "HostSummary",
    "SCORE_RANGES",
    "TRUST_LEVEL_DISPLAY",
    "trust_level_for",
    "score_range_for",
    "result_message",
    "trust_flags",
    "build_host_summary",
    # Preview
    "TrustPreview",
    "PreviewCache",
    "preview_key",
]
