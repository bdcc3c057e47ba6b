"""
Formatting utilities.
"""

from core.trust.levels import TRUST_LEVEL_DISPLAY, TrustLevel
from core.trust.scoring import ScoreAdjustment


def format_points(points: int) -> str:
    """
    Format a score adjustment with an explicit sign.

    Args:
        points: Adjustment in score points.

    Returns:
        Signed string, e.g. "+10" or "-5".
    """
    return f"{points:+d}"


def format_adjustment(adjustment: ScoreAdjustment) -> str:
    """
    Format a score adjustment as a single line.

    Args:
        adjustment: The adjustment to format.

    Returns:
        Line such as "Verified platform account (+10)".
    """
    return f"{adjustment.reason} ({format_points(adjustment.points)})"


def format_trust_level(level: TrustLevel) -> str:
    """Display label for a trust level."""
    return TRUST_LEVEL_DISPLAY[level]["label"]
