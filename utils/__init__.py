"""
Utility modules for the verification service.
"""

from .formatting import format_adjustment, format_points, format_trust_level
from .config import Config

__all__ = ["format_adjustment", "format_points", "format_trust_level", "Config"]
