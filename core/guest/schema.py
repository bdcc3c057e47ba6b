"""
Guest Form Schema - Guest-Supplied Data for One Verification Attempt

Defines the FormSnapshot record collected across the four workflow steps:

Step 0: User identification (identity fields, platform profiles, consent)
Step 1: Booking info (platform, listing, dates)
Step 2: Stay intent (purpose, guest counts, locality, rental history)
Step 3: Agreement (three house-rule acknowledgements)

Every field has a defined default so absence is never ambiguous with empty.
The snapshot is immutable; each change produces a new snapshot.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Final, Optional, Union
from urllib.parse import urlparse


# =============================================================================
# Enums
# =============================================================================


class BookingPlatform(Enum):
    """Platform the stay was booked on."""

    AIRBNB = "Airbnb"
    VRBO = "VRBO"
    OTHER = "Other"


class StayPurpose(Enum):
    """Selectable reasons for the stay."""

    BUSINESS = "Business"
    FAMILY_VISIT = "Family Visit"
    VACATION = "Vacation"
    SPECIAL_OCCASION = "Special Occasion"
    RELOCATION = "Relocation"
    MEDICAL_STAY = "Medical Stay"
    OTHER = "Other"

    @classmethod
    def from_string(cls, value: str) -> Optional["StayPurpose"]:
        """Parse a purpose label, case-insensitively."""
        if not value:
            return None
        normalised = " ".join(value.split()).lower()
        for purpose in cls:
            if purpose.value.lower() == normalised:
                return purpose
        return None


# =============================================================================
# Constants
# =============================================================================

NUMBER_OF_STEPS: Final[int] = 4
FINAL_STEP: Final[int] = NUMBER_OF_STEPS - 1

STEP_NAMES: Final[tuple[str, ...]] = (
    "User Identification",
    "Booking Info",
    "Stay Intent",
    "Agreement",
)

IDENTITY_FIELDS: Final[tuple[str, ...]] = ("name", "email", "phone", "address")

PROFILE_FIELDS: Final[tuple[str, ...]] = (
    "airbnb_profile",
    "vrbo_profile",
    "other_platform_profile",
)

# Typed fields - validation is debounced while the guest is typing
FREE_TEXT_FIELDS: Final[frozenset[str]] = frozenset({
    "name",
    "email",
    "phone",
    "address",
    "airbnb_profile",
    "vrbo_profile",
    "other_platform_profile",
    "listing_link",
    "other_purpose",
    "zip_code",
    "previous_stay_links",
})

# Delimiters accepted between previous stay links
LINK_DELIMITER_REGEX: Final = re.compile(r"[,;\n\r]+")

PHONE_REGEX: Final = re.compile(r"^\+?\d{10,15}$")
PHONE_STRIP_REGEX: Final = re.compile(r"[\s\-()]")

NumberInput = Union[int, float, str]


# =============================================================================
# Helpers
# =============================================================================


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a form date value.

    Accepts ``date``/``datetime`` objects and ISO-8601 strings
    (``2026-05-01`` or ``2026-05-01T14:00:00``). Returns None when the
    value is empty or unparseable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def to_number(value: Any, default: float) -> float:
    """Convert a form number to float, falling back to default when missing or invalid."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def is_valid_url(value: str) -> bool:
    """Check if a string is an absolute http(s) URL with a host."""
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def split_links(text: str) -> list[str]:
    """Split a free-text list of links on commas, semicolons and newlines."""
    if not text:
        return []
    return [link.strip() for link in LINK_DELIMITER_REGEX.split(text) if link.strip()]


# =============================================================================
# Form Snapshot
# =============================================================================


@dataclass(frozen=True)
class FormSnapshot:
    """
    Guest-supplied fields for the current verification attempt.

    Frozen: use ``with_changes`` to derive an updated snapshot.
    """

    # === STEP 0: USER IDENTIFICATION ===
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    airbnb_profile: str = ""
    vrbo_profile: str = ""
    other_platform_profile: str = ""
    consent_to_background_check: bool = False

    # === STEP 1: BOOKING INFO ===
    platform: str = ""
    listing_link: str = ""
    check_in_date: str = ""
    check_out_date: str = ""

    # === STEP 2: STAY INTENT ===
    stay_purpose: str = ""
    other_purpose: str = ""
    total_guests: NumberInput = 1
    children_under_12: NumberInput = 0
    non_overnight_guests: NumberInput = 0
    traveling_near_home: bool = False
    zip_code: str = ""
    used_str_before: bool = False
    previous_stay_links: str = ""

    # === STEP 3: AGREEMENT ===
    agree_to_rules: bool = False
    agree_no_parties: bool = False
    understand_flagging: bool = False

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """All snapshot field names in declaration order."""
        return tuple(f.name for f in dataclasses.fields(cls))

    def with_changes(self, **changes: Any) -> "FormSnapshot":
        """
        Return a new snapshot with the given fields replaced.

        Raises:
            KeyError: If a field name is unknown
        """
        known = set(self.field_names())
        unknown = [name for name in changes if name not in known]
        if unknown:
            raise KeyError(f"Unknown form field(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)

    # === DERIVED VALUES ===

    @property
    def guest_count(self) -> float:
        return to_number(self.total_guests, 1)

    @property
    def children_count(self) -> float:
        return to_number(self.children_under_12, 0)

    @property
    def non_overnight_count(self) -> float:
        return to_number(self.non_overnight_guests, 0)

    @property
    def purpose(self) -> Optional[StayPurpose]:
        return StayPurpose.from_string(self.stay_purpose)

    @property
    def check_in(self) -> Optional[date]:
        return parse_date(self.check_in_date)

    @property
    def check_out(self) -> Optional[date]:
        return parse_date(self.check_out_date)

    @property
    def profile_links(self) -> list[str]:
        """Non-blank platform profile URLs supplied by the guest."""
        links = (self.airbnb_profile, self.vrbo_profile, self.other_platform_profile)
        return [str(link).strip() for link in links if link and str(link).strip()]

    @property
    def has_profile_link(self) -> bool:
        return bool(self.profile_links)

    @property
    def stay_links(self) -> list[str]:
        return split_links(self.previous_stay_links or "")

    # === SERIALISATION ===

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to dictionary for persistence."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FormSnapshot":
        """Create a snapshot from a dictionary, ignoring unknown keys."""
        known = set(cls.field_names())
        return cls(**{key: value for key, value in data.items() if key in known})
