"""
Guest Validation - Field-Level Rules for Each Workflow Step

Pure functions that compute a field -> message map for one step of the
guest form. An empty map means the step is valid.

Invalid input is never an exception here: the map IS the failure. Messages
are written in plain English for guest-facing display.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Final, Optional

from core.guest.schema import (
    FINAL_STEP,
    PHONE_REGEX,
    PHONE_STRIP_REGEX,
    STEP_NAMES,
    FormSnapshot,
    StayPurpose,
    is_valid_url,
)
from core.verification.schema import (
    ACCEPTED_STATUSES,
    VerificationFacts,
    VerificationStatus,
)


# =============================================================================
# Constants
# =============================================================================

EMAIL_REGEX: Final = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_REGEX: Final = re.compile(r"^\d{5}(-\d{4})?$")

NAME_MIN_LENGTH: Final[int] = 2
NAME_MAX_LENGTH: Final[int] = 100
EMAIL_MAX_LENGTH: Final[int] = 254
ADDRESS_MIN_LENGTH: Final[int] = 10
ADDRESS_MAX_LENGTH: Final[int] = 200
LISTING_LINK_MAX_LENGTH: Final[int] = 500
OTHER_PURPOSE_MIN_LENGTH: Final[int] = 3
OTHER_PURPOSE_MAX_LENGTH: Final[int] = 200

MAX_DAYS_IN_PAST: Final[int] = 30
MAX_STAY_NIGHTS: Final[int] = 365
MAX_GUESTS: Final[int] = 20
MAX_NON_OVERNIGHT_GUESTS: Final[int] = 50
MAX_PREVIOUS_STAY_LINKS: Final[int] = 10

# Fields owned by each step; field-level validation only reports these
STEP_FIELDS: Final[dict[int, tuple[str, ...]]] = {
    0: (
        "name",
        "email",
        "phone",
        "address",
        "verification",
        "airbnb_profile",
        "vrbo_profile",
        "other_platform_profile",
        "consent_to_background_check",
    ),
    1: ("platform", "listing_link", "check_in_date", "check_out_date"),
    2: (
        "stay_purpose",
        "other_purpose",
        "total_guests",
        "children_under_12",
        "non_overnight_guests",
        "traveling_near_home",
        "zip_code",
        "used_str_before",
        "previous_stay_links",
    ),
    3: ("agree_to_rules", "agree_no_parties", "understand_flagging"),
}

# Inputs whose error is reported under a different key
ERROR_KEY_FOR_FIELD: Final[dict[str, str]] = {
    "airbnb_profile": "verification",
    "vrbo_profile": "verification",
    "other_platform_profile": "verification",
    "consent_to_background_check": "verification",
    "traveling_near_home": "zip_code",
    "used_str_before": "previous_stay_links",
}

PROFILE_URL_MESSAGES: Final[tuple[tuple[str, str], ...]] = (
    ("airbnb_profile", "Airbnb profile must be a valid URL"),
    ("vrbo_profile", "VRBO profile must be a valid URL"),
    ("other_platform_profile", "Platform profile must be a valid URL"),
)


# =============================================================================
# Helpers
# =============================================================================


def is_already_verified(
    facts: Optional[VerificationFacts],
    verification_status: Optional[VerificationStatus] = None,
) -> bool:
    """
    Check if the guest already satisfies the verification requirement.

    True when the identity lookup reported a verified guest, or the
    screenshot check finished as VERIFIED or MANUAL_REVIEW.
    """
    if facts is not None:
        if facts.is_verified:
            return True
        if verification_status is None:
            verification_status = facts.screenshot_status
    return verification_status in ACCEPTED_STATUSES


def _text(value: Any) -> str:
    return str(value).strip() if value else ""


def _is_unreadable_number(value: Any) -> bool:
    """True for count input that was supplied but is not a number (e.g. "abc")."""
    if value is None or value == "" or isinstance(value, bool):
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return True
    return False


def _add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year + years, day=28)


# =============================================================================
# Step Validators
# =============================================================================


def validate_user_identification(
    snapshot: FormSnapshot,
    facts: Optional[VerificationFacts] = None,
    verification_status: Optional[VerificationStatus] = None,
) -> dict[str, str]:
    """
    Validate step 0: identity fields and the verification requirement.

    Args:
        snapshot: Current form snapshot
        facts: Verification facts gathered so far
        verification_status: Screenshot verification status, when known

    Returns:
        Field -> message map (empty when valid)
    """
    errors: dict[str, str] = {}

    name = _text(snapshot.name)
    if not name:
        errors["name"] = "Name is required"
    elif len(name) < NAME_MIN_LENGTH:
        errors["name"] = "Name must be at least 2 characters"
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = "Name must be less than 100 characters"

    email = _text(snapshot.email)
    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_REGEX.match(email):
        errors["email"] = "Please enter a valid email address"
    elif len(email) > EMAIL_MAX_LENGTH:
        errors["email"] = "Email address is too long"

    phone = _text(snapshot.phone)
    if not phone:
        errors["phone"] = "Phone number is required"
    elif not PHONE_REGEX.match(PHONE_STRIP_REGEX.sub("", phone)):
        errors["phone"] = "Please enter a valid phone number (10-15 digits)"

    address = _text(snapshot.address)
    if not address:
        errors["address"] = "Address is required"
    elif len(address) < ADDRESS_MIN_LENGTH:
        errors["address"] = "Please enter a complete address"
    elif len(address) > ADDRESS_MAX_LENGTH:
        errors["address"] = "Address must be less than 200 characters"

    # === Verification requirement ===
    if (
        not snapshot.has_profile_link
        and not snapshot.consent_to_background_check
        and not is_already_verified(facts, verification_status)
    ):
        errors["verification"] = (
            "Please provide at least one verification method: platform profile link, "
            "screenshot verification, or consent to background check"
        )

    # Later profile problems overwrite earlier ones under the same key
    for field_name, message in PROFILE_URL_MESSAGES:
        link = _text(getattr(snapshot, field_name))
        if link and not is_valid_url(link):
            errors["verification"] = message

    return errors


def validate_booking_info(snapshot: FormSnapshot, today: Optional[date] = None) -> dict[str, str]:
    """
    Validate step 1: platform, listing link and stay dates.

    Args:
        snapshot: Current form snapshot
        today: Calendar date used for the date window (defaults to today)

    Returns:
        Field -> message map (empty when valid)
    """
    errors: dict[str, str] = {}
    today = today or date.today()

    if not _text(snapshot.platform):
        errors["platform"] = "Please select a booking platform"

    listing_link = _text(snapshot.listing_link)
    if not listing_link:
        errors["listing_link"] = "Listing link is required"
    elif not is_valid_url(listing_link):
        errors["listing_link"] = "Please enter a valid URL beginning with http:// or https://"
    elif len(listing_link) > LISTING_LINK_MAX_LENGTH:
        errors["listing_link"] = "URL is too long"

    check_in = snapshot.check_in
    check_out = snapshot.check_out

    if not _text(snapshot.check_in_date):
        errors["check_in_date"] = "Check-in date is required"
    elif check_in is None:
        errors["check_in_date"] = "Please enter a valid check-in date"

    if not _text(snapshot.check_out_date):
        errors["check_out_date"] = "Check-out date is required"
    elif check_out is None:
        errors["check_out_date"] = "Please enter a valid check-out date"

    if check_in is None or check_out is None:
        return errors

    if check_out <= check_in:
        errors["check_out_date"] = "Check-out date must be after check-in date"

    if (today - check_in).days > MAX_DAYS_IN_PAST:
        errors["check_in_date"] = "Check-in date cannot be more than 30 days in the past"

    if check_in > _add_years(today, 1):
        errors["check_in_date"] = "Check-in date cannot be more than 1 year in the future"

    if (check_out - check_in).days > MAX_STAY_NIGHTS:
        errors["check_out_date"] = "Stay duration cannot exceed 365 days"

    return errors


def validate_stay_intent(snapshot: FormSnapshot) -> dict[str, str]:
    """Validate step 2: purpose, guest counts, locality and rental history."""
    errors: dict[str, str] = {}

    stay_purpose = _text(snapshot.stay_purpose)
    if not stay_purpose:
        errors["stay_purpose"] = "Please select a purpose for your stay"

    if snapshot.purpose == StayPurpose.OTHER:
        other_purpose = _text(snapshot.other_purpose)
        if not other_purpose:
            errors["other_purpose"] = "Please specify your purpose"
        elif len(other_purpose) < OTHER_PURPOSE_MIN_LENGTH:
            errors["other_purpose"] = "Purpose description must be at least 3 characters"
        elif len(other_purpose) > OTHER_PURPOSE_MAX_LENGTH:
            errors["other_purpose"] = "Purpose description must be less than 200 characters"

    # === Guest counts ===
    total_guests = snapshot.guest_count
    if _is_unreadable_number(snapshot.total_guests):
        errors["total_guests"] = "Number of guests must be a whole number"
    elif total_guests < 1:
        errors["total_guests"] = "At least 1 guest is required"
    elif total_guests > MAX_GUESTS:
        errors["total_guests"] = "Maximum 20 guests allowed"
    elif not float(total_guests).is_integer():
        errors["total_guests"] = "Number of guests must be a whole number"

    children = snapshot.children_count
    if _is_unreadable_number(snapshot.children_under_12):
        errors["children_under_12"] = "Number of children must be a whole number"
    elif children < 0:
        errors["children_under_12"] = "Number of children cannot be negative"
    elif children > total_guests:
        errors["children_under_12"] = "Number of children cannot exceed total guests"
    elif not float(children).is_integer():
        errors["children_under_12"] = "Number of children must be a whole number"

    non_overnight = snapshot.non_overnight_count
    if _is_unreadable_number(snapshot.non_overnight_guests):
        errors["non_overnight_guests"] = "Number of non-overnight guests must be a whole number"
    elif non_overnight < 0:
        errors["non_overnight_guests"] = "Number of non-overnight guests cannot be negative"
    elif non_overnight > MAX_NON_OVERNIGHT_GUESTS:
        errors["non_overnight_guests"] = "Maximum 50 non-overnight guests allowed"
    elif not float(non_overnight).is_integer():
        errors["non_overnight_guests"] = "Number of non-overnight guests must be a whole number"

    # === Locality ===
    zip_code = _text(snapshot.zip_code)
    if snapshot.traveling_near_home and not zip_code:
        errors["zip_code"] = "ZIP code is required when staying near home"
    elif zip_code and not ZIP_REGEX.match(zip_code):
        errors["zip_code"] = "Please enter a valid ZIP code (e.g., 12345 or 12345-6789)"

    # === Rental history ===
    if snapshot.used_str_before:
        links = snapshot.stay_links
        if any(not is_valid_url(link) for link in links):
            errors["previous_stay_links"] = "Please provide valid URLs for previous stays"
        elif len(links) > MAX_PREVIOUS_STAY_LINKS:
            errors["previous_stay_links"] = "Please provide no more than 10 previous stay links"

    return errors


def validate_agreement(snapshot: FormSnapshot) -> dict[str, str]:
    """Validate step 3: all three agreements must be accepted."""
    errors: dict[str, str] = {}

    if not snapshot.agree_to_rules:
        errors["agree_to_rules"] = "You must agree to follow property rules and regulations"
    if not snapshot.agree_no_parties:
        errors["agree_no_parties"] = "You must agree to the no unauthorized parties or events policy"
    if not snapshot.understand_flagging:
        errors["understand_flagging"] = (
            "You must acknowledge understanding of the terms and flagging policy"
        )

    return errors


# =============================================================================
# Public Entry Points
# =============================================================================


def validate_step(
    snapshot: FormSnapshot,
    step: int,
    facts: Optional[VerificationFacts] = None,
    verification_status: Optional[VerificationStatus] = None,
    today: Optional[date] = None,
) -> dict[str, str]:
    """
    Compute field-level errors for one workflow step.

    Args:
        snapshot: Current form snapshot
        step: Step index (0-3)
        facts: Verification facts (used by step 0 only)
        verification_status: Screenshot verification status (step 0 only)
        today: Calendar date for date rules (step 1 only)

    Returns:
        Field -> message map; empty means the step is valid

    Raises:
        ValueError: If the step index is out of range
    """
    if step == 0:
        return validate_user_identification(snapshot, facts, verification_status)
    if step == 1:
        return validate_booking_info(snapshot, today=today)
    if step == 2:
        return validate_stay_intent(snapshot)
    if step == FINAL_STEP:
        return validate_agreement(snapshot)
    raise ValueError(f"Invalid step index: {step}")


def error_key_for(field_name: str) -> str:
    """Map an input field to the key its error is reported under."""
    return ERROR_KEY_FOR_FIELD.get(field_name, field_name)


def validate_field(
    snapshot: FormSnapshot,
    step: int,
    field_name: str,
    facts: Optional[VerificationFacts] = None,
    verification_status: Optional[VerificationStatus] = None,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Return the error for a single input field, or None when it is valid.

    Inputs that feed a shared rule (profile links, consent) report the
    shared ``verification`` error.
    """
    errors = validate_step(snapshot, step, facts, verification_status, today)
    return errors.get(error_key_for(field_name))


def is_step_valid(errors: Optional[dict[str, str]]) -> bool:
    """Check if an error map represents a valid step."""
    if errors is None:
        return False
    return not any(message and message.strip() for message in errors.values())


def validate_all_steps(
    snapshot: FormSnapshot,
    facts: Optional[VerificationFacts] = None,
    verification_status: Optional[VerificationStatus] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Validate every step and summarise the outcome.

    Returns:
        Dictionary with per-step errors, overall validity and error count
    """
    step_errors = {
        step: validate_step(snapshot, step, facts, verification_status, today)
        for step in range(len(STEP_NAMES))
    }
    return {
        "errors": {STEP_NAMES[step]: errors for step, errors in step_errors.items()},
        "is_valid": all(is_step_valid(errors) for errors in step_errors.values()),
        "error_count": sum(len(errors) for errors in step_errors.values()),
        "steps": [
            {
                "step": step,
                "name": STEP_NAMES[step],
                "errors": len(errors),
                "is_valid": is_step_valid(errors),
            }
            for step, errors in step_errors.items()
        ],
    }
