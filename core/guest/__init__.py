"""
CASL Key - Guest Form Module

The FormSnapshot collected over four steps and the pure validation rules
that gate each step transition.
"""

from core.guest.schema import (
    BookingPlatform,
    StayPurpose,
    FormSnapshot,
    NUMBER_OF_STEPS,
    FINAL_STEP,
    STEP_NAMES,
    IDENTITY_FIELDS,
    FREE_TEXT_FIELDS,
    parse_date,
    split_links,
)
from core.guest.validation import (
    STEP_FIELDS,
    validate_step,
    validate_field,
    validate_all_steps,
    is_step_valid,
    is_valid_url,
    error_key_for,
)

__all__ = [
    # Schema
    "BookingPlatform",
    "StayPurpose",
    "FormSnapshot",
    "NUMBER_OF_STEPS",
    "FINAL_STEP",
    "STEP_NAMES",
    "IDENTITY_FIELDS",
    "FREE_TEXT_FIELDS",
    "parse_date",
    "split_links",
    # Validation
    "STEP_FIELDS",
    "validate_step",
    "validate_field",
    "validate_all_steps",
    "is_step_valid",
    "is_valid_url",
    "error_key_for",
]
