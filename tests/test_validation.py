"""
Tests for Guest Form Validation

Tests covering:
1. Step 0 identity fields and the verification requirement
2. Step 1 booking dates and listing link
3. Step 2 stay intent, guest counts, locality and rental history
4. Step 3 agreements
5. Field-level helpers and whole-form summary
"""

from __future__ import annotations

import pytest

from core.guest.schema import FormSnapshot, StayPurpose, split_links
from core.guest.validation import (
    error_key_for,
    is_already_verified,
    is_step_valid,
    validate_all_steps,
    validate_field,
    validate_step,
)
from core.verification.schema import VerificationFacts, VerificationMethod, VerificationStatus

from tests.conftest import (
    AGREEMENT_FIELDS,
    BOOKING_FIELDS,
    IDENTITY_FIELDS,
    PROFILE_FIELDS,
    STAY_FIELDS,
    TODAY,
    iso,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def identified():
    """Step 0 filled in with a platform profile."""
    return FormSnapshot(**IDENTITY_FIELDS, **PROFILE_FIELDS)


@pytest.fixture
def booked():
    return FormSnapshot(**BOOKING_FIELDS)


@pytest.fixture
def stay():
    return FormSnapshot(**STAY_FIELDS)


# =============================================================================
# Step 0: User Identification
# =============================================================================


class TestUserIdentification:
    """Tests for identity fields and the verification requirement."""

    def test_empty_form_reports_every_field(self):
        """Every required identity field and the verification rule fail on an empty form."""
        errors = validate_step(FormSnapshot(), 0)

        assert errors["name"] == "Name is required"
        assert errors["email"] == "Email is required"
        assert errors["phone"] == "Phone number is required"
        assert errors["address"] == "Address is required"
        assert "verification" in errors

    def test_valid_identity_with_profile(self, identified):
        assert validate_step(identified, 0) == {}

    def test_short_name(self, identified):
        errors = validate_step(identified.with_changes(name="J"), 0)
        assert errors == {"name": "Name must be at least 2 characters"}

    def test_invalid_email(self, identified):
        errors = validate_step(identified.with_changes(email="jordan@example"), 0)
        assert errors == {"email": "Please enter a valid email address"}

    @pytest.mark.parametrize("phone", ["5551234567", "+44 20 7946 0958", "(555) 123-4567"])
    def test_phone_formatting_is_ignored(self, identified, phone):
        assert "phone" not in validate_step(identified.with_changes(phone=phone), 0)

    @pytest.mark.parametrize("phone", ["12345", "555-CALL-NOW", "1234567890123456"])
    def test_invalid_phone(self, identified, phone):
        errors = validate_step(identified.with_changes(phone=phone), 0)
        assert errors["phone"] == "Please enter a valid phone number (10-15 digits)"

    def test_incomplete_address(self, identified):
        errors = validate_step(identified.with_changes(address="1 Main"), 0)
        assert errors == {"address": "Please enter a complete address"}

    def test_no_verification_method(self):
        """Without a profile, consent or prior verification the step is blocked."""
        errors = validate_step(FormSnapshot(**IDENTITY_FIELDS), 0)
        assert list(errors) == ["verification"]

    def test_consent_satisfies_verification(self):
        snapshot = FormSnapshot(**IDENTITY_FIELDS, consent_to_background_check=True)
        assert validate_step(snapshot, 0) == {}

    def test_verified_identity_satisfies_verification(self):
        facts = VerificationFacts(is_verified=True)
        assert validate_step(FormSnapshot(**IDENTITY_FIELDS), 0, facts) == {}

    @pytest.mark.parametrize(
        "status,expected",
        [
            (VerificationStatus.VERIFIED, True),
            (VerificationStatus.MANUAL_REVIEW, True),
            (VerificationStatus.PROCESSING, False),
            (VerificationStatus.REJECTED, False),
        ],
    )
    def test_screenshot_status_counts_as_verified(self, status, expected):
        facts = VerificationFacts()
        facts.apply_status(VerificationMethod.SCREENSHOT, status)

        assert is_already_verified(facts) is expected

    def test_invalid_profile_url(self, identified):
        errors = validate_step(identified.with_changes(airbnb_profile="airbnb.com/me"), 0)
        assert errors == {"verification": "Airbnb profile must be a valid URL"}

    def test_later_profile_error_wins(self):
        """Profile problems share one key; the last one checked is reported."""
        snapshot = FormSnapshot(
            **IDENTITY_FIELDS,
            airbnb_profile="bad",
            other_platform_profile="also bad",
        )
        errors = validate_step(snapshot, 0)
        assert errors["verification"] == "Platform profile must be a valid URL"


# =============================================================================
# Step 1: Booking Info
# =============================================================================


class TestBookingInfo:
    """Tests for platform, listing link and date window."""

    def test_valid_booking(self, booked):
        assert validate_step(booked, 1, today=TODAY) == {}

    def test_missing_fields(self):
        errors = validate_step(FormSnapshot(), 1, today=TODAY)
        assert errors == {
            "platform": "Please select a booking platform",
            "listing_link": "Listing link is required",
            "check_in_date": "Check-in date is required",
            "check_out_date": "Check-out date is required",
        }

    def test_listing_link_must_be_http(self, booked):
        errors = validate_step(booked.with_changes(listing_link="ftp://example.com/x"), 1, today=TODAY)
        assert errors["listing_link"] == "Please enter a valid URL beginning with http:// or https://"

    def test_check_out_same_day_rejected(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(5), check_out_date=iso(5))
        errors = validate_step(snapshot, 1, today=TODAY)
        assert errors == {"check_out_date": "Check-out date must be after check-in date"}

    def test_one_night_stay_accepted(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(5), check_out_date=iso(6))
        assert validate_step(snapshot, 1, today=TODAY) == {}

    def test_check_in_too_far_in_past(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(-31), check_out_date=iso(-29))
        errors = validate_step(snapshot, 1, today=TODAY)
        assert errors == {"check_in_date": "Check-in date cannot be more than 30 days in the past"}

    def test_check_in_thirty_days_ago_allowed(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(-30), check_out_date=iso(-28))
        assert validate_step(snapshot, 1, today=TODAY) == {}

    def test_check_in_more_than_a_year_ahead(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(400), check_out_date=iso(402))
        errors = validate_step(snapshot, 1, today=TODAY)
        assert errors == {"check_in_date": "Check-in date cannot be more than 1 year in the future"}

    def test_stay_longer_than_a_year(self, booked):
        snapshot = booked.with_changes(check_in_date=iso(1), check_out_date=iso(367))
        errors = validate_step(snapshot, 1, today=TODAY)
        assert errors == {"check_out_date": "Stay duration cannot exceed 365 days"}

    def test_unparseable_date(self, booked):
        errors = validate_step(booked.with_changes(check_in_date="next tuesday"), 1, today=TODAY)
        assert errors == {"check_in_date": "Please enter a valid check-in date"}


# =============================================================================
# Step 2: Stay Intent
# =============================================================================


class TestStayIntent:
    """Tests for purpose, guest counts, locality and rental history."""

    def test_valid_stay(self, stay):
        assert validate_step(stay, 2) == {}

    def test_purpose_required(self, stay):
        errors = validate_step(stay.with_changes(stay_purpose=""), 2)
        assert errors == {"stay_purpose": "Please select a purpose for your stay"}

    def test_other_purpose_needs_description(self, stay):
        errors = validate_step(stay.with_changes(stay_purpose="Other"), 2)
        assert errors == {"other_purpose": "Please specify your purpose"}

    def test_special_occasion_is_selectable(self, stay):
        snapshot = stay.with_changes(stay_purpose="Special Occasion")
        assert snapshot.purpose == StayPurpose.SPECIAL_OCCASION
        assert validate_step(snapshot, 2) == {}

    @pytest.mark.parametrize(
        "guests,message",
        [
            (0, "At least 1 guest is required"),
            (21, "Maximum 20 guests allowed"),
            (2.5, "Number of guests must be a whole number"),
        ],
    )
    def test_guest_count_limits(self, stay, guests, message):
        errors = validate_step(stay.with_changes(total_guests=guests), 2)
        assert errors["total_guests"] == message

    def test_children_cannot_exceed_guests(self, stay):
        errors = validate_step(stay.with_changes(total_guests=2, children_under_12=3), 2)
        assert errors == {"children_under_12": "Number of children cannot exceed total guests"}

    def test_guest_counts_accept_strings(self, stay):
        assert validate_step(stay.with_changes(total_guests="4", children_under_12="1"), 2) == {}

    def test_non_numeric_counts_rejected(self, stay):
        snapshot = stay.with_changes(
            total_guests="abc",
            children_under_12="two",
            non_overnight_guests="-",
        )

        errors = validate_step(snapshot, 2)

        assert errors == {
            "total_guests": "Number of guests must be a whole number",
            "children_under_12": "Number of children must be a whole number",
            "non_overnight_guests": "Number of non-overnight guests must be a whole number",
        }

    def test_zip_required_when_near_home(self, stay):
        errors = validate_step(stay.with_changes(traveling_near_home=True), 2)
        assert errors == {"zip_code": "ZIP code is required when staying near home"}

    @pytest.mark.parametrize("zip_code", ["12345", "12345-6789"])
    def test_valid_zip(self, stay, zip_code):
        snapshot = stay.with_changes(traveling_near_home=True, zip_code=zip_code)
        assert validate_step(snapshot, 2) == {}

    def test_invalid_zip(self, stay):
        snapshot = stay.with_changes(traveling_near_home=True, zip_code="1234")
        errors = validate_step(snapshot, 2)
        assert errors["zip_code"] == "Please enter a valid ZIP code (e.g., 12345 or 12345-6789)"

    def test_previous_stay_links_must_be_urls(self, stay):
        snapshot = stay.with_changes(previous_stay_links="https://a.com/1; not a link")
        errors = validate_step(snapshot, 2)
        assert errors == {"previous_stay_links": "Please provide valid URLs for previous stays"}

    def test_at_most_ten_previous_stay_links(self, stay):
        links = ",".join(f"https://a.com/{i}" for i in range(11))
        errors = validate_step(stay.with_changes(previous_stay_links=links), 2)
        assert errors == {"previous_stay_links": "Please provide no more than 10 previous stay links"}

    def test_links_ignored_without_history(self, stay):
        snapshot = stay.with_changes(used_str_before=False, previous_stay_links="junk")
        assert validate_step(snapshot, 2) == {}

    def test_split_links_delimiters(self):
        assert split_links("https://a.com, https://b.com;https://c.com\nhttps://d.com") == [
            "https://a.com",
            "https://b.com",
            "https://c.com",
            "https://d.com",
        ]


# =============================================================================
# Step 3: Agreement
# =============================================================================


class TestAgreement:

    def test_all_agreements_required(self):
        errors = validate_step(FormSnapshot(), 3)
        assert set(errors) == {"agree_to_rules", "agree_no_parties", "understand_flagging"}

    def test_all_accepted(self):
        assert validate_step(FormSnapshot(**AGREEMENT_FIELDS), 3) == {}


# =============================================================================
# Helpers
# =============================================================================


class TestValidationHelpers:
    """Tests for field-level lookups and the whole-form summary."""

    def test_invalid_step_index(self):
        with pytest.raises(ValueError):
            validate_step(FormSnapshot(), 4)

    def test_error_key_mapping(self):
        assert error_key_for("airbnb_profile") == "verification"
        assert error_key_for("traveling_near_home") == "zip_code"
        assert error_key_for("email") == "email"

    def test_validate_field_reports_shared_key(self):
        snapshot = FormSnapshot(**IDENTITY_FIELDS, vrbo_profile="nope")
        message = validate_field(snapshot, 0, "vrbo_profile")
        assert message == "VRBO profile must be a valid URL"

    def test_validate_field_valid(self, identified):
        assert validate_field(identified, 0, "email") is None

    def test_is_step_valid(self):
        assert is_step_valid({})
        assert is_step_valid({"name": "  "})
        assert not is_step_valid({"name": "Name is required"})
        assert not is_step_valid(None)

    def test_validate_all_steps(self, complete_snapshot):
        summary = validate_all_steps(complete_snapshot, today=TODAY)

        assert summary["is_valid"] is True
        assert summary["error_count"] == 0
        assert [step["name"] for step in summary["steps"]] == [
            "User Identification",
            "Booking Info",
            "Stay Intent",
            "Agreement",
        ]

    def test_validate_all_steps_empty_form(self):
        summary = validate_all_steps(FormSnapshot(), today=TODAY)

        assert summary["is_valid"] is False
        assert summary["errors"]["Agreement"]
        assert summary["errors"]["Stay Intent"] == {"stay_purpose": "Please select a purpose for your stay"}
