"""Step definitions and validators for the admission and renewal wizards.

Each validator is a pure function ``(data) -> {field: message} | None``.
They receive a read-only view of the whole flat form data and only look
at the keys their step owns.

Steps declare the keys they write. ``check_step_namespaces`` runs at
import time so two steps can never silently claim the same key; only
``vertical`` is shared.
"""

from datetime import date
from typing import Any, Iterable, Mapping

from admissions.schemas.validators import (
    group_state,
    is_blank,
    is_truthy_flag,
    is_valid_mobile,
    is_valid_pin_code,
)
from admissions.services.documents import NEEDS_RESELECT, has_file
from admissions.services.wizard import Step

VERTICALS = ("boys-hostel", "girls-ashram", "dharamshala")
SHARED_KEYS = frozenset({"vertical"})

APPLICATION_DOCUMENT_FIELDS = ("photoFile", "birthCertificate", "marksheet", "recommendationLetter")
RENEWAL_DOCUMENT_FIELDS = ("marksheet_latest", "id_proof", "address_proof", "photo")

REFERENCE_2_GROUP = ("ref2Name", "ref2Mobile", "ref2Year")

MOBILE_MESSAGE = "Valid 10-digit mobile number is required"
RESELECT_MESSAGE = "Please re-select this file"


def check_step_namespaces(steps: Iterable[Step], shared: Iterable[str] = SHARED_KEYS) -> None:
    """Raise ValueError if two steps own the same form key."""
    shared = set(shared)
    owners: dict[str, str] = {}
    collisions = []
    for step in steps:
        for key in step.owned_keys:
            if key in shared:
                continue
            if key in owners and owners[key] != step.id:
                collisions.append(f"{key} ({owners[key]}, {step.id})")
            owners.setdefault(key, step.id)
    if collisions:
        raise ValueError(f"Form keys claimed by more than one step: {', '.join(collisions)}")


# ── Field helpers ────────────────────────────────────────────

def _require(errors: dict, data: Mapping[str, Any], key: str, message: str) -> None:
    if is_blank(data.get(key)):
        errors[key] = message


def _require_mobile(errors: dict, data: Mapping[str, Any], key: str, message: str = MOBILE_MESSAGE) -> None:
    if not is_valid_mobile(data.get(key)):
        errors[key] = message


def _require_date(errors: dict, data: Mapping[str, Any], key: str, message: str) -> None:
    value = data.get(key)
    if is_blank(value):
        errors[key] = message
        return
    try:
        date.fromisoformat(str(value))
    except ValueError:
        errors[key] = "Enter a valid date (YYYY-MM-DD)"


def _require_file(errors: dict, data: Mapping[str, Any], key: str, message: str) -> None:
    value = data.get(key)
    if has_file(value):
        return
    if isinstance(value, dict) and value.get("status") == NEEDS_RESELECT:
        errors[key] = RESELECT_MESSAGE
    else:
        errors[key] = message


def _check_optional_file(errors: dict, data: Mapping[str, Any], key: str) -> None:
    value = data.get(key)
    if isinstance(value, dict) and value.get("status") == NEEDS_RESELECT:
        errors[key] = RESELECT_MESSAGE


def _require_flag(errors: dict, data: Mapping[str, Any], key: str, message: str) -> None:
    if not is_truthy_flag(data.get(key)):
        errors[key] = message


def _result(errors: dict) -> dict[str, str] | None:
    return errors or None


# ── Application wizard ───────────────────────────────────────

def validate_personal_details(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require(errors, data, "firstName", "First name is required")
    _require(errors, data, "lastName", "Last name is required")
    _require_date(errors, data, "dob", "Date of birth is required")
    _require(errors, data, "gender", "Gender is required")
    _require(errors, data, "bloodGroup", "Blood group is required")
    _require(errors, data, "addressLine1", "Address line 1 is required")
    _require(errors, data, "city", "City is required")
    _require(errors, data, "state", "State is required")
    if not is_valid_pin_code(data.get("pinCode")):
        errors["pinCode"] = "Valid 6-digit PIN code is required"
    _require(errors, data, "fatherName", "Father name is required")
    _require_mobile(errors, data, "fatherMobile")
    _require(errors, data, "motherName", "Mother name is required")
    if not is_blank(data.get("motherMobile")):
        _require_mobile(errors, data, "motherMobile")
    _require(errors, data, "emergencyContactPerson", "Emergency contact person is required")
    _require_mobile(errors, data, "emergencyMobile", "Valid 10-digit emergency mobile is required")
    _require(errors, data, "emergencyRelationship", "Relationship is required")
    return _result(errors)


def validate_academic_info(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require(errors, data, "institution", "Institution name is required")
    _require(errors, data, "course", "Course name is required")
    _require(errors, data, "year", "Year is required")
    _require(errors, data, "percentage", "Percentage/CGPA is required")
    _require(errors, data, "qualification", "Qualification is required")
    _require(errors, data, "board", "Board/University is required")
    _require(errors, data, "passingYear", "Passing year is required")
    return _result(errors)


def validate_hostel_preferences(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    if data.get("vertical") not in VERTICALS:
        errors["vertical"] = "Select a hostel"
    _require(errors, data, "roomType", "Room type is required")
    _require(errors, data, "duration", "Duration is required")
    _require_date(errors, data, "joiningDate", "Joining date is required")
    return _result(errors)


def validate_references(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require(errors, data, "ref1Name", "Ex-student name is required")
    _require_mobile(errors, data, "ref1Mobile")
    _require(errors, data, "ref1Year", "Year of stay is required")

    # The second reference is optional, but never stored half-filled
    if group_state(data, REFERENCE_2_GROUP) != "absent":
        _require(errors, data, "ref2Name", "Ex-student name is required")
        _require_mobile(errors, data, "ref2Mobile")
        _require(errors, data, "ref2Year", "Year of stay is required")
    return _result(errors)


def validate_documents(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require_file(errors, data, "photoFile", "Photo is required")
    _require_file(errors, data, "birthCertificate", "Birth certificate is required")
    _require_file(errors, data, "marksheet", "Marksheet is required")
    _check_optional_file(errors, data, "recommendationLetter")
    return _result(errors)


def validate_declaration(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require_flag(
        errors, data, "declarationAccepted",
        "Please accept the declaration to submit your application",
    )
    return _result(errors)


APPLICATION_STEPS = (
    Step(
        id="personal-details",
        title="Personal Details",
        description="Basic information about you",
        validate=validate_personal_details,
        fields=(
            "firstName", "middleName", "lastName", "dob", "gender", "bloodGroup",
            "addressLine1", "addressLine2", "city", "state", "pinCode",
            "fatherName", "fatherMobile", "motherName", "motherMobile",
            "emergencyContactPerson", "emergencyMobile", "emergencyRelationship",
        ),
    ),
    Step(
        id="academic-info",
        title="Academic Information",
        description="Educational details",
        validate=validate_academic_info,
        fields=("institution", "course", "year", "percentage", "qualification", "board", "passingYear"),
    ),
    Step(
        id="hostel-preferences",
        title="Hostel Preferences",
        description="Room and duration preferences",
        validate=validate_hostel_preferences,
        fields=("vertical", "roomType", "duration", "joiningDate", "specialRequirements"),
    ),
    Step(
        id="references",
        title="References",
        description="Ex-student references",
        validate=validate_references,
        fields=(
            "ref1Name", "ref1Mobile", "ref1Year", "ref1Relationship",
            "ref2Name", "ref2Mobile", "ref2Year", "ref2Relationship",
        ),
    ),
    Step(
        id="documents",
        title="Documents",
        description="Upload required documents",
        validate=validate_documents,
        file_fields=APPLICATION_DOCUMENT_FIELDS,
    ),
    Step(
        id="review",
        title="Review & Submit",
        description="Review before submitting",
        validate=validate_declaration,
        fields=("declarationAccepted",),
    ),
)


# ── Renewal wizard ───────────────────────────────────────────

CONSENT_FIELDS = (
    "consent_data_collection",
    "consent_data_usage",
    "consent_data_sharing",
    "consent_data_retention",
)


def validate_info_review(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require_flag(errors, data, "infoConfirmed", "Please confirm that the information above is correct")
    return _result(errors)


def validate_renewal_documents(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    _require_file(errors, data, "marksheet_latest", "Latest marksheet is required")
    _require_file(errors, data, "id_proof", "ID proof is required")
    _check_optional_file(errors, data, "address_proof")
    _check_optional_file(errors, data, "photo")
    return _result(errors)


def validate_fee_topup(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    if data.get("paymentStatus") != "PAID":
        errors["paymentStatus"] = "Complete the fee payment to continue"
    _require(errors, data, "paymentReference", "Payment reference is required")
    return _result(errors)


def validate_consent(data: Mapping[str, Any]) -> dict[str, str] | None:
    errors: dict[str, str] = {}
    for key in CONSENT_FIELDS:
        _require_flag(errors, data, key, "This consent is required to renew")
    _require_flag(errors, data, "agreedToTerms", "Please accept the terms and conditions")
    _require_flag(errors, data, "agreedToPrivacy", "Please accept the privacy policy")
    return _result(errors)


RENEWAL_STEPS = (
    Step(
        id="review",
        title="Review Info",
        description="Confirm your current details",
        validate=validate_info_review,
        fields=("infoConfirmed",),
    ),
    Step(
        id="documents",
        title="Documents",
        description="Upload updated documents",
        validate=validate_renewal_documents,
        file_fields=RENEWAL_DOCUMENT_FIELDS,
    ),
    Step(
        id="payment",
        title="Payment",
        description="Pay fees for the next six months",
        validate=validate_fee_topup,
        fields=("paymentStatus", "paymentReference", "paymentMethod"),
    ),
    Step(
        id="consent",
        title="Consent",
        description="Data protection consent",
        validate=validate_consent,
        fields=CONSENT_FIELDS + ("consent_biometric", "agreedToTerms", "agreedToPrivacy"),
    ),
)


check_step_namespaces(APPLICATION_STEPS)
check_step_namespaces(RENEWAL_STEPS)
