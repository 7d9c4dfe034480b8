"""Section catalog and validation rules for the profile-completion wizard.

Every section exposes one validator taking the canonical section dict
(see `app.schemas.profile.normalize_section`) and returning a
`SectionValidation`: field-level error strings plus the completion flag.

Shared rules:
  - a required field is satisfied when non-empty after trimming
  - format-checked fields (email, phone, NPI) must also pass their check
  - "yes/no with follow-up": answering yes makes a details field required
  - multi-instance sections (licensure) are complete when at least ONE
    record is fully valid
"""

import enum
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from app.services.questionnaires import QUESTIONNAIRES


class SectionId(str, enum.Enum):
    PERSONAL_IDENTIFIERS = "personal_identifiers"
    PROFESSIONAL_INFORMATION = "professional_information"
    LICENSURE = "licensure"
    DOCUMENT_UPLOADS = "document_uploads"
    QUESTIONNAIRES = "questionnaires"
    DIGITAL_SIGNATURE = "digital_signature"
    OPTIONAL_PREFERENCES = "optional_preferences"


@dataclass
class SectionValidation:
    errors: dict[str, str] = field(default_factory=dict)
    is_complete: bool = False


EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_REGEX = re.compile(r"^\d{5}(-\d{4})?$")

US_STATES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
)

LICENSE_STATUSES = ("Active", "Inactive", "Pending", "Expired")

SPECIALTIES = (
    "Anesthesiology", "Cardiology", "Dermatology", "Emergency Medicine",
    "Family Medicine", "Gastroenterology", "General Surgery", "Hematology",
    "Hospitalist", "Infectious Disease", "Internal Medicine", "Nephrology",
    "Neurology", "Neurosurgery", "Obstetrics & Gynecology", "Oncology",
    "Ophthalmology", "Orthopedic Surgery", "Otolaryngology", "Pathology",
    "Pediatrics", "Physical Medicine & Rehabilitation", "Plastic Surgery",
    "Psychiatry", "Pulmonology", "Radiology", "Rheumatology", "Urology", "Other",
)

MAX_YEARS_EXPERIENCE = 80


# ── Field helpers ────────────────────────────────────────────

def only_digits(value) -> str:
    return re.sub(r"\D", "", str(value or ""))


def clamp_npi(value) -> str:
    return only_digits(value)[:10]


def _blank(value) -> bool:
    return str(value if value is not None else "").strip() == ""


def _parse_date(value: str) -> date | None:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def split_full_name(full_name: str) -> dict[str, str]:
    """Split an identity-provider display name into legal name parts.

    "Ada" → first; "Ada Lovelace" → first/last;
    "Ada King Byron Lovelace" → first / "King Byron" / last.
    """
    parts = full_name.split()
    if not parts:
        return {}
    if len(parts) == 1:
        return {"legal_first_name": parts[0]}
    names = {"legal_first_name": parts[0], "legal_last_name": parts[-1]}
    if len(parts) >= 3:
        names["legal_middle_name"] = " ".join(parts[1:-1])
    return names


# ── Personal identifiers ────────────────────────────────────

_PERSONAL_REQUIRED = (
    "legal_first_name", "legal_last_name", "email", "phone",
    "address", "city", "state", "zip_code",
)


def validate_personal_identifiers(data: dict) -> SectionValidation:
    errors: dict[str, str] = {}
    for name in _PERSONAL_REQUIRED:
        value = str(data.get(name) or "")
        if _blank(value):
            if name == "email":
                errors[name] = "Email is required"
            elif name == "phone":
                errors[name] = "Phone number is required"
            else:
                errors[name] = "This field is required"
        elif name == "email" and not EMAIL_REGEX.match(value.strip()):
            errors[name] = "Invalid email format"
        elif name == "phone" and len(only_digits(value)) != 10:
            errors[name] = "Invalid phone number"
        elif name == "state" and value.strip() not in US_STATES:
            errors[name] = "Select a US state"
        elif name == "zip_code" and not ZIP_REGEX.match(value.strip()):
            errors[name] = "Invalid ZIP code"

    alternate = str(data.get("alternate_phone") or "")
    if not _blank(alternate) and len(only_digits(alternate)) != 10:
        errors["alternate_phone"] = "Invalid phone number"

    return SectionValidation(errors=errors, is_complete=not errors)


# ── Professional information ────────────────────────────────

def validate_professional_information(data: dict) -> SectionValidation:
    errors: dict[str, str] = {}

    npi = str(data.get("npi_number") or "").strip()
    if not npi:
        errors["npi_number"] = "NPI number is required"
    elif not (npi.isdigit() and len(npi) == 10):
        errors["npi_number"] = "NPI must be exactly 10 digits"

    if _blank(data.get("specialty")):
        errors["specialty"] = "Specialty is required"

    years = str(data.get("years_experience") or "").strip()
    if not years:
        errors["years_experience"] = "Years of experience is required"
    elif not years.isdigit() or int(years) > MAX_YEARS_EXPERIENCE:
        errors["years_experience"] = f"Enter a whole number between 0 and {MAX_YEARS_EXPERIENCE}"

    board_certified = data.get("board_certified")
    if board_certified is None:
        errors["board_certified"] = "Please indicate board certification"
    elif board_certified is True and _blank(data.get("board_certification_details")):
        errors["board_certification_details"] = "Board certification details are required"

    return SectionValidation(errors=errors, is_complete=not errors)


# ── Licensure ───────────────────────────────────────────────

def validate_license(license: dict, today: date | None = None) -> dict[str, str]:
    today = today or date.today()
    errors: dict[str, str] = {}

    state = str(license.get("state") or "").strip()
    if not state:
        errors["state"] = "State is required"
    elif state not in US_STATES:
        errors["state"] = "Unknown state"

    if _blank(license.get("license_number")):
        errors["license_number"] = "License number is required"

    status = str(license.get("status") or "").strip()
    if not status:
        errors["status"] = "Status is required"
    elif status not in LICENSE_STATUSES:
        errors["status"] = f"Status must be one of: {', '.join(LICENSE_STATUSES)}"

    expiration = str(license.get("expiration_date") or "").strip()
    if not expiration:
        errors["expiration_date"] = "Expiration date is required"
    else:
        expires_on = _parse_date(expiration)
        if expires_on is None:
            errors["expiration_date"] = "Invalid date"
        elif expires_on < today and status == "Active":
            errors["expiration_date"] = "Expired license cannot be marked as Active"

    return errors


def validate_licensure(data: dict, today: date | None = None) -> SectionValidation:
    licenses = data.get("licenses") or []
    errors: dict[str, str] = {}
    any_valid = False
    for index, license in enumerate(licenses):
        license_errors = validate_license(license, today)
        if not license_errors:
            any_valid = True
        for name, message in license_errors.items():
            errors[f"licenses.{index}.{name}"] = message
    if not licenses:
        errors["licenses"] = "At least one license is required"
    return SectionValidation(errors=errors, is_complete=any_valid)


# ── Document uploads ────────────────────────────────────────

@dataclass(frozen=True)
class DocumentCategory:
    key: str
    label: str
    allowed_extensions: tuple[str, ...]
    required: bool = False
    multiple: bool = False


DOCUMENT_CATEGORIES: dict[str, DocumentCategory] = {
    c.key: c
    for c in (
        DocumentCategory("cv", "Curriculum Vitae (CV)", ("pdf", "doc", "docx"), required=True),
        DocumentCategory("npdb_report", "NPDB Report", ("pdf",), required=True),
        DocumentCategory("dea_certificate", "DEA Certificate", ("pdf", "jpg", "jpeg", "png")),
        DocumentCategory(
            "board_certificates", "Board Certificates",
            ("pdf", "jpg", "jpeg", "png"), multiple=True,
        ),
        DocumentCategory(
            "other_documents", "Other Documents",
            ("pdf", "doc", "docx", "jpg", "jpeg", "png"), multiple=True,
        ),
    )
}


def validate_document_uploads(data: dict) -> SectionValidation:
    errors = {
        key: f"{category.label} is required"
        for key, category in DOCUMENT_CATEGORIES.items()
        if category.required and not data.get(key)
    }
    return SectionValidation(errors=errors, is_complete=not errors)


# ── Questionnaires ──────────────────────────────────────────

def validate_questionnaires(data: dict) -> SectionValidation:
    errors: dict[str, str] = {}
    for key, questionnaire in QUESTIONNAIRES.items():
        answers = {a.get("question_id"): a for a in (data.get(key) or [])}
        for question in questionnaire.questions:
            answer = answers.get(question.id) or {}
            value = str(answer.get("answer") or "").strip()
            path = f"{key}.{question.id}"
            if not value:
                if question.required:
                    errors[path] = "An answer is required"
                continue
            if question.type == "yes-no" and value not in ("Yes", "No"):
                errors[path] = "Answer Yes or No"
            elif question.type == "multiple-choice" and value not in question.options:
                errors[path] = "Choose one of the listed options"
            elif question.requires_details and value == "Yes" and _blank(answer.get("details")):
                errors[path] = "Please provide details"
    return SectionValidation(errors=errors, is_complete=not errors)


# ── Digital attestation & signature ─────────────────────────

def validate_digital_signature(data: dict) -> SectionValidation:
    errors: dict[str, str] = {}
    name = str(data.get("full_legal_name") or "").strip()
    if not name:
        errors["full_legal_name"] = "Full legal name is required"
    elif len(name.split()) < 2:
        errors["full_legal_name"] = "Please enter your full legal name (first and last name)"
    if not data.get("agreed"):
        errors["agreed"] = "You must agree to the attestation"
    if _blank(data.get("timestamp")) or _blank(data.get("attestation_date")):
        errors["timestamp"] = "The attestation has not been signed"
    return SectionValidation(errors=errors, is_complete=not errors)


# ── Optional preferences ────────────────────────────────────

def validate_optional_preferences(data: dict) -> SectionValidation:
    # Never blocks submission
    return SectionValidation(is_complete=True)


# ── Field change hooks ──────────────────────────────────────

def apply_professional_change(data: dict, name: str, value: Any) -> None:
    """Keep the NPI as clamped digits; answering "not board certified" clears details."""
    if name == "npi_number":
        data[name] = clamp_npi(value)
    elif name == "board_certified" and value is False:
        data["board_certification_details"] = ""


# ── Catalog ─────────────────────────────────────────────────

@dataclass(frozen=True)
class SectionDefinition:
    id: SectionId
    title: str
    required: bool
    validate: Callable[[dict], SectionValidation]
    # Runs after a field is written, may adjust dependent fields in place
    on_change: Callable[[dict, str, Any], None] | None = None


SECTIONS: tuple[SectionDefinition, ...] = (
    SectionDefinition(SectionId.PERSONAL_IDENTIFIERS, "Personal Identifiers", True, validate_personal_identifiers),
    SectionDefinition(SectionId.PROFESSIONAL_INFORMATION, "Professional Information", True, validate_professional_information, apply_professional_change),
    SectionDefinition(SectionId.LICENSURE, "Licensure", True, validate_licensure),
    SectionDefinition(SectionId.DOCUMENT_UPLOADS, "Document Uploads", True, validate_document_uploads),
    SectionDefinition(SectionId.QUESTIONNAIRES, "Standard Questionnaires", True, validate_questionnaires),
    SectionDefinition(SectionId.DIGITAL_SIGNATURE, "Digital Attestation & Signature", True, validate_digital_signature),
    SectionDefinition(SectionId.OPTIONAL_PREFERENCES, "Travel & Accommodation Preferences", False, validate_optional_preferences),
)

SECTIONS_BY_ID: dict[SectionId, SectionDefinition] = {s.id: s for s in SECTIONS}
REQUIRED_SECTIONS: tuple[SectionId, ...] = tuple(s.id for s in SECTIONS if s.required)


def get_section(section_id: str | SectionId) -> SectionDefinition:
    """Look up a section by id; raises ValueError for unknown ids."""
    return SECTIONS_BY_ID[SectionId(section_id)]


def calculate_progress(completion: dict) -> int:
    """Percentage of required sections complete, rounded half-up."""
    done = sum(1 for s in REQUIRED_SECTIONS if completion.get(s.value))
    return (200 * done + len(REQUIRED_SECTIONS)) // (2 * len(REQUIRED_SECTIONS))
