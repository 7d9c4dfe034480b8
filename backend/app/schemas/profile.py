"""Pydantic schemas for the profile-completion wizard.

Section models are permissive: every field is optional and loosely typed.
Numbers become strings and unreadable yes/no answers become blank, so a
wrong value is saved and reported as a field-level error (see
`app.services.profile_sections`). Only a payload of the wrong shape, such
as a string where a list of licenses belongs, is refused with 422.

Each section model accepts both camelCase and snake_case keys and always
dumps the canonical snake_case shape; `normalize_section()` is the single
adapter used at the storage and HTTP boundaries.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

_TRUE_WORDS = {"true", "yes", "y", "on", "1"}
_FALSE_WORDS = {"false", "no", "n", "off", "0"}


def _yes_no(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


# Unreadable answers become "unanswered" instead of failing the model.
YesNo = Annotated[bool | None, BeforeValidator(_yes_no)]
Flag = Annotated[bool, BeforeValidator(lambda value: bool(_yes_no(value)))]


class _SectionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


# ── Personal identifiers ────────────────────────────────────

class PersonalIdentifiers(_SectionModel):
    legal_first_name: str = ""
    legal_middle_name: str = ""
    legal_last_name: str = ""
    dba: str = ""
    email: str = ""
    phone: str = ""
    alternate_phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_legacy_shapes(cls, data: Any) -> Any:
        """Accept storage-era names and a nested address object.

        Supported inputs:
          {firstName, lastName, phoneNumber, address: {line1, city, state, zipCode}}
          {first_name, last_name, phone_number, address_line1, zip_code}
          {legalFirstName, ..., address: "1 Main St", city, state, zipCode}
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        renames = {
            "legal_first_name": ("firstName", "first_name"),
            "legal_middle_name": ("middleName", "middle_name"),
            "legal_last_name": ("lastName", "last_name"),
            "phone": ("phoneNumber", "phone_number"),
            "address": ("address_line1", "addressLine1"),
        }
        for canonical, legacy_keys in renames.items():
            if canonical in data or to_camel(canonical) in data:
                continue
            for key in legacy_keys:
                if data.get(key) is not None:
                    data[canonical] = data[key]
                    break

        address = data.get("address")
        if isinstance(address, dict):
            data["address"] = address.get("line1") or address.get("address") or ""
            for canonical, keys in {
                "city": ("city",),
                "state": ("state",),
                "zip_code": ("zipCode", "zip_code", "zip"),
            }.items():
                if data.get(canonical) or data.get(to_camel(canonical)):
                    continue
                for key in keys:
                    if address.get(key):
                        data[canonical] = address[key]
                        break

        # None from nullable columns means "not provided"
        return {k: v for k, v in data.items() if v is not None}


# ── Professional information ────────────────────────────────

class ProfessionalInformation(_SectionModel):
    npi_number: str = ""
    dea_number: str = ""
    specialty: str = ""
    subspecialty: str = ""
    years_experience: str = ""
    board_certified: YesNo = None
    board_certification_details: str = ""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            k: v for k, v in data.items()
            if v is not None or k in ("board_certified", "boardCertified")
        }


# ── Licensure ───────────────────────────────────────────────

class LicenseRecord(_SectionModel):
    id: str = ""
    state: str = ""
    license_number: str = ""
    issue_date: str = ""
    expiration_date: str = ""
    status: str = "Active"


class Licensure(_SectionModel):
    licenses: list[LicenseRecord] = []

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, data: Any) -> Any:
        # Storage keeps the list itself, not {"licenses": [...]}
        if isinstance(data, list):
            return {"licenses": data}
        return data


# ── Document uploads ────────────────────────────────────────

class UploadedDocument(_SectionModel):
    id: str
    name: str
    size: int
    upload_date: str
    url: str


class DocumentUploads(_SectionModel):
    cv: UploadedDocument | None = None
    npdb_report: UploadedDocument | None = None
    dea_certificate: UploadedDocument | None = None
    board_certificates: list[UploadedDocument] = []
    other_documents: list[UploadedDocument] = []


# ── Questionnaires ──────────────────────────────────────────

class QuestionnaireAnswer(_SectionModel):
    question_id: str
    answer: str = ""
    details: str | None = None


class Questionnaires(_SectionModel):
    facility_questionnaire: list[QuestionnaireAnswer] = []
    insurance_questionnaire: list[QuestionnaireAnswer] = []


# ── Digital attestation & signature ─────────────────────────

class DigitalSignature(_SectionModel):
    full_legal_name: str = ""
    attestation_date: str = ""
    timestamp: str = ""
    ip_address: str = ""
    device_info: str = ""
    signature_version: str = "1.0"
    agreed: Flag = False

    @model_validator(mode="before")
    @classmethod
    def _accept_storage_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = {k: v for k, v in data.items() if v is not None}
        for canonical, legacy in {
            "full_legal_name": "signature",
            "agreed": "attestationAgreed",
        }.items():
            if canonical not in data and to_camel(canonical) not in data and legacy in data:
                data[canonical] = data[legacy]
        return data


# ── Optional preferences ────────────────────────────────────

class TravelPreferences(_SectionModel):
    preferred_airlines: list[str] = []
    seat_preference: str = ""
    meal_preference: str = ""
    special_needs: str = ""


class LoyaltyProgram(_SectionModel):
    airline: str
    number: str


class HotelPreferences(_SectionModel):
    preferred_brands: list[str] = []
    room_type: str = ""
    floor_preference: str = ""
    special_requests: str = ""


class OptionalPreferences(_SectionModel):
    """Nested groups default independently, so partial stored data deep-merges."""
    travel_preferences: TravelPreferences = Field(default_factory=TravelPreferences)
    loyalty_programs: list[LoyaltyProgram] = []
    tsa_precheck: str = ""
    global_entry: str = ""
    hotel_preferences: HotelPreferences = Field(default_factory=HotelPreferences)
    opt_in_third_party_services: Flag = False


SECTION_MODELS: dict[str, type[_SectionModel]] = {
    "personal_identifiers": PersonalIdentifiers,
    "professional_information": ProfessionalInformation,
    "licensure": Licensure,
    "document_uploads": DocumentUploads,
    "questionnaires": Questionnaires,
    "digital_signature": DigitalSignature,
    "optional_preferences": OptionalPreferences,
}


def normalize_section(section_id: str, raw: Any, partial: bool = False) -> dict:
    """Coerce any accepted shape of a section into its canonical dict.

    With `partial=True` only the top-level fields present in `raw` are
    returned (nested values are still fully normalized), which is what a
    PATCH needs.
    """
    model_cls = SECTION_MODELS[section_id]
    model = model_cls.model_validate(raw if raw is not None else {})
    dumped = model.model_dump()
    if partial:
        return {k: dumped[k] for k in model.model_fields_set}
    return dumped


# ── Requests / responses ────────────────────────────────────

class NavigateRequest(BaseModel):
    action: Literal["next", "previous", "jump"]
    section_id: str | None = None


class SignAttestationRequest(BaseModel):
    full_legal_name: str
    agreed: bool


class SectionInfo(BaseModel):
    id: str
    title: str
    required: bool


class SectionState(BaseModel):
    id: str
    title: str
    required: bool
    is_complete: bool
    state: str
    errors: dict[str, str] = {}


class ProfileProgress(BaseModel):
    current_section: str
    sections: list[SectionState]
    completion: dict[str, bool]
    progress: int
    required_complete: int
    required_total: int
    can_submit: bool
    is_complete: bool
    draft: dict[str, dict | None]


class ProfileStatus(BaseModel):
    is_complete: bool
    completion_percentage: int
    missing_sections: list[str]


class SubmitResponse(BaseModel):
    is_complete: bool
    completion_percentage: int
    redirect_to: str


class DocumentUploadResponse(BaseModel):
    # Plain dict so the stored snake_case shape is returned as-is
    document: dict
    progress: ProfileProgress
