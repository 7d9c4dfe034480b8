"""Persistence contract for the profile wizard, plus the SQL implementation.

The wizard never touches the ORM directly. It talks to a `ProfileGateway`:

    get_current_user()                          → UserIdentity | None
    read_profile(user_id)                       → ProfileRecord | None
    create_profile(user_id)                     → bool
    write_profile_section(user_id, section, data) → bool
    set_completion_flag(user_id, section, done) → bool
    save_position(user_id, section)             → bool
    upload_document(user_id, category, filename, content) → UploadedDocument
    finalize_profile(user_id)                   → bool

Write methods return False (and log) on storage errors instead of raising.
Record shapes are normalised here, in one place: rows written by older
clients (camelCase keys, nested address objects, completion flags keyed by
the old section names) come out in the canonical section shapes.
"""

import abc
import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.physician_profile import PhysicianProfile
from app.schemas.profile import UploadedDocument, normalize_section
from app.services.document_storage import DocumentStore, object_key
from app.services.profile_sections import (
    SECTIONS,
    SectionId,
    calculate_progress,
    clamp_npi,
)

logger = logging.getLogger(__name__)


@dataclass
class UserIdentity:
    """The authenticated user, passed explicitly into the wizard."""
    id: str
    email: str = ""
    display_name: str = ""
    role: str = "physician"
    metadata: dict = field(default_factory=dict)


@dataclass
class ProfileRecord:
    user_id: str
    sections: dict[str, dict | None]
    completion: dict[str, bool]
    completion_percentage: int = 0
    is_complete: bool = False
    current_section: str | None = None


class ProfileGateway(abc.ABC):
    def __init__(self, identity: UserIdentity | None):
        self._identity = identity

    async def get_current_user(self) -> UserIdentity | None:
        return self._identity

    @abc.abstractmethod
    async def read_profile(self, user_id: str) -> ProfileRecord | None: ...

    @abc.abstractmethod
    async def create_profile(self, user_id: str) -> bool: ...

    @abc.abstractmethod
    async def write_profile_section(self, user_id: str, section_id: str, data: dict) -> bool: ...

    @abc.abstractmethod
    async def set_completion_flag(self, user_id: str, section_id: str, is_complete: bool) -> bool: ...

    @abc.abstractmethod
    async def save_position(self, user_id: str, section_id: str) -> bool: ...

    @abc.abstractmethod
    async def upload_document(
        self, user_id: str, category: str, filename: str, content: bytes
    ) -> UploadedDocument: ...

    @abc.abstractmethod
    async def finalize_profile(self, user_id: str) -> bool: ...


# ── Record ↔ row mapping ────────────────────────────────────

# Completion keys written before the sections were renamed
_LEGACY_COMPLETION_KEYS = {
    "personalIdentifiers": SectionId.PERSONAL_IDENTIFIERS.value,
    "professionalInformation": SectionId.PROFESSIONAL_INFORMATION.value,
    "licensure": SectionId.LICENSURE.value,
    "documentUploads": SectionId.DOCUMENT_UPLOADS.value,
    "standardQuestionnaires": SectionId.QUESTIONNAIRES.value,
    "digitalAttestation": SectionId.DIGITAL_SIGNATURE.value,
    "optionalPreferences": SectionId.OPTIONAL_PREFERENCES.value,
}

_PERSONAL_COLUMNS = (
    "first_name", "middle_name", "last_name", "dba", "email", "phone_number",
    "alternate_phone", "address_line1", "city", "state", "zip_code",
)
_PROFESSIONAL_COLUMNS = (
    "npi_number", "dea_number", "specialty", "subspecialty", "years_experience",
    "board_certified", "board_certification_details",
)


def default_completion() -> dict[str, bool]:
    return {s.id.value: not s.required for s in SECTIONS}


def normalize_completion(raw: dict | None) -> dict[str, bool]:
    completion = default_completion()
    for key, value in (raw or {}).items():
        key = _LEGACY_COMPLETION_KEYS.get(key, key)
        if key in completion:
            completion[key] = bool(value)
    return completion


def _has_value(value) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


def profile_to_record(profile: PhysicianProfile) -> ProfileRecord:
    """Map a row to canonical section dicts; sections with no stored value are None."""
    sections: dict[str, dict | None] = {s.id.value: None for s in SECTIONS}

    personal = {name: getattr(profile, name) for name in _PERSONAL_COLUMNS}
    if any(_has_value(v) for v in personal.values()):
        sections[SectionId.PERSONAL_IDENTIFIERS.value] = normalize_section(
            SectionId.PERSONAL_IDENTIFIERS.value, personal
        )

    professional = {name: getattr(profile, name) for name in _PROFESSIONAL_COLUMNS}
    if any(_has_value(v) for v in professional.values()):
        sections[SectionId.PROFESSIONAL_INFORMATION.value] = normalize_section(
            SectionId.PROFESSIONAL_INFORMATION.value, professional
        )

    if profile.licenses:
        sections[SectionId.LICENSURE.value] = normalize_section(
            SectionId.LICENSURE.value, profile.licenses
        )
    if profile.documents:
        sections[SectionId.DOCUMENT_UPLOADS.value] = normalize_section(
            SectionId.DOCUMENT_UPLOADS.value, profile.documents
        )
    # Early rows stored the questionnaires as a bare (empty) list
    if isinstance(profile.questionnaires, dict) and profile.questionnaires:
        sections[SectionId.QUESTIONNAIRES.value] = normalize_section(
            SectionId.QUESTIONNAIRES.value, profile.questionnaires
        )
    if profile.digital_signature or profile.attestation_agreed:
        sections[SectionId.DIGITAL_SIGNATURE.value] = normalize_section(
            SectionId.DIGITAL_SIGNATURE.value,
            {
                "full_legal_name": profile.digital_signature,
                "attestation_date": profile.attestation_date,
                "timestamp": profile.signature_timestamp,
                "ip_address": profile.signature_ip,
                "device_info": profile.signature_device,
                "signature_version": profile.signature_version,
                "agreed": bool(profile.attestation_agreed),
            },
        )
    if profile.travel_preferences:
        sections[SectionId.OPTIONAL_PREFERENCES.value] = normalize_section(
            SectionId.OPTIONAL_PREFERENCES.value, profile.travel_preferences
        )

    return ProfileRecord(
        user_id=profile.user_id,
        sections=sections,
        completion=normalize_completion(profile.completion_status),
        completion_percentage=profile.completion_percentage or 0,
        is_complete=bool(profile.is_complete),
        current_section=profile.current_section,
    )


def _or_none(value):
    if isinstance(value, str):
        return value.strip() or None
    return value


def apply_section_to_profile(profile: PhysicianProfile, section_id: str, data: dict) -> None:
    """Write one canonical section onto the row's columns."""
    data = normalize_section(section_id, data)
    section = SectionId(section_id)

    if section is SectionId.PERSONAL_IDENTIFIERS:
        profile.first_name = _or_none(data["legal_first_name"])
        profile.middle_name = _or_none(data["legal_middle_name"])
        profile.last_name = _or_none(data["legal_last_name"])
        profile.dba = _or_none(data["dba"])
        profile.email = _or_none(data["email"])
        profile.phone_number = _or_none(data["phone"])
        profile.alternate_phone = _or_none(data["alternate_phone"])
        profile.address_line1 = _or_none(data["address"])
        profile.city = _or_none(data["city"])
        profile.state = _or_none(data["state"])
        profile.zip_code = _or_none(data["zip_code"])
    elif section is SectionId.PROFESSIONAL_INFORMATION:
        profile.npi_number = _or_none(clamp_npi(data["npi_number"]))
        profile.dea_number = _or_none(data["dea_number"])
        profile.specialty = _or_none(data["specialty"])
        profile.subspecialty = _or_none(data["subspecialty"])
        profile.years_experience = _or_none(data["years_experience"])
        profile.board_certified = data["board_certified"]
        profile.board_certification_details = _or_none(data["board_certification_details"])
    elif section is SectionId.LICENSURE:
        profile.licenses = data["licenses"]
    elif section is SectionId.DOCUMENT_UPLOADS:
        profile.documents = data
    elif section is SectionId.QUESTIONNAIRES:
        profile.questionnaires = data
    elif section is SectionId.DIGITAL_SIGNATURE:
        profile.digital_signature = _or_none(data["full_legal_name"])
        profile.attestation_date = _or_none(data["attestation_date"])
        profile.signature_timestamp = _or_none(data["timestamp"])
        profile.signature_ip = _or_none(data["ip_address"])
        profile.signature_device = _or_none(data["device_info"])
        profile.signature_version = _or_none(data["signature_version"])
        profile.attestation_agreed = bool(data["agreed"])
    elif section is SectionId.OPTIONAL_PREFERENCES:
        profile.travel_preferences = data


# ── SQL gateway ─────────────────────────────────────────────

class SqlProfileGateway(ProfileGateway):
    """Gateway over the request's AsyncSession; every write commits on its own."""

    def __init__(
        self,
        db: AsyncSession,
        identity: UserIdentity | None,
        store: DocumentStore | None = None,
    ):
        super().__init__(identity)
        self.db = db
        self.store = store or DocumentStore()

    async def _get_row(self, user_id: str) -> PhysicianProfile | None:
        result = await self.db.execute(
            select(PhysicianProfile).where(PhysicianProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_row(self, user_id: str) -> PhysicianProfile:
        profile = await self._get_row(user_id)
        if profile is None:
            profile = PhysicianProfile(
                user_id=user_id,
                licenses=[],
                completion_status=default_completion(),
                completion_percentage=0,
                is_complete=False,
            )
            self.db.add(profile)
        return profile

    async def _failed(self, action: str, user_id: str) -> bool:
        logger.exception("Profile %s failed for user %s", action, user_id)
        await self.db.rollback()
        return False

    async def read_profile(self, user_id: str) -> ProfileRecord | None:
        profile = await self._get_row(user_id)
        return profile_to_record(profile) if profile is not None else None

    async def create_profile(self, user_id: str) -> bool:
        try:
            await self._get_or_create_row(user_id)
            await self.db.commit()
        except SQLAlchemyError:
            return await self._failed("create", user_id)
        logger.info("Created profile for user %s", user_id)
        return True

    async def write_profile_section(self, user_id: str, section_id: str, data: dict) -> bool:
        try:
            profile = await self._get_or_create_row(user_id)
            apply_section_to_profile(profile, section_id, data)
            await self.db.commit()
        except SQLAlchemyError:
            return await self._failed(f"write of {section_id}", user_id)
        return True

    async def set_completion_flag(self, user_id: str, section_id: str, is_complete: bool) -> bool:
        try:
            profile = await self._get_or_create_row(user_id)
            completion = normalize_completion(profile.completion_status)
            completion[section_id] = is_complete
            profile.completion_status = completion
            profile.completion_percentage = calculate_progress(completion)
            # Only finalize_profile marks a profile complete
            if profile.completion_percentage < 100:
                profile.is_complete = False
            await self.db.commit()
        except SQLAlchemyError:
            return await self._failed(f"completion update of {section_id}", user_id)
        return True

    async def save_position(self, user_id: str, section_id: str) -> bool:
        try:
            profile = await self._get_or_create_row(user_id)
            profile.current_section = section_id
            await self.db.commit()
        except SQLAlchemyError:
            return await self._failed("position save", user_id)
        return True

    async def upload_document(
        self, user_id: str, category: str, filename: str, content: bytes
    ) -> UploadedDocument:
        return await self.store.save(user_id, category, filename, content)

    async def document_url(self, user_id: str, category: str, document: dict) -> str:
        """Short-lived link to a stored document."""
        key = object_key(user_id, category, document["id"], document.get("name", ""))
        return await self.store.presigned_url(key)

    async def finalize_profile(self, user_id: str) -> bool:
        try:
            profile = await self._get_or_create_row(user_id)
            profile.is_complete = True
            profile.completion_percentage = 100
            await self.db.commit()
        except SQLAlchemyError:
            return await self._failed("finalize", user_id)
        logger.info("Profile finalized for user %s", user_id)
        return True
