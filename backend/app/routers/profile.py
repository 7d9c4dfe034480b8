"""Physician profile wizard: 7 sections with save/resume.

Endpoints:
  GET    /api/profile/                       → progress + draft + field errors
  GET    /api/profile/sections               → section, questionnaire, document catalogs
  PATCH  /api/profile/sections/{section_id}  → partial field changes for one section
  POST   /api/profile/navigate               → next / previous / jump
  POST   /api/profile/attestation/sign       → sign the attestation
  POST   /api/profile/documents/{category}   → upload a credential document
  GET    /api/profile/documents/{category}/{id} → redirect to the stored file
  DELETE /api/profile/documents/{category}   → detach a document
  POST   /api/profile/complete               → finalize the profile
  GET    /api/profile/status                 → status bar summary

Design:
  - Every request loads the stored profile into a WizardController and
    applies the change through the matching section editor, so HTTP
    clients and in-process callers share one validation and save path.
  - Invalid values are saved; errors come back per field in the progress.
  - Only /complete refuses (422 PROFILE_INCOMPLETE) below 100%.
"""

import logging

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_role, to_identity
from app.database import get_db
from app.middleware.exceptions import (
    BusinessLogicError,
    LocumException,
    ResourceNotFoundError,
)
from app.models.user import User, UserRole
from app.schemas.profile import (
    DocumentUploadResponse,
    NavigateRequest,
    ProfileProgress,
    ProfileStatus,
    SectionInfo,
    SectionState,
    SignAttestationRequest,
    SubmitResponse,
    normalize_section,
)
from app.services import questionnaires
from app.services.document_storage import read_upload
from app.services.profile_gateway import SqlProfileGateway
from app.services.profile_sections import (
    DOCUMENT_CATEGORIES,
    LICENSE_STATUSES,
    SECTIONS,
    SPECIALTIES,
    US_STATES,
    SectionId,
)
from app.services.profile_wizard import WizardController

logger = logging.getLogger(__name__)

router = APIRouter()

DASHBOARDS = {
    UserRole.PHYSICIAN.value: "/physician-dashboard",
    UserRole.FACILITY.value: "/facility-dashboard",
}


# ── Helpers ──────────────────────────────────────────────────

async def get_wizard(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_role(UserRole.PHYSICIAN)),
) -> WizardController:
    """Load the signed-in physician's profile into a controller.

    Each request is one short editing session, so edits push immediately.
    """
    identity = to_identity(user)
    controller = WizardController(SqlProfileGateway(db, identity), identity, autosave_delay=0)
    await controller.load()
    return controller


def _section_id(section_id: str) -> str:
    try:
        return SectionId(section_id).value
    except ValueError:
        raise ResourceNotFoundError("Section", section_id)


def _document_category(category: str) -> str:
    if category not in DOCUMENT_CATEGORIES:
        raise ResourceNotFoundError("Document category", category)
    return category


def _make_progress(controller: WizardController) -> ProfileProgress:
    return ProfileProgress(
        current_section=controller.current_section,
        sections=[
            SectionState(
                id=section.id.value,
                title=section.title,
                required=section.required,
                is_complete=controller.completion[section.id.value],
                state=controller.editors[section.id.value].state.value,
                errors=controller.editors[section.id.value].validation.errors,
            )
            for section in controller.sections
        ],
        completion=dict(controller.completion),
        progress=controller.progress,
        required_complete=controller.required_complete,
        required_total=len([s for s in controller.sections if s.required]),
        can_submit=controller.can_submit,
        is_complete=controller.is_complete,
        draft=dict(controller.draft),
    )


# ── GET /api/profile/ ────────────────────────────────────────

@router.get("/", response_model=ProfileProgress)
async def get_progress(controller: WizardController = Depends(get_wizard)):
    return _make_progress(controller)


# ── GET /api/profile/sections ────────────────────────────────

@router.get("/sections")
async def list_sections():
    """Static catalogs the client renders the wizard from."""
    return {
        "sections": [
            SectionInfo(id=s.id.value, title=s.title, required=s.required) for s in SECTIONS
        ],
        "questionnaires": questionnaires.catalog(),
        "document_categories": [
            {
                "key": c.key,
                "label": c.label,
                "allowed_extensions": list(c.allowed_extensions),
                "required": c.required,
                "multiple": c.multiple,
            }
            for c in DOCUMENT_CATEGORIES.values()
        ],
        "specialties": list(SPECIALTIES),
        "states": list(US_STATES),
        "license_statuses": list(LICENSE_STATUSES),
    }


# ── PATCH /api/profile/sections/{section_id} ─────────────────

@router.patch("/sections/{section_id}", response_model=ProfileProgress)
async def update_section(
    section_id: str,
    changes: dict = Body(...),
    controller: WizardController = Depends(get_wizard),
):
    """Apply field changes (camelCase or snake_case) to one section."""
    key = _section_id(section_id)
    normalized = normalize_section(key, changes, partial=True)
    if normalized:
        await controller.edit_section(key, normalized)
    return _make_progress(controller)


# ── POST /api/profile/navigate ───────────────────────────────

@router.post("/navigate", response_model=ProfileProgress)
async def navigate(body: NavigateRequest, controller: WizardController = Depends(get_wizard)):
    if body.action == "next":
        await controller.next()
    elif body.action == "previous":
        await controller.previous()
    else:
        if not body.section_id:
            raise BusinessLogicError("section_id is required to jump", "SECTION_REQUIRED")
        await controller.jump(_section_id(body.section_id))
    return _make_progress(controller)


# ── POST /api/profile/attestation/sign ───────────────────────

@router.post("/attestation/sign", response_model=ProfileProgress)
async def sign_attestation(
    body: SignAttestationRequest,
    request: Request,
    controller: WizardController = Depends(get_wizard),
):
    """Sign the attestation, capturing time, client IP, and device."""
    await controller.sign_attestation(
        full_legal_name=body.full_legal_name,
        agreed=body.agreed,
        ip_address=request.client.host if request.client else "",
        device_info=request.headers.get("user-agent", ""),
    )
    return _make_progress(controller)


# ── Documents ────────────────────────────────────────────────

@router.post(
    "/documents/{category}",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    category: str,
    file: UploadFile = File(...),
    controller: WizardController = Depends(get_wizard),
):
    category = _document_category(category)
    content = await read_upload(file)
    document = await controller.upload_document(category, file.filename or "", content)
    return DocumentUploadResponse(
        document=document.model_dump(), progress=_make_progress(controller)
    )


@router.get("/documents/{category}/{document_id}")
async def open_document(
    category: str,
    document_id: str,
    controller: WizardController = Depends(get_wizard),
):
    """Redirect to a presigned URL for one of the caller's documents."""
    category = _document_category(category)
    document = controller.find_document(category, document_id)
    if document is None:
        raise ResourceNotFoundError("Document", document_id)
    url = await controller.gateway.document_url(controller.identity.id, category, document)
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.delete("/documents/{category}", response_model=ProfileProgress)
async def remove_document(
    category: str,
    document_id: str | None = None,
    controller: WizardController = Depends(get_wizard),
):
    """Detach a document; for multi-file categories pass `document_id`."""
    await controller.remove_document(_document_category(category), document_id)
    return _make_progress(controller)


# ── POST /api/profile/complete ───────────────────────────────

@router.post("/complete", response_model=SubmitResponse)
async def complete_profile(controller: WizardController = Depends(get_wizard)):
    """Finalize the profile. Every required section must be complete."""
    if not await controller.handle_submit_profile():
        if not controller.can_submit:
            raise BusinessLogicError(
                f"Complete these sections first: {', '.join(controller.missing_sections)}",
                error_code="PROFILE_INCOMPLETE",
                details={"missing_sections": controller.missing_sections},
            )
        raise LocumException(
            "Profile could not be finalized. Please try again.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="FINALIZE_FAILED",
        )

    return SubmitResponse(
        is_complete=True,
        completion_percentage=controller.progress,
        redirect_to=DASHBOARDS.get(controller.identity.role, DASHBOARDS[UserRole.PHYSICIAN.value]),
    )


# ── GET /api/profile/status ──────────────────────────────────

@router.get("/status", response_model=ProfileStatus)
async def profile_status(controller: WizardController = Depends(get_wizard)):
    return ProfileStatus(
        is_complete=controller.is_complete,
        completion_percentage=controller.progress,
        missing_sections=controller.missing_sections,
    )
