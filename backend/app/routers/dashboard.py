"""Physician dashboard: only reachable once the profile is finalized."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import require_complete_profile
from app.database import get_db
from app.models.physician_profile import PhysicianProfile
from app.models.user import User
from app.services.profile_gateway import profile_to_record
from app.services.profile_sections import SectionId

router = APIRouter()


@router.get("/dashboard")
async def physician_dashboard(
    user: User = Depends(require_complete_profile),
    db: AsyncSession = Depends(get_db),
):
    """Summary facilities see when reviewing this physician."""
    result = await db.execute(
        select(PhysicianProfile).where(PhysicianProfile.user_id == user.id)
    )
    record = profile_to_record(result.scalar_one())

    personal = record.sections[SectionId.PERSONAL_IDENTIFIERS.value] or {}
    professional = record.sections[SectionId.PROFESSIONAL_INFORMATION.value] or {}
    licensure = record.sections[SectionId.LICENSURE.value] or {}
    documents = record.sections[SectionId.DOCUMENT_UPLOADS.value] or {}

    return {
        "name": " ".join(
            part for part in (personal.get("legal_first_name"), personal.get("legal_last_name")) if part
        ),
        "specialty": professional.get("specialty", ""),
        "board_certified": professional.get("board_certified"),
        "licensed_states": sorted(
            {lic["state"] for lic in licensure.get("licenses", []) if lic.get("state")}
        ),
        "document_count": sum(
            len(v) if isinstance(v, list) else 1 for v in documents.values() if v
        ),
    }
