"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user          → decode JWT, load user from DB, return User
  to_identity(user)         → the signed-in user as a UserIdentity
  require_role(...)         → restrict to specific roles
  require_complete_profile  → physician routes gated on a finalized profile
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.auth.revocation import TokenRevocation
from app.database import get_db
from app.models.physician_profile import PhysicianProfile
from app.models.user import User, UserRole
from app.services.profile_gateway import UserIdentity

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, check revocation, and load the active user."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await TokenRevocation.is_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def to_identity(user: User) -> UserIdentity:
    return UserIdentity(
        id=user.id,
        email=user.email,
        display_name=user.full_name or "",
        role=user.role.value,
        metadata=dict(user.user_metadata or {}),
    )


# ── Role-based access control ───────────────────────────────

def require_role(*roles: UserRole):
    """Dependency factory: restrict to one or more roles.

    Usage:
        @router.get("/profile")
        async def view(user: User = Depends(require_role(UserRole.PHYSICIAN))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return user

    return _check


async def require_complete_profile(
    user: User = Depends(require_role(UserRole.PHYSICIAN)),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Physician must have finalized their profile.

    Raises HTTP 403 while the profile is missing or incomplete.
    """
    result = await db.execute(
        select(PhysicianProfile.is_complete).where(PhysicianProfile.user_id == user.id)
    )
    if not result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Complete your profile first",
        )
    return user
