"""Auth routes: register, login, refresh, logout, me.

Route overview:
  POST /register  → self-registration (physician or facility)
  POST /login     → email + password login
  POST /refresh   → exchange a refresh token for new access + refresh tokens
  POST /logout    → revoke the current access token (and refresh token if given)
  GET  /me        → the current user, with their profile completion flag
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user, oauth2_scheme
from app.auth.jwt import create_access_token, create_refresh_token, decode_token
from app.auth.password import hash_password, verify_password
from app.auth.revocation import TokenRevocation
from app.database import get_db
from app.models.physician_profile import PhysicianProfile
from app.models.user import User, UserRole
from app.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

async def _profile_complete(db: AsyncSession, user: User) -> bool:
    if user.role != UserRole.PHYSICIAN:
        return True
    result = await db.execute(
        select(PhysicianProfile.is_complete).where(PhysicianProfile.user_id == user.id)
    )
    return bool(result.scalar_one_or_none())


async def _build_user_out(db: AsyncSession, user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role.value,
        is_active=user.is_active,
        profile_complete=await _profile_complete(db, user),
    )


async def _build_token_response(db: AsyncSession, user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user_id=user.id, role=user.role.value),
        refresh_token=create_refresh_token(user_id=user.id, role=user.role.value),
        user=await _build_user_out(db, user),
    )


# ── POST /register ──────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        full_name=body.full_name,
        role=UserRole(body.role),
        user_metadata={"full_name": body.full_name},
    )
    db.add(user)
    await db.flush()

    logger.info("Registered %s user %s", user.role.value, user.id)
    return await _build_token_response(db, user)


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    return await _build_token_response(db, user)


# ── POST /refresh ────────────────────────────────────────────

@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Exchange a refresh token for a new access + refresh token pair."""
    payload = decode_token(body.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if await TokenRevocation.is_revoked(body.refresh_token):
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    result = await db.execute(select(User).where(User.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return await _build_token_response(db, user)


# ── POST /logout ─────────────────────────────────────────────

@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    body: LogoutRequest | None = None,
    token: str = Depends(oauth2_scheme),
    user: User = Depends(get_current_user),
):
    tokens = [token]
    if body and body.refresh_token:
        tokens.append(body.refresh_token)

    for value in tokens:
        payload = decode_token(value)
        if payload.get("sub") == user.id and payload.get("exp"):
            await TokenRevocation.revoke_token(value, float(payload["exp"]))
    logger.info("User %s logged out", user.id)


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await _build_user_out(db, user)
