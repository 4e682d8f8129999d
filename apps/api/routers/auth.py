"""
Authentication router exposing the signed-in identity and its settings profile.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user, get_auth_context
from services.profile import canonical_profile_payload, ensure_profile

router = APIRouter()


class UserSettingsResponse(BaseModel):
    app_lock_enabled: bool = False
    biometric_registered: bool = False


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    settings: UserSettingsResponse


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current user identity plus app settings."""
    user = await ensure_user(db, auth)
    profile = await ensure_profile(user.id, db)
    await db.commit()
    payload = canonical_profile_payload(profile)

    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        settings=UserSettingsResponse(
            app_lock_enabled=payload["app_lock_enabled"],
            biometric_registered=payload["biometric_registered"],
        ),
    )
