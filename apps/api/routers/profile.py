"""Settings profile router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user, ensure_user_scope, get_auth_context
from services.profile import get_profile_service, update_profile_service

router = APIRouter()


class UpdateProfileRequest(BaseModel):
    app_lock_enabled: Optional[bool] = None
    biometric_registered: Optional[bool] = None
    user_id: Optional[str] = None


@router.get("")
async def get_profile(
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, user_id)
    await ensure_user(db, auth)
    return await get_profile_service(auth.user_id, db)


@router.patch("")
async def update_profile(
    request: UpdateProfileRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, request.user_id)
    await ensure_user(db, auth)
    return await update_profile_service(
        user_id=auth.user_id,
        changes=request.model_dump(exclude_none=True, exclude={"user_id"}),
        db=db,
    )
