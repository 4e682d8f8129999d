"""Settings profile services."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.profile import Profile

logger = logging.getLogger(__name__)

PROFILE_SETTING_FIELDS = ("app_lock_enabled", "biometric_registered")


def canonical_profile_payload(profile: Profile) -> Dict[str, Any]:
    return {
        "user_id": profile.user_id,
        "app_lock_enabled": bool(profile.app_lock_enabled),
        "biometric_registered": bool(profile.biometric_registered),
    }


async def ensure_profile(user_id: str, db: AsyncSession) -> Profile:
    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    profile = result.scalar_one_or_none()
    if profile:
        return profile
    profile = Profile(user_id=user_id, app_lock_enabled=False, biometric_registered=False)
    db.add(profile)
    await db.flush()
    return profile


async def get_profile_service(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    profile = await ensure_profile(user_id, db)
    await db.commit()
    return canonical_profile_payload(profile)


async def update_profile_service(
    *,
    user_id: str,
    changes: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    unknown = set(changes) - set(PROFILE_SETTING_FIELDS)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown profile settings: {', '.join(sorted(unknown))}")

    profile = await ensure_profile(user_id, db)
    for field, value in changes.items():
        setattr(profile, field, bool(value))
    await db.commit()
    await db.refresh(profile)
    logger.info(
        "profile_update user=%s app_lock_enabled=%s biometric_registered=%s",
        user_id,
        profile.app_lock_enabled,
        profile.biometric_registered,
    )
    return canonical_profile_payload(profile)
