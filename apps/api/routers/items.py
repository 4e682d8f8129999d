"""Saved item router: owner-scoped CRUD used by the curation client."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user, ensure_user_scope, get_auth_context
from services.items import (
    create_item_service,
    delete_item_service,
    delete_items_service,
    list_items_service,
    update_item_service,
)

router = APIRouter()

PlatformName = Literal["youtube", "tiktok", "instagram", "other"]


class CreateItemRequest(BaseModel):
    url: str
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    platform: PlatformName = "other"
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    user_id: Optional[str] = None


class UpdateItemRequest(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    platform: Optional[PlatformName] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    deleted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    user_id: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)
    user_id: Optional[str] = None


@router.get("")
async def list_items(
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, user_id)
    await ensure_user(db, auth)
    items = await list_items_service(auth.user_id, db)
    return {"items": items, "count": len(items)}


@router.post("")
async def create_item(
    request: CreateItemRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, request.user_id)
    await ensure_user(db, auth)
    return await create_item_service(
        user_id=auth.user_id,
        payload=request.model_dump(exclude={"user_id"}),
        db=db,
    )


@router.patch("/{item_id}")
async def update_item(
    item_id: str,
    request: UpdateItemRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, request.user_id)
    # exclude_unset keeps an explicit null (restore, un-review) apart from an omitted field.
    changes = request.model_dump(exclude_unset=True, exclude={"user_id"})
    return await update_item_service(
        user_id=auth.user_id,
        item_id=item_id,
        changes=changes,
        db=db,
    )


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, user_id)
    return await delete_item_service(auth.user_id, item_id, db)


@router.post("/bulk_delete")
async def bulk_delete_items(
    request: BulkDeleteRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    ensure_user_scope(auth.user_id, request.user_id)
    return await delete_items_service(auth.user_id, request.ids, db)
