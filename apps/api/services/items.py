"""Saved item persistence services backing the curation client's remote store."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
import uuid

from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.saved_item import SavedItem

logger = logging.getLogger(__name__)

ALLOWED_PLATFORMS = {"youtube", "tiktok", "instagram", "other"}
DEFAULT_CATEGORY = "Inbox"
DEFAULT_TITLE = "New Saved Link"
TRASH_RETENTION = timedelta(days=30)
EDITABLE_FIELDS = {
    "url",
    "title",
    "thumbnail",
    "platform",
    "category",
    "tags",
    "deleted_at",
    "reviewed_at",
}
TIMESTAMP_FIELDS = {"deleted_at", "reviewed_at"}


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = _normalize_text(value)
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid timestamp: {text}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    # Rows are compared as wall-clock strings on SQLite, so keep everything in UTC.
    return parsed.astimezone(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive values for timezone-aware columns.
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _normalize_platform(value: Any) -> str:
    platform = _normalize_text(value).lower() or "other"
    if platform not in ALLOWED_PLATFORMS:
        raise HTTPException(status_code=422, detail=f"Unsupported platform: {platform}")
    return platform


def _normalize_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(tag) for tag in value if _normalize_text(tag)]


def canonical_item_payload(item: SavedItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "user_id": item.user_id,
        "url": item.url,
        "title": item.title,
        "thumbnail": item.thumbnail,
        "platform": item.platform,
        "category": item.category,
        "tags": list(item.tags or []),
        "created_at": _isoformat(item.created_at),
        "deleted_at": _isoformat(item.deleted_at),
        "reviewed_at": _isoformat(item.reviewed_at),
    }


async def _get_owned_item(user_id: str, item_id: str, db: AsyncSession) -> SavedItem:
    result = await db.execute(
        select(SavedItem).where(
            SavedItem.id == item_id,
            SavedItem.user_id == user_id,
        )
    )
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


async def list_items_service(user_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(SavedItem).where(SavedItem.user_id == user_id).order_by(SavedItem.created_at.desc())
    )
    rows = result.scalars().all()
    logger.info("items_list user=%s count=%s", user_id, len(rows))
    return [canonical_item_payload(row) for row in rows]


async def create_item_service(
    *,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    url = _normalize_text(payload.get("url"))
    if not url:
        raise HTTPException(status_code=422, detail="url is required")

    item = SavedItem(
        id=str(uuid.uuid4()),
        user_id=user_id,
        url=url,
        title=_normalize_text(payload.get("title")) or DEFAULT_TITLE,
        thumbnail=_normalize_text(payload.get("thumbnail")) or None,
        platform=_normalize_platform(payload.get("platform")),
        category=_normalize_text(payload.get("category")) or DEFAULT_CATEGORY,
        tags=_normalize_tags(payload.get("tags")),
        created_at=_parse_datetime(payload.get("created_at")) or datetime.now(timezone.utc),
        deleted_at=_parse_datetime(payload.get("deleted_at")),
        reviewed_at=_parse_datetime(payload.get("reviewed_at")),
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info("item_create user=%s platform=%s item=%s", user_id, item.platform, item.id)
    return canonical_item_payload(item)


async def update_item_service(
    *,
    user_id: str,
    item_id: str,
    changes: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise HTTPException(status_code=422, detail=f"Fields not editable: {', '.join(sorted(unknown))}")

    item = await _get_owned_item(user_id, item_id, db)
    for field, value in changes.items():
        if field in TIMESTAMP_FIELDS:
            value = _parse_datetime(value)
        elif field == "platform":
            value = _normalize_platform(value)
        elif field == "tags":
            value = _normalize_tags(value)
        elif field == "url":
            value = _normalize_text(value)
            if not value:
                raise HTTPException(status_code=422, detail="url cannot be empty")
        elif field == "category":
            value = _normalize_text(value) or DEFAULT_CATEGORY
        elif field == "title":
            value = _normalize_text(value) or DEFAULT_TITLE
        setattr(item, field, value)

    await db.commit()
    await db.refresh(item)
    logger.info("item_update user=%s item=%s fields=%s", user_id, item_id, ",".join(sorted(changes)))
    return canonical_item_payload(item)


async def delete_item_service(user_id: str, item_id: str, db: AsyncSession) -> Dict[str, Any]:
    item = await _get_owned_item(user_id, item_id, db)
    await db.delete(item)
    await db.commit()
    logger.info("item_delete user=%s item=%s", user_id, item_id)
    return {"deleted": True, "id": item_id}


async def delete_items_service(user_id: str, item_ids: Iterable[str], db: AsyncSession) -> Dict[str, Any]:
    ids = sorted({_normalize_text(item_id) for item_id in item_ids if _normalize_text(item_id)})
    if not ids:
        return {"deleted_count": 0}
    result = await db.execute(
        delete(SavedItem).where(
            SavedItem.user_id == user_id,
            SavedItem.id.in_(ids),
        )
    )
    await db.commit()
    deleted_count = int(result.rowcount or 0)
    logger.info("item_bulk_delete user=%s requested=%s deleted=%s", user_id, len(ids), deleted_count)
    return {"deleted_count": deleted_count}


async def purge_expired_items_service(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Physically remove items that sat in the trash past the retention window."""
    cutoff = (now or datetime.now(timezone.utc)) - TRASH_RETENTION
    result = await db.execute(
        delete(SavedItem).where(
            SavedItem.deleted_at.is_not(None),
            SavedItem.deleted_at <= cutoff,
        )
    )
    await db.commit()
    purged = int(result.rowcount or 0)
    if purged:
        logger.info("item_trash_purge purged=%s cutoff=%s", purged, cutoff.isoformat())
    return purged
