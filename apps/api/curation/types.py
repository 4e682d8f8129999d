"""Item record, patch and profile contracts shared by the curation client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, Optional, Tuple
import uuid


PlatformKey = Literal["youtube", "tiktok", "instagram", "other"]

ALLOWED_PLATFORMS = ("youtube", "tiktok", "instagram", "other")
INBOX = "Inbox"
DEFAULT_TITLE = "New Saved Link"
LOCAL_ID_PREFIX = "local-"

IMMUTABLE_FIELDS = frozenset({"id", "owner", "created_at"})
CONTENT_FIELDS = frozenset({"url", "title", "thumbnail", "platform", "category", "tags"})
LIFECYCLE_FIELDS = frozenset({"deleted_at", "reviewed_at"})
PATCHABLE_FIELDS = CONTENT_FIELDS | LIFECYCLE_FIELDS | {"pending"}


class CurationError(RuntimeError):
    """Base class for curation client failures."""


class RemoteStoreError(CurationError):
    """Raised when a remote store call fails (network, auth or backend error)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionLockedError(CurationError):
    """Raised when views are requested while the session lock gate is closed."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_local_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4()}"


def is_local_id(item_id: str) -> bool:
    return str(item_id).startswith(LOCAL_ID_PREFIX)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def normalize_category(value: Any) -> str:
    """Absent or blank categories group under the Inbox sentinel."""
    text = str(value or "").strip()
    return text or INBOX


@dataclass(frozen=True)
class ItemRecord:
    """One saved link. Instances are immutable; changes produce new records."""

    id: str
    owner: str
    url: str
    created_at: datetime
    title: str = DEFAULT_TITLE
    thumbnail: Optional[str] = None
    platform: PlatformKey = "other"
    category: Optional[str] = INBOX
    tags: Tuple[str, ...] = ()
    deleted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    pending: bool = False

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_reviewed(self) -> bool:
        return self.reviewed_at is not None

    def with_changes(self, changes: Mapping[str, Any]) -> "ItemRecord":
        frozen = IMMUTABLE_FIELDS.intersection(changes)
        if frozen:
            raise ValueError(f"Immutable fields cannot be patched: {', '.join(sorted(frozen))}")
        unknown = set(changes) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown item fields: {', '.join(sorted(unknown))}")
        values = dict(changes)
        if "tags" in values:
            values["tags"] = tuple(values["tags"] or ())
        return replace(self, **values)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ItemRecord":
        """Build a record from the remote store's wire shape."""
        platform = str(payload.get("platform") or "other").lower()
        return cls(
            id=str(payload["id"]),
            owner=str(payload.get("user_id") or payload.get("owner") or ""),
            url=str(payload.get("url") or ""),
            title=str(payload.get("title") or DEFAULT_TITLE),
            thumbnail=payload.get("thumbnail") or None,
            platform=platform if platform in ALLOWED_PLATFORMS else "other",
            category=payload.get("category"),
            tags=tuple(str(tag) for tag in (payload.get("tags") or ())),
            created_at=parse_timestamp(payload.get("created_at")) or utcnow(),
            deleted_at=parse_timestamp(payload.get("deleted_at")),
            reviewed_at=parse_timestamp(payload.get("reviewed_at")),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape for insert; the id is assigned remotely and never sent."""
        return {
            "url": self.url,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "platform": self.platform,
            "category": self.category,
            "tags": list(self.tags),
            "created_at": format_timestamp(self.created_at),
            "deleted_at": format_timestamp(self.deleted_at),
            "reviewed_at": format_timestamp(self.reviewed_at),
        }


def changes_to_payload(changes: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for field, value in changes.items():
        if field == "pending":
            continue
        if isinstance(value, datetime):
            value = format_timestamp(value)
        elif field == "tags":
            value = list(value or ())
        payload[field] = value
    return payload


@dataclass(frozen=True)
class ItemPatch:
    """Partial field update addressed to one record id."""

    item_id: str
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class ProfileSettings:
    app_lock_enabled: bool = False
    biometric_registered: bool = False

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "ProfileSettings":
        data = payload or {}
        return cls(
            app_lock_enabled=bool(data.get("app_lock_enabled", False)),
            biometric_registered=bool(data.get("biometric_registered", False)),
        )
