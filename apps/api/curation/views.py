"""Pure derivations of the feed, spaces, trash and review queue from a record snapshot.

Nothing here mutates input or caches results: each call recomputes from the
records it is given and the ``now`` it is handed, so the trash retention
boundary moves with the clock rather than with the last refresh.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Sequence, Tuple

from curation.types import ItemRecord, normalize_category, utcnow


TRASH_RETENTION = timedelta(days=30)

Records = Tuple[ItemRecord, ...]


def active_items(records: Iterable[ItemRecord]) -> Records:
    return tuple(record for record in records if record.deleted_at is None)


def _within_retention(record: ItemRecord, now: datetime) -> bool:
    return now - record.deleted_at < TRASH_RETENTION


def trash_items(records: Iterable[ItemRecord], now: Optional[datetime] = None) -> Records:
    """Soft-deleted records still inside the retention window."""
    current = now or utcnow()
    return tuple(
        record
        for record in records
        if record.deleted_at is not None and _within_retention(record, current)
    )


def expired_trash_items(records: Iterable[ItemRecord], now: Optional[datetime] = None) -> Records:
    """Soft-deleted records past retention: hidden everywhere, not yet purged."""
    current = now or utcnow()
    return tuple(
        record
        for record in records
        if record.deleted_at is not None and not _within_retention(record, current)
    )


def is_restorable(record: ItemRecord, now: Optional[datetime] = None) -> bool:
    return record.deleted_at is not None and _within_retention(record, now or utcnow())


def _matches_query(record: ItemRecord, needle: str) -> bool:
    return needle in (record.title or "").lower() or needle in (record.url or "").lower()


def feed_items(
    records: Iterable[ItemRecord],
    category: Optional[str] = None,
    query: str = "",
) -> Records:
    """Active records narrowed by category first, then by title/url text."""
    result = active_items(records)
    if category:
        result = tuple(record for record in result if normalize_category(record.category) == category)
    needle = str(query or "").strip().lower()
    if needle:
        result = tuple(record for record in result if _matches_query(record, needle))
    return result


def spaces(records: Iterable[ItemRecord]) -> Dict[str, Records]:
    """Active records grouped by category, keys in first-seen order."""
    groups: Dict[str, list] = {}
    for record in active_items(records):
        groups.setdefault(normalize_category(record.category), []).append(record)
    return {name: tuple(members) for name, members in groups.items()}


def review_queue(records: Iterable[ItemRecord]) -> Records:
    """Unreviewed active records, oldest first."""
    pending_review = [record for record in active_items(records) if record.reviewed_at is None]
    return tuple(sorted(pending_review, key=lambda record: record.created_at))


def review_head(records: Iterable[ItemRecord]) -> Optional[ItemRecord]:
    queue = review_queue(records)
    return queue[0] if queue else None


@dataclass(frozen=True)
class ViewSnapshot:
    """Every derived view computed from one record snapshot at one instant."""

    now: datetime
    active: Records = ()
    feed: Records = ()
    trash: Records = ()
    spaces: Dict[str, Records] = field(default_factory=dict)
    review_queue: Records = ()
    category: Optional[str] = None
    query: str = ""

    @property
    def review_head(self) -> Optional[ItemRecord]:
        return self.review_queue[0] if self.review_queue else None

    @property
    def space_counts(self) -> Dict[str, int]:
        return {name: len(members) for name, members in self.spaces.items()}


def derive_views(
    records: Sequence[ItemRecord],
    now: Optional[datetime] = None,
    category: Optional[str] = None,
    query: str = "",
) -> ViewSnapshot:
    current = now or utcnow()
    snapshot = tuple(records)
    return ViewSnapshot(
        now=current,
        active=active_items(snapshot),
        feed=feed_items(snapshot, category=category, query=query),
        trash=trash_items(snapshot, current),
        spaces=spaces(snapshot),
        review_queue=review_queue(snapshot),
        category=category,
        query=query,
    )
