"""Optimistic mutation pipeline.

Every operation applies its local effect to the collection store before the
first ``await``, then issues the matching remote store call. A failed remote
call is logged and reported in the returned ``MutationResult``; the local
change stays in place and the id is remembered in ``failed_item_ids``.

Records added locally carry a provisional ``local-`` id and ``pending=True``
until the insert returns the assigned id. Changes made to a pending record are
applied locally only; once the insert lands, any drift between what was sent
and the current local record is pushed as one follow-up update (or a delete,
if the record was removed meanwhile).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence, Set, Tuple

from curation.platforms import derive_thumbnail, detect_platform
from curation.remote import BaseAuthProvider, BaseRemoteStore
from curation.store import CollectionStore
from curation.types import (
    CONTENT_FIELDS,
    DEFAULT_TITLE,
    INBOX,
    LIFECYCLE_FIELDS,
    ItemPatch,
    ItemRecord,
    new_local_id,
    normalize_category,
    utcnow,
)
from curation.views import expired_trash_items, is_restorable

logger = logging.getLogger(__name__)

ADD_FAILED_ALERT = "Failed to save item. Please check your connection."
SYNCED_FIELDS = tuple(sorted(CONTENT_FIELDS | LIFECYCLE_FIELDS))


@dataclass(frozen=True)
class MutationResult:
    operation: str
    item_ids: Tuple[str, ...] = ()
    ok: bool = True
    error: Optional[BaseException] = None
    skipped: Optional[str] = None
    deferred: bool = False
    alert: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.skipped is None


class MutationPipeline:
    def __init__(
        self,
        store: CollectionStore,
        remote: BaseRemoteStore,
        auth: BaseAuthProvider,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.remote = remote
        self.auth = auth
        self._clock = clock
        self.failed_item_ids: Set[str] = set()
        self._inflight_inserts: Set[str] = set()

    def _skip(self, operation: str, reason: str, item_ids: Sequence[str] = ()) -> MutationResult:
        logger.info("item_%s skipped=%s items=%s", operation, reason, ",".join(item_ids) or "-")
        return MutationResult(operation, tuple(item_ids), skipped=reason)

    async def _remote(
        self,
        operation: str,
        owner: str,
        item_ids: Sequence[str],
        call: Callable[[], Awaitable[Any]],
        remote_ids: Optional[Sequence[str]] = None,
    ) -> MutationResult:
        tracked = list(item_ids if remote_ids is None else remote_ids)
        try:
            await call()
        except Exception as exc:
            self.failed_item_ids.update(tracked)
            logger.warning(
                "item_%s remote write failed user=%s items=%s: %s",
                operation,
                owner,
                ",".join(tracked),
                exc,
            )
            return MutationResult(operation, tuple(item_ids), ok=False, error=exc)
        self.failed_item_ids.difference_update(tracked)
        logger.info("item_%s user=%s items=%s", operation, owner, ",".join(item_ids))
        return MutationResult(operation, tuple(item_ids))

    async def add(self, url: str, title: Optional[str] = None) -> MutationResult:
        owner = self.auth.current_owner()
        if not owner:
            return self._skip("add", "no_owner")
        canonical_url = str(url or "").strip()
        if not canonical_url:
            return self._skip("add", "empty_url")

        platform = detect_platform(canonical_url)
        record = ItemRecord(
            id=new_local_id(),
            owner=owner,
            url=canonical_url,
            title=str(title or "").strip() or DEFAULT_TITLE,
            thumbnail=derive_thumbnail(canonical_url, platform),
            platform=platform,
            category=INBOX,
            tags=(),
            created_at=self._clock(),
            pending=True,
        )
        self.store.apply(record)
        return await self._confirm_insert(owner, record)

    async def retry_add(self, local_id: str) -> MutationResult:
        """Re-send the insert for a record whose earlier add failed."""
        owner = self.auth.current_owner()
        if not owner:
            return self._skip("add", "no_owner", [local_id])
        record = self.store.get(local_id)
        if record is None:
            return self._skip("add", "missing", [local_id])
        if not record.pending:
            return self._skip("add", "not_pending", [local_id])
        if local_id in self._inflight_inserts:
            return self._skip("add", "in_flight", [local_id])
        return await self._confirm_insert(owner, record)

    async def _confirm_insert(self, owner: str, sent: ItemRecord) -> MutationResult:
        self._inflight_inserts.add(sent.id)
        try:
            new_id = await self.remote.insert(owner, sent)
        except Exception as exc:
            self.failed_item_ids.add(sent.id)
            logger.warning("item_add insert failed user=%s item=%s url=%s: %s", owner, sent.id, sent.url, exc)
            return MutationResult("add", (sent.id,), ok=False, error=exc, alert=ADD_FAILED_ALERT)
        finally:
            self._inflight_inserts.discard(sent.id)
        self.failed_item_ids.discard(sent.id)

        if sent.id not in self.store:
            # Deleted for good while the insert was in flight.
            return await self._remote("add", owner, [new_id], lambda: self.remote.delete(owner, new_id))

        self.store.rekey(sent.id, new_id)
        confirmed = self.store.apply(ItemPatch(new_id, {"pending": False}))
        logger.info("item_add user=%s item=%s platform=%s", owner, new_id, confirmed.platform)

        drift = {
            field: getattr(confirmed, field)
            for field in SYNCED_FIELDS
            if getattr(confirmed, field) != getattr(sent, field)
        }
        if drift:
            return await self._remote("add", owner, [new_id], lambda: self.remote.update(owner, new_id, drift))
        return MutationResult("add", (new_id,))

    async def _update_fields(
        self,
        operation: str,
        item_id: str,
        changes: Dict[str, Any],
        check: Optional[Callable[[ItemRecord], Optional[str]]] = None,
    ) -> MutationResult:
        owner = self.auth.current_owner()
        if not owner:
            return self._skip(operation, "no_owner", [item_id])
        record = self.store.get(item_id)
        if record is None:
            return self._skip(operation, "missing", [item_id])
        if check is not None:
            reason = check(record)
            if reason:
                return self._skip(operation, reason, [item_id])

        updated = self.store.apply(ItemPatch(item_id, changes))
        if updated.pending:
            logger.info("item_%s deferred until insert user=%s item=%s", operation, owner, item_id)
            return MutationResult(operation, (item_id,), deferred=True)
        return await self._remote(operation, owner, [item_id], lambda: self.remote.update(owner, item_id, changes))

    async def edit(self, item_id: str, **changes: Any) -> MutationResult:
        """Explicit update of content descriptors (title, url, category, tags...)."""
        unknown = set(changes) - CONTENT_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "url" in changes:
            changes["url"] = str(changes["url"] or "").strip()
            if not changes["url"]:
                return self._skip("edit", "empty_url", [item_id])
            if "platform" not in changes:
                changes["platform"] = detect_platform(changes["url"])
                changes.setdefault("thumbnail", derive_thumbnail(changes["url"], changes["platform"]))
        if "title" in changes:
            changes["title"] = str(changes["title"] or "").strip() or DEFAULT_TITLE
        if "category" in changes:
            changes["category"] = normalize_category(changes["category"])
        if "tags" in changes:
            changes["tags"] = tuple(str(tag) for tag in (changes["tags"] or ()))
        return await self._update_fields("edit", item_id, changes)

    async def soft_delete(self, item_id: str) -> MutationResult:
        def _check(record: ItemRecord) -> Optional[str]:
            # Re-stamping would pull expired trash back into the retention window.
            return "already_deleted" if record.deleted_at is not None else None

        return await self._update_fields("soft_delete", item_id, {"deleted_at": self._clock()}, check=_check)

    async def restore(self, item_id: str) -> MutationResult:
        now = self._clock()

        def _check(record: ItemRecord) -> Optional[str]:
            return None if is_restorable(record, now) else "not_restorable"

        return await self._update_fields("restore", item_id, {"deleted_at": None}, check=_check)

    async def mark_reviewed(self, item_id: str) -> MutationResult:
        return await self._update_fields("mark_reviewed", item_id, {"reviewed_at": self._clock()})

    async def delete_forever(self, item_id: str) -> MutationResult:
        owner = self.auth.current_owner()
        if not owner:
            return self._skip("delete_forever", "no_owner", [item_id])
        record = self.store.remove(item_id)
        if record is None:
            return self._skip("delete_forever", "missing", [item_id])
        if record.pending:
            self.failed_item_ids.discard(item_id)
            return MutationResult("delete_forever", (item_id,), deferred=True)
        return await self._remote("delete_forever", owner, [item_id], lambda: self.remote.delete(owner, item_id))

    async def _remove_batch(self, operation: str, owner: str, records: Iterable[ItemRecord]) -> MutationResult:
        batch = list(records)
        if not batch:
            return MutationResult(operation, ())
        removed_ids = [record.id for record in batch]
        self.store.remove_many(removed_ids)
        remote_ids = [record.id for record in batch if not record.pending]
        for record in batch:
            if record.pending:
                self.failed_item_ids.discard(record.id)
        if not remote_ids:
            return MutationResult(operation, tuple(removed_ids), deferred=True)
        return await self._remote(
            operation,
            owner,
            removed_ids,
            lambda: self.remote.delete_many(owner, remote_ids),
            remote_ids=remote_ids,
        )

    async def empty_bin(self) -> MutationResult:
        """Remove everything marked deleted, whatever its age."""
        owner = self.auth.current_owner()
        if not owner:
            return self._skip("empty_bin", "no_owner")
        trashed = [record for record in self.store.snapshot() if record.deleted_at is not None]
        return await self._remove_batch("empty_bin", owner, trashed)

    async def purge_expired(self, now: Optional[datetime] = None) -> MutationResult:
        """Physically remove trash that has aged out of the retention window."""
        owner = self.auth.current_owner()
        if not owner:
            return self._skip("purge_expired", "no_owner")
        expired = expired_trash_items(self.store.snapshot(), now or self._clock())
        return await self._remove_batch("purge_expired", owner, expired)
