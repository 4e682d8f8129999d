"""In-memory collection of the signed-in owner's item records."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from curation.types import ItemPatch, ItemRecord

logger = logging.getLogger(__name__)


class CollectionStore:
    """Holds every record of one owner, keyed by id, in display order.

    Writes are synchronous and unconditional: the last ``apply`` wins. The store
    never talks to the remote store; the mutation pipeline does that.
    """

    def __init__(self, owner: Optional[str] = None) -> None:
        self._owner = owner
        self._records: Dict[str, ItemRecord] = {}

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    def reset(self, owner: Optional[str]) -> None:
        """Drop every record and bind the store to a (possibly different) owner."""
        self._owner = owner
        self._records = {}

    def load(self, records: Iterable[ItemRecord]) -> int:
        """Replace the whole set with a remote snapshot, keeping its order."""
        loaded: Dict[str, ItemRecord] = {}
        foreign = 0
        for record in records:
            if self._owner is not None and record.owner != self._owner:
                foreign += 1
                continue
            loaded[record.id] = record
        if foreign:
            logger.warning("collection_load owner=%s dropped_foreign=%s", self._owner, foreign)
        self._records = loaded
        return len(loaded)

    def apply(self, patch: Union[ItemRecord, ItemPatch]) -> Optional[ItemRecord]:
        """Apply a whole record or a partial update; returns the stored record."""
        if isinstance(patch, ItemRecord):
            if self._owner is not None and patch.owner != self._owner:
                raise ValueError(f"Record {patch.id} belongs to another owner")
            if patch.id in self._records:
                self._records[patch.id] = patch
            else:
                # New records lead, matching the newest-first snapshot order.
                self._records = {patch.id: patch, **self._records}
            return patch

        current = self._records.get(patch.item_id)
        if current is None:
            return None
        updated = current.with_changes(patch.changes)
        self._records[patch.item_id] = updated
        return updated

    def rekey(self, old_id: str, new_id: str) -> Optional[ItemRecord]:
        """Swap a provisional id for the remotely assigned one, keeping position."""
        if old_id not in self._records:
            return None
        rekeyed: Dict[str, ItemRecord] = {}
        for item_id, record in self._records.items():
            if item_id == old_id:
                record = replace(record, id=new_id)
                rekeyed[new_id] = record
            elif item_id != new_id:
                rekeyed[item_id] = record
        self._records = rekeyed
        return rekeyed[new_id]

    def remove(self, item_id: str) -> Optional[ItemRecord]:
        return self._records.pop(item_id, None)

    def remove_many(self, item_ids: Iterable[str]) -> List[ItemRecord]:
        removed = []
        for item_id in item_ids:
            record = self._records.pop(item_id, None)
            if record is not None:
                removed.append(record)
        return removed

    def get(self, item_id: str) -> Optional[ItemRecord]:
        return self._records.get(item_id)

    def snapshot(self) -> Tuple[ItemRecord, ...]:
        """Immutable view of the current records for derivation."""
        return tuple(self._records.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ItemRecord]:
        return iter(self.snapshot())
