"""Top-level client session owning the collection store, pipeline and lock gate."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from typing import Any, Awaitable, Callable, Optional, Set

import httpx

from curation.lock import BaseUnlockChallenge, ChallengeOutcome, LockState, SessionLockGate, UnavailableChallenge
from curation.pipeline import MutationPipeline, MutationResult
from curation.remote import (
    BaseAuthProvider,
    BaseRemoteStore,
    HttpAuthProvider,
    HttpRemoteStore,
    create_http_client,
)
from curation.store import CollectionStore
from curation.types import SessionLockedError, utcnow
from curation.views import ViewSnapshot, derive_views

logger = logging.getLogger(__name__)


class CuratorSession:
    """One signed-in client session.

    Holds the only collection store, the transient UI inputs (search query and
    selected category) and the lock gate. Views are derived on demand from an
    immutable snapshot of the store.
    """

    def __init__(
        self,
        remote: BaseRemoteStore,
        auth: BaseAuthProvider,
        *,
        gate: Optional[SessionLockGate] = None,
        store: Optional[CollectionStore] = None,
        clock: Callable[[], datetime] = utcnow,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.remote = remote
        self.auth = auth
        self.store = store or CollectionStore()
        self.gate = gate or SessionLockGate()
        self.pipeline = MutationPipeline(self.store, remote, auth, clock=clock)
        self._clock = clock
        self._client = client
        self._tasks: Set[asyncio.Task] = set()
        self.query = ""
        self.category: Optional[str] = None
        self.loaded = False
        self.load_error: Optional[BaseException] = None

    @classmethod
    def over_http(
        cls,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> "CuratorSession":
        client = create_http_client(base_url, transport)
        return cls(HttpRemoteStore(client), HttpAuthProvider(client), client=client, **kwargs)

    @property
    def owner(self) -> Optional[str]:
        return self.auth.current_owner()

    async def login(self, credential: str) -> LockState:
        await self.auth.login(credential)
        return await self.start()

    async def logout(self) -> None:
        await self.drain()
        await self.auth.logout()
        self.store.reset(None)
        self.gate.evaluate(None, self.auth.profile)
        self.query = ""
        self.category = None
        self.loaded = False
        self.load_error = None

    async def start(self) -> LockState:
        """Evaluate the lock gate and run the initial full fetch."""
        owner = self.owner
        if not owner:
            logger.info("session_start skipped: no owner")
            return self.gate.state
        if self.store.owner != owner:
            self.store.reset(owner)
        state = self.gate.evaluate(owner, self.auth.profile)
        await self.reload()
        return state

    async def reload(self) -> int:
        """Replace local state with a full remote snapshot, keeping unsent adds."""
        owner = self.owner
        if not owner:
            return 0
        try:
            records = await self.remote.fetch_all(owner)
        except Exception as exc:
            self.load_error = exc
            logger.warning("session_load_failed user=%s: %s", owner, exc)
            return len(self.store)

        divergent = {item_id for item_id in self.pipeline.failed_item_ids if item_id in self.store}
        if divergent:
            logger.info("session_reload user=%s overwriting_divergent=%s", owner, len(divergent))
        unsent = [record for record in self.store.snapshot() if record.pending]

        count = self.store.load(records)
        for record in reversed(unsent):
            self.store.apply(record)
        self.pipeline.failed_item_ids.intersection_update(record.id for record in unsent)
        self.loaded = True
        self.load_error = None
        logger.info("session_reload user=%s items=%s unsent=%s", owner, count, len(unsent))
        return len(self.store)

    # Transient view inputs

    def set_query(self, query: Optional[str]) -> None:
        self.query = query or ""

    def select_category(self, category: Optional[str]) -> None:
        self.category = str(category or "").strip() or None

    def clear_category(self) -> None:
        self.category = None

    def views(self, now: Optional[datetime] = None) -> ViewSnapshot:
        if self.gate.is_locked:
            raise SessionLockedError("Session is locked; unlock before reading the collection.")
        return derive_views(self.store.snapshot(), now or self._clock(), self.category, self.query)

    # Lock gate

    async def unlock(self, challenge: Optional[BaseUnlockChallenge] = None) -> ChallengeOutcome:
        return await self.gate.unlock(challenge or UnavailableChallenge())

    async def set_app_lock(self, enabled: bool) -> MutationResult:
        """Persist the app lock setting; the current lock state is left alone."""
        owner = self.owner
        if not owner:
            logger.info("profile_app_lock skipped=no_owner")
            return MutationResult("set_app_lock", skipped="no_owner")
        self.auth.update_profile(app_lock_enabled=bool(enabled))
        try:
            await self.remote.update_profile(owner, {"app_lock_enabled": bool(enabled)})
        except Exception as exc:
            logger.warning("profile_app_lock remote write failed user=%s: %s", owner, exc)
            return MutationResult("set_app_lock", ok=False, error=exc)
        logger.info("profile_app_lock user=%s enabled=%s", owner, bool(enabled))
        return MutationResult("set_app_lock")

    # Mutations

    async def add(self, url: str, title: Optional[str] = None) -> MutationResult:
        return await self.pipeline.add(url, title)

    async def retry_add(self, local_id: str) -> MutationResult:
        return await self.pipeline.retry_add(local_id)

    async def edit(self, item_id: str, **changes: Any) -> MutationResult:
        return await self.pipeline.edit(item_id, **changes)

    async def soft_delete(self, item_id: str) -> MutationResult:
        return await self.pipeline.soft_delete(item_id)

    async def restore(self, item_id: str) -> MutationResult:
        return await self.pipeline.restore(item_id)

    async def delete_forever(self, item_id: str) -> MutationResult:
        return await self.pipeline.delete_forever(item_id)

    async def empty_bin(self) -> MutationResult:
        return await self.pipeline.empty_bin()

    async def purge_expired(self) -> MutationResult:
        return await self.pipeline.purge_expired()

    async def mark_reviewed(self, item_id: str) -> MutationResult:
        return await self.pipeline.mark_reviewed(item_id)

    # Background dispatch

    def dispatch(self, operation: Awaitable[MutationResult]) -> "asyncio.Task[MutationResult]":
        """Run a mutation without blocking the caller; the task is tracked until done."""
        task = asyncio.ensure_future(operation)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "CuratorSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
