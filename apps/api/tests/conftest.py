import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from curation.remote import BaseAuthProvider, BaseRemoteStore
from curation.types import ItemRecord, ProfileSettings, RemoteStoreError
from database import Base, get_db
from main import app


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRemoteStore(BaseRemoteStore):
    """In-memory remote store that records calls and can fail or stall per operation."""

    def __init__(self, rows: Iterable[ItemRecord] = ()):
        self.rows: Dict[str, ItemRecord] = {row.id: row for row in rows}
        self.profiles: Dict[str, ProfileSettings] = {}
        self.calls: List[Tuple] = []
        self.fail_ops: Set[str] = set()
        self.stalls: Dict[str, asyncio.Event] = {}
        self._next_id = 0

    async def _enter(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        stall = self.stalls.get(op)
        if stall is not None:
            await stall.wait()
        if op in self.fail_ops:
            raise RemoteStoreError(f"{op} unavailable", status_code=503)

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def fetch_all(self, owner: str) -> List[ItemRecord]:
        await self._enter("fetch_all", owner)
        owned = [row for row in self.rows.values() if row.owner == owner]
        return sorted(owned, key=lambda row: row.created_at, reverse=True)

    async def insert(self, owner: str, record: ItemRecord) -> str:
        await self._enter("insert", owner, record)
        self._next_id += 1
        new_id = f"srv-{self._next_id}"
        self.rows[new_id] = replace(record, id=new_id, owner=owner, pending=False)
        return new_id

    async def update(self, owner: str, item_id: str, fields) -> None:
        await self._enter("update", owner, item_id, dict(fields))
        if item_id not in self.rows:
            raise RemoteStoreError("Item not found", status_code=404)
        self.rows[item_id] = self.rows[item_id].with_changes(fields)

    async def delete(self, owner: str, item_id: str) -> None:
        await self._enter("delete", owner, item_id)
        if self.rows.pop(item_id, None) is None:
            raise RemoteStoreError("Item not found", status_code=404)

    async def delete_many(self, owner: str, item_ids) -> int:
        ids = list(item_ids)
        await self._enter("delete_many", owner, ids)
        return len([item_id for item_id in ids if self.rows.pop(item_id, None) is not None])

    async def fetch_profile(self, owner: str) -> ProfileSettings:
        await self._enter("fetch_profile", owner)
        return self.profiles.get(owner, ProfileSettings())

    async def update_profile(self, owner: str, fields) -> None:
        await self._enter("update_profile", owner, dict(fields))
        self.profiles[owner] = replace(self.profiles.get(owner, ProfileSettings()), **fields)


class FakeAuthProvider(BaseAuthProvider):
    def __init__(self, owner: Optional[str] = None, profile: Optional[ProfileSettings] = None):
        super().__init__()
        self._owner = owner
        if profile is not None:
            self._profile = profile

    async def login(self, credential: str) -> str:
        self._owner = credential
        return credential


def make_record(
    item_id: str,
    *,
    owner: str = "owner-1",
    title: str = "Saved link",
    url: Optional[str] = None,
    category: Optional[str] = "Inbox",
    created_at: datetime = T0,
    deleted_at: Optional[datetime] = None,
    reviewed_at: Optional[datetime] = None,
    platform: str = "other",
) -> ItemRecord:
    return ItemRecord(
        id=item_id,
        owner=owner,
        url=url or f"https://example.com/{item_id}",
        title=title,
        platform=platform,
        category=category,
        created_at=created_at,
        deleted_at=deleted_at,
        reviewed_at=reviewed_at,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def api_client(tmp_path):
    db_path = tmp_path / "curator_api.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker, engine

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()
