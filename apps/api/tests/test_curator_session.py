import asyncio
from datetime import timedelta

import pytest

from conftest import T0, FakeAuthProvider, FakeClock, FakeRemoteStore, make_record
from curation.lock import ChallengeOutcome, LockState, SessionLockGate, SessionMarker
from curation.session import CuratorSession
from curation.types import ProfileSettings, SessionLockedError, is_local_id


def _session(rows=(), owner="owner-1", profile=None, marker=None, clock=None):
    remote = FakeRemoteStore(rows)
    auth = FakeAuthProvider(owner, profile)
    gate = SessionLockGate(marker, degrade_to_unlocked=True)
    return CuratorSession(remote, auth, gate=gate, clock=clock or FakeClock()), remote


@pytest.mark.asyncio
async def test_start_loads_snapshot_newest_first():
    rows = [
        make_record("old", created_at=T0 - timedelta(days=2)),
        make_record("new", created_at=T0),
        make_record("theirs", owner="owner-2"),
    ]
    session, remote = _session(rows)

    state = await session.start()

    assert state is LockState.UNLOCKED
    assert session.loaded is True
    assert [record.id for record in session.views().feed] == ["new", "old"]
    assert remote.ops() == ["fetch_all"]


@pytest.mark.asyncio
async def test_locked_session_hides_views_until_unlocked():
    session, _ = _session([make_record("a")], profile=ProfileSettings(app_lock_enabled=True))

    assert await session.start() is LockState.LOCKED
    with pytest.raises(SessionLockedError):
        session.views()

    assert await session.unlock() is ChallengeOutcome.UNAVAILABLE
    assert [record.id for record in session.views().feed] == ["a"]


@pytest.mark.asyncio
async def test_enabling_app_lock_does_not_lock_current_session():
    marker = SessionMarker()
    session, remote = _session(marker=marker)
    await session.start()

    result = await session.set_app_lock(True)

    assert result.ok is True
    assert session.gate.state is LockState.UNLOCKED
    assert session.auth.profile.app_lock_enabled is True
    assert remote.profiles["owner-1"].app_lock_enabled is True

    fresh, _ = _session(profile=ProfileSettings(app_lock_enabled=True))
    assert await fresh.start() is LockState.LOCKED


@pytest.mark.asyncio
async def test_unlock_holds_for_restarts_within_the_session():
    marker = SessionMarker()
    profile = ProfileSettings(app_lock_enabled=True)
    session, _ = _session(profile=profile, marker=marker)
    await session.start()
    await session.unlock()

    assert await session.start() is LockState.UNLOCKED


@pytest.mark.asyncio
async def test_load_failure_leaves_empty_store_and_records_error():
    session, remote = _session([make_record("a")])
    remote.fail_ops.add("fetch_all")

    await session.start()

    assert session.loaded is False
    assert session.load_error is not None
    assert len(session.store) == 0
    views = session.views()
    assert views.feed == ()
    assert views.review_head is None


@pytest.mark.asyncio
async def test_reload_keeps_unsent_adds_and_replaces_the_rest():
    session, remote = _session([make_record("a")])
    await session.start()
    remote.fail_ops.add("insert")
    failed = await session.add("https://example.com/offline")
    local_id = failed.item_ids[0]

    remote.rows["b"] = make_record("b", created_at=T0 + timedelta(hours=1))
    await session.reload()

    ids = [record.id for record in session.store.snapshot()]
    assert ids == [local_id, "b", "a"]
    assert local_id in session.pipeline.failed_item_ids

    remote.fail_ops.clear()
    retried = await session.retry_add(local_id)
    assert retried.ok is True
    assert not any(is_local_id(record.id) for record in session.store.snapshot())


@pytest.mark.asyncio
async def test_query_and_category_narrow_the_feed():
    rows = [
        make_record("a", title="Paris food tour", category="Travel"),
        make_record("b", title="Paris museum", category="Art"),
        make_record("c", title="Rome", category="Travel"),
    ]
    session, _ = _session(rows)
    await session.start()

    session.select_category("Travel")
    session.set_query("paris")
    views = session.views()
    assert [record.id for record in views.feed] == ["a"]
    assert views.space_counts == {"Travel": 2, "Art": 1}

    session.clear_category()
    session.set_query(None)
    assert len(session.views().feed) == 3


@pytest.mark.asyncio
async def test_dispatch_returns_before_remote_and_drain_waits():
    session, remote = _session()
    await session.start()
    remote.stalls["insert"] = asyncio.Event()

    task = session.dispatch(session.add("https://example.com/x"))
    await asyncio.sleep(0)

    assert session.store.snapshot()[0].pending is True
    assert not task.done()

    remote.stalls["insert"].set()
    await session.drain()

    assert task.result().item_ids == ("srv-1",)
    assert [record.id for record in session.store.snapshot()] == ["srv-1"]


@pytest.mark.asyncio
async def test_logout_clears_local_state():
    session, remote = _session([make_record("a")])
    await session.start()
    session.set_query("x")
    session.select_category("Inbox")

    await session.logout()

    assert session.owner is None
    assert len(session.store) == 0
    assert session.query == ""
    assert session.category is None
    assert (await session.add("https://example.com")).skipped == "no_owner"
    assert remote.ops() == ["fetch_all"]


@pytest.mark.asyncio
async def test_login_as_another_owner_resets_the_store():
    rows = [make_record("a"), make_record("z", owner="owner-2")]
    session, _ = _session(rows)
    await session.start()

    await session.login("owner-2")

    assert session.store.owner == "owner-2"
    assert [record.id for record in session.store.snapshot()] == ["z"]


@pytest.mark.asyncio
async def test_blank_category_selection_shows_whole_feed():
    rows = [make_record("a", category="Travel"), make_record("b", category=None)]
    session, _ = _session(rows)
    await session.start()

    session.select_category("   ")
    assert session.category is None
    assert len(session.views().feed) == 2

    session.select_category(" Travel ")
    assert [record.id for record in session.views().feed] == ["a"]


@pytest.mark.asyncio
async def test_spaces_follow_newest_first_order_of_added_items():
    clock = FakeClock()
    session, _ = _session(clock=clock)
    await session.start()

    first = (await session.add("https://example.com/1")).item_ids[0]
    clock.advance(minutes=1)
    second = (await session.add("https://example.com/2")).item_ids[0]
    clock.advance(minutes=1)
    third = (await session.add("https://example.com/3")).item_ids[0]
    await session.edit(third, category="Travel")

    views = session.views()
    assert [record.id for record in views.active] == [third, second, first]
    assert list(views.spaces) == ["Travel", "Inbox"]
    assert views.space_counts == {"Travel": 1, "Inbox": 2}
    assert [record.id for record in views.spaces["Inbox"]] == [second, first]

    await session.reload()
    assert list(session.views().spaces) == ["Travel", "Inbox"]
