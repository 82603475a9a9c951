from datetime import datetime, timedelta, timezone

import pytest

from todo_mcp.errors import SessionError
from todo_mcp.session.registry import SessionRegistry


class _Clock:  # noqa: D401 – manually advanced clock
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _registry(timeout: float = 60.0):
    clock = _Clock()
    return SessionRegistry(timeout, clock=clock), clock


def test_create_returns_unique_ids():
    registry, _ = _registry()
    ids = {registry.create() for _ in range(50)}
    assert len(ids) == 50
    assert len(registry) == 50


def test_get_returns_live_session():
    registry, clock = _registry()
    sid = registry.create()
    clock.advance(30)
    session = registry.get(sid)
    assert session is not None
    assert session.id == sid
    assert session.is_active


def test_expired_session_is_removed_on_access():
    registry, clock = _registry(timeout=60)
    sid = registry.create()
    clock.advance(61)

    # Not yet swept, but never handed out and not listed as active
    assert registry.list_active() == []
    assert registry.get(sid) is None
    assert sid not in registry


def test_touch_slides_the_idle_window():
    registry, clock = _registry(timeout=60)
    sid = registry.create()
    for _ in range(5):
        clock.advance(45)
        registry.touch(sid)
    assert registry.get(sid) is not None


def test_touch_never_creates_a_session():
    registry, _ = _registry()
    registry.touch("not-a-session")
    assert len(registry) == 0


def test_touch_only_affects_its_own_session():
    registry, clock = _registry()
    first = registry.create()
    second = registry.create()
    before = registry.get(second).last_activity_at

    clock.advance(10)
    registry.touch(first)

    assert registry.get(first).last_activity_at == clock.now
    assert registry.get(second).last_activity_at == before


def test_remove_is_idempotent_and_notifies_once():
    registry, _ = _registry()
    removed = []
    registry.add_removal_listener(removed.append)
    sid = registry.create()

    registry.remove(sid)
    registry.remove(sid)
    registry.remove("never-existed")

    assert removed == [sid]
    assert registry.get(sid) is None


def test_failing_listener_does_not_block_others():
    registry, _ = _registry()
    seen = []

    def _boom(_sid):
        raise RuntimeError("listener failure")

    registry.add_removal_listener(_boom)
    registry.add_removal_listener(seen.append)
    sid = registry.create()
    registry.remove(sid)
    assert seen == [sid]


def test_sweep_removes_only_expired_sessions():
    registry, clock = _registry(timeout=60)
    stale = registry.create()
    clock.advance(50)
    fresh = registry.create()
    clock.advance(20)

    assert registry.sweep() == 1
    assert stale not in registry
    assert fresh in registry
    assert [s.id for s in registry.list_active()] == [fresh]


def test_list_active_returns_snapshots():
    registry, _ = _registry()
    sid = registry.create()
    snapshot = registry.list_active()[0]
    snapshot.is_active = False
    assert registry.get(sid).is_active is True


def test_timeout_below_minimum_is_rejected():
    with pytest.raises(ValueError):
        SessionRegistry(5)


@pytest.mark.asyncio
async def test_teardown_stops_sweep_and_forgets_sessions():
    registry, _ = _registry()
    registry.start()
    sid = registry.create()

    registry.teardown()

    assert len(registry) == 0
    assert registry.get(sid) is None
    assert registry.list_active() == []
    with pytest.raises(SessionError):
        registry.create()
    with pytest.raises(RuntimeError):
        registry.start()


def test_create_after_teardown_is_a_session_error():
    registry, _ = _registry()
    registry.teardown()
    with pytest.raises(SessionError):
        registry.create()
    assert registry.sweep() == 0
    assert registry.get("anything") is None
