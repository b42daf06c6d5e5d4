from __future__ import annotations

import asyncio
import logging

import pytest

from pylivesync.config import SyncConfig
from pylivesync.context import SyncContext
from pylivesync.models import PresenceDiffEvent, PresenceEventName, StoreSyncEvent
from pylivesync.server import PresenceTracker, StoreSyncPublisher, TopicBroadcaster, track_user

ROOM = "room:1"


def test_dispatch_routes_store_events() -> None:
    ctx = SyncContext()
    todos = ctx.create_realtime_store("todos")

    assert ctx.dispatch({"event": "store:sync", "store": "todos", "action": "append", "payload": {"item": {"id": 1}}})
    todos.add_optimistic("tmp-1", {"id": "tmp-1", "text": "draft"})
    assert ctx.dispatch({"event": "store:reconcile", "store": "todos", "tempId": "tmp-1", "item": {"id": 2}})
    todos.add_optimistic("tmp-2", {"id": "tmp-2"})
    assert ctx.dispatch({"event": "store:rollback", "store": "todos", "tempId": "tmp-2", "reason": "nope"})

    assert todos.value == [{"id": 1}, {"id": 2, "_optimistic": False}]


def test_dispatch_routes_presence_events() -> None:
    ctx = SyncContext()
    room = ctx.create_presence(ROOM)

    ctx.dispatch({"event": "presence:sync", "topic": ROOM, "users": [{"id": "u1", "name": "Ada"}]})
    ctx.dispatch({"event": "presence:join", "topic": ROOM, "user": {"id": "u2", "name": "Bob"}})
    ctx.dispatch({"event": "presence:update", "topic": ROOM, "userId": "u2", "meta": {"typing": True}})
    ctx.dispatch({"event": "presence:leave", "topic": ROOM, "userId": "u1"})

    assert [user.id for user in room.users] == ["u2"]
    assert room.typing_users()[0].name == "Bob"


def test_dispatch_drops_unknown_events_and_targets() -> None:
    ctx = SyncContext()

    assert ctx.dispatch({"event": "store:explode"}) is False
    assert ctx.dispatch({"event": "store:sync", "store": "ghost", "action": "set", "payload": {"data": 1}}) is False
    assert ctx.dispatch({"event": "store:sync", "store": "todos", "action": "bogus", "payload": {}}) is False
    assert ctx.dispatch({"event": "presence:sync", "topic": "nowhere", "users": []}) is False


def test_presence_diff_events_update_mirror() -> None:
    ctx = SyncContext()
    room = ctx.create_presence(ROOM)

    ctx.handle_presence_diff(
        ROOM,
        PresenceDiffEvent(event=PresenceEventName.JOIN, user_id="u1", meta={"user_name": "Ada", "online_at": 3.0}),
    )
    assert room.users[0].name == "Ada"
    assert room.users[0].online_at == 3.0

    ctx.handle_presence_diff(ROOM, {"event": "presence_leave", "userId": "u1"})
    assert room.users == []
    assert ctx.handle_presence_diff("nowhere", {"event": "presence_leave", "userId": "u1"}) is False


def test_factories_use_config() -> None:
    config = SyncConfig(operation_id_prefix="save", debounce_delay=0.5, typing_debounce=2.0)
    ctx = SyncContext(config)

    store = ctx.create_store("title", "Draft")
    assert store.next_operation_id() == "save_1"
    assert ctx.debounce(print).delay == 0.5
    assert ctx.get_store("title") is store

    with pytest.raises(ValueError):
        ctx.create_realtime_store("todos", merge="random")
    assert ctx.create_realtime_store("todos", merge="client_wins").merge.__name__ == "client_wins"


def test_close_unregisters_everything() -> None:
    with SyncContext() as ctx:
        ctx.create_list("todos")
        ctx.create_presence(ROOM)

    assert ctx.closed
    assert ctx.registry.names() == []
    assert ctx.get_presence(ROOM) is None


@pytest.mark.asyncio
async def test_two_clients_converge_through_broadcaster() -> None:
    broadcaster = TopicBroadcaster()
    tracker = PresenceTracker(broadcaster, clock=lambda: 100.0)
    publisher = StoreSyncPublisher(broadcaster, sequenced=True)

    clients = []
    for name in ("alice", "bob"):
        ctx = SyncContext()
        ctx.create_realtime_store("todos")
        ctx.create_presence(ROOM)
        sub = broadcaster.new_subscriber(name)
        broadcaster.subscribe(ROOM, sub)
        clients.append((ctx, sub))

    (alice, alice_sub), (bob, bob_sub) = clients

    alice.get_store("todos").add_optimistic("tmp-1", {"id": "tmp-1", "text": "agenda"})
    publisher.reconcile_optimistic(ROOM, "todos", "tmp-1", {"id": 1, "text": "agenda"})
    publisher.broadcast_store_sync(ROOM, "todos", "append", data={"id": 2, "text": "notes"})
    publisher.broadcast_store_sync(ROOM, "todos", "update", id=2, changes={"text": "minutes"})

    track_user(tracker, ROOM, {"id": "u1", "name": "Ada"})
    publisher.push_presence(ROOM, tracker)

    for ctx, sub in clients:
        for message in sub.drain():
            ctx.dispatch(message)

    def _plain(ctx: SyncContext) -> list[dict]:
        return [{k: v for k, v in item.items() if not k.startswith("_")} for item in ctx.get_store("todos").value]

    assert _plain(alice) == _plain(bob) == [{"id": 1, "text": "agenda"}, {"id": 2, "text": "minutes"}]
    assert [user.name for user in bob.get_presence(ROOM).users] == ["Ada"]


@pytest.mark.asyncio
async def test_consume_dispatches_until_cancelled() -> None:
    broadcaster = TopicBroadcaster()
    publisher = StoreSyncPublisher(broadcaster)
    tracker = PresenceTracker(broadcaster, clock=lambda: 1.0)
    ctx = SyncContext()
    todos = ctx.create_realtime_store("todos")
    room = ctx.create_presence(ROOM)

    sub = broadcaster.new_subscriber()
    presence_sub = broadcaster.new_subscriber()
    broadcaster.subscribe(ROOM, sub)
    tracker.subscribe(ROOM, presence_sub)
    tasks = [
        asyncio.create_task(ctx.consume(sub)),
        asyncio.create_task(ctx.consume(presence_sub, presence_of=ROOM)),
    ]

    publisher.broadcast_store_sync(ROOM, "todos", "set", data=[{"id": 5}])
    tracker.track(ROOM, "u1", {"user_name": "Ada"})
    await asyncio.sleep(0.01)

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

    assert todos.value == [{"id": 5}]
    assert [user.id for user in room.users] == ["u1"]


def test_sequenced_publisher_stamps_per_topic_sequence() -> None:
    broadcaster = TopicBroadcaster()
    publisher = StoreSyncPublisher(broadcaster, sequenced=True)
    a, b = broadcaster.new_subscriber(), broadcaster.new_subscriber()
    broadcaster.subscribe("a", a)
    broadcaster.subscribe("b", b)

    publisher.broadcast_store_sync("a", "n", "set", data=1)
    publisher.broadcast_store_sync("a", "n", "set", data=2)
    publisher.broadcast_store_sync("b", "n", "set", data=3)

    seqs_a = [event.seq for event in a.drain()]
    (event_b,) = b.drain()
    assert seqs_a == [1, 2]
    assert isinstance(event_b, StoreSyncEvent)
    assert event_b.seq == 1


def test_presence_update_with_odd_metadata_does_not_raise() -> None:
    ctx = SyncContext()
    room = ctx.create_presence(ROOM)
    ctx.dispatch({"event": "presence:sync", "topic": ROOM, "users": [{"id": "u1", "name": "Ada"}]})

    assert ctx.dispatch({"event": "presence:update", "topic": ROOM, "userId": "u1", "meta": {"avatar": 7}}) is True
    assert room.users[0].avatar == "7"
    assert ctx.dispatch({"event": "presence:update", "topic": ROOM, "userId": "ghost", "meta": {}}) is False


def test_invalid_presence_diff_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    ctx = SyncContext()
    room = ctx.create_presence(ROOM)

    with caplog.at_level(logging.WARNING, logger="pylivesync.context"):
        assert ctx.handle_presence_diff(ROOM, {"event": "presence_wave", "userId": "u1"}) is False
    assert ctx.handle_presence_diff(ROOM, {"event": "presence_join", "userId": "u1", "meta": {"name": 3}}) is True

    assert "Dropping invalid presence diff topic=room:1" in caplog.text
    assert [user.name for user in room.users] == ["3"]


@pytest.mark.asyncio
async def test_consume_keeps_running_after_a_failed_message(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    broadcaster = TopicBroadcaster()
    publisher = StoreSyncPublisher(broadcaster)
    ctx = SyncContext()
    todos = ctx.create_realtime_store("todos")
    sub = broadcaster.new_subscriber("alice")
    broadcaster.subscribe(ROOM, sub)

    dispatch = ctx.dispatch
    calls: list[object] = []

    def flaky_dispatch(message: object) -> bool:
        calls.append(message)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return dispatch(message)

    monkeypatch.setattr(ctx, "dispatch", flaky_dispatch)
    task = asyncio.create_task(ctx.consume(sub))

    with caplog.at_level(logging.WARNING, logger="pylivesync.context"):
        publisher.broadcast_store_sync(ROOM, "todos", "set", data=[{"id": 1}])
        publisher.broadcast_store_sync(ROOM, "todos", "set", data=[{"id": 2}])
        await asyncio.sleep(0.01)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert len(calls) == 2
    assert todos.value == [{"id": 2}]
    assert "Failed to apply message for subscriber=alice" in caplog.text


def test_reset_sequences_accepts_a_restarted_publisher() -> None:
    ctx = SyncContext()
    todos = ctx.create_realtime_store("todos")
    first = {"event": "store:sync", "store": "todos", "action": "set", "payload": {"data": [{"id": 1}]}, "seq": 1}
    again = {"event": "store:sync", "store": "todos", "action": "set", "payload": {"data": [{"id": 2}]}, "seq": 1}

    assert ctx.dispatch(first) is True
    assert ctx.dispatch(again) is False

    ctx.reset_sequences()

    assert ctx.dispatch(again) is True
    assert todos.value == [{"id": 2}]
