from __future__ import annotations

import asyncio
import logging

import pytest

from pylivesync.client.presence import PresenceStore, TypingIndicator
from pylivesync.models import PresenceUser


def test_sync_join_leave_update() -> None:
    store = PresenceStore("room:1")
    snapshots: list[list[str]] = []
    store.subscribe(lambda users: snapshots.append([user.id for user in users]))

    store.sync([{"id": "u1", "name": "Ada", "onlineAt": 1.0}])
    store.join(PresenceUser(id="u2", name="Bob"))
    store.join({"id": "u2", "name": "Bob again"})
    store.update_user("u2", {"typing": True, "cursor": 3})
    store.leave("u1")

    assert snapshots == [[], ["u1"], ["u1", "u2"], ["u1", "u2"], ["u2"]]
    (bob,) = store.users
    assert bob.name == "Bob"
    assert bob.typing is True
    assert bob.to_wire()["cursor"] == 3
    assert store.count() == 1
    assert [user.id for user in store.typing_users()] == ["u2"]
    assert store.is_online("u2")
    assert not store.is_online("u1")


def test_update_of_unknown_user_changes_nothing() -> None:
    store = PresenceStore("room:1")
    store.sync([{"id": "u1"}])
    store.update_user("ghost", {"typing": True})
    assert store.typing_users() == []


@pytest.mark.asyncio
async def test_typing_indicator_starts_once_and_stops_after_silence() -> None:
    events: list[str] = []
    indicator = TypingIndicator(lambda: events.append("start"), lambda: events.append("stop"), debounce=0.02)

    indicator.on_input()
    indicator.on_input()
    indicator.on_input()
    assert indicator.is_typing
    assert events == ["start"]

    await asyncio.sleep(0.06)

    assert events == ["start", "stop"]
    assert not indicator.is_typing


@pytest.mark.asyncio
async def test_typing_indicator_explicit_stop_and_async_callbacks() -> None:
    events: list[str] = []

    async def started() -> None:
        events.append("start")

    indicator = TypingIndicator(started, lambda: events.append("stop"), debounce=10.0)
    indicator.on_input()
    await asyncio.sleep(0)
    indicator.stop()
    indicator.stop()

    assert events == ["start", "stop"]


@pytest.mark.asyncio
async def test_typing_indicator_close_is_silent() -> None:
    events: list[str] = []
    indicator = TypingIndicator(on_stop=lambda: events.append("stop"), debounce=0.01)

    indicator.on_input()
    indicator.close()
    await asyncio.sleep(0.03)

    assert events == []
    assert not indicator.is_typing


def test_unusable_user_payloads_are_dropped(caplog: pytest.LogCaptureFixture) -> None:
    store = PresenceStore("room:1")
    store.sync([{"id": "u1", "name": "Ada"}])

    with caplog.at_level(logging.WARNING, logger="pylivesync.client.presence"):
        assert store.join({"name": "no id"}) is False
        assert store.sync([{"id": "u2"}, {"id": None}]) is False

    assert [user.id for user in store.users] == ["u1"]
    assert "Dropping presence join topic=room:1" in caplog.text
    assert "Dropping presence snapshot topic=room:1" in caplog.text


def test_update_coerces_loose_metadata() -> None:
    store = PresenceStore("room:1")
    store.sync([{"id": "u1", "name": "Ada", "avatar": "ada.png"}])

    assert store.update_user("u1", {"avatar": 7, "status": None, "onlineAt": "later"}) is True

    (ada,) = store.users
    assert ada.avatar == "7"
    assert ada.status == "online"
    assert ada.online_at is None
    assert ada.name == "Ada"
