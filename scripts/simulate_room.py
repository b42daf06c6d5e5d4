#!/usr/bin/env python3
"""Simulate a shared room with two clients and print the converged state.

Wires one broadcaster, one presence tracker and one store publisher to two
client sessions.  Alice adds a todo optimistically; the "server" confirms
it and broadcasts the reconcile, Bob types, then leaves.  Both sessions
end with the same todo list.

Usage:
    python scripts/simulate_room.py [--latency 0.05] [--fail] [--verbose]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pylivesync import (  # noqa: E402
    PresenceTracker,
    StoreSyncPublisher,
    SyncConfig,
    SyncContext,
    TopicBroadcaster,
    track_user,
)
from pylivesync.models import presence_topic  # noqa: E402

ROOM = "room:lobby"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--latency", type=float, default=0.05, help="Simulated server latency in seconds.")
    parser.add_argument("--fail", action="store_true", help="Make the server reject Alice's todo.")
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging.")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    config = SyncConfig.from_env()
    broadcaster = TopicBroadcaster(queue_size=config.subscriber_queue_size)
    tracker = PresenceTracker(broadcaster)
    publisher = StoreSyncPublisher(broadcaster, sequenced=True)

    sessions: dict[str, SyncContext] = {}
    consumers: list[asyncio.Task[None]] = []
    for name in ("alice", "bob"):
        ctx = SyncContext(config)
        ctx.create_realtime_store("todos", sort=lambda t: t.get("position", 0))
        ctx.create_presence(ROOM)

        room_sub = broadcaster.new_subscriber(name)
        presence_sub = broadcaster.new_subscriber(f"{name}-presence")
        broadcaster.subscribe(ROOM, room_sub)
        tracker.subscribe(ROOM, presence_sub)
        consumers.append(asyncio.create_task(ctx.consume(room_sub)))
        consumers.append(asyncio.create_task(ctx.consume(presence_sub, presence_of=ROOM)))

        track_user(tracker, ROOM, {"id": name, "name": name.title()}, ref=room_sub.subscriber_id)
        publisher.push_presence(ROOM, tracker, to=room_sub)
        sessions[name] = ctx

    alice = sessions["alice"]
    todos = alice.get_store("todos")
    todos.add_optimistic("tmp-1", {"id": "tmp-1", "text": "Write the agenda", "position": 1})

    await asyncio.sleep(args.latency)
    if args.fail:
        publisher.rollback_optimistic(ROOM, "todos", "tmp-1", reason="rejected by server")
    else:
        publisher.reconcile_optimistic(ROOM, "todos", "tmp-1", {"id": 1, "text": "Write the agenda", "position": 1})

    bob_typing = sessions["bob"].typing_indicator(
        lambda: tracker.update(ROOM, "bob", {"typing": True}),
        lambda: tracker.update(ROOM, "bob", {"typing": False}),
        debounce=args.latency,
    )
    bob_typing.on_input()
    await asyncio.sleep(args.latency * 2)

    tracker.untrack(ROOM, "bob")
    await asyncio.sleep(0)

    for task in consumers:
        task.cancel()
    await asyncio.gather(*consumers, return_exceptions=True)

    report = {
        name: {
            "todos": ctx.get_store("todos").value,
            "present": [user.id for user in ctx.get_presence(ROOM).users],
        }
        for name, ctx in sessions.items()
    }
    report["server"] = {
        "present": [user.id for user in tracker.list(ROOM)],
        "topics": sorted(broadcaster.topics()),
        "presence_topic": presence_topic(ROOM),
    }
    for ctx in sessions.values():
        ctx.close()
    return report


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    report = asyncio.run(_run(args))
    print(json.dumps(report, indent=2, default=str))


if __name__ == "__main__":
    main()
