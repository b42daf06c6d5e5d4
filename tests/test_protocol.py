from __future__ import annotations

import pytest
from pydantic import BaseModel

from pylivesync.client.protocol import (
    apply_mutation,
    is_temp_tagged,
    merge_item,
    remove_temp,
    replace_temp,
    tag_optimistic,
    upsert,
)
from pylivesync.exceptions import ProtocolError
from pylivesync.models import build_mutation


def _items() -> list[dict]:
    return [{"id": 1, "text": "a"}, {"id": 2, "text": "b"}]


def test_set_replaces_whole_value() -> None:
    assert apply_mutation(5, build_mutation("count", "set", data=6)) == 6
    assert apply_mutation(_items(), build_mutation("todos", "set", data=[])) == []


def test_append_and_prepend() -> None:
    appended = apply_mutation(_items(), build_mutation("todos", "append", data={"id": 3}))
    prepended = apply_mutation(_items(), build_mutation("todos", "prepend", data={"id": 0}))

    assert [i["id"] for i in appended] == [1, 2, 3]
    assert [i["id"] for i in prepended] == [0, 1, 2]


def test_duplicate_append_duplicates() -> None:
    mutation = build_mutation("todos", "append", data={"id": 3})
    once = apply_mutation(_items(), mutation)
    assert [i["id"] for i in apply_mutation(once, mutation)] == [1, 2, 3, 3]


def test_update_shallow_merges_matching_element() -> None:
    result = apply_mutation(_items(), build_mutation("todos", "update", id=2, changes={"done": True}))
    assert result == [{"id": 1, "text": "a"}, {"id": 2, "text": "b", "done": True}]


def test_update_and_remove_on_absent_id_are_no_ops() -> None:
    items = _items()
    assert apply_mutation(items, build_mutation("todos", "update", id=9, changes={"x": 1})) == items
    assert apply_mutation(items, build_mutation("todos", "remove", id=9)) == items


def test_remove_deletes_element() -> None:
    assert apply_mutation(_items(), build_mutation("todos", "remove", id=1)) == [{"id": 2, "text": "b"}]


def test_apply_does_not_modify_input() -> None:
    items = _items()
    apply_mutation(items, build_mutation("todos", "update", id=1, changes={"text": "z"}))
    apply_mutation(items, build_mutation("todos", "remove", id=2))
    assert items == _items()


def test_list_action_on_scalar_raises() -> None:
    with pytest.raises(ProtocolError):
        apply_mutation("title", build_mutation("title", "append", data="x"))


def test_custom_get_id() -> None:
    items = [{"uuid": "a"}, {"uuid": "b"}]
    result = apply_mutation(items, build_mutation("rows", "remove", id="a"), lambda item: item["uuid"])
    assert result == [{"uuid": "b"}]


class _Todo(BaseModel):
    id: int
    text: str


def test_merge_item_supports_models() -> None:
    merged = merge_item(_Todo(id=1, text="a"), {"text": "b"})
    assert merged == _Todo(id=1, text="b")

    with pytest.raises(ProtocolError):
        merge_item(3, {"text": "b"})


def test_temp_tag_matches_marker_or_id() -> None:
    tagged = tag_optimistic({"id": "local"}, "tmp-1")
    assert tagged["_optimistic"] is True
    assert is_temp_tagged(tagged, "tmp-1")
    assert is_temp_tagged({"id": "tmp-2"}, "tmp-2")
    assert not is_temp_tagged({"id": 1}, "tmp-1")


def test_replace_temp_preserves_position() -> None:
    items = [{"id": 1}, {"id": "tmp-1"}, {"id": 2}]
    result, replaced = replace_temp(items, "tmp-1", {"id": 10})

    assert replaced
    assert result == [{"id": 1}, {"id": 10}, {"id": 2}]


def test_replace_temp_without_match() -> None:
    result, replaced = replace_temp(_items(), "tmp-1", {"id": 10})
    assert not replaced
    assert result == _items()


def test_remove_temp() -> None:
    items = [{"id": 1}, tag_optimistic({"id": "x"}, "tmp-1")]
    assert remove_temp(items, "tmp-1") == [{"id": 1}]


def test_upsert_merges_or_appends() -> None:
    merged = upsert(_items(), {"id": 2, "text": "B"}, merge=lambda old, new: {**old, **new, "merged": True})
    appended = upsert(_items(), {"id": 3, "text": "c"})

    assert merged[1] == {"id": 2, "text": "B", "merged": True}
    assert [i["id"] for i in appended] == [1, 2, 3]
