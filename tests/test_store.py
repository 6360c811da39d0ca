from custom_components.bililive.const import MAX_LOG_LINES
from custom_components.bililive.store import EntityStore, RoomSummary, derive_tags

from .conftest import ROOM_LIST


def test_derive_tags():
    assert derive_tags(listening=True) == ("监控中",)
    assert derive_tags(listening=False) == ("已停止",)
    assert derive_tags(listening=True, recording=True) == ("录制中",)
    assert derive_tags(listening=True, recording_preparing=True) == ("录制准备中",)
    assert derive_tags(listening=False, initializing=True) == ("已停止", "初始化")


def test_room_summary_from_payload():
    room = RoomSummary.from_payload(ROOM_LIST[0])
    assert room.room_id == "r1"
    assert room.name == "Alice"
    assert room.platform_address == "bilibili"
    assert room.url == "https://live.bilibili.com/1"
    assert room.listening is True


def test_replace_list_skips_items_without_id():
    store = EntityStore()
    store.replace_list([{"nick_name": "nobody"}, *ROOM_LIST])
    assert [room.room_id for room in store.rooms] == ["r1", "r2"]

    store.replace_list([ROOM_LIST[1]])
    assert not store.has_room("r1")


def test_sorted_rooms():
    store = EntityStore()
    store.replace_list(
        [
            {"id": "a", "nick_name": "Zed", "platform_cn_name": "b", "listening": True},
            {"id": "b", "nick_name": "Amy", "platform_cn_name": "a", "recording": True},
        ]
    )
    assert [r.room_id for r in store.sorted_rooms({"column_key": "name", "order": "ascend"})] == [
        "b",
        "a",
    ]
    assert [r.room_id for r in store.sorted_rooms({"column_key": "tags", "order": "descend"})] == [
        "b",
        "a",
    ]
    assert [r.room_id for r in store.sorted_rooms(None)] == ["a", "b"]


def test_merge_requires_cached_detail():
    store = EntityStore()
    assert store.merge_detail("r1", {"conn_stats": []}) is False
    assert store.detail("r1") is None

    store.set_detail("r1", {"id": "r1", "conn_stats": [{"host": "old"}], "keep": True})
    assert store.merge_detail("r1", {"conn_stats": [{"host": "new"}]}) is True
    assert store.detail("r1") == {"id": "r1", "conn_stats": [{"host": "new"}], "keep": True}


def test_logs_are_capped_and_discarded():
    store = EntityStore()
    store.set_logs("r1", [str(i) for i in range(MAX_LOG_LINES + 5)])
    assert len(store.logs("r1")) == MAX_LOG_LINES
    store.append_log("r1", "tail")
    assert store.logs("r1")[-1] == "tail"
    assert len(store.logs("r1")) == MAX_LOG_LINES

    store.set_detail("r1", {})
    store.discard("r1")
    assert store.cached_room_ids() == set()
