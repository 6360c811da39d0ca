import pytest

from custom_components.bililive.events import (
    ConnStats,
    ListChange,
    LiveUpdate,
    LogLine,
    RateLimitUpdate,
    RecorderStatus,
    UnknownEventError,
    parse_event,
)


def test_parse_room_events():
    assert parse_event({"type": "live_update", "room_id": "r1"}) == LiveUpdate("r1")
    assert parse_event({"type": "log", "room_id": "r1", "data": "hello"}) == LogLine("r1", "hello")
    assert parse_event({"type": "conn_stats", "room_id": "r1", "data": [{"n": 1}]}) == ConnStats(
        "r1", [{"n": 1}]
    )
    assert parse_event(
        {"type": "recorder_status", "room_id": "r1", "data": {"speed": "1.0x"}}
    ) == RecorderStatus("r1", {"speed": "1.0x"})


def test_room_id_falls_back_to_subscription():
    assert parse_event({"type": "log", "data": "x"}, "r9") == LogLine("r9", "x")


def test_list_change_without_room():
    assert parse_event({"type": "list_change", "data": {"change_type": "room_added"}}) == ListChange(
        None, "room_added"
    )


def test_rate_limit_update_splits_scheduler_and_legacy_fields():
    event = parse_event(
        {
            "type": "rate_limit_update",
            "room_id": "r1",
            "data": {
                "scheduler_status": {"scheduler_running": True},
                "next_request_in_sec": 3,
                "waited_seconds": 17,
            },
        }
    )
    assert event == RateLimitUpdate(
        "r1",
        scheduler_status={"scheduler_running": True},
        rate_limit_info={"next_request_in_sec": 3, "waited_seconds": 17},
    )


def test_rate_limit_update_with_only_scheduler():
    event = parse_event(
        {"type": "rate_limit_update", "room_id": "r1", "data": {"scheduler_status": {}}}
    )
    assert event.scheduler_status == {}
    assert event.rate_limit_info is None


@pytest.mark.parametrize(
    "message",
    [
        {"type": "mystery", "room_id": "r1"},
        {"type": "log", "data": "orphan"},
        {"room_id": "r1"},
        "not a dict",
    ],
)
def test_unknown_messages_raise(message):
    with pytest.raises(UnknownEventError):
        parse_event(message)
