"""Typed push events delivered over the recorder's SSE stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .const import (
    EVENT_CONN_STATS,
    EVENT_LIST_CHANGE,
    EVENT_LIVE_UPDATE,
    EVENT_LOG,
    EVENT_RATE_LIMIT_UPDATE,
    EVENT_RECORDER_STATUS,
)


class UnknownEventError(ValueError):
    """Raised for SSE messages that do not map to a known event."""


@dataclass(frozen=True)
class LiveUpdate:
    room_id: str


@dataclass(frozen=True)
class ListChange:
    room_id: str | None
    change_type: str | None = None


@dataclass(frozen=True)
class RateLimitUpdate:
    room_id: str
    scheduler_status: dict[str, Any] | None = None
    rate_limit_info: dict[str, Any] | None = None


@dataclass(frozen=True)
class LogLine:
    room_id: str
    line: str


@dataclass(frozen=True)
class ConnStats:
    room_id: str
    stats: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class RecorderStatus:
    room_id: str
    status: dict[str, Any] = field(default_factory=dict)


RoomEvent = Union[LiveUpdate, ListChange, RateLimitUpdate, LogLine, ConnStats, RecorderStatus]


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [dict(item) if isinstance(item, Mapping) else item for item in value]


def parse_event(message: Mapping[str, Any], room_id: str | None = None) -> RoomEvent:
    """Build a typed event from a raw ``{type, room_id, data}`` message.

    ``room_id`` is the id of the room-scoped subscription the message arrived
    on; it is used when the message itself does not carry one.
    """
    if not isinstance(message, Mapping):
        raise UnknownEventError(f"not a message: {message!r}")
    event_type = message.get("type")
    target = message.get("room_id") or room_id
    data = message.get("data")

    if event_type == EVENT_LIST_CHANGE:
        payload = _as_dict(data)
        change_type = payload.get("change_type")
        return ListChange(target or None, str(change_type) if change_type else None)

    if event_type not in (
        EVENT_LIVE_UPDATE,
        EVENT_RATE_LIMIT_UPDATE,
        EVENT_LOG,
        EVENT_CONN_STATS,
        EVENT_RECORDER_STATUS,
    ):
        raise UnknownEventError(f"unknown event type: {event_type!r}")
    if not target:
        raise UnknownEventError(f"{event_type} event without room id")
    target = str(target)

    if event_type == EVENT_LIVE_UPDATE:
        return LiveUpdate(target)
    if event_type == EVENT_RATE_LIMIT_UPDATE:
        payload = _as_dict(data)
        scheduler = payload.pop("scheduler_status", None)
        return RateLimitUpdate(
            target,
            scheduler_status=_as_dict(scheduler) if isinstance(scheduler, Mapping) else None,
            rate_limit_info=payload or None,
        )
    if event_type == EVENT_LOG:
        return LogLine(target, "" if data is None else str(data))
    if event_type == EVENT_CONN_STATS:
        return ConnStats(target, _as_list(data))
    return RecorderStatus(target, _as_dict(data))
