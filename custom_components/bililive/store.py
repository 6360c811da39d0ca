"""Last-known room list and the detail cache of expanded rooms."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .const import (
    MAX_LOG_LINES,
    TAG_INITIALIZING,
    TAG_LISTENING,
    TAG_RECORDING,
    TAG_RECORDING_PREPARING,
    TAG_STOPPED,
)

_LOGGER = logging.getLogger(__name__)

SORT_ASCEND = "ascend"
SORT_DESCEND = "descend"


def derive_tags(
    *,
    listening: bool,
    recording: bool = False,
    recording_preparing: bool = False,
    initializing: bool = False,
) -> tuple[str, ...]:
    """Return the display tags of a room from its status booleans."""
    tags = [TAG_LISTENING if listening else TAG_STOPPED]
    if recording:
        tags = [TAG_RECORDING]
    elif recording_preparing:
        tags = [TAG_RECORDING_PREPARING]
    if initializing:
        tags.append(TAG_INITIALIZING)
    return tuple(tags)


def recording_priority(tags: Iterable[str]) -> int:
    tags = tuple(tags)
    if TAG_RECORDING in tags:
        return 2
    if TAG_RECORDING_PREPARING in tags:
        return 1
    return 0


@dataclass(frozen=True)
class RoomSummary:
    room_id: str
    name: str
    platform_address: str
    tags: tuple[str, ...]
    listening: bool
    room_name: str | None = None
    url: str | None = None
    last_error: str | None = None
    recording: bool = False
    recording_preparing: bool = False
    initializing: bool = False

    @classmethod
    def from_payload(cls, item: Mapping[str, Any]) -> "RoomSummary":
        listening = item.get("listening") is True
        recording = item.get("recording") is True
        preparing = item.get("recording_preparing") is True
        initializing = item.get("initializing") is True
        return cls(
            room_id=str(item.get("id")),
            name=str(item.get("nick_name") or item.get("host_name") or ""),
            platform_address=str(item.get("platform_cn_name") or ""),
            tags=derive_tags(
                listening=listening,
                recording=recording,
                recording_preparing=preparing,
                initializing=initializing,
            ),
            listening=listening,
            room_name=item.get("room_name"),
            url=item.get("live_url"),
            last_error=item.get("last_error") or None,
            recording=recording,
            recording_preparing=preparing,
            initializing=initializing,
        )


class EntityStore:
    """Room summaries plus per-room detail and log caches.

    Details and logs only exist for expanded rooms. A partial update for a
    room without a cached detail is dropped.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, RoomSummary] = {}
        self._details: dict[str, dict[str, Any]] = {}
        self._logs: dict[str, list[str]] = {}

    @property
    def rooms(self) -> list[RoomSummary]:
        return list(self._rooms.values())

    def room(self, room_id: str) -> RoomSummary | None:
        return self._rooms.get(room_id)

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def replace_list(self, payload: Iterable[Mapping[str, Any]]) -> list[RoomSummary]:
        """Replace every summary with the result of a full list pull."""
        rooms: dict[str, RoomSummary] = {}
        for item in payload or []:
            if not isinstance(item, Mapping) or item.get("id") in (None, ""):
                _LOGGER.debug("Skipping list item without id: %s", item)
                continue
            summary = RoomSummary.from_payload(item)
            rooms[summary.room_id] = summary
        self._rooms = rooms
        return list(rooms.values())

    def sorted_rooms(self, sort_order: Mapping[str, Any] | None = None) -> list[RoomSummary]:
        rooms = list(self._rooms.values())
        column = (sort_order or {}).get("column_key")
        order = (sort_order or {}).get("order")
        if not column or order not in (SORT_ASCEND, SORT_DESCEND):
            return rooms
        reverse = order == SORT_DESCEND
        if column == "tags":
            return sorted(rooms, key=lambda r: recording_priority(r.tags), reverse=reverse)
        if column == "name":
            return sorted(rooms, key=lambda r: r.name, reverse=reverse)
        if column == "address":
            return sorted(rooms, key=lambda r: r.platform_address, reverse=reverse)
        return rooms

    # ------------------------------------------------------------------ #
    # Expanded-room caches
    # ------------------------------------------------------------------ #

    def detail(self, room_id: str) -> dict[str, Any] | None:
        return self._details.get(room_id)

    def has_detail(self, room_id: str) -> bool:
        return room_id in self._details

    def set_detail(self, room_id: str, detail: Mapping[str, Any]) -> None:
        self._details[room_id] = dict(detail)

    def merge_detail(self, room_id: str, partial: Mapping[str, Any]) -> bool:
        """Shallow-merge ``partial`` into the cached detail of ``room_id``."""
        current = self._details.get(room_id)
        if current is None:
            _LOGGER.debug("Dropping partial update for %s without cached detail", room_id)
            return False
        self._details[room_id] = {**current, **partial}
        return True

    def logs(self, room_id: str) -> list[str]:
        return list(self._logs.get(room_id, ()))

    def set_logs(self, room_id: str, lines: Iterable[str]) -> None:
        self._logs[room_id] = list(lines)[-MAX_LOG_LINES:]

    def append_log(self, room_id: str, line: str) -> None:
        lines = self._logs.setdefault(room_id, [])
        lines.append(line)
        if len(lines) > MAX_LOG_LINES:
            del lines[: len(lines) - MAX_LOG_LINES]

    def discard(self, room_id: str) -> None:
        self._details.pop(room_id, None)
        self._logs.pop(room_id, None)

    def cached_room_ids(self) -> set[str]:
        return set(self._details) | set(self._logs)

    def clear_caches(self) -> None:
        self._details.clear()
        self._logs.clear()
