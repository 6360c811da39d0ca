"""Ownership of every push subscription opened by the sync engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .const import LIST_EVENT_TYPES, WILDCARD

_LOGGER = logging.getLogger(__name__)


class PushTransport(Protocol):
    def subscribe(
        self, room_id: str, event_type: str, handler: Callable[[dict[str, Any]], None]
    ) -> str: ...

    def unsubscribe(self, subscription_id: str) -> None: ...


@dataclass(frozen=True)
class SubscriptionRecord:
    entity_id: str
    event_type: str
    subscription_id: str


class SubscriptionManager:
    """Track observed rooms and the subscriptions that belong to them.

    Each observed room owns exactly one ``(room_id, "*")`` record; the list
    scope owns one ``("*", type)`` record per list event type while enabled.
    Every record is closed with the id returned when it was opened.
    """

    def __init__(
        self,
        transport: PushTransport,
        *,
        on_room_message: Callable[[str, dict[str, Any]], None],
        on_list_message: Callable[[dict[str, Any]], None],
        on_error: Callable[[str, Exception], None] | None = None,
    ) -> None:
        self._transport = transport
        self._on_error = on_error
        self._on_room_message = on_room_message
        self._on_list_message = on_list_message
        self._observed: dict[str, SubscriptionRecord | None] = {}
        self._list_records: list[SubscriptionRecord] = []

    @property
    def observed(self) -> tuple[str, ...]:
        return tuple(self._observed)

    @property
    def list_enabled(self) -> bool:
        return bool(self._list_records)

    @property
    def records(self) -> list[SubscriptionRecord]:
        rooms = [record for record in self._observed.values() if record is not None]
        return rooms + list(self._list_records)

    def is_observed(self, room_id: str) -> bool:
        return room_id in self._observed

    def room_record(self, room_id: str) -> SubscriptionRecord | None:
        return self._observed.get(room_id)

    def observe(self, room_id: str) -> bool:
        """Start observing ``room_id``; return ``False`` if it already was."""
        if room_id in self._observed:
            return False
        # Register before subscribing so a synchronous delivery sees the room.
        self._observed[room_id] = None
        try:
            subscription_id = self._transport.subscribe(
                room_id, WILDCARD, lambda message: self._on_room_message(room_id, message)
            )
        except Exception as err:  # noqa: BLE001
            _LOGGER.warning("Could not subscribe to room %s: %s", room_id, err)
            self._report(f"room {room_id}", err)
            return True
        self._observed[room_id] = SubscriptionRecord(room_id, WILDCARD, subscription_id)
        return True

    def release(self, room_id: str) -> bool:
        """Stop observing ``room_id`` and close its subscription."""
        if room_id not in self._observed:
            return False
        record = self._observed.pop(room_id)
        if record is not None:
            self._unsubscribe(record)
        return True

    def enable_list(self) -> None:
        if self._list_records:
            return
        for event_type in LIST_EVENT_TYPES:
            try:
                subscription_id = self._transport.subscribe(
                    WILDCARD, event_type, self._on_list_message
                )
            except Exception as err:  # noqa: BLE001
                _LOGGER.warning("Could not subscribe to %s events: %s", event_type, err)
                self._report(f"{event_type} events", err)
                continue
            self._list_records.append(
                SubscriptionRecord(WILDCARD, event_type, subscription_id)
            )

    def disable_list(self) -> None:
        records, self._list_records = self._list_records, []
        for record in records:
            self._unsubscribe(record)

    def close(self) -> None:
        """Close every room-scoped and list-scoped subscription."""
        self.disable_list()
        for room_id in list(self._observed):
            self.release(room_id)

    def _report(self, target: str, err: Exception) -> None:
        if self._on_error is not None:
            self._on_error(target, err)

    def _unsubscribe(self, record: SubscriptionRecord) -> None:
        try:
            self._transport.unsubscribe(record.subscription_id)
        except Exception as err:  # noqa: BLE001
            _LOGGER.warning(
                "Could not close subscription %s (%s/%s): %s",
                record.subscription_id,
                record.entity_id,
                record.event_type,
                err,
            )
