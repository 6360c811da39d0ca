"""Client-side synchronization engine for recorder rooms.

The engine keeps the room list, the detail cache of expanded rooms and their
refresh status in sync through two unreliable channels: the SSE push stream
and a fixed-interval list poll. A 1 Hz tick interpolates refresh countdowns
between authoritative updates.

Every async completion for a room checks that the room is still expanded
before it touches any state; responses that resolve after ``collapse`` are
dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from contextlib import suppress
from datetime import datetime, timedelta
from typing import Any

from homeassistant.components import persistent_notification
from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_call_later, async_track_time_interval

from .api import BililiveApiClient, BililiveApiError
from .const import (
    CHANGE_LISTEN_START,
    CHANGE_LISTEN_STOP,
    DOMAIN,
    LISTEN_CHANGE_RELOAD_DELAY,
    LOG_FETCH_LINES,
    TICK_INTERVAL,
)
from .events import (
    ConnStats,
    ListChange,
    LiveUpdate,
    LogLine,
    RateLimitUpdate,
    RecorderStatus,
    RoomEvent,
    UnknownEventError,
    parse_event,
)
from .polling import PollingBackstop
from .refresh_status import RefreshReconciler, RefreshState, derive_from_detail
from .settings import SyncSettingsStore
from .store import EntityStore, RoomSummary
from .subscriptions import PushTransport, SubscriptionManager

_LOGGER = logging.getLogger(__name__)


class SyncEngine:
    """Owns every timer, subscription and cache of one recorder connection."""

    def __init__(
        self,
        hass: HomeAssistant,
        api: BililiveApiClient,
        transport: PushTransport,
        *,
        base_poll_interval: timedelta,
        push_enabled: bool = True,
        settings: SyncSettingsStore | None = None,
        entry_id: str | None = None,
    ) -> None:
        self._hass = hass
        self._api = api
        self._settings = settings
        self._push_enabled = settings.push_enabled if settings is not None else push_enabled
        self._notification_prefix = f"{DOMAIN}_{entry_id or 'default'}"
        self.store = EntityStore()
        self.reconciler = RefreshReconciler()
        self.subscriptions = SubscriptionManager(
            transport,
            on_room_message=self._handle_room_message,
            on_list_message=self._handle_list_message,
            on_error=self._handle_subscribe_error,
        )
        self.backstop = PollingBackstop(hass, self.async_refresh_list, base_poll_interval)
        self._tick_unsub: CALLBACK_TYPE | None = None
        self._pending_reloads: dict[str, CALLBACK_TYPE] = {}
        self._pending_expand: str | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[], None]] = []
        self._list_available = True
        self._started = False
        self._disposed = False

    # ------------------------------------------------------------------ #
    # Read side
    # ------------------------------------------------------------------ #

    @property
    def push_enabled(self) -> bool:
        return self._push_enabled

    @property
    def poll_interval(self) -> timedelta:
        return self.backstop.interval

    @property
    def expanded_rooms(self) -> tuple[str, ...]:
        return self.subscriptions.observed

    @property
    def rooms(self) -> list[RoomSummary]:
        return self.store.rooms

    def sorted_rooms(self) -> list[RoomSummary]:
        sort_order = self._settings.sort_order if self._settings is not None else None
        return self.store.sorted_rooms(sort_order)

    def is_expanded(self, room_id: str) -> bool:
        return self.subscriptions.is_observed(room_id)

    def refresh_state(self, room_id: str) -> RefreshState | None:
        return self.reconciler.get(room_id)

    def detail(self, room_id: str) -> dict[str, Any] | None:
        return self.store.detail(room_id)

    def logs(self, room_id: str) -> list[str]:
        return self.store.logs(room_id)

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        @callback
        def _remove() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def diagnostics(self) -> dict[str, Any]:
        return {
            "push_enabled": self._push_enabled,
            "poll_interval_seconds": self.backstop.interval.total_seconds(),
            "poll_running": self.backstop.running,
            "room_count": len(self.store.rooms),
            "expanded_rooms": list(self.subscriptions.observed),
            "subscriptions": [
                {
                    "entity_id": record.entity_id,
                    "event_type": record.event_type,
                    "subscription_id": record.subscription_id,
                }
                for record in self.subscriptions.records
            ],
            "refresh_states": {
                room_id: state.as_dict()
                for room_id, state in self.reconciler.snapshot().items()
            },
            "in_flight_requests": len(self._tasks),
            "disposed": self._disposed,
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def async_start(self) -> None:
        if self._started or self._disposed:
            return
        self._started = True
        if self._push_enabled:
            self.subscriptions.enable_list()
        self.backstop.start(self._push_enabled)
        self._tick_unsub = async_track_time_interval(
            self._hass, self._handle_tick, TICK_INTERVAL, name="bililive refresh countdown"
        )
        await self.async_refresh_list()

    def dispose(self) -> None:
        """Release every timer, subscription, cache and in-flight task."""
        if self._disposed:
            return
        self._disposed = True
        self.backstop.stop()
        if self._tick_unsub is not None:
            self._tick_unsub()
            self._tick_unsub = None
        for unsub in self._pending_reloads.values():
            unsub()
        self._pending_reloads.clear()
        self.subscriptions.close()
        self.store.clear_caches()
        self.reconciler.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._listeners.clear()
        _LOGGER.debug("Sync engine disposed")

    # ------------------------------------------------------------------ #
    # User actions
    # ------------------------------------------------------------------ #

    def expand(self, room_id: str) -> bool:
        """Start observing a room; a repeated call is a no-op."""
        if self._disposed or not self.subscriptions.observe(room_id):
            return False
        _LOGGER.debug("Expanded room %s", room_id)
        self._schedule(self.async_load_detail(room_id), f"detail {room_id}")
        self._schedule(self.async_load_logs(room_id), f"logs {room_id}")
        self._notify_listeners()
        return True

    def collapse(self, room_id: str) -> bool:
        """Stop observing a room and forget everything cached for it."""
        if not self.subscriptions.release(room_id):
            return False
        self.store.discard(room_id)
        self.reconciler.discard(room_id)
        self._cancel_pending_reload(room_id)
        _LOGGER.debug("Collapsed room %s", room_id)
        self._notify_listeners()
        return True

    def request_expand(self, room_id: str) -> bool:
        """Expand now if the room is listed, otherwise after the next list pull."""
        if self.store.has_room(room_id):
            self._pending_expand = None
            return self.expand(room_id)
        self._pending_expand = room_id
        return False

    def set_global_push_enabled(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if self._disposed:
            return
        if enabled == self._push_enabled and (
            not self._started or self.subscriptions.list_enabled == enabled
        ):
            return
        self._push_enabled = enabled
        if self._started:
            if enabled:
                self.subscriptions.enable_list()
            else:
                self.subscriptions.disable_list()
            self.backstop.set_push_enabled(enabled)
        if self._settings is not None:
            self._settings.set_push_enabled(enabled)
        _LOGGER.debug(
            "List push %s, polling every %ss",
            "enabled" if enabled else "disabled",
            self.backstop.interval.total_seconds(),
        )
        self._notify_listeners()

    def set_sort_order(self, column_key: str | None, order: str | None) -> None:
        if self._settings is not None:
            self._settings.set_sort_order(column_key, order)
            self._notify_listeners()

    async def async_force_refresh(self, room_id: str) -> bool:
        """Ask the server to refresh a room immediately.

        The room shows ``refreshing`` until the outcome is known. On success
        the status is derived again from a fresh detail; on any failure it
        goes back to ``idle``.
        """
        if self.subscriptions.is_observed(room_id):
            self.reconciler.begin_refresh(room_id)
            self._notify_listeners()
        try:
            result = await self._api.async_force_refresh(room_id)
        except BililiveApiError as err:
            self._revert_refresh(room_id)
            self._report_failure(f"force_refresh_{room_id}", f"Force refresh of {room_id} failed", err)
            return False
        if not result.get("success"):
            self._revert_refresh(room_id)
            self._report_failure(
                f"force_refresh_{room_id}",
                f"Force refresh of {room_id} failed",
                result.get("message") or "rejected by server",
            )
            return False
        if not self.subscriptions.is_observed(room_id):
            return True
        if not await self.async_load_detail(room_id):
            self._revert_refresh(room_id)
            return False
        return True

    async def async_start_listening(self, room_id: str) -> None:
        await self._api.async_start_listening(room_id)
        await self.async_refresh_list()

    async def async_stop_listening(self, room_id: str) -> None:
        await self._api.async_stop_listening(room_id)
        await self.async_refresh_list()

    # ------------------------------------------------------------------ #
    # Pulls
    # ------------------------------------------------------------------ #

    async def async_refresh_list(self) -> bool:
        try:
            payload = await self._api.async_get_lives()
        except BililiveApiError as err:
            if self._list_available:
                self._list_available = False
                self._report_failure("list", "Failed to load the room list", err)
            else:
                _LOGGER.debug("Room list still unavailable: %s", err)
            return False
        if self._disposed:
            return False
        if not self._list_available:
            _LOGGER.info("Room list available again")
            self._list_available = True
        self.store.replace_list(payload)
        self._expand_pending()
        self._notify_listeners()
        return True

    async def async_load_detail(self, room_id: str) -> bool:
        try:
            detail = await self._api.async_get_live(room_id)
        except BililiveApiError as err:
            if self.subscriptions.is_observed(room_id):
                self._report_failure(f"detail_{room_id}", f"Failed to load room {room_id}", err)
            return False
        if not self.subscriptions.is_observed(room_id):
            _LOGGER.debug("Dropping detail for collapsed room %s", room_id)
            return False
        self.store.set_detail(room_id, detail)
        self.reconciler.apply(room_id, derive_from_detail(detail))
        self._notify_listeners()
        return True

    async def async_load_logs(self, room_id: str) -> bool:
        try:
            lines = await self._api.async_get_logs(room_id, LOG_FETCH_LINES)
        except BililiveApiError as err:
            if self.subscriptions.is_observed(room_id):
                self._report_failure(f"logs_{room_id}", f"Failed to load logs of {room_id}", err)
            return False
        if not self.subscriptions.is_observed(room_id):
            _LOGGER.debug("Dropping logs for collapsed room %s", room_id)
            return False
        self.store.set_logs(room_id, lines)
        self._notify_listeners()
        return True

    # ------------------------------------------------------------------ #
    # Push events
    # ------------------------------------------------------------------ #

    @callback
    def _handle_room_message(self, room_id: str, message: dict[str, Any]) -> None:
        try:
            event = parse_event(message, room_id)
        except UnknownEventError as err:
            _LOGGER.warning("Dropping SSE message for room %s: %s", room_id, err)
            return
        self.handle_room_event(room_id, event)

    @callback
    def _handle_list_message(self, message: dict[str, Any]) -> None:
        try:
            event = parse_event(message)
        except UnknownEventError as err:
            _LOGGER.warning("Dropping list SSE message: %s", err)
            return
        self.handle_list_event(event)

    def handle_room_event(self, room_id: str, event: RoomEvent) -> None:
        if not self.subscriptions.is_observed(room_id):
            _LOGGER.debug("Ignoring %s for collapsed room %s", type(event).__name__, room_id)
            return
        if isinstance(event, LogLine):
            self.store.append_log(room_id, event.line)
        elif isinstance(event, LiveUpdate):
            self._schedule(self.async_load_detail(room_id), f"detail {room_id}")
            self._schedule(self.async_refresh_list(), "list")
            return
        elif isinstance(event, ConnStats):
            if not self.store.merge_detail(room_id, {"conn_stats": event.stats}):
                return
        elif isinstance(event, RecorderStatus):
            if not self.store.merge_detail(room_id, {"recorder_status": event.status}):
                return
        else:
            # list-scope types also reach the room channel; the list handlers own them
            return
        self._notify_listeners()

    def handle_list_event(self, event: RoomEvent) -> None:
        if isinstance(event, LiveUpdate):
            self._schedule(self.async_refresh_list(), "list")
            if self.subscriptions.is_observed(event.room_id):
                self._schedule(self.async_load_detail(event.room_id), f"detail {event.room_id}")
        elif isinstance(event, ListChange):
            self._schedule(self.async_refresh_list(), "list")
            if (
                event.room_id
                and self.subscriptions.is_observed(event.room_id)
                and event.change_type in (CHANGE_LISTEN_START, CHANGE_LISTEN_STOP)
            ):
                self._schedule_delayed_reload(event.room_id)
        elif isinstance(event, RateLimitUpdate):
            if self.subscriptions.is_observed(event.room_id):
                self._apply_rate_limit_update(event)
        else:
            _LOGGER.debug("Ignoring %s on list channel", type(event).__name__)

    def _apply_rate_limit_update(self, event: RateLimitUpdate) -> None:
        partial: dict[str, Any] = {}
        if event.scheduler_status is not None:
            partial["scheduler_status"] = event.scheduler_status
        if event.rate_limit_info is not None:
            partial["rate_limit_info"] = event.rate_limit_info
        if not self.store.merge_detail(event.room_id, partial):
            return
        detail = self.store.detail(event.room_id) or {}
        self.reconciler.apply(event.room_id, derive_from_detail(detail))
        self._notify_listeners()

    # ------------------------------------------------------------------ #
    # Timers and tasks
    # ------------------------------------------------------------------ #

    @callback
    def _handle_tick(self, _now: datetime | None = None) -> None:
        if self.reconciler.tick(self.subscriptions.observed):
            self._notify_listeners()

    def _schedule_delayed_reload(self, room_id: str) -> None:
        self._cancel_pending_reload(room_id)

        @callback
        def _reload(_now: datetime) -> None:
            self._pending_reloads.pop(room_id, None)
            if self.subscriptions.is_observed(room_id):
                self._schedule(self.async_load_detail(room_id), f"detail {room_id}")

        self._pending_reloads[room_id] = async_call_later(
            self._hass, LISTEN_CHANGE_RELOAD_DELAY, _reload
        )

    def _cancel_pending_reload(self, room_id: str) -> None:
        unsub = self._pending_reloads.pop(room_id, None)
        if unsub is not None:
            unsub()

    def _schedule(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task | None:
        if self._disposed:
            coro.close()
            return None
        task = self._hass.async_create_task(coro, f"{DOMAIN} {name}")
        if not task.done():
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return task

    def _expand_pending(self) -> None:
        room_id, self._pending_expand = self._pending_expand, None
        if room_id is not None and self.store.has_room(room_id):
            self.expand(room_id)

    def _revert_refresh(self, room_id: str) -> None:
        if self.subscriptions.is_observed(room_id) and self.reconciler.revert_refresh(room_id):
            self._notify_listeners()

    def _handle_subscribe_error(self, target: str, err: Exception) -> None:
        persistent_notification.async_create(
            self._hass,
            f"Could not subscribe to {target}: {err}",
            title="Bililive",
            notification_id=f"{self._notification_prefix}_subscribe",
        )

    def _report_failure(self, key: str, message: str, err: Any) -> None:
        _LOGGER.warning("%s: %s", message, err)
        persistent_notification.async_create(
            self._hass,
            f"{message}: {err}",
            title="Bililive",
            notification_id=f"{self._notification_prefix}_{key}",
        )

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                _LOGGER.debug("Engine listener raised", exc_info=True)
