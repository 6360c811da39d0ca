"""Domain services that drive the sync engine."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import homeassistant.helpers.config_validation as cv
import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError

from .api import BililiveApiError
from .const import (
    ATTR_COLUMN_KEY,
    ATTR_CONFIG_ENTRY_ID,
    ATTR_ORDER,
    ATTR_ROOM_ID,
    DOMAIN,
    SERVICE_COLLAPSE_ROOM,
    SERVICE_EXPAND_ROOM,
    SERVICE_FORCE_REFRESH,
    SERVICE_REFRESH_LIST,
    SERVICE_SET_SORT_ORDER,
    SERVICE_START_LISTENING,
    SERVICE_STOP_LISTENING,
)
from .engine import SyncEngine
from .store import SORT_ASCEND, SORT_DESCEND

_LOGGER = logging.getLogger(__name__)

ROOM_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_ROOM_ID): cv.string,
        vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string,
    }
)
ENTRY_SCHEMA = vol.Schema({vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string})
SORT_SCHEMA = vol.Schema(
    {
        vol.Optional(ATTR_COLUMN_KEY): vol.Any(None, vol.In(["tags", "name", "address"])),
        vol.Optional(ATTR_ORDER): vol.Any(None, vol.In([SORT_ASCEND, SORT_DESCEND])),
        vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string,
    }
)

SERVICES = (
    SERVICE_EXPAND_ROOM,
    SERVICE_COLLAPSE_ROOM,
    SERVICE_FORCE_REFRESH,
    SERVICE_REFRESH_LIST,
    SERVICE_START_LISTENING,
    SERVICE_STOP_LISTENING,
    SERVICE_SET_SORT_ORDER,
)


def _engines(hass: HomeAssistant) -> dict[str, SyncEngine]:
    return {
        entry_id: data["engine"]
        for entry_id, data in hass.data.get(DOMAIN, {}).items()
        if isinstance(data, dict) and data.get("engine") is not None
    }


def _resolve_engine(hass: HomeAssistant, call: ServiceCall) -> SyncEngine:
    """Pick the engine addressed by a call.

    An explicit ``config_entry_id`` wins. Otherwise the engine listing the
    room is used, and a single configured recorder is used as the default.
    """
    engines = _engines(hass)
    entry_id = call.data.get(ATTR_CONFIG_ENTRY_ID)
    if entry_id:
        engine = engines.get(entry_id)
        if engine is None:
            raise ServiceValidationError(f"Unknown bililive config entry: {entry_id}")
        return engine
    room_id = call.data.get(ATTR_ROOM_ID)
    if room_id:
        for engine in engines.values():
            if engine.store.has_room(room_id):
                return engine
    if len(engines) == 1:
        return next(iter(engines.values()))
    if not engines:
        raise ServiceValidationError("No bililive recorder is configured")
    raise ServiceValidationError(
        "Several recorders are configured; pass config_entry_id"
    )


def _require_room(engine: SyncEngine, room_id: str) -> None:
    if not engine.store.has_room(room_id):
        raise ServiceValidationError(f"Unknown room: {room_id}")


async def _call_api(action: Callable[[], Awaitable[object]], description: str) -> None:
    try:
        await action()
    except BililiveApiError as err:
        raise HomeAssistantError(f"{description} failed: {err}") from err


async def async_register_services(hass: HomeAssistant) -> None:
    """Register the domain services once for every config entry."""
    if hass.services.has_service(DOMAIN, SERVICE_EXPAND_ROOM):
        return

    async def async_expand_room(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        room_id = call.data[ATTR_ROOM_ID]
        if not engine.request_expand(room_id) and not engine.is_expanded(room_id):
            _LOGGER.debug("Room %s not listed yet, expanding after next list pull", room_id)

    async def async_collapse_room(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        engine.collapse(call.data[ATTR_ROOM_ID])

    async def async_force_refresh(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        room_id = call.data[ATTR_ROOM_ID]
        _require_room(engine, room_id)
        # Failures are reported through a persistent notification.
        await engine.async_force_refresh(room_id)

    async def async_refresh_list(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        if not await engine.async_refresh_list():
            raise HomeAssistantError("Refreshing the room list failed")

    async def async_start_listening(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        room_id = call.data[ATTR_ROOM_ID]
        _require_room(engine, room_id)
        await _call_api(lambda: engine.async_start_listening(room_id), f"Starting {room_id}")

    async def async_stop_listening(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        room_id = call.data[ATTR_ROOM_ID]
        _require_room(engine, room_id)
        await _call_api(lambda: engine.async_stop_listening(room_id), f"Stopping {room_id}")

    async def async_set_sort_order(call: ServiceCall) -> None:
        engine = _resolve_engine(hass, call)
        engine.set_sort_order(call.data.get(ATTR_COLUMN_KEY), call.data.get(ATTR_ORDER))

    hass.services.async_register(DOMAIN, SERVICE_EXPAND_ROOM, async_expand_room, ROOM_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_COLLAPSE_ROOM, async_collapse_room, ROOM_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_FORCE_REFRESH, async_force_refresh, ROOM_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_REFRESH_LIST, async_refresh_list, ENTRY_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_START_LISTENING, async_start_listening, ROOM_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_STOP_LISTENING, async_stop_listening, ROOM_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_SORT_ORDER, async_set_sort_order, SORT_SCHEMA
    )


def async_remove_services(hass: HomeAssistant) -> None:
    for service in SERVICES:
        hass.services.async_remove(DOMAIN, service)
