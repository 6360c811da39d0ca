import logging

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_NAME
from homeassistant.core import HomeAssistant, callback

from .const import DEFAULT_NAME, DOMAIN
from .engine import SyncEngine
from .entity import BililiveEntity
from .helpers import format_download_speed, format_file_size

_LOGGER = logging.getLogger(__name__)

LOG_TAIL_ATTRIBUTE_LINES = 20


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities
):
    """Create one sensor per recorder room, adding rooms as they appear."""
    data = hass.data[DOMAIN][entry.entry_id]
    engine: SyncEngine = data["engine"]
    base = entry.data.get(CONF_NAME, DEFAULT_NAME)
    known: set[str] = set()

    @callback
    def _add_new_rooms() -> None:
        new_entities = []
        for room in engine.sorted_rooms():
            if room.room_id in known:
                continue
            known.add(room.room_id)
            new_entities.append(
                BililiveRoomSensor(
                    engine,
                    room.room_id,
                    f"{base} {room.name or room.room_id}",
                    f"{entry.entry_id}_room_{room.room_id}",
                    entry.entry_id,
                    base,
                )
            )
        if new_entities:
            _LOGGER.debug("Adding %d room sensors", len(new_entities))
            async_add_entities(new_entities)

    _add_new_rooms()
    entry.async_on_unload(engine.add_listener(_add_new_rooms))


class BililiveRoomSensor(BililiveEntity, SensorEntity):
    """Sensor whose state is the primary status tag of one room.

    While the room is expanded the attributes also carry its refresh status,
    the live countdown, transfer stats and the tail of its log.
    """

    def __init__(self, engine, room_id, sensor_name, unique_id, entry_id, device_name):
        super().__init__(engine, sensor_name, unique_id, entry_id, device_name)
        self._room_id = room_id
        self._attr_icon = "mdi:video-wireless"

    @property
    def room_id(self) -> str:
        return self._room_id

    @property
    def available(self) -> bool:
        return self._engine.store.has_room(self._room_id)

    @property
    def native_value(self):
        room = self._engine.store.room(self._room_id)
        if room is None or not room.tags:
            return None
        return room.tags[0]

    @property
    def extra_state_attributes(self):
        room = self._engine.store.room(self._room_id)
        if room is None:
            return {"room_id": self._room_id}
        attrs = {
            "room_id": room.room_id,
            "host_name": room.name,
            "platform": room.platform_address,
            "room_name": room.room_name,
            "live_url": room.url,
            "tags": list(room.tags),
            "listening": room.listening,
            "recording": room.recording,
            "last_error": room.last_error,
            "expanded": self._engine.is_expanded(self._room_id),
        }
        if not attrs["expanded"]:
            return attrs

        state = self._engine.refresh_state(self._room_id)
        if state is not None:
            attrs["refresh_status"] = state.status.value
            attrs["refresh_countdown"] = state.countdown
        detail = self._engine.detail(self._room_id) or {}
        recorder_status = detail.get("recorder_status")
        if isinstance(recorder_status, dict):
            attrs["download_speed"] = format_download_speed(recorder_status)
            size = format_file_size(recorder_status.get("file_size"))
            if size is not None:
                attrs["file_size"] = size
        if isinstance(detail.get("conn_stats"), list):
            attrs["conn_stats"] = detail["conn_stats"]
        attrs["log_tail"] = self._engine.logs(self._room_id)[-LOG_TAIL_ATTRIBUTE_LINES:]
        return attrs
