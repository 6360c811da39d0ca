from homeassistant.core import callback
from homeassistant.helpers.entity import Entity

from .const import DOMAIN
from .engine import SyncEngine


class BililiveEntity(Entity):
    """Common base for entities fed by the sync engine."""

    _attr_should_poll = False

    def __init__(self, engine: SyncEngine, name: str, unique_id: str, entry_id: str, device_name: str):
        super().__init__()
        self._engine = engine
        self._attr_name = name
        self._attr_unique_id = unique_id
        self._entry_id = entry_id
        self._device_name = device_name

    @property
    def device_info(self):
        return {
            "identifiers": {(DOMAIN, self._entry_id)},
            "name": self._device_name,
            "manufacturer": "bililive-go",
            "model": "Recorder",
        }

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        self.async_on_remove(self._engine.add_listener(self._handle_engine_update))

    @callback
    def _handle_engine_update(self) -> None:
        self.async_write_ha_state()
