"""Switch platform for the list-level push toggle."""

from __future__ import annotations

from typing import Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_NAME
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import EntityCategory

from .const import DEFAULT_NAME, DOMAIN
from .engine import SyncEngine
from .entity import BililiveEntity


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities
) -> None:
    registry = hass.data.get(DOMAIN, {}).get(entry.entry_id)
    if not registry:
        return
    name = entry.data.get(CONF_NAME, DEFAULT_NAME)
    async_add_entities(
        [
            BililivePushSwitch(
                registry["engine"],
                f"{name} push updates",
                f"{entry.entry_id}_push_updates",
                entry.entry_id,
                name,
            )
        ]
    )


class BililivePushSwitch(BililiveEntity, SwitchEntity):
    """Turns list-level SSE push on or off.

    With push off the list is polled at the configured interval; with push on
    it is polled at twice that interval as a backstop.
    """

    _attr_entity_category = EntityCategory.CONFIG

    def __init__(
        self,
        engine: SyncEngine,
        sensor_name: str,
        unique_id: str,
        entry_id: str,
        device_name: str,
    ) -> None:
        super().__init__(engine, sensor_name, unique_id, entry_id, device_name)
        self._attr_icon = "mdi:access-point"

    @property
    def is_on(self) -> bool:
        return self._engine.push_enabled

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        return {"poll_interval_seconds": self._engine.poll_interval.total_seconds()}

    async def async_turn_on(self, **kwargs: Any) -> None:
        self._engine.set_global_push_enabled(True)
        self.async_write_ha_state()

    async def async_turn_off(self, **kwargs: Any) -> None:
        self._engine.set_global_push_enabled(False)
        self.async_write_ha_state()
