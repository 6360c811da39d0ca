from __future__ import annotations

import asyncio
import logging
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import DOMAIN, STORAGE_VERSION
from .store import SORT_ASCEND, SORT_DESCEND

_LOGGER = logging.getLogger(__name__)


class SyncSettingsStore:
    """Persist the client-side sync settings.

    Only two values are durable: whether list-level push is enabled and the
    last applied table sort order.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        *,
        default_push_enabled: bool = True,
    ) -> None:
        self._hass = hass
        self._store = Store(hass, STORAGE_VERSION, f"{DOMAIN}_{entry_id}_settings")
        self._push_enabled = default_push_enabled
        self._sort_order: dict[str, Any] = {"column_key": None, "order": None}
        self._save_task: asyncio.Task | None = None
        self._loaded = False

    @property
    def push_enabled(self) -> bool:
        return self._push_enabled

    @property
    def sort_order(self) -> dict[str, Any]:
        return dict(self._sort_order)

    async def async_initialize(self) -> None:
        """Load stored settings, keeping defaults for anything missing."""
        stored = await self._store.async_load()
        if isinstance(stored, dict):
            if isinstance(stored.get("push_enabled"), bool):
                self._push_enabled = stored["push_enabled"]
            self._sort_order = self._normalize_sort(stored.get("sort_order"))
        self._loaded = True

    def set_push_enabled(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if enabled == self._push_enabled:
            return
        self._push_enabled = enabled
        _LOGGER.debug("List push %s", "enabled" if enabled else "disabled")
        self._schedule_save()

    def set_sort_order(self, column_key: str | None, order: str | None) -> None:
        sort_order = self._normalize_sort({"column_key": column_key, "order": order})
        if sort_order == self._sort_order:
            return
        self._sort_order = sort_order
        self._schedule_save()

    def _schedule_save(self, delay: float = 0.1) -> None:
        if not self._loaded:
            return
        if self._save_task and not self._save_task.done():
            return

        async def _save() -> None:
            await asyncio.sleep(delay)
            try:
                await self._store.async_save(
                    {"push_enabled": self._push_enabled, "sort_order": self._sort_order}
                )
            except Exception:  # noqa: BLE001
                _LOGGER.debug("Failed to persist sync settings", exc_info=True)

        self._save_task = self._hass.async_create_task(_save())

    @staticmethod
    def _normalize_sort(value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {"column_key": None, "order": None}
        column = value.get("column_key")
        order = value.get("order")
        if order not in (SORT_ASCEND, SORT_DESCEND) or not column:
            return {"column_key": None, "order": None}
        return {"column_key": str(column), "order": order}
