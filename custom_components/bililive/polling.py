from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from homeassistant.core import CALLBACK_TYPE, HomeAssistant
from homeassistant.helpers.event import async_track_time_interval

_LOGGER = logging.getLogger(__name__)


class PollingBackstop:
    """Recurring full-list pull.

    Runs every ``base_interval`` while push is disabled and every
    ``2 * base_interval`` while push is enabled, where it only catches events
    the stream missed.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        poll: Callable[[], Awaitable[object]],
        base_interval: timedelta,
    ) -> None:
        if base_interval <= timedelta(0):
            raise ValueError("base_interval must be positive")
        self._hass = hass
        self._poll = poll
        self._base_interval = base_interval
        self._push_enabled = False
        self._unsub: CALLBACK_TYPE | None = None

    @property
    def running(self) -> bool:
        return self._unsub is not None

    @property
    def interval(self) -> timedelta:
        if self._push_enabled:
            return self._base_interval * 2
        return self._base_interval

    def start(self, push_enabled: bool) -> None:
        self._push_enabled = push_enabled
        self._reschedule()

    def set_push_enabled(self, enabled: bool) -> None:
        if enabled == self._push_enabled and self.running:
            return
        self._push_enabled = enabled
        self._reschedule()

    def stop(self) -> None:
        if self._unsub is not None:
            self._unsub()
            self._unsub = None

    def _reschedule(self) -> None:
        self.stop()
        interval = self.interval
        self._unsub = async_track_time_interval(
            self._hass, self._handle_interval, interval, name="bililive list poll"
        )
        _LOGGER.debug(
            "List poll every %ss (push %s)",
            interval.total_seconds(),
            "on" if self._push_enabled else "off",
        )

    async def _handle_interval(self, _now: datetime) -> None:
        await self._poll()
