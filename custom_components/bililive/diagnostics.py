"""Diagnostics for the Bililive integration.

Exposes the sync engine state to aid troubleshooting without verbose logging.
"""

from __future__ import annotations

from typing import Any

from homeassistant.components.diagnostics import async_redact_data
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .const import CONF_POLL_INTERVAL, DOMAIN

TO_REDACT: set[str] = set()


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return dt_util.utc_from_timestamp(ts).isoformat(timespec="seconds")


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""
    reg = hass.data.get(DOMAIN, {}).get(entry.entry_id, {})

    options = {
        "url": entry.data.get("url"),
        "poll_interval": entry.data.get(CONF_POLL_INTERVAL),
    }

    transport = reg.get("transport")
    stream: dict[str, Any] = {"present": transport is not None}
    if transport is not None:
        stream.update(
            {
                "connected": transport.connected,
                "last_message": _iso(transport.last_message_ts),
                "subscriptions": transport.subscription_count,
            }
        )

    engine = reg.get("engine")
    engine_diag = engine.diagnostics() if engine is not None else {"present": False}

    return async_redact_data(
        {"options": options, "sse": stream, "engine": engine_diag}, TO_REDACT
    )
