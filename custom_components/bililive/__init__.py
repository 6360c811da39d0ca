import logging
from datetime import timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_URL
from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import async_create_clientsession

from .api import BililiveApiClient
from .const import CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL, DEFAULT_URL, DOMAIN, PLATFORMS
from .engine import SyncEngine
from .helpers import build_user_agent
from .services import async_register_services, async_remove_services
from .settings import SyncSettingsStore
from .sse import SseTransport

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up a recorder connection via config flow."""
    ua_string = await build_user_agent(hass)
    session = async_create_clientsession(hass, headers={"User-Agent": ua_string})
    base_url = entry.data.get(CONF_URL, DEFAULT_URL)
    poll_seconds = int(entry.data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL) or DEFAULT_POLL_INTERVAL)
    _LOGGER.debug("Connecting to bililive recorder at %s (poll %ss)", base_url, poll_seconds)

    api = BililiveApiClient(session, base_url)
    transport = SseTransport(hass, session, api.sse_url)
    settings = SyncSettingsStore(hass, entry.entry_id)
    await settings.async_initialize()

    engine = SyncEngine(
        hass,
        api,
        transport,
        base_poll_interval=timedelta(seconds=poll_seconds),
        settings=settings,
        entry_id=entry.entry_id,
    )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "api": api,
        "transport": transport,
        "settings": settings,
        "engine": engine,
    }

    await transport.start()
    await engine.async_start()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    await async_register_services(hass)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not unload_ok:
        return False
    data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if isinstance(data, dict):
        engine: SyncEngine | None = data.get("engine")
        if engine is not None:
            engine.dispose()
        transport: SseTransport | None = data.get("transport")
        if transport is not None:
            try:
                await transport.async_close()
            except Exception as err:  # noqa: BLE001
                _LOGGER.debug("Error while closing SSE stream: %s", err)
    if not hass.data.get(DOMAIN):
        hass.data.pop(DOMAIN, None)
        async_remove_services(hass)
    return unload_ok
