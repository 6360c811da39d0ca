import logging

import homeassistant.helpers.config_validation as cv
import voluptuous as vol
from homeassistant import config_entries
from homeassistant.const import CONF_NAME, CONF_URL
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .api import BililiveApiClient, BililiveApiError
from .const import CONF_POLL_INTERVAL, DEFAULT_NAME, DEFAULT_POLL_INTERVAL, DEFAULT_URL, DOMAIN

_LOGGER = logging.getLogger(__name__)


def _schema(current: dict | None = None) -> vol.Schema:
    current = current or {}
    return vol.Schema(
        {
            vol.Required(CONF_NAME, default=current.get(CONF_NAME, DEFAULT_NAME)): cv.string,
            vol.Required(CONF_URL, default=current.get(CONF_URL, DEFAULT_URL)): cv.url,
            vol.Optional(
                CONF_POLL_INTERVAL,
                default=current.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
            ): cv.positive_int,
        }
    )


class BililiveFlowHandler(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def _async_validate(self, user_input: dict) -> dict:
        errors = {}
        if user_input[CONF_POLL_INTERVAL] < 1:
            errors[CONF_POLL_INTERVAL] = "invalid_poll_interval"
            return errors
        api = BililiveApiClient(async_get_clientsession(self.hass), user_input[CONF_URL])
        try:
            await api.async_get_lives()
        except BililiveApiError as err:
            _LOGGER.debug("Recorder at %s not reachable: %s", user_input[CONF_URL], err)
            errors["base"] = "cannot_connect"
        return errors

    async def async_step_user(self, user_input=None):
        errors = {}

        if user_input is not None:
            await self.async_set_unique_id(user_input[CONF_URL].rstrip("/"))
            self._abort_if_unique_id_configured()
            errors = await self._async_validate(user_input)
            if not errors:
                return self.async_create_entry(
                    title=user_input[CONF_NAME], data=user_input
                )

        return self.async_show_form(
            step_id="user", data_schema=_schema(user_input), errors=errors
        )

    async def async_step_reconfigure(self, user_input=None):
        errors = {}
        entry = self._get_reconfigure_entry()

        if user_input is not None:
            errors = await self._async_validate(user_input)
            if not errors:
                return self.async_update_reload_and_abort(
                    entry,
                    data_updates=user_input,
                )

        return self.async_show_form(
            step_id="reconfigure",
            data_schema=_schema(user_input or dict(entry.data)),
            errors=errors,
        )
