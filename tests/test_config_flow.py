from unittest.mock import AsyncMock, patch

import pytest
from homeassistant import config_entries
from homeassistant.data_entry_flow import FlowResultType

from custom_components.bililive.api import BililiveApiError
from custom_components.bililive.const import CONF_POLL_INTERVAL, DOMAIN

USER_INPUT = {"name": "Recorder", "url": "http://recorder.local:8080", CONF_POLL_INTERVAL: 15}


@pytest.fixture(autouse=True)
def _custom_integrations(enable_custom_integrations):
    yield


@pytest.mark.asyncio
async def test_user_step_creates_entry(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": config_entries.SOURCE_USER}
    )
    assert result["type"] is FlowResultType.FORM
    assert result["step_id"] == "user"

    with (
        patch(
            "custom_components.bililive.config_flow.BililiveApiClient.async_get_lives",
            new=AsyncMock(return_value=[]),
        ),
        patch("custom_components.bililive.async_setup_entry", return_value=True),
    ):
        result = await hass.config_entries.flow.async_configure(result["flow_id"], USER_INPUT)
        await hass.async_block_till_done()

    assert result["type"] is FlowResultType.CREATE_ENTRY
    assert result["title"] == "Recorder"
    assert result["data"] == USER_INPUT


@pytest.mark.asyncio
async def test_user_step_reports_cannot_connect(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": config_entries.SOURCE_USER}
    )
    with patch(
        "custom_components.bililive.config_flow.BililiveApiClient.async_get_lives",
        new=AsyncMock(side_effect=BililiveApiError("refused")),
    ):
        result = await hass.config_entries.flow.async_configure(result["flow_id"], USER_INPUT)

    assert result["type"] is FlowResultType.FORM
    assert result["errors"] == {"base": "cannot_connect"}


@pytest.mark.asyncio
async def test_user_step_rejects_duplicate_recorder(hass, mock_config_entry):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": config_entries.SOURCE_USER}
    )
    result = await hass.config_entries.flow.async_configure(
        result["flow_id"], {**USER_INPUT, "url": "http://recorder.local:8080/"}
    )
    assert result["type"] is FlowResultType.ABORT
    assert result["reason"] == "already_configured"
