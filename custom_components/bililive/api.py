import asyncio
import logging
from typing import Any, Dict, Optional

import async_timeout
from aiohttp import ClientResponse, ClientSession
from yarl import URL

from .const import API_PREFIX, LOG_FETCH_LINES, REQUEST_TIMEOUT

_LOGGER = logging.getLogger(__name__)


class BililiveApiError(Exception):
    """Raised when the recorder API cannot be reached or answers with an error."""


class BililiveApiClient:
    """Client for the bililive recorder REST API."""

    def __init__(self, session: ClientSession, base_url: str) -> None:
        self._session = session
        self._base = URL(base_url.rstrip("/")) / API_PREFIX

    @property
    def sse_url(self) -> URL:
        return self._base / "sse"

    def _url(self, *parts: str) -> URL:
        url = self._base
        for part in parts:
            url = url / part
        return url

    async def _request(self, url: URL, params: Optional[Dict[str, Any]] = None) -> Any:
        """Perform a HTTP GET request with retries on rate limiting."""
        retries = 3
        delay = 1
        for attempt in range(retries):
            try:
                async with async_timeout.timeout(REQUEST_TIMEOUT):
                    response: ClientResponse = await self._session.get(url, params=params)
                if response.status == 429 and attempt < retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                response.raise_for_status()
                return await response.json()
            except asyncio.CancelledError:
                raise
            except Exception as err:
                if attempt >= retries - 1:
                    _LOGGER.debug("API request %s failed: %s", url, err)
                    raise BililiveApiError(f"{url.path}: {err}") from err
                await asyncio.sleep(delay)
                delay *= 2
        raise BililiveApiError(f"{url.path}: no response")

    async def async_get_lives(self) -> list[dict]:
        """Return the summary list of every configured room."""
        data = await self._request(self._url("lives"))
        return data if isinstance(data, list) else []

    async def async_get_live(self, room_id: str) -> dict:
        """Return the detail payload of one room."""
        data = await self._request(self._url("lives", room_id))
        if not isinstance(data, dict):
            raise BililiveApiError(f"unexpected detail payload for {room_id}")
        return data

    async def async_get_logs(self, room_id: str, lines: int = LOG_FETCH_LINES) -> list[str]:
        data = await self._request(self._url("lives", room_id, "logs"), {"lines": lines})
        if isinstance(data, dict):
            return list(data.get("lines") or [])
        return []

    async def async_force_refresh(self, room_id: str) -> dict:
        """Ask the server to refresh a room now, ignoring the platform interval."""
        data = await self._request(self._url("lives", room_id, "forceRefresh"))
        return data if isinstance(data, dict) else {}

    async def async_start_listening(self, room_id: str) -> Any:
        return await self._request(self._url("lives", room_id, "start"))

    async def async_stop_listening(self, room_id: str) -> Any:
        return await self._request(self._url("lives", room_id, "stop"))
