import asyncio
import contextlib
import itertools
import json
import logging
import time
from collections.abc import Callable
from typing import Any, AsyncIterator

from aiohttp import ClientError, ClientSession, ClientTimeout
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.core import HomeAssistant
from yarl import URL

from .const import BACK_OFF_FACTOR, FAST_RETRY_SEC, MAX_RETRY_SEC, WILDCARD

_LOGGER = logging.getLogger(__name__)

HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}

MessageHandler = Callable[[dict[str, Any]], None]


async def iter_sse_messages(lines: AsyncIterator[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded JSON payloads from a raw ``text/event-stream`` body."""
    data: list[str] = []
    async for raw in lines:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            if data:
                text = "\n".join(data)
                data = []
                try:
                    payload = json.loads(text)
                except json.JSONDecodeError:
                    _LOGGER.debug("Ignoring non-JSON SSE frame: %s", text[:200])
                    continue
                if isinstance(payload, dict):
                    yield payload
            continue
        if line.startswith(":"):
            continue  # comment / keep-alive
        field, _, value = line.partition(":")
        if field == "data":
            data.append(value[1:] if value.startswith(" ") else value)


class SseTransport:
    """Single shared SSE connection with an id-keyed subscription table.

    Handlers are registered per ``(room_id | "*", event_type | "*")`` and are
    called on the event loop for every matching message.
    """

    def __init__(self, hass: HomeAssistant, session: ClientSession, url: URL | str) -> None:
        self.hass = hass
        self.session = session
        self.url = URL(str(url))
        self._subs: dict[str, tuple[str, str, MessageHandler]] = {}
        self._ids = itertools.count(1)
        self._task: asyncio.Task | None = None
        self.connected = False
        self.last_message_ts: float | None = None
        self._stop_unsub: Callable[[], None] | None = None

    # ------------------------------------------------------------------ #
    # Subscription table
    # ------------------------------------------------------------------ #

    def subscribe(self, room_id: str, event_type: str, handler: MessageHandler) -> str:
        subscription_id = f"sse-{next(self._ids)}"
        self._subs[subscription_id] = (room_id, event_type, handler)
        _LOGGER.debug("Subscribed %s to %s/%s", subscription_id, room_id, event_type)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> None:
        if self._subs.pop(subscription_id, None) is None:
            _LOGGER.debug("Unsubscribe for unknown id %s", subscription_id)
            return
        _LOGGER.debug("Unsubscribed %s", subscription_id)

    @property
    def subscription_count(self) -> int:
        return len(self._subs)

    def dispatch(self, message: dict[str, Any]) -> int:
        """Deliver ``message`` to every matching handler; return the count."""
        room_id = str(message.get("room_id") or "")
        event_type = str(message.get("type") or "")
        delivered = 0
        for subscription_id, (sub_room, sub_type, handler) in list(self._subs.items()):
            if sub_room != WILDCARD and sub_room != room_id:
                continue
            if sub_type != WILDCARD and sub_type != event_type:
                continue
            # A handler may have removed this subscription meanwhile.
            if subscription_id not in self._subs:
                continue
            delivered += 1
            try:
                handler(message)
            except Exception:  # noqa: BLE001
                _LOGGER.warning(
                    "SSE handler for %s raised on %s event",
                    subscription_id,
                    event_type,
                    exc_info=True,
                )
        return delivered

    # ------------------------------------------------------------------ #
    # Connection
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start background task to maintain the stream."""
        if self._task is None or self._task.done():
            self._task = self.hass.async_create_background_task(
                self._listen(), "bililive sse listener"
            )
        if self._stop_unsub is None:
            self._stop_unsub = self.hass.bus.async_listen_once(
                EVENT_HOMEASSISTANT_STOP, self._handle_ha_stop
            )

    async def _handle_ha_stop(self, _event) -> None:
        self._stop_unsub = None
        await self.async_close()

    async def async_close(self) -> None:
        if self._stop_unsub is not None:
            self._stop_unsub()
            self._stop_unsub = None
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._set_connected(False)

    def _set_connected(self, value: bool) -> None:
        if self.connected != value:
            self.connected = value
            _LOGGER.debug("SSE stream %s", "connected" if value else "disconnected")

    async def _listen(self) -> None:
        delay = FAST_RETRY_SEC
        while True:
            try:
                await self._run_once()
                delay = FAST_RETRY_SEC
            except asyncio.CancelledError:
                raise
            except (ClientError, asyncio.TimeoutError) as err:
                _LOGGER.warning("SSE stream failed (%s). Retrying in %s s", err, delay)
            except Exception:  # noqa: BLE001
                _LOGGER.warning(
                    "SSE stream crashed. Retrying in %s s", delay, exc_info=True
                )
            self._set_connected(False)
            await asyncio.sleep(delay)
            delay = min(delay * BACK_OFF_FACTOR, MAX_RETRY_SEC)

    async def _run_once(self) -> None:
        timeout = ClientTimeout(total=None, sock_connect=10)
        async with self.session.get(self.url, headers=HEADERS, timeout=timeout) as resp:
            resp.raise_for_status()
            self._set_connected(True)
            async for message in iter_sse_messages(resp.content):
                self.last_message_ts = time.time()
                self.dispatch(message)
        _LOGGER.debug("SSE stream closed by server")
