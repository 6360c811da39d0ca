from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.bililive.api import BililiveApiError
from custom_components.bililive.const import CONF_POLL_INTERVAL, DOMAIN
from custom_components.bililive.engine import SyncEngine
from custom_components.bililive.sse import SseTransport

ROOM_LIST = [
    {
        "id": "r1",
        "nick_name": "Alice",
        "platform_cn_name": "bilibili",
        "room_name": "evening stream",
        "live_url": "https://live.bilibili.com/1",
        "listening": True,
        "recording": False,
    },
    {
        "id": "r2",
        "nick_name": "Bob",
        "platform_cn_name": "douyu",
        "listening": False,
    },
]


def scheduled_detail(seconds: float, **extra) -> dict:
    detail = {
        "id": "r1",
        "scheduler_status": {
            "scheduler_running": True,
            "has_waiters": True,
            "seconds_until_next_request": seconds,
        },
    }
    detail.update(extra)
    return detail


class FakeApi:
    """In-memory stand-in for the recorder REST client.

    ``gates`` holds an :class:`asyncio.Event` per call name; a gated call waits
    until the event is set so tests can resolve requests out of order.
    """

    def __init__(self) -> None:
        self.lives = [dict(item) for item in ROOM_LIST]
        self.details: dict[str, dict] = {"r1": scheduled_detail(5), "r2": {"id": "r2"}}
        self.logs: dict[str, list[str]] = {"r1": ["boot", "listening"]}
        self.force_result: dict = {"success": True, "message": "ok"}
        self.fail: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, str | None]] = []

    def gate(self, name: str) -> asyncio.Event:
        return self.gates.setdefault(name, asyncio.Event())

    def count(self, name: str, room_id: str | None = None) -> int:
        return sum(
            1 for call, rid in self.calls if call == name and (room_id is None or rid == room_id)
        )

    async def _enter(self, name: str, room_id: str | None = None) -> None:
        self.calls.append((name, room_id))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.fail:
            raise BililiveApiError(f"{name} failed")

    async def async_get_lives(self) -> list[dict]:
        await self._enter("lives")
        return [dict(item) for item in self.lives]

    async def async_get_live(self, room_id: str) -> dict:
        await self._enter("detail", room_id)
        return dict(self.details[room_id])

    async def async_get_logs(self, room_id: str, lines: int = 100) -> list[str]:
        await self._enter("logs", room_id)
        return list(self.logs.get(room_id, []))[-lines:]

    async def async_force_refresh(self, room_id: str) -> dict:
        await self._enter("force", room_id)
        return dict(self.force_result)

    async def async_start_listening(self, room_id: str) -> dict:
        await self._enter("start", room_id)
        return {}

    async def async_stop_listening(self, room_id: str) -> dict:
        await self._enter("stop", room_id)
        return {}


class TimerRecorder:
    """Records timer registrations instead of scheduling them."""

    def __init__(self) -> None:
        self.intervals: list[tuple[object, timedelta, str | None, MagicMock]] = []
        self.later: list[tuple[float, object, MagicMock]] = []

    def track_time_interval(self, hass, action, interval, *, name=None, cancel_on_shutdown=None):
        unsub = MagicMock()
        self.intervals.append((action, interval, name, unsub))
        return unsub

    def call_later(self, hass, delay, action):
        unsub = MagicMock()
        self.later.append((delay, action, unsub))
        return unsub

    def active(self, name: str) -> list[timedelta]:
        return [
            interval
            for _action, interval, timer_name, unsub in self.intervals
            if timer_name == name and not unsub.called
        ]


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def transport() -> SseTransport:
    return SseTransport(MagicMock(), MagicMock(), "http://recorder.local/api/sse")


@pytest.fixture
def timers():
    recorder = TimerRecorder()
    with (
        patch(
            "custom_components.bililive.engine.async_track_time_interval",
            recorder.track_time_interval,
        ),
        patch(
            "custom_components.bililive.polling.async_track_time_interval",
            recorder.track_time_interval,
        ),
        patch("custom_components.bililive.engine.async_call_later", recorder.call_later),
    ):
        yield recorder


@pytest.fixture
async def engine(hass, api, transport, timers):
    sync = SyncEngine(
        hass,
        api,
        transport,
        base_poll_interval=timedelta(seconds=10),
        push_enabled=True,
    )
    yield sync
    sync.dispose()
    await hass.async_block_till_done()


@pytest.fixture
def mock_config_entry(hass) -> MockConfigEntry:
    entry = MockConfigEntry(
        domain=DOMAIN,
        title="Bililive",
        unique_id="http://recorder.local:8080",
        data={
            "name": "Bililive",
            "url": "http://recorder.local:8080",
            CONF_POLL_INTERVAL: 10,
        },
    )
    entry.add_to_hass(hass)
    return entry
