"""Refresh-status state machine for expanded rooms.

Authoritative updates come from the ``scheduler_status`` / ``rate_limit_info``
fields of a room detail (or a ``rate_limit_update`` event). Between them the
countdown is interpolated by a 1 Hz tick. An authoritative update always
replaces whatever the tick produced.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping

from .const import DEFAULT_MIN_INTERVAL_SEC

_LOGGER = logging.getLogger(__name__)

NO_COUNTDOWN = -1


class RefreshStatus(Enum):
    IDLE = "idle"
    WAITING_INTERVAL = "waiting_interval"
    WAITING_RATE_LIMIT = "waiting_rate_limit"
    REFRESHING = "refreshing"
    NO_SCHEDULE = "no_schedule"


# The tick leaves these alone; only an authoritative update moves them.
FROZEN_STATUSES = frozenset({RefreshStatus.NO_SCHEDULE, RefreshStatus.REFRESHING})


@dataclass(frozen=True)
class RefreshState:
    status: RefreshStatus
    countdown: int
    updated_at: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "countdown": self.countdown,
            "updated_at": self.updated_at,
        }


def _as_float(value: Any, default: float | None = 0.0) -> float | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _derive_legacy(
    rate_limit_info: Mapping[str, Any] | None,
    platform_rate_limit: Any,
) -> tuple[RefreshStatus, int]:
    info = rate_limit_info or {}
    next_request = math.ceil(_as_float(info.get("next_request_in_sec")))
    min_interval = (
        _as_float(info.get("min_interval_sec"))
        or _as_float(platform_rate_limit)
        or DEFAULT_MIN_INTERVAL_SEC
    )
    waited = math.floor(_as_float(info.get("waited_seconds")) + 0.5)

    if next_request > 0:
        return RefreshStatus.WAITING_RATE_LIMIT, next_request
    if waited < min_interval:
        return RefreshStatus.WAITING_INTERVAL, max(0, math.ceil(min_interval - waited))
    return RefreshStatus.IDLE, 0


def _derive_scheduled(
    scheduler_status: Mapping[str, Any],
    rate_limit_info: Mapping[str, Any] | None,
) -> tuple[RefreshStatus, int]:
    if not scheduler_status.get("scheduler_running") or not scheduler_status.get(
        "has_waiters"
    ):
        return RefreshStatus.NO_SCHEDULE, NO_COUNTDOWN

    seconds = _as_float(scheduler_status.get("seconds_until_next_request"), None)
    rate_seconds = _as_float((rate_limit_info or {}).get("next_request_in_sec"))
    rate_limited = rate_seconds > 0

    if seconds is None or seconds < 0:
        return RefreshStatus.NO_SCHEDULE, NO_COUNTDOWN
    if seconds > 0:
        status = (
            RefreshStatus.WAITING_RATE_LIMIT
            if rate_limited
            else RefreshStatus.WAITING_INTERVAL
        )
        return status, math.ceil(seconds)
    if rate_limited:
        return RefreshStatus.WAITING_RATE_LIMIT, math.ceil(rate_seconds)
    return RefreshStatus.IDLE, 0


def derive_refresh_state(
    scheduler_status: Mapping[str, Any] | None,
    rate_limit_info: Mapping[str, Any] | None,
    *,
    platform_rate_limit: Any = None,
    now: float | None = None,
) -> RefreshState:
    """Compute ``(status, countdown)`` from authoritative server payloads.

    A present ``scheduler_status`` wins; ``rate_limit_info`` then only decides
    whether a pending slot is blocked by the platform-wide limiter. Without a
    scheduler status the legacy rate-limit fields are used on their own.
    """
    if isinstance(scheduler_status, Mapping):
        status, countdown = _derive_scheduled(scheduler_status, rate_limit_info)
    else:
        status, countdown = _derive_legacy(rate_limit_info, platform_rate_limit)
    return RefreshState(status, countdown, time.time() if now is None else now)


def derive_from_detail(detail: Mapping[str, Any], *, now: float | None = None) -> RefreshState:
    return derive_refresh_state(
        detail.get("scheduler_status"),
        detail.get("rate_limit_info"),
        platform_rate_limit=detail.get("platform_rate_limit"),
        now=now,
    )


def tick_refresh_state(state: RefreshState) -> RefreshState:
    """Advance a state by one second of local time."""
    if state.status in FROZEN_STATUSES or state.countdown <= 0:
        return state
    countdown = state.countdown - 1
    if countdown == 0:
        return replace(state, status=RefreshStatus.IDLE, countdown=0)
    return replace(state, countdown=countdown)


class RefreshReconciler:
    """Keeps one :class:`RefreshState` per expanded room."""

    def __init__(self) -> None:
        self._states: dict[str, RefreshState] = {}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._states

    def get(self, room_id: str) -> RefreshState | None:
        return self._states.get(room_id)

    def snapshot(self) -> dict[str, RefreshState]:
        return dict(self._states)

    def apply(self, room_id: str, state: RefreshState) -> None:
        """Store an authoritative state, replacing any interpolated value."""
        previous = self._states.get(room_id)
        self._states[room_id] = state
        if previous is None or previous.status != state.status:
            _LOGGER.debug(
                "Refresh status for %s -> %s (%ss)",
                room_id,
                state.status.value,
                state.countdown,
            )

    def tick(self, room_ids: Iterable[str]) -> set[str]:
        """Advance every given room by one second; return the rooms that changed."""
        changed: set[str] = set()
        for room_id in room_ids:
            current = self._states.get(room_id)
            if current is None:
                continue
            ticked = tick_refresh_state(current)
            if ticked is not current:
                self._states[room_id] = ticked
                changed.add(room_id)
        return changed

    def begin_refresh(self, room_id: str) -> bool:
        current = self._states.get(room_id)
        countdown = current.countdown if current is not None else NO_COUNTDOWN
        self._states[room_id] = RefreshState(
            RefreshStatus.REFRESHING, countdown, time.time()
        )
        return True

    def revert_refresh(self, room_id: str) -> bool:
        """Leave ``refreshing`` after a failed force refresh."""
        current = self._states.get(room_id)
        if current is None or current.status is not RefreshStatus.REFRESHING:
            return False
        self._states[room_id] = RefreshState(RefreshStatus.IDLE, 0, time.time())
        return True

    def discard(self, room_id: str) -> None:
        self._states.pop(room_id, None)

    def clear(self) -> None:
        self._states.clear()
