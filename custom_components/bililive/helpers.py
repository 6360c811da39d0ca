import logging
import re
from typing import Any, Mapping

from homeassistant.const import __version__ as HA_VERSION
from homeassistant.loader import async_get_integration

from .const import DOMAIN

_LOGGER = logging.getLogger(__name__)

_BITRATE_RE = re.compile(r"([\d.]+)(k?bits/s)", re.IGNORECASE)
_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


async def build_user_agent(hass) -> str:
    """
    Build the User-Agent sent to the recorder.

    Parameters
    ----------
    hass
        Home Assistant instance.

    Returns
    -------
    str
        UA string including integration version and HA core version.
    """
    integration = await async_get_integration(hass, DOMAIN)
    return "HomeAssistantBililive/%s HomeAssistant/%s" % (
        integration.version,
        HA_VERSION,
    )


def format_download_speed(recorder_status: Mapping[str, Any] | None) -> str:
    """
    Convert an ffmpeg bitrate such as ``"2345.6kbits/s"`` to MB/s or KB/s.

    Falls back to the raw ``speed`` value when the bitrate cannot be parsed,
    and to an empty string when there is no bitrate at all.
    """
    if not recorder_status or not recorder_status.get("bitrate"):
        return ""
    match = _BITRATE_RE.search(str(recorder_status["bitrate"]))
    if not match:
        return str(recorder_status.get("speed") or "")
    try:
        bits_per_sec = float(match.group(1))
    except ValueError:
        return str(recorder_status.get("speed") or "")
    if match.group(2).lower().startswith("k"):
        bits_per_sec *= 1000
    bytes_per_sec = bits_per_sec / 8
    mb_per_sec = bytes_per_sec / (1024 * 1024)
    if mb_per_sec >= 1:
        return f"{mb_per_sec:.2f} MB/s"
    return f"{bytes_per_sec / 1024:.2f} KB/s"


def format_file_size(value: Any) -> str | None:
    """Render a byte count with a binary unit; ``None`` when not a count.

    Only the leading integer of the value is read, so ``"1234.5"`` counts
    as 1234 bytes.
    """
    if value is None or isinstance(value, bool):
        return None
    match = _LEADING_INT_RE.match(str(value))
    if not match:
        return None
    size = float(int(match.group(1)))
    if size < 0:
        return None
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {_SIZE_UNITS[unit]}"
