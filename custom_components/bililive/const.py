from datetime import timedelta

from homeassistant.const import Platform

DOMAIN = "bililive"
PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.SWITCH]

CONF_POLL_INTERVAL = "poll_interval"
DEFAULT_NAME = "Bililive"
DEFAULT_URL = "http://127.0.0.1:8080"
DEFAULT_POLL_INTERVAL = 10  # seconds

API_PREFIX = "api"
REQUEST_TIMEOUT = 10

# Reconnection back-off settings for the SSE stream
FAST_RETRY_SEC = 5
MAX_RETRY_SEC = 60
BACK_OFF_FACTOR = 2

# Room-scoped data kept while a room is expanded
LOG_FETCH_LINES = 100
MAX_LOG_LINES = 500

TICK_INTERVAL = timedelta(seconds=1)
LISTEN_CHANGE_RELOAD_DELAY = 0.5  # seconds
DEFAULT_MIN_INTERVAL_SEC = 20

WILDCARD = "*"

EVENT_LIVE_UPDATE = "live_update"
EVENT_LIST_CHANGE = "list_change"
EVENT_RATE_LIMIT_UPDATE = "rate_limit_update"
EVENT_LOG = "log"
EVENT_CONN_STATS = "conn_stats"
EVENT_RECORDER_STATUS = "recorder_status"

LIST_EVENT_TYPES: tuple[str, ...] = (
    EVENT_LIVE_UPDATE,
    EVENT_LIST_CHANGE,
    EVENT_RATE_LIMIT_UPDATE,
)

CHANGE_LISTEN_START = "listen_start"
CHANGE_LISTEN_STOP = "listen_stop"

TAG_LISTENING = "监控中"
TAG_STOPPED = "已停止"
TAG_RECORDING = "录制中"
TAG_RECORDING_PREPARING = "录制准备中"
TAG_INITIALIZING = "初始化"

STORAGE_VERSION = 1

SERVICE_EXPAND_ROOM = "expand_room"
SERVICE_COLLAPSE_ROOM = "collapse_room"
SERVICE_FORCE_REFRESH = "force_refresh"
SERVICE_REFRESH_LIST = "refresh_list"
SERVICE_START_LISTENING = "start_listening"
SERVICE_STOP_LISTENING = "stop_listening"
SERVICE_SET_SORT_ORDER = "set_sort_order"

ATTR_ROOM_ID = "room_id"
ATTR_CONFIG_ENTRY_ID = "config_entry_id"
ATTR_COLUMN_KEY = "column_key"
ATTR_ORDER = "order"
