"""
Application-wide constants.
Central place for magic numbers and strings.
"""

# ============= Google Calendar =============
GOOGLE_CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
CALENDAR_DEFAULT_WINDOW_DAYS = 30  # Default [now, now + 30 days] event window
CALENDAR_MAX_RESULTS = 50
UNTITLED_EVENT = "Untitled Event"

# Google event colorId -> display class
EVENT_COLOR_PALETTE = {
    "1": "bg-blue-500",
    "2": "bg-green-500",
    "3": "bg-purple-500",
    "4": "bg-red-500",
    "5": "bg-yellow-500",
    "6": "bg-orange-500",
    "7": "bg-cyan-500",
    "8": "bg-gray-500",
    "9": "bg-indigo-500",
    "10": "bg-emerald-500",
    "11": "bg-pink-500",
}
DEFAULT_EVENT_COLOR = "bg-primary"

# ============= Home Assistant =============
HA_WEBSOCKET_PATH = "/api/websocket"
HA_CONNECTION_TYPES = ("local", "cloud")
HA_WIDGET_TYPES = ("toggle", "sensor", "climate", "light", "cover", "media_player")

CONTROLLABLE_DOMAINS = ("light", "switch", "climate", "cover", "media_player", "fan", "lock")
BINARY_DOMAINS = ("binary_sensor", "switch", "light")

DOMAIN_ICONS = {
    "light": "mdi:lightbulb",
    "switch": "mdi:toggle-switch",
    "sensor": "mdi:gauge",
    "binary_sensor": "mdi:checkbox-marked-circle",
    "climate": "mdi:thermostat",
    "cover": "mdi:window-shutter",
    "media_player": "mdi:speaker",
    "camera": "mdi:camera",
    "lock": "mdi:lock",
    "alarm_control_panel": "mdi:shield-home",
    "fan": "mdi:fan",
    "vacuum": "mdi:robot-vacuum",
}
DEFAULT_ENTITY_ICON = "mdi:help-circle"

# ============= EventBus =============
EVENT_BUS_MAX_LOG_SIZE = 1000  # Max entries kept in the event log
EVENT_HA_STATE_CHANGED = "home_assistant.state_changed"
EVENT_HA_CONNECTION = "home_assistant.connection"

# ============= Dashboard =============
DEFAULT_VISIBLE_WIDGETS = ["clock", "weather", "calendar", "location"]
DEFAULT_THEME_VARIANT = "default"
WIDGET_TYPES = (
    "clock",
    "weather",
    "calendar",
    "google_calendar",
    "todo",
    "notes",
    "home_assistant",
    "photo",
    "location",
    "news",
    "system_stats",
)
PUBLIC_TOKEN_BYTES = 16  # 128 bits, hex-encoded

# ============= Logging =============
LOG_COLLECTOR_MAX_SIZE = 5000
