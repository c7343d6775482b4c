from __future__ import annotations

DOMAIN = "vastra_valve"
MANUFACTURER = "Vestra"

CONF_POLL_INTERVAL = "poll_interval"
CONF_PIN = "pin"

DEFAULT_POLL_INTERVAL = 10  # seconds
MIN_POLL_INTERVAL = 5
MAX_POLL_INTERVAL = 300
DEFAULT_PIN = 0

# Exposed temperatures never drop below this, whatever the valve reports
MIN_TEMPERATURE = 10.0
MAX_TEMPERATURE = 28.5
TEMPERATURE_STEP = 0.5

UNKNOWN_SERIAL_NUMBER = "Unknown"

SERVICE_SET_TEMPERATURE_UNIT = "set_temperature_unit"
ATTR_UNIT = "unit"

# GATT UUIDs
SERVICE_UUID = "47e9ee00-47e9-11e4-8939-164230d1df67"
TEMPERATURE_CHAR = "47e9ee2b-47e9-11e4-8939-164230d1df67"
PIN_CHAR = "47e9ee30-47e9-11e4-8939-164230d1df67"
SERIAL_NUMBER_CHAR = "00002a25-0000-1000-8000-00805f9b34fb"

# Temperature payload: half-degree units, 0x80 leaves a field untouched
TEMPERATURE_PAYLOAD_LEN = 7
UNCHANGED = 0x80

GATT_TIMEOUT = 10.0  # seconds
