"""Constants for the Flume water exporter."""

# API endpoints
API_URL = "https://api.flumewater.com"
ENDPOINT_TOKEN = "/oauth/token"
ENDPOINT_ME = "/me"
ENDPOINT_DEVICES = "/users/{user_id}/devices"
ENDPOINT_QUERY = "/users/{user_id}/devices/{device_id}/query"
ENDPOINT_BUDGETS = "/users/{user_id}/devices/{device_id}/budgets"

# Wire-level device type tags
DEVICE_TYPE_BRIDGE = 1
DEVICE_TYPE_SENSOR = 2

# Map battery level strings to gauge values, anything else is 0.0
BATTERY_LEVEL = {
    "high": 1.0,
    "medium": 0.5,
    "low": 0.25,
}

# Query parameters
QUERY_BUCKET = "MIN"
QUERY_OPERATION = "SUM"
QUERY_UNITS = "LITERS"
QUERY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:00"

# Budgets are reported in gallons
GALLONS_TO_LITERS = 3.785411784

# Defaults, the Flume API allows about 120 requests per hour
DEFAULT_BIND_ADDRESS = "0.0.0.0:9160"
DEFAULT_BUDGET_INTERVAL = 3600
DEFAULT_DEVICE_INTERVAL = 300
DEFAULT_QUERY_INTERVAL = 60
DEFAULT_REQUEST_TIMEOUT = 1.0

METRIC_NAMESPACE = "flume_water"
