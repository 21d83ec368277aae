"""
Settings for the commute service.

Every value can be overridden from the environment; components take these as
constructor defaults so tests can pass their own.
"""

import os

from pytz import timezone

NY_TZ = timezone('America/New_York')

# Directions provider (Google Routes API v2)
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY") or os.getenv("VITE_GOOGLE_MAPS_API_KEY", "")
ROUTES_API_URL = os.getenv("ROUTES_API_URL", "https://routes.googleapis.com/directions/v2:computeRoutes")

# Timeouts (seconds)
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
REQUEST_DEADLINE_SECONDS = float(os.getenv("REQUEST_DEADLINE_SECONDS", "25"))

# Backward correction asks for a run arriving by anchor + travel time + one headway
TRANSIT_HEADWAY_SECONDS = int(os.getenv("TRANSIT_HEADWAY_SECONDS", "1800"))

# Lakeland Route 46 schedule source
LAKELAND_SCHEDULE_URL = os.getenv(
    "LAKELAND_SCHEDULE_URL",
    "https://www.lakelandbus.com/wp-admin/admin-ajax.php",
)
SCHEDULE_USER_AGENT = "CommutePlanner/1.0"
SCHEDULE_IDS = {
    ("weekday", "eastbound"): "25",
    ("weekday", "westbound"): "32",
    ("weekend", "eastbound"): "26",
    ("weekend", "westbound"): "28",
}
SCHEDULE_STOP_NAMES = {
    ("weekday", "eastbound"): "Parsippany (Waterview P&R)",
    ("weekday", "westbound"): "NY PABT",
    ("weekend", "eastbound"): "Parsippany (Waterview P&R)",
    ("weekend", "westbound"): "Depart New York PABT",
}
SCHEDULE_CACHE_KEY = "lakeland-bus-route46-schedule"
SCHEDULE_CACHE_PATH = os.getenv("SCHEDULE_CACHE_PATH") or None

SCHEDULE_TTL_SECONDS = int(os.getenv("SCHEDULE_TTL_SECONDS", str(24 * 60 * 60)))
SCHEDULE_MAX_STALE_SECONDS = int(os.getenv("SCHEDULE_MAX_STALE_SECONDS", str(7 * 24 * 60 * 60)))
SCHEDULE_REFRESH_INTERVAL_SECONDS = int(os.getenv("SCHEDULE_REFRESH_INTERVAL_SECONDS", "3600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "5001"))
