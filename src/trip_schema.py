"""
trip_schema.py

Column names shared by the loader, pair resolver, merge stage and tests.
Edit here if the export layout changes.
"""
from __future__ import annotations

# -----------------------------
# Raw trip export (fixed column order)
# -----------------------------
PROGRAM = "program"
USER_ID = "user_id"
ZIP = "zip"
MEMBERSHIP_TYPE = "membership_type"
BIKE = "bike"
CHECKOUT_DATE = "checkout_date"
CHECKOUT_TIME = "checkout_time"
CHECKOUT_KIOSK = "checkout_kiosk"
RETURN_DATE = "return_date"
RETURN_TIME = "return_time"
RETURN_KIOSK = "return_kiosk"
DURATION_MINUTES = "duration_minutes"

TRIP_COLUMNS = [
    PROGRAM,
    USER_ID,
    ZIP,
    MEMBERSHIP_TYPE,
    BIKE,
    CHECKOUT_DATE,
    CHECKOUT_TIME,
    CHECKOUT_KIOSK,
    RETURN_DATE,
    RETURN_TIME,
    RETURN_KIOSK,
    DURATION_MINUTES,
]

# Derived zoned timestamps
CHECKOUT_AT = "checkout_at"
RETURN_AT = "return_at"

# Rejected rows
PARSE_ERROR = "parse_error"

DATE_FMT = "%Y-%m-%d"
TIME_FMT = "%H:%M:%S"

# -----------------------------
# Kiosk pairs
# -----------------------------
PAIR_KEYS = [CHECKOUT_KIOSK, RETURN_KIOSK]
TRIP_COUNT = "trips"
CHECKOUT_ADDRESS = "checkout_address"
RETURN_ADDRESS = "return_address"
BATCH = "batch"

DISTANCE_MILES = "distance_miles"
DISTANCE_SECONDS = "distance_seconds"
DISTANCE_STATUS = "distance_status"
DISTANCE_COLUMNS = [DISTANCE_MILES, DISTANCE_SECONDS, DISTANCE_STATUS]

STATUS_OK = "ok"
STATUS_SAME_KIOSK = "same_kiosk"
STATUS_RETURN_INVALID = "return_invalid"
STATUS_ERROR = "error"
RESOLUTION_STATUSES = (STATUS_OK, STATUS_SAME_KIOSK, STATUS_RETURN_INVALID, STATUS_ERROR)

# -----------------------------
# Station directory
# -----------------------------
STATION_NAME = "name"
STREET_ADDRESS = "street_address"
CITY_STATE_ZIP = "city_state_zip"
FULL_ADDRESS = "address"
LONGITUDE = "longitude"
LATITUDE = "latitude"
GEOCODE_STATUS = "geocode_status"
STATION_COLUMNS = [STATION_NAME, STREET_ADDRESS, CITY_STATE_ZIP]
