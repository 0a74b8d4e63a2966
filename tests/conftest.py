"""Shared fixtures. Puts src/ on sys.path so tests run without an editable install."""
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from google_maps import DistanceOk, GeocodeFailed, GeocodeOk  # noqa: E402
from station_directory import StationDirectory  # noqa: E402


RAW_HEADER = [
    "Program",
    "User ID",
    "Zip",
    "Membership Type",
    "Bike",
    "Checkout Date",
    "Checkout Time",
    "Checkout Kiosk",
    "Return Date",
    "Return Time",
    "Return Kiosk",
    "Duration (Minutes)",
]

PEARL = "1505 Pearl St, Boulder, CO 80302"
BROADWAY = "1100 Broadway, Boulder, CO 80302"
FOLSOM = "2100 Folsom St, Boulder, CO 80302"


def trip_row(
    checkout_kiosk: Optional[str],
    return_kiosk: Optional[str],
    checkout_date: str = "7/1/2014",
    checkout_time: str = "1899-12-30 08:15:00",
    return_date: str = "7/1/2014",
    return_time: str = "1899-12-30 08:45:00",
    duration: str = "30",
) -> List[Optional[str]]:
    return [
        "Boulder B-cycle",
        "1001",
        "80302",
        "Annual",
        "42",
        checkout_date,
        checkout_time,
        checkout_kiosk,
        return_date,
        return_time,
        return_kiosk,
        duration,
    ]


def raw_trips(rows) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=RAW_HEADER)


@pytest.fixture
def directory() -> StationDirectory:
    return StationDirectory.from_records(
        [
            ("Name", "Street Address", "City"),
            ("Pearl", "1505 Pearl St", "Boulder, CO 80302"),
            ("Broadway", "1100 Broadway", "Boulder, CO 80302"),
            ("Folsom", "2100 Folsom St", "Boulder, CO 80302"),
        ]
    )


class FakeDistanceClient:
    """Returns canned results in call order and records (origin, destination)."""

    def __init__(self, results=None, default=None):
        self.results = list(results or [])
        self.default = default or DistanceOk(miles=1.5, seconds=540)
        self.calls = []

    def fetch(self, origin, destination):
        self.calls.append((origin, destination))
        if self.results:
            return self.results.pop(0)
        return self.default


class FakeGeocoder:
    def __init__(self, coords=None):
        self.coords = coords or {}
        self.calls = []

    def geocode(self, address):
        self.calls.append(address)
        if address in self.coords:
            lon, lat = self.coords[address]
            return GeocodeOk(longitude=lon, latitude=lat)
        return GeocodeFailed("status=ZERO_RESULTS")


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()

