"""
geocode_stations.py

Station directory -> + longitude / latitude.

Same pacing as the distance fetcher: one call at a time with a fixed pause
between calls. A failed lookup leaves longitude/latitude blank and sets
geocode_status="error"; it is never reported as a success.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

import pandas as pd

import trip_schema as S
from google_maps import GeocodeFailed, GeocodeOk, GeocodeResult
from pipeline_config import DEFAULT_DELAY_S


GEOCODE_OK = "ok"
GEOCODE_ERROR = "error"


class GeocodeSource(Protocol):
    def geocode(self, address: str) -> GeocodeResult: ...


@dataclass(frozen=True)
class GeocodeProgress:
    index: int
    total: int
    name: str
    address: Optional[str]
    longitude: Optional[float]
    latitude: Optional[float]
    status: str
    errors: int
    reason: Optional[str] = None


def print_progress(ev: GeocodeProgress) -> None:
    where = f"{ev.latitude:.6f}, {ev.longitude:.6f}" if ev.status == GEOCODE_OK else "-"
    line = f"[{ev.index:>3}/{ev.total}] {ev.name} | {ev.address or '<no address>'} | {where} | {ev.status} | errors={ev.errors}"
    if ev.reason:
        line += f" ({ev.reason})"
    print(line)


def geocode_stations(
    stations: pd.DataFrame,
    client: GeocodeSource,
    delay_s: float = DEFAULT_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Optional[Callable[[GeocodeProgress], None]] = print_progress,
) -> pd.DataFrame:
    """`stations` needs S.STATION_NAME and S.FULL_ADDRESS; returns a copy with lon/lat/status added."""
    if delay_s < 0:
        raise ValueError(f"delay_s must be >= 0, got {delay_s}")

    lons: List[Optional[float]] = []
    lats: List[Optional[float]] = []
    statuses: List[str] = []

    calls = 0
    errors = 0
    total = len(stations)

    for i, (name, address) in enumerate(zip(stations[S.STATION_NAME], stations[S.FULL_ADDRESS]), start=1):
        address = None if address is None or pd.isna(address) else str(address)
        lon: Optional[float] = None
        lat: Optional[float] = None
        reason: Optional[str] = None

        if address is None:
            status = GEOCODE_ERROR
            reason = "no street address"
        else:
            if calls > 0:
                sleep(delay_s)
            calls += 1
            result = client.geocode(address)
            if isinstance(result, GeocodeOk):
                status = GEOCODE_OK
                lon, lat = result.longitude, result.latitude
            elif isinstance(result, GeocodeFailed):
                status = GEOCODE_ERROR
                reason = result.reason
            else:
                raise TypeError(f"client returned {type(result).__name__}, expected a GeocodeResult")

        if status == GEOCODE_ERROR:
            errors += 1

        lons.append(lon)
        lats.append(lat)
        statuses.append(status)

        if on_progress is not None:
            on_progress(
                GeocodeProgress(
                    index=i,
                    total=total,
                    name=str(name),
                    address=address,
                    longitude=lon,
                    latitude=lat,
                    status=status,
                    errors=errors,
                    reason=reason,
                )
            )

    out = stations.copy()
    out[S.LONGITUDE] = pd.array(lons, dtype="Float64")
    out[S.LATITUDE] = pd.array(lats, dtype="Float64")
    out[S.GEOCODE_STATUS] = pd.array(statuses, dtype="string")
    return out
