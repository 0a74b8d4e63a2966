"""
station_directory.py

Manually transcribed station table -> name/address lookup.

The transcription keeps name / street address / city-state-zip at fixed
positions. The original sheet was wide (one station per column); pass
orient="rows" for that layout and it is transposed first.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

import trip_schema as S


# name, street address, city/state/zip
DEFAULT_POSITIONS = (0, 1, 2)

# Cells that show up where a header was copied along with the data
HEADER_LABELS = {
    "name",
    "station",
    "station name",
    "kiosk",
    "kiosk name",
    "address",
    "street address",
    "street",
    "city",
    "city/state/zip",
    "city, state zip",
}


def full_address(street: Optional[str], city_state_zip: Optional[str]) -> Optional[str]:
    """'1505 Pearl St' + 'Boulder, CO 80302' -> '1505 Pearl St, Boulder, CO 80302'."""
    street = _clean_cell(street)
    city_state_zip = _clean_cell(city_state_zip)
    if street is None:
        return None
    if city_state_zip is None:
        return street
    return f"{street}, {city_state_zip}"


def _clean_cell(v) -> Optional[str]:
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return None
    s = " ".join(str(v).split())
    return s or None


def _is_header_artifact(name: Optional[str]) -> bool:
    return name is None or name.strip().lower() in HEADER_LABELS


def reshape_station_table(
    raw: pd.DataFrame,
    orient: str = "columns",
    positions: Sequence[int] = DEFAULT_POSITIONS,
) -> pd.DataFrame:
    """
    Pick name/street/city columns by position and drop header artifacts.

    Returns columns S.STATION_COLUMNS + S.FULL_ADDRESS, one row per station.
    """
    if orient not in ("columns", "rows"):
        raise ValueError(f"orient must be 'columns' or 'rows', got: {orient!r}")

    tbl = raw.T if orient == "rows" else raw
    tbl = tbl.reset_index(drop=True)
    tbl.columns = range(tbl.shape[1])

    if tbl.shape[1] <= max(positions):
        raise ValueError(
            f"Station table has {tbl.shape[1]} column(s); need positions {list(positions)} "
            f"(name, street address, city/state/zip)"
        )

    name_pos, street_pos, city_pos = positions
    rows = []
    for name, street, city in zip(tbl[name_pos], tbl[street_pos], tbl[city_pos]):
        name = _clean_cell(name)
        if _is_header_artifact(name):
            continue
        rows.append(
            {
                S.STATION_NAME: name,
                S.STREET_ADDRESS: _clean_cell(street),
                S.CITY_STATE_ZIP: _clean_cell(city),
            }
        )

    out = pd.DataFrame(rows, columns=S.STATION_COLUMNS)
    dupes = sorted(out.loc[out[S.STATION_NAME].duplicated(), S.STATION_NAME].unique())
    if dupes:
        raise ValueError(f"Duplicate station names in directory: {dupes}")

    out[S.FULL_ADDRESS] = pd.Series(
        [full_address(st, cz) for st, cz in zip(out[S.STREET_ADDRESS], out[S.CITY_STATE_ZIP])],
        index=out.index,
        dtype=object,
    )
    return out


def read_station_directory(
    path: str | Path,
    orient: str = "columns",
    positions: Sequence[int] = DEFAULT_POSITIONS,
) -> "StationDirectory":
    raw = pd.read_csv(path, header=None, dtype=str, keep_default_na=False)
    return StationDirectory(reshape_station_table(raw, orient=orient, positions=positions))


@dataclass
class StationDirectory:
    frame: pd.DataFrame
    _addresses: Dict[str, Optional[str]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # missing addresses are None whatever the frame's null marker is
        self._addresses = {
            name: _clean_cell(addr) for name, addr in zip(self.frame[S.STATION_NAME], self.frame[S.FULL_ADDRESS])
        }

    @classmethod
    def from_records(cls, records: Iterable[Sequence[Optional[str]]]) -> "StationDirectory":
        """records: (name, street address, city/state/zip) tuples."""
        raw = pd.DataFrame([list(r) for r in records])
        return cls(reshape_station_table(raw))

    @property
    def addresses(self) -> Dict[str, Optional[str]]:
        return dict(self._addresses)

    @property
    def names(self) -> List[str]:
        return sorted(self._addresses)

    def lookup(self, name: str) -> Optional[str]:
        """Full address, or None for unknown stations / stations without a street."""
        return self._addresses.get(name)

    def to_frame(self) -> pd.DataFrame:
        return self.frame.copy()

    def __len__(self) -> int:
        return len(self._addresses)


# -----------------------------
# Coverage check
# -----------------------------
@dataclass(frozen=True)
class CoverageReport:
    undocumented: List[str]  # referenced by trips, missing from directory
    unused: List[str]  # in directory, never referenced by trips

    @property
    def is_complete(self) -> bool:
        return not self.undocumented and not self.unused


def validate_coverage(trip_kiosks: Iterable[str], directory: StationDirectory) -> CoverageReport:
    referenced = {str(k) for k in trip_kiosks if k is not None and not pd.isna(k)}
    documented = set(directory.names)
    return CoverageReport(
        undocumented=sorted(referenced - documented),
        unused=sorted(documented - referenced),
    )


def trip_kiosk_names(trips: pd.DataFrame) -> List[str]:
    names = set(trips[S.CHECKOUT_KIOSK].dropna().astype(str)) | set(trips[S.RETURN_KIOSK].dropna().astype(str))
    return sorted(names)


def print_coverage_report(report: CoverageReport) -> None:
    if report.is_complete:
        print("✓ Station directory covers every kiosk referenced by trips")
        return
    if report.undocumented:
        print(f"⚠ {len(report.undocumented)} kiosk(s) referenced by trips but not in the directory:")
        for name in report.undocumented:
            print(f"   - {name}")
    if report.unused:
        print(f"⚠ {len(report.unused)} directory station(s) never referenced by trips:")
        for name in report.unused:
            print(f"   - {name}")
