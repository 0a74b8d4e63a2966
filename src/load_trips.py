"""
load_trips.py

Trip export -> typed trip table.

- Renames the export columns (fixed known order) to the canonical schema.
- Strips the spreadsheet epoch date (1899-12-30 and friends) that leaked into
  the time-only columns, leaving HH:MM:SS.
- Combines date + time into zoned checkout/return timestamps.
- Rows with an unparseable date/time (or a local time that does not exist /
  is ambiguous in the zone) are moved to a rejects table with a parse_error
  message instead of producing a null timestamp.
- Kiosk columns share one categorical domain.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pandas as pd

import trip_schema as S
from pipeline_config import DEFAULT_TIME_ZONE


# Epoch date a legacy spreadsheet glued onto time-only cells
_EPOCH_DATE_RE = r"^\s*(?:1899-12-30|12/30/1899|1899/12/30|1900-01-00)(?:[ T]+|$)"
# Midnight time glued onto date-only cells
_MIDNIGHT_SUFFIX_RE = r"\s+0?0:00(?::00)?(?:\.0+)?$"

DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%m/%d/%y"]
TIME_FORMATS = ["%H:%M:%S", "%H:%M", "%H:%M:%S.%f", "%I:%M:%S %p", "%I:%M %p"]

_NAME_CLEAN_RE = re.compile(r"[^0-9a-zA-Z_]+")


class TripSchemaError(ValueError):
    """The export does not have the expected column layout."""


@dataclass
class TripLoadResult:
    trips: pd.DataFrame
    rejects: pd.DataFrame
    out_of_order: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.trips) + len(self.rejects)


# -----------------------------
# Header handling
# -----------------------------
def _standardize_name(name: str) -> str:
    """Lower, strip, replace spaces/punct with underscore, collapse underscores."""
    n = str(name).strip().lower()
    n = n.replace("\ufeff", "")
    n = n.replace(" ", "_")
    n = _NAME_CLEAN_RE.sub("_", n)
    n = re.sub(r"_+", "_", n).strip("_")
    return n


def read_raw_trips(path: str | Path) -> pd.DataFrame:
    # Everything as strings; typing happens after canonicalization
    return pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])


def canonicalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename by position to S.TRIP_COLUMNS.

    Headers in the exports are inconsistent (case, spacing, "Checkout Kiosk" vs
    "Checkout_Kiosk"), the column order is not, so position wins.
    """
    if len(df.columns) != len(S.TRIP_COLUMNS):
        seen = [_standardize_name(c) for c in df.columns]
        raise TripSchemaError(
            f"Expected {len(S.TRIP_COLUMNS)} columns, got {len(df.columns)}\n"
            f"Expected: {S.TRIP_COLUMNS}\n"
            f"Found:    {seen}"
        )

    out = df.copy()
    out.columns = S.TRIP_COLUMNS
    for c in out.columns:
        if out[c].dtype == object or pd.api.types.is_string_dtype(out[c]):
            out[c] = out[c].astype("string").str.strip()
            out[c] = out[c].mask((out[c] == "").fillna(False))
    return out


# -----------------------------
# Date / time repair
# -----------------------------
def _parse_with_formats(values: pd.Series, formats: Iterable[str]) -> pd.Series:
    """First format that parses wins, per value; NaT where none does."""
    formats = list(formats)
    if not formats:
        raise ValueError("At least one datetime format is required")
    parsed = pd.to_datetime(values, format=formats[0], errors="coerce")
    for fmt in formats[1:]:
        parsed = parsed.fillna(pd.to_datetime(values, format=fmt, errors="coerce"))
    return parsed


def strip_epoch_date(values: pd.Series) -> pd.Series:
    """
    '1899-12-30 14:35:00' -> '14:35:00', '12/30/1899 2:35 PM' -> '14:35:00'.

    Plain time-of-day values pass through (normalized to HH:MM:SS).
    Unparseable values become <NA>.
    """
    raw = values.astype("string").str.strip()
    had_epoch = raw.str.match(_EPOCH_DATE_RE).fillna(False).astype(bool)
    rest = raw.str.replace(_EPOCH_DATE_RE, "", regex=True).str.strip()
    # epoch-only cell == midnight
    rest = rest.mask(had_epoch & (rest == "").fillna(False).astype(bool), "00:00:00")

    parsed = _parse_with_formats(rest, TIME_FORMATS)
    return parsed.dt.strftime(S.TIME_FMT).astype("string")


def normalize_dates(values: pd.Series) -> pd.Series:
    """Any of DATE_FORMATS -> 'YYYY-MM-DD'; unparseable -> <NA>."""
    raw = values.astype("string").str.strip()
    raw = raw.str.replace(_MIDNIGHT_SUFFIX_RE, "", regex=True)
    parsed = _parse_with_formats(raw, DATE_FORMATS)
    return parsed.dt.strftime(S.DATE_FMT).astype("string")


def combine_local_timestamp(dates: pd.Series, times: pd.Series, tz: str) -> pd.Series:
    """
    ISO date + HH:MM:SS -> tz-aware timestamp in `tz`.

    Local times skipped or repeated by a DST change come back as NaT.
    """
    naive = pd.to_datetime(
        dates.astype("string") + " " + times.astype("string"),
        format=f"{S.DATE_FMT} {S.TIME_FMT}",
        errors="coerce",
    )
    return naive.dt.tz_localize(tz, ambiguous="NaT", nonexistent="NaT")


def _append_error(errors: pd.Series, bad: pd.Series, note: pd.Series) -> pd.Series:
    if not bad.any():
        return errors
    out = errors.copy()
    prefix = out[bad].map(lambda s: f"{s}; " if s else "")
    out[bad] = prefix + note[bad]
    return out


def kiosk_dtype(trips: pd.DataFrame, known_names: Optional[Iterable[str]] = None) -> pd.CategoricalDtype:
    observed = set(trips[S.CHECKOUT_KIOSK].dropna()) | set(trips[S.RETURN_KIOSK].dropna())
    names = observed | set(known_names or ())
    return pd.CategoricalDtype(categories=sorted(str(n) for n in names))


# -----------------------------
# Loader
# -----------------------------
def load_trips(
    source: str | Path | pd.DataFrame,
    tz: str = DEFAULT_TIME_ZONE,
    known_kiosks: Optional[Iterable[str]] = None,
) -> TripLoadResult:
    raw = source.copy() if isinstance(source, pd.DataFrame) else read_raw_trips(source)
    df = canonicalize_columns(raw)

    errors = pd.Series("", index=df.index, dtype=object)

    cleaned: List[Tuple[str, pd.Series]] = [
        (S.CHECKOUT_DATE, normalize_dates(df[S.CHECKOUT_DATE])),
        (S.CHECKOUT_TIME, strip_epoch_date(df[S.CHECKOUT_TIME])),
        (S.RETURN_DATE, normalize_dates(df[S.RETURN_DATE])),
        (S.RETURN_TIME, strip_epoch_date(df[S.RETURN_TIME])),
    ]
    for col, parsed in cleaned:
        note = f"unparseable {col}: " + df[col].fillna("<missing>").astype(str)
        errors = _append_error(errors, parsed.isna(), note)

    for col in (S.CHECKOUT_KIOSK, S.RETURN_KIOSK):
        note = pd.Series(f"missing {col}", index=df.index)
        errors = _append_error(errors, df[col].isna(), note)

    clean = dict(cleaned)
    checkout_at = combine_local_timestamp(clean[S.CHECKOUT_DATE], clean[S.CHECKOUT_TIME], tz)
    return_at = combine_local_timestamp(clean[S.RETURN_DATE], clean[S.RETURN_TIME], tz)

    # Parsed fine as strings but not a real local time in tz
    for col, has_parts, stamp in (
        (S.CHECKOUT_AT, clean[S.CHECKOUT_TIME].notna() & clean[S.CHECKOUT_DATE].notna(), checkout_at),
        (S.RETURN_AT, clean[S.RETURN_TIME].notna() & clean[S.RETURN_DATE].notna(), return_at),
    ):
        bad = has_parts & stamp.isna()
        note = pd.Series(f"{col}: nonexistent or ambiguous local time in {tz}", index=df.index)
        errors = _append_error(errors, bad, note)

    rejected = errors != ""

    rejects = df.loc[rejected].copy()
    rejects[S.PARSE_ERROR] = errors[rejected].astype("string")

    trips = df.loc[~rejected].copy()
    for col, parsed in cleaned:
        trips[col] = parsed[~rejected]
    trips[S.CHECKOUT_AT] = checkout_at[~rejected]
    trips[S.RETURN_AT] = return_at[~rejected]
    trips[S.DURATION_MINUTES] = pd.to_numeric(trips[S.DURATION_MINUTES], errors="coerce")

    dtype = kiosk_dtype(trips, known_kiosks)
    trips[S.CHECKOUT_KIOSK] = trips[S.CHECKOUT_KIOSK].astype(str).astype(dtype)
    trips[S.RETURN_KIOSK] = trips[S.RETURN_KIOSK].astype(str).astype(dtype)

    out_of_order = int((trips[S.CHECKOUT_AT] > trips[S.RETURN_AT]).sum())

    return TripLoadResult(
        trips=trips.reset_index(drop=True),
        rejects=rejects.reset_index(drop=True),
        out_of_order=out_of_order,
    )
