"""
merge_distances.py

Resolved pair table -> every trip row. Pure lookup join on
(checkout kiosk, return kiosk); nothing is recomputed or re-fetched.
"""
from __future__ import annotations

from typing import Dict

import pandas as pd

import trip_schema as S
from kiosk_pairs import ensure_unique_pairs


class IncompletePairTableError(ValueError):
    """A trip's kiosk pair has no resolved row (or no status) in the pair table."""


_CK = "__checkout_key"
_RK = "__return_key"


def merge_trip_distances(trips: pd.DataFrame, pairs: pd.DataFrame) -> pd.DataFrame:
    """
    Attach distance_miles / distance_seconds / distance_status to every trip.

    Output has the same rows in the same order as `trips`. Raises
    DuplicatePairError if the pair table is ambiguous and
    IncompletePairTableError if any trip cannot get a status.
    """
    ensure_unique_pairs(pairs)

    missing_status = pairs[S.DISTANCE_STATUS].isna()
    if missing_status.any():
        sample = [tuple(r) for r in pairs.loc[missing_status, S.PAIR_KEYS].head(10).itertuples(index=False)]
        raise IncompletePairTableError(f"{int(missing_status.sum())} pair(s) have no distance_status: {sample}")

    lookup = pairs[S.PAIR_KEYS + S.DISTANCE_COLUMNS].copy()
    lookup[_CK] = lookup[S.CHECKOUT_KIOSK].astype(str)
    lookup[_RK] = lookup[S.RETURN_KIOSK].astype(str)
    lookup = lookup.drop(columns=S.PAIR_KEYS)

    left = trips.drop(columns=[c for c in S.DISTANCE_COLUMNS if c in trips.columns])
    left = left.assign(
        **{
            _CK: trips[S.CHECKOUT_KIOSK].astype(str),
            _RK: trips[S.RETURN_KIOSK].astype(str),
        }
    )

    merged = left.merge(
        lookup,
        on=[_CK, _RK],
        how="left",
        validate="many_to_one",
        indicator=True,
    )

    unmatched = merged["_merge"] == "left_only"
    if unmatched.any():
        missing = merged.loc[unmatched, [_CK, _RK]].drop_duplicates()
        sample = [tuple(r) for r in missing.head(10).itertuples(index=False)]
        raise IncompletePairTableError(
            f"{int(unmatched.sum()):,} trip(s) across {len(missing):,} kiosk pair(s) have no resolved "
            f"distance (first {len(sample)}): {sample}"
        )

    merged = merged.drop(columns=[_CK, _RK, "_merge"])
    if len(merged) != len(trips):
        raise AssertionError(f"merge changed row count: {len(trips)} -> {len(merged)}")
    merged.index = trips.index
    return merged


def status_summary(merged: pd.DataFrame) -> Dict[str, int]:
    counts = merged[S.DISTANCE_STATUS].value_counts()
    return {status: int(counts.get(status, 0)) for status in S.RESOLUTION_STATUSES}


def print_status_summary(merged: pd.DataFrame) -> None:
    total = len(merged)
    print(f"Trips: {total:,}")
    for status, n in status_summary(merged).items():
        pct = (n / total * 100) if total else 0.0
        print(f"  {status:<15} {n:>10,} ({pct:5.1f}%)")
