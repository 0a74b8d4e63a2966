"""
kiosk_pairs.py

Trips -> unique (checkout kiosk, return kiosk) pairs with trip counts and
addresses, partitioned into quota-sized batches persisted as parquet so a run
can resume from the last completed batch.

Pair order: trip count descending, then checkout kiosk, then return kiosk
(both ascending). Batching depends on this order, so it must stay
deterministic.
"""
from __future__ import annotations

import json
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

import trip_schema as S
from station_directory import StationDirectory


class DuplicatePairError(ValueError):
    """More than one row for the same (checkout kiosk, return kiosk)."""


# -----------------------------
# Pair table
# -----------------------------
def count_kiosk_pairs(trips: pd.DataFrame) -> pd.DataFrame:
    counts = (
        trips.groupby(S.PAIR_KEYS, observed=True, sort=False)
        .size()
        .rename(S.TRIP_COUNT)
        .reset_index()
    )
    for c in S.PAIR_KEYS:
        counts[c] = counts[c].astype(str)
    counts[S.TRIP_COUNT] = counts[S.TRIP_COUNT].astype("int64")

    return counts.sort_values(
        [S.TRIP_COUNT, S.CHECKOUT_KIOSK, S.RETURN_KIOSK],
        ascending=[False, True, True],
        kind="mergesort",
    ).reset_index(drop=True)


def attach_addresses(pairs: pd.DataFrame, directory: StationDirectory) -> pd.DataFrame:
    """Unknown kiosks get <NA>; nothing here raises on a lookup miss."""
    out = pairs.copy()
    out[S.CHECKOUT_ADDRESS] = out[S.CHECKOUT_KIOSK].map(directory.lookup).astype("string")
    out[S.RETURN_ADDRESS] = out[S.RETURN_KIOSK].map(directory.lookup).astype("string")
    return out


def ensure_unique_pairs(pairs: pd.DataFrame) -> None:
    dup_mask = pairs.duplicated(S.PAIR_KEYS, keep=False)
    if dup_mask.any():
        dupes = pairs.loc[dup_mask, S.PAIR_KEYS].drop_duplicates()
        sample = [tuple(r) for r in dupes.head(10).itertuples(index=False)]
        raise DuplicatePairError(
            f"{len(dupes)} kiosk pair(s) appear more than once in the pair table "
            f"(first {len(sample)}): {sample}"
        )


def resolve_kiosk_pairs(trips: pd.DataFrame, directory: StationDirectory) -> pd.DataFrame:
    pairs = attach_addresses(count_kiosk_pairs(trips), directory)
    ensure_unique_pairs(pairs)
    return pairs


def partition_batches(pairs: pd.DataFrame, batch_size: int) -> List[pd.DataFrame]:
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")
    batches = []
    for n, start in enumerate(range(0, len(pairs), batch_size)):
        batch = pairs.iloc[start : start + batch_size].copy()
        batch.insert(0, S.BATCH, n)
        batches.append(batch.reset_index(drop=True))
    return batches


# -----------------------------
# Checkpoint files
# -----------------------------
PAIR_SCHEMA = pa.schema(
    [
        pa.field(S.BATCH, pa.int32()),
        pa.field(S.CHECKOUT_KIOSK, pa.string()),
        pa.field(S.RETURN_KIOSK, pa.string()),
        pa.field(S.TRIP_COUNT, pa.int64()),
        pa.field(S.CHECKOUT_ADDRESS, pa.string()),
        pa.field(S.RETURN_ADDRESS, pa.string()),
    ]
)
DISTANCE_SCHEMA = pa.schema(
    list(PAIR_SCHEMA)
    + [
        pa.field(S.DISTANCE_MILES, pa.float64()),
        pa.field(S.DISTANCE_SECONDS, pa.int64()),
        pa.field(S.DISTANCE_STATUS, pa.string()),
    ]
)

_BATCH_FILE_RE = re.compile(r"^(?P<kind>pairs|distances)_batch_(?P<n>\d+)\.parquet$")


def coerce_pair_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for c in (S.CHECKOUT_KIOSK, S.RETURN_KIOSK):
        out[c] = out[c].astype(str)
    for c in (S.CHECKOUT_ADDRESS, S.RETURN_ADDRESS):
        out[c] = out[c].astype("string")
    if S.DISTANCE_MILES in out.columns:
        out[S.DISTANCE_MILES] = out[S.DISTANCE_MILES].astype("Float64")
        out[S.DISTANCE_SECONDS] = out[S.DISTANCE_SECONDS].astype("Int64")
        out[S.DISTANCE_STATUS] = out[S.DISTANCE_STATUS].astype("string")
    return out


def _to_table(df: pd.DataFrame, schema: pa.Schema) -> pa.Table:
    cols = []
    for f in schema:
        values = df[f.name]
        if pd.api.types.is_extension_array_dtype(values.dtype):
            values = values.astype(object).where(values.notna(), None)
        cols.append(pa.array(values.tolist(), type=f.type))
    return pa.Table.from_arrays(cols, schema=schema)


def _write_parquet_atomic(table: pa.Table, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = out_path.parent / f"{out_path.name}.tmp.{os.getpid()}"
    try:
        pq.write_table(table, tmp_path)
        os.replace(str(tmp_path), str(out_path))
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


class PairCheckpoints:
    """
    Directory of batch files:

      manifest.json
      pairs_batch_000.parquet      written by the pair resolver
      distances_batch_000.parquet  written once the batch is fully fetched
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        # batches whose fetched distances the last write_pair_batches dropped
        self.invalidated: List[int] = []

    # ------------------------------------------------------------------ paths
    @property
    def manifest_path(self) -> Path:
        return self.root / "manifest.json"

    def pairs_path(self, n: int) -> Path:
        return self.root / f"pairs_batch_{n:03d}.parquet"

    def distances_path(self, n: int) -> Path:
        return self.root / f"distances_batch_{n:03d}.parquet"

    # ------------------------------------------------------------------ manifest
    def read_manifest(self) -> Optional[Dict]:
        if not self.manifest_path.exists():
            return None
        return json.loads(self.manifest_path.read_text(encoding="utf-8"))

    def _batch_files(self, kind: str) -> List[int]:
        if not self.root.exists():
            return []
        found = []
        for p in self.root.iterdir():
            m = _BATCH_FILE_RE.match(p.name)
            if m and m.group("kind") == kind:
                found.append(int(m.group("n")))
        return sorted(found)

    def batch_count(self) -> int:
        manifest = self.read_manifest()
        return int(manifest["batches"]) if manifest else 0

    def completed_batches(self) -> List[int]:
        return [n for n in self._batch_files("distances") if n < self.batch_count()]

    def pending_batches(self) -> List[int]:
        done = set(self.completed_batches())
        return [n for n in range(self.batch_count()) if n not in done]

    # ------------------------------------------------------------------ pairs
    def _same_pairs(self, batches: List[pd.DataFrame]) -> bool:
        manifest = self.read_manifest()
        if manifest is None or int(manifest["batches"]) != len(batches):
            return False
        for n, batch in enumerate(batches):
            if not self.pairs_path(n).exists():
                return False
            stored = self.read_pairs(n)
            if not stored[S.PAIR_KEYS].reset_index(drop=True).equals(
                coerce_pair_dtypes(batch)[S.PAIR_KEYS].reset_index(drop=True)
            ):
                return False
        return True

    def _changed_addresses(self, batches: List[pd.DataFrame]) -> List[int]:
        """Completed batches whose stored addresses differ from `batches` (e.g. the directory was fixed)."""
        cols = [S.CHECKOUT_ADDRESS, S.RETURN_ADDRESS]
        changed = []
        for n in self.completed_batches():
            if n >= len(batches):
                continue
            stored = self.read_distances(n)[cols].fillna("").reset_index(drop=True)
            fresh = coerce_pair_dtypes(batches[n])[cols].fillna("").reset_index(drop=True)
            if not stored.equals(fresh):
                changed.append(n)
        return changed

    def clear(self) -> None:
        for kind in ("pairs", "distances"):
            for n in self._batch_files(kind):
                path = self.pairs_path(n) if kind == "pairs" else self.distances_path(n)
                path.unlink()
        if self.manifest_path.exists():
            self.manifest_path.unlink()

    def write_pair_batches(self, batches: List[pd.DataFrame], batch_size: int, force: bool = False) -> List[Path]:
        """
        Persist resolver output. Refuses to replace a partition that already
        has fetched results unless force=True (which also drops those results).

        For the same partition, fetched batches are kept except those whose
        addresses changed; those go back to pending (see self.invalidated).
        """
        self.invalidated = []
        if self._batch_files("distances"):
            if force:
                self.clear()
            elif not self._same_pairs(batches):
                raise ValueError(
                    f"Checkpoint dir {self.root} already holds fetched distances for a different "
                    f"pair partition. Use a new directory or force to discard them."
                )
            else:
                self.invalidated = self._changed_addresses(batches)
        elif self.read_manifest() is not None:
            self.clear()

        for n in self.invalidated:
            self.distances_path(n).unlink()

        paths = []
        for n, batch in enumerate(batches):
            path = self.pairs_path(n)
            _write_parquet_atomic(_to_table(coerce_pair_dtypes(batch), PAIR_SCHEMA), path)
            paths.append(path)

        manifest = {
            "batch_size": int(batch_size),
            "pairs": int(sum(len(b) for b in batches)),
            "batches": len(batches),
            "written_at": datetime.now().isoformat(timespec="seconds"),
        }
        self.root.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
        return paths

    def read_pairs(self, n: int) -> pd.DataFrame:
        return coerce_pair_dtypes(pq.read_table(self.pairs_path(n)).to_pandas())

    # ------------------------------------------------------------------ distances
    def write_distances(self, n: int, df: pd.DataFrame) -> Path:
        path = self.distances_path(n)
        _write_parquet_atomic(_to_table(coerce_pair_dtypes(df), DISTANCE_SCHEMA), path)
        return path

    def read_distances(self, n: int) -> pd.DataFrame:
        return coerce_pair_dtypes(pq.read_table(self.distances_path(n)).to_pandas())

    def read_all_distances(self) -> pd.DataFrame:
        done = self.completed_batches()
        if not done:
            empty = pd.DataFrame({f.name: pd.Series(dtype=object) for f in DISTANCE_SCHEMA})
            return coerce_pair_dtypes(empty)
        return pd.concat([self.read_distances(n) for n in done], ignore_index=True)
