#!/usr/bin/env python3
"""
prepare_kiosk_pairs.py

Step 1 of the distance pipeline:
  raw trip export + station directory
    -> cleaned trips (parquet), rejected rows (csv)
    -> unique kiosk pairs with addresses, split into quota-sized batches

Examples:
  python scripts/prepare_kiosk_pairs.py --trips data/raw/trips.csv \\
      --stations data/raw/stations.csv --work-dir data/processed

  python scripts/prepare_kiosk_pairs.py --trips data/raw/trips.csv \\
      --stations data/raw/stations_wide.csv --stations-orient rows --batch-size 1000 --force
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from kiosk_pairs import PairCheckpoints, partition_batches, resolve_kiosk_pairs  # noqa: E402
from load_trips import TripSchemaError, load_trips  # noqa: E402
from pipeline_config import (  # noqa: E402
    DEFAULT_DAILY_QUOTA,
    DEFAULT_TIME_ZONE,
    DEFAULT_WORK_DIR,
    config_from_args,
    validate_config,
)
from station_directory import (  # noqa: E402
    print_coverage_report,
    read_station_directory,
    trip_kiosk_names,
    validate_coverage,
)
import trip_schema as S  # noqa: E402


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="Clean trips and split kiosk pairs into distance-API batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("--trips", required=True, type=Path, help="Raw trip export (CSV)")
    ap.add_argument("--stations", required=True, type=Path, help="Station directory (CSV)")
    ap.add_argument("--stations-orient", choices=["columns", "rows"], default="columns",
                    help="'rows' if the directory is wide (one station per column)")
    ap.add_argument("--work-dir", type=Path, default=DEFAULT_WORK_DIR)
    ap.add_argument("--batch-size", type=int, default=DEFAULT_DAILY_QUOTA,
                    help=f"Pairs per batch, i.e. the daily API quota (default: {DEFAULT_DAILY_QUOTA})")
    ap.add_argument("--time-zone", default=DEFAULT_TIME_ZONE)
    ap.add_argument("--force", action="store_true",
                    help="Re-partition even if fetched distances exist (discards them)")
    args = ap.parse_args(argv)

    cfg = config_from_args(args)
    try:
        validate_config(cfg)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    for p in (args.trips, args.stations):
        if not p.exists():
            print(f"ERROR: input not found: {p}", file=sys.stderr)
            return 2

    work_dir: Path = args.work_dir
    work_dir.mkdir(parents=True, exist_ok=True)

    print("=" * 70)
    print("STATION DIRECTORY")
    print("=" * 70)
    try:
        directory = read_station_directory(args.stations, orient=args.stations_orient)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    print(f"Loaded {len(directory):,} station(s) from {args.stations}")
    no_street = [n for n, a in directory.addresses.items() if a is None]
    if no_street:
        print(f"⚠ {len(no_street)} station(s) without a street address: {no_street}")

    print()
    print("=" * 70)
    print("TRIPS")
    print("=" * 70)
    try:
        loaded = load_trips(args.trips, tz=cfg.time_zone, known_kiosks=directory.names)
    except TripSchemaError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    trips, rejects = loaded.trips, loaded.rejects
    print(f"Rows read:     {loaded.total_rows:,}")
    print(f"Rows kept:     {len(trips):,}")
    print(f"Rows rejected: {len(rejects):,}")
    if loaded.out_of_order:
        print(f"⚠ {loaded.out_of_order:,} trip(s) return before they check out (kept)")

    print()
    report = validate_coverage(trip_kiosk_names(trips), directory)
    print_coverage_report(report)

    print()
    print("=" * 70)
    print("KIOSK PAIRS")
    print("=" * 70)
    pairs = resolve_kiosk_pairs(trips, directory)
    batches = partition_batches(pairs, cfg.batch_size)

    # trips_clean.parquet is replaced only once the partition is accepted
    checkpoints = PairCheckpoints(work_dir / "pair_batches")
    try:
        checkpoints.write_pair_batches(batches, batch_size=cfg.batch_size, force=args.force)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print(f"Nothing written; {work_dir} still holds the previous run.", file=sys.stderr)
        return 2

    no_return = int(pairs[S.RETURN_ADDRESS].isna().sum())
    same = int((pairs[S.CHECKOUT_ADDRESS] == pairs[S.RETURN_ADDRESS]).fillna(False).sum())
    print(f"Unique pairs:            {len(pairs):,}")
    print(f"  return address missing: {no_return:,}")
    print(f"  same kiosk:             {same:,}")
    print(f"  needing an API call:    ~{len(pairs) - no_return - same:,}")
    print(f"Batches (size {cfg.batch_size:,}): {len(batches)} -> {checkpoints.root}")
    if checkpoints.invalidated:
        print(f"⚠ Addresses changed, re-fetch needed for batches: {checkpoints.invalidated}")
    print(f"Pending batches: {checkpoints.pending_batches()}")

    print()
    trips_path = work_dir / "trips_clean.parquet"
    tmp_path = work_dir / f"{trips_path.name}.tmp.{os.getpid()}"
    try:
        trips.to_parquet(tmp_path, index=False)
        os.replace(str(tmp_path), str(trips_path))
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    print(f"Wrote {trips_path}")

    rejects_path = work_dir / "trips_rejected.csv"
    rejects.to_csv(rejects_path, index=False)
    if len(rejects):
        print(f"Wrote {rejects_path}")
        print(rejects[S.PARSE_ERROR].value_counts().head(10).to_string())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
