#!/usr/bin/env python3
"""
merge_trip_distances.py

Step 3: join resolved pair distances onto every cleaned trip and write the
enriched trip table as CSV.

Example:
  python scripts/merge_trip_distances.py --work-dir data/processed
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from kiosk_pairs import DuplicatePairError, PairCheckpoints  # noqa: E402
from merge_distances import IncompletePairTableError, merge_trip_distances, print_status_summary  # noqa: E402
from pipeline_config import DEFAULT_WORK_DIR  # noqa: E402


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Attach kiosk-pair distances to every trip")
    ap.add_argument("--work-dir", type=Path, default=DEFAULT_WORK_DIR)
    ap.add_argument("--out", type=Path, default=None,
                    help="Output CSV (default: <work-dir>/trips_with_distances.csv)")
    args = ap.parse_args(argv)

    work_dir: Path = args.work_dir
    trips_path = work_dir / "trips_clean.parquet"
    if not trips_path.exists():
        print(f"ERROR: {trips_path} not found; run prepare_kiosk_pairs.py first", file=sys.stderr)
        return 2

    checkpoints = PairCheckpoints(work_dir / "pair_batches")
    pending = checkpoints.pending_batches()
    if checkpoints.read_manifest() is None or pending:
        print(f"ERROR: distances incomplete, pending batches: {pending}; run fetch_kiosk_distances.py",
              file=sys.stderr)
        return 2

    trips = pd.read_parquet(trips_path)
    pairs = checkpoints.read_all_distances()
    print(f"Trips: {len(trips):,}  Pairs: {len(pairs):,}")

    try:
        merged = merge_trip_distances(trips, pairs)
    except DuplicatePairError as e:
        print(f"ERROR: ambiguous pair table: {e}", file=sys.stderr)
        return 1
    except IncompletePairTableError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    out_path = args.out or (work_dir / "trips_with_distances.csv")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    merged.to_csv(out_path, index=False)

    print()
    print_status_summary(merged)
    print(f"\nSaved: {out_path} (rows={len(merged):,})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
