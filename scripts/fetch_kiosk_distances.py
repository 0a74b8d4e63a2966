#!/usr/bin/env python3
"""
fetch_kiosk_distances.py

Step 2: call the bicycling-distance API for pending pair batches.

Each completed batch is written to pair_batches/distances_batch_NNN.parquet,
so re-running picks up at the first batch without results. By default one
batch (one day of quota) is processed per run.

Examples:
  python scripts/fetch_kiosk_distances.py --work-dir data/processed --dry-run
  GOOGLE_MAPS_API_KEY=... python scripts/fetch_kiosk_distances.py --work-dir data/processed
  python scripts/fetch_kiosk_distances.py --max-batches 2 --delay 2.5
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from fetch_distances import run_pending_batches  # noqa: E402
from google_maps import DistanceMatrixClient  # noqa: E402
from kiosk_pairs import PairCheckpoints  # noqa: E402
from pipeline_config import DEFAULT_WORK_DIR, add_api_args, config_from_args, validate_config  # noqa: E402


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Fetch bicycling distances for pending kiosk-pair batches")
    ap.add_argument("--work-dir", type=Path, default=DEFAULT_WORK_DIR)
    ap.add_argument("--max-batches", type=int, default=1,
                    help="Batches to process this run (default: 1 = one day of quota); 0 = all pending")
    ap.add_argument("--dry-run", action="store_true", help="Only list pending batches")
    add_api_args(ap)
    args = ap.parse_args(argv)

    cfg = config_from_args(args)
    try:
        validate_config(cfg, require_api_key=not args.dry_run)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if args.max_batches < 0:
        print(f"ERROR: --max-batches must be >= 0: {args.max_batches}", file=sys.stderr)
        return 2

    checkpoints = PairCheckpoints(args.work_dir / "pair_batches")
    manifest = checkpoints.read_manifest()
    if manifest is None:
        print(f"ERROR: no pair batches in {checkpoints.root}; run prepare_kiosk_pairs.py first", file=sys.stderr)
        return 2

    pending = checkpoints.pending_batches()
    print("=" * 70)
    print("DISTANCE FETCH PLAN")
    print("=" * 70)
    print(f"Checkpoint dir:  {checkpoints.root}")
    print(f"Batches:         {manifest['batches']} (size {manifest['batch_size']:,}, pairs {manifest['pairs']:,})")
    print(f"Completed:       {checkpoints.completed_batches()}")
    print(f"Pending:         {pending}")
    print(f"Delay per call:  {cfg.delay_s}s")
    print()

    if not pending:
        print("✓ All batches fetched. Next: merge_trip_distances.py")
        return 0
    if args.dry_run:
        return 0

    client = DistanceMatrixClient(
        cfg.api_key,
        timeout=cfg.timeout_s,
        retries=cfg.retries,
        backoff=cfg.backoff_s,
    )
    summary = run_pending_batches(
        checkpoints,
        client,
        delay_s=cfg.delay_s,
        max_batches=None if args.max_batches == 0 else args.max_batches,
    )

    print()
    print("=" * 70)
    print("FETCH COMPLETE")
    print("=" * 70)
    print(f"Processed batches: {summary.processed}")
    for status, n in sorted(summary.status_counts.items()):
        print(f"  {status:<15} {n:>8,}")
    if summary.remaining:
        print(f"Remaining batches: {summary.remaining} (re-run tomorrow / when quota resets)")
    else:
        print("✓ All batches fetched. Next: merge_trip_distances.py")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
