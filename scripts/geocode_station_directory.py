#!/usr/bin/env python3
"""
geocode_station_directory.py

Look up longitude/latitude for every station address and write the enriched
station table. Stations that fail keep blank coordinates with
geocode_status=error.

Example:
  python scripts/geocode_station_directory.py --stations data/raw/stations.csv \\
      --out data/processed/stations_geocoded.csv
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from geocode_stations import GEOCODE_ERROR, geocode_stations  # noqa: E402
from google_maps import GeocodingClient  # noqa: E402
from pipeline_config import DEFAULT_WORK_DIR, add_api_args, config_from_args, validate_config  # noqa: E402
from station_directory import read_station_directory  # noqa: E402
import trip_schema as S  # noqa: E402


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Geocode station directory addresses")
    ap.add_argument("--stations", required=True, type=Path, help="Station directory (CSV)")
    ap.add_argument("--stations-orient", choices=["columns", "rows"], default="columns")
    ap.add_argument("--out", type=Path, default=DEFAULT_WORK_DIR / "stations_geocoded.csv")
    add_api_args(ap)
    args = ap.parse_args(argv)

    cfg = config_from_args(args)
    try:
        validate_config(cfg, require_api_key=True)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if not args.stations.exists():
        print(f"ERROR: input not found: {args.stations}", file=sys.stderr)
        return 2

    try:
        directory = read_station_directory(args.stations, orient=args.stations_orient)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    print(f"Geocoding {len(directory):,} station(s), {cfg.delay_s}s between calls")

    client = GeocodingClient(cfg.api_key, timeout=cfg.timeout_s, retries=cfg.retries, backoff=cfg.backoff_s)
    geocoded = geocode_stations(directory.to_frame(), client, delay_s=cfg.delay_s)

    args.out.parent.mkdir(parents=True, exist_ok=True)
    geocoded.to_csv(args.out, index=False)

    failed = geocoded[geocoded[S.GEOCODE_STATUS] == GEOCODE_ERROR]
    print(f"\nSaved: {args.out} (rows={len(geocoded):,})")
    if len(failed):
        print(f"⚠ {len(failed)} station(s) could not be geocoded (blank lon/lat):")
        for name in failed[S.STATION_NAME]:
            print(f"   - {name}")
    else:
        print("✓ All stations geocoded")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
