"""
fetch_distances.py

Pair batch -> bicycling distance/time/status per pair.

Per pair, in order:
  return address missing            -> return_invalid (no API call)
  checkout address == return address -> same_kiosk, 0.0 miles, time unset
  checkout address missing          -> error (no API call)
  otherwise call the API            -> ok (miles, seconds) or error

Calls are strictly sequential with a fixed pause between consecutive API
calls to stay under the provider's rate limit. A failed call never aborts the
batch. Progress goes to an `on_progress` callback, one event per pair.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol

import pandas as pd

import trip_schema as S
from google_maps import DistanceFailed, DistanceOk, DistanceResult
from kiosk_pairs import PairCheckpoints, coerce_pair_dtypes
from pipeline_config import DEFAULT_DELAY_S


class DistanceSource(Protocol):
    def fetch(self, origin: str, destination: str) -> DistanceResult: ...


@dataclass(frozen=True)
class DistanceProgress:
    index: int  # 1-based within the batch
    total: int
    origin: Optional[str]
    destination: Optional[str]
    miles: Optional[float]
    seconds: Optional[int]
    status: str
    errors: int  # running error count in this batch
    reason: Optional[str] = None


def print_progress(ev: DistanceProgress) -> None:
    miles = f"{ev.miles:.2f} mi" if ev.miles is not None else "-"
    secs = f"{ev.seconds:,} s" if ev.seconds is not None else "-"
    line = (
        f"[{ev.index:>5}/{ev.total}] {ev.origin or '<none>'} -> {ev.destination or '<none>'} | "
        f"{miles} | {secs} | {ev.status} | errors={ev.errors}"
    )
    if ev.reason:
        line += f" ({ev.reason})"
    print(line)


def _missing(v) -> bool:
    return v is None or v is pd.NA or (isinstance(v, float) and v != v)


def resolve_pair_distances(
    pairs: pd.DataFrame,
    client: DistanceSource,
    delay_s: float = DEFAULT_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Optional[Callable[[DistanceProgress], None]] = print_progress,
    prior_calls: int = 0,
) -> pd.DataFrame:
    """
    Return `pairs` with distance_miles / distance_seconds / distance_status
    added (same rows, same order).

    prior_calls: API calls already made earlier in the same run; when > 0 the
    pause also comes before this batch's first call.
    """
    if delay_s < 0:
        raise ValueError(f"delay_s must be >= 0, got {delay_s}")

    miles_out: List[Optional[float]] = []
    secs_out: List[Optional[int]] = []
    status_out: List[str] = []

    errors = 0
    calls = prior_calls
    total = len(pairs)

    for i, (origin, dest) in enumerate(zip(pairs[S.CHECKOUT_ADDRESS], pairs[S.RETURN_ADDRESS]), start=1):
        origin = None if _missing(origin) else str(origin)
        dest = None if _missing(dest) else str(dest)
        miles: Optional[float] = None
        secs: Optional[int] = None
        reason: Optional[str] = None

        if dest is None:
            status = S.STATUS_RETURN_INVALID
        elif origin == dest:
            status = S.STATUS_SAME_KIOSK
            miles = 0.0
        elif origin is None:
            status = S.STATUS_ERROR
            reason = "checkout address missing"
        else:
            if calls > 0:
                sleep(delay_s)
            calls += 1
            result = client.fetch(origin, dest)
            if isinstance(result, DistanceOk):
                status = S.STATUS_OK
                miles, secs = result.miles, result.seconds
            elif isinstance(result, DistanceFailed):
                status = S.STATUS_ERROR
                reason = result.reason
            else:
                raise TypeError(f"client returned {type(result).__name__}, expected a DistanceResult")

        if status == S.STATUS_ERROR:
            errors += 1

        miles_out.append(miles)
        secs_out.append(secs)
        status_out.append(status)

        if on_progress is not None:
            on_progress(
                DistanceProgress(
                    index=i,
                    total=total,
                    origin=origin,
                    destination=dest,
                    miles=miles,
                    seconds=secs,
                    status=status,
                    errors=errors,
                    reason=reason,
                )
            )

    out = pairs.copy()
    out[S.DISTANCE_MILES] = pd.array(miles_out, dtype="Float64")
    out[S.DISTANCE_SECONDS] = pd.array(secs_out, dtype="Int64")
    out[S.DISTANCE_STATUS] = pd.array(status_out, dtype="string")
    return out


@dataclass(frozen=True)
class BatchProgress:
    batch: int
    pairs: int
    done: bool  # False when the batch starts, True once its file is written
    path: Optional[Path] = None


def print_batch(ev: BatchProgress) -> None:
    if ev.done:
        print(f"Batch {ev.batch:03d}: done -> {ev.path}")
    else:
        print(f"Batch {ev.batch:03d}: {ev.pairs:,} pair(s)")


class _CountingSource:
    """Counts API calls so pacing carries across batch boundaries."""

    def __init__(self, client: DistanceSource):
        self.client = client
        self.calls = 0

    def fetch(self, origin: str, destination: str) -> DistanceResult:
        self.calls += 1
        return self.client.fetch(origin, destination)


@dataclass
class BatchRunSummary:
    processed: List[int]
    remaining: List[int]
    status_counts: dict


def run_pending_batches(
    checkpoints: PairCheckpoints,
    client: DistanceSource,
    delay_s: float = DEFAULT_DELAY_S,
    max_batches: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Optional[Callable[[DistanceProgress], None]] = print_progress,
    on_batch: Optional[Callable[[BatchProgress], None]] = print_batch,
) -> BatchRunSummary:
    """
    Fetch every batch without a distances file, in batch order.

    Each batch's result is written as soon as it completes, so an interrupted
    run loses at most the batch in flight. max_batches caps one run to the
    daily quota. The delay applies between consecutive API calls of the whole
    run, not per batch.
    """
    pending = checkpoints.pending_batches()
    todo = pending if max_batches is None else pending[: max(0, int(max_batches))]

    counted = _CountingSource(client)
    processed: List[int] = []
    counts: dict = {}
    for n in todo:
        pairs = checkpoints.read_pairs(n)
        if on_batch is not None:
            on_batch(BatchProgress(batch=n, pairs=len(pairs), done=False))
        result = resolve_pair_distances(
            pairs,
            counted,
            delay_s=delay_s,
            sleep=sleep,
            on_progress=on_progress,
            prior_calls=counted.calls,
        )
        path = checkpoints.write_distances(n, coerce_pair_dtypes(result))
        processed.append(n)
        for status, c in result[S.DISTANCE_STATUS].value_counts().items():
            counts[status] = counts.get(status, 0) + int(c)
        if on_batch is not None:
            on_batch(BatchProgress(batch=n, pairs=len(pairs), done=True, path=path))

    return BatchRunSummary(
        processed=processed,
        remaining=checkpoints.pending_batches(),
        status_counts=counts,
    )
