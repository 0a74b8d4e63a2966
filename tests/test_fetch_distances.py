"""
Tests for the per-pair distance resolver
File: tests/test_fetch_distances.py
"""
import pandas as pd
import pytest

import trip_schema as S
from conftest import BROADWAY, FOLSOM, PEARL, FakeDistanceClient
from fetch_distances import DistanceProgress, print_progress, resolve_pair_distances, run_pending_batches
from google_maps import DistanceFailed, DistanceOk
from kiosk_pairs import PairCheckpoints, partition_batches


def _pairs(rows):
    return pd.DataFrame(
        [(f"k{i}", f"r{i}", 1, co, ret) for i, (co, ret) in enumerate(rows)],
        columns=[S.CHECKOUT_KIOSK, S.RETURN_KIOSK, S.TRIP_COUNT, S.CHECKOUT_ADDRESS, S.RETURN_ADDRESS],
    )


class TestResolve:
    def test_statuses(self, sleep):
        pairs = _pairs([(PEARL, BROADWAY), (PEARL, None), (FOLSOM, FOLSOM), (None, PEARL)])
        client = FakeDistanceClient()
        out = resolve_pair_distances(pairs, client, delay_s=2.0, sleep=sleep, on_progress=None)

        assert out[S.DISTANCE_STATUS].tolist() == [
            S.STATUS_OK,
            S.STATUS_RETURN_INVALID,
            S.STATUS_SAME_KIOSK,
            S.STATUS_ERROR,
        ]
        assert client.calls == [(PEARL, BROADWAY)]
        assert out.loc[0, S.DISTANCE_MILES] == 1.5
        assert out.loc[0, S.DISTANCE_SECONDS] == 540
        assert out.loc[2, S.DISTANCE_MILES] == 0.0
        assert pd.isna(out.loc[2, S.DISTANCE_SECONDS])
        assert pd.isna(out.loc[1, S.DISTANCE_MILES])
        assert sleep.calls == []

    def test_failure_does_not_stop_batch(self, sleep):
        pairs = _pairs([(PEARL, BROADWAY), (BROADWAY, FOLSOM), (FOLSOM, PEARL)])
        client = FakeDistanceClient(
            [DistanceOk(1.2, 400), DistanceFailed("element status=NOT_FOUND"), DistanceOk(2.4, 800)]
        )
        out = resolve_pair_distances(pairs, client, delay_s=2.0, sleep=sleep, on_progress=None)

        assert len(out) == 3
        assert out[S.DISTANCE_STATUS].tolist() == [S.STATUS_OK, S.STATUS_ERROR, S.STATUS_OK]
        assert out[S.DISTANCE_SECONDS].tolist()[2] == 800
        assert pd.isna(out.loc[1, S.DISTANCE_MILES])
        # pause between calls, not before the first
        assert sleep.calls == [2.0, 2.0]

    def test_rows_and_order_kept(self, sleep):
        pairs = _pairs([(PEARL, BROADWAY), (BROADWAY, PEARL)])
        out = resolve_pair_distances(pairs, FakeDistanceClient(), delay_s=0, sleep=sleep, on_progress=None)
        assert out[S.CHECKOUT_KIOSK].tolist() == ["k0", "k1"]
        assert out.index.tolist() == [0, 1]
        assert str(out[S.DISTANCE_MILES].dtype) == "Float64"

    def test_progress_events(self, sleep):
        events = []
        pairs = _pairs([(PEARL, BROADWAY), (BROADWAY, PEARL), (PEARL, None)])
        client = FakeDistanceClient([DistanceFailed("status=REQUEST_DENIED")])
        resolve_pair_distances(pairs, client, sleep=sleep, on_progress=events.append)

        assert [e.index for e in events] == [1, 2, 3]
        assert {e.total for e in events} == {3}
        assert [e.errors for e in events] == [1, 1, 1]
        assert events[0].reason == "status=REQUEST_DENIED"
        assert events[1].miles == 1.5
        assert events[2].status == S.STATUS_RETURN_INVALID

    def test_negative_delay(self, sleep):
        with pytest.raises(ValueError):
            resolve_pair_distances(_pairs([]), FakeDistanceClient(), delay_s=-1, sleep=sleep)

    def test_unexpected_result_type(self, sleep):
        client = FakeDistanceClient(["1.5 miles"])
        with pytest.raises(TypeError):
            resolve_pair_distances(_pairs([(PEARL, BROADWAY)]), client, sleep=sleep, on_progress=None)


def test_print_progress(capsys):
    print_progress(DistanceProgress(3, 10, PEARL, BROADWAY, 1.234, 600, S.STATUS_OK, errors=0))
    print_progress(DistanceProgress(4, 10, PEARL, None, None, None, S.STATUS_ERROR, errors=1, reason="boom"))
    out = capsys.readouterr().out.splitlines()
    assert "1.23 mi" in out[0]
    assert "600 s" in out[0]
    assert out[1].endswith("errors=1 (boom)")


class TestRunPendingBatches:
    def test_batches_checkpointed_in_order(self, tmp_path, sleep, capsys):
        pairs = _pairs([(PEARL, BROADWAY), (BROADWAY, FOLSOM), (FOLSOM, PEARL), (PEARL, FOLSOM), (PEARL, PEARL)])
        cp = PairCheckpoints(tmp_path)
        cp.write_pair_batches(partition_batches(pairs, 2), batch_size=2)
        client = FakeDistanceClient()

        first = run_pending_batches(cp, client, delay_s=1.0, max_batches=1, sleep=sleep, on_progress=None)
        assert first.processed == [0]
        assert first.remaining == [1, 2]
        assert first.status_counts == {S.STATUS_OK: 2}
        assert len(client.calls) == 2

        rest = run_pending_batches(cp, client, delay_s=1.0, sleep=sleep, on_progress=None)
        assert rest.processed == [1, 2]
        assert rest.remaining == []
        assert rest.status_counts == {S.STATUS_OK: 2, S.STATUS_SAME_KIOSK: 1}

        merged = cp.read_all_distances()
        assert merged[S.CHECKOUT_KIOSK].tolist() == ["k0", "k1", "k2", "k3", "k4"]
        assert "Batch 002: done" in capsys.readouterr().out

    def test_no_pause_after_batch_without_calls(self, tmp_path, sleep):
        pairs = _pairs([(PEARL, PEARL), (PEARL, None), (PEARL, BROADWAY), (BROADWAY, FOLSOM)])
        cp = PairCheckpoints(tmp_path)
        cp.write_pair_batches(partition_batches(pairs, 2), batch_size=2)

        run_pending_batches(cp, FakeDistanceClient(), delay_s=1.0, sleep=sleep, on_progress=None, on_batch=None)
        # batch 0 makes no call; only the gap inside batch 1
        assert sleep.calls == [1.0]

    def test_pause_carried_across_batches(self, tmp_path, sleep):
        pairs = _pairs([(PEARL, BROADWAY), (FOLSOM, FOLSOM), (BROADWAY, FOLSOM)])
        cp = PairCheckpoints(tmp_path)
        cp.write_pair_batches(partition_batches(pairs, 2), batch_size=2)

        client = FakeDistanceClient()
        run_pending_batches(cp, client, delay_s=1.0, sleep=sleep, on_progress=None, on_batch=None)
        assert len(client.calls) == 2
        assert sleep.calls == [1.0]

    def test_batch_events(self, tmp_path, sleep, capsys):
        pairs = _pairs([(PEARL, BROADWAY), (BROADWAY, FOLSOM), (FOLSOM, PEARL)])
        cp = PairCheckpoints(tmp_path)
        cp.write_pair_batches(partition_batches(pairs, 2), batch_size=2)

        events = []
        run_pending_batches(cp, FakeDistanceClient(), delay_s=0, sleep=sleep, on_progress=None, on_batch=events.append)

        assert [(e.batch, e.done) for e in events] == [(0, False), (0, True), (1, False), (1, True)]
        assert events[1].path == cp.distances_path(0)
        assert events[2].pairs == 1
        assert capsys.readouterr().out == ""

    def test_nothing_pending(self, tmp_path, sleep):
        summary = run_pending_batches(PairCheckpoints(tmp_path), FakeDistanceClient(), sleep=sleep)
        assert summary.processed == []
        assert summary.remaining == []
        assert sleep.calls == []
