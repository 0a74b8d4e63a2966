"""
Tests for the Google Maps clients (no network: http_get is faked)
File: tests/test_google_maps.py
"""
import json
import urllib.error
import urllib.parse

import pytest

from google_maps import (
    METERS_PER_MILE,
    DistanceFailed,
    DistanceMatrixClient,
    DistanceOk,
    GeocodeFailed,
    GeocodeOk,
    GeocodingClient,
)


class FakeHttp:
    """Replays canned responses; an Exception instance is raised instead of returned."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, bytes):
            return item
        return json.dumps(item).encode("utf-8")


def _matrix(meters=3218.688, seconds=720, element_status="OK", status="OK"):
    element = {"status": element_status}
    if element_status == "OK":
        element["distance"] = {"value": meters, "text": "2.0 mi"}
        element["duration"] = {"value": seconds, "text": "12 mins"}
    return {"status": status, "rows": [{"elements": [element]}]}


def _http_error(code):
    return urllib.error.HTTPError("https://maps.googleapis.com", code, "err", hdrs=None, fp=None)


def _client(http, cls=DistanceMatrixClient, **kw):
    sleeps = []
    client = cls("test-key", http_get=http, sleep=sleeps.append, **kw)
    return client, sleeps


class TestDistanceMatrix:
    def test_ok(self):
        http = FakeHttp(_matrix())
        client, sleeps = _client(http)
        result = client.fetch("1505 Pearl St, Boulder, CO", "1100 Broadway, Boulder, CO")

        assert isinstance(result, DistanceOk)
        assert result.miles == pytest.approx(3218.688 / METERS_PER_MILE)
        assert result.seconds == 720
        assert sleeps == []

        query = urllib.parse.parse_qs(urllib.parse.urlparse(http.urls[0]).query)
        assert query["mode"] == ["bicycling"]
        assert query["key"] == ["test-key"]
        assert query["origins"] == ["1505 Pearl St, Boulder, CO"]

    def test_element_not_found(self):
        client, _ = _client(FakeHttp(_matrix(element_status="NOT_FOUND")))
        assert client.fetch("a", "b") == DistanceFailed("element status=NOT_FOUND")

    def test_quota_status_is_failure_not_retried(self):
        http = FakeHttp({"status": "OVER_QUERY_LIMIT", "error_message": "You have exceeded your daily request quota"})
        client, sleeps = _client(http)
        result = client.fetch("a", "b")
        assert isinstance(result, DistanceFailed)
        assert result.reason.startswith("status=OVER_QUERY_LIMIT")
        assert "daily request quota" in result.reason
        assert len(http.urls) == 1
        assert sleeps == []

    def test_transient_errors_retried_with_backoff(self):
        http = FakeHttp(_http_error(503), urllib.error.URLError("reset"), _matrix())
        client, sleeps = _client(http, retries=3, backoff=1.0)
        assert isinstance(client.fetch("a", "b"), DistanceOk)
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_retries(self):
        http = FakeHttp(TimeoutError("slow"), TimeoutError("slow"))
        client, sleeps = _client(http, retries=2, backoff=0.5)
        result = client.fetch("a", "b")
        assert isinstance(result, DistanceFailed)
        assert "after 2 attempt(s)" in result.reason
        assert sleeps == [0.5]

    def test_client_error_not_retried(self):
        http = FakeHttp(_http_error(400), _matrix())
        client, sleeps = _client(http)
        assert isinstance(client.fetch("a", "b"), DistanceFailed)
        assert len(http.urls) == 1
        assert sleeps == []

    def test_non_json_body(self):
        client, _ = _client(FakeHttp(b"<html>oops</html>"))
        result = client.fetch("a", "b")
        assert isinstance(result, DistanceFailed)
        assert "not JSON" in result.reason

    def test_empty_rows(self):
        client, _ = _client(FakeHttp({"status": "OK", "rows": []}))
        assert client.fetch("a", "b") == DistanceFailed("no route element in response")


class TestGeocoding:
    def test_ok(self):
        body = {"status": "OK", "results": [{"geometry": {"location": {"lat": 40.0176, "lng": -105.2773}}}]}
        client, _ = _client(FakeHttp(body), cls=GeocodingClient)
        assert client.geocode("1505 Pearl St") == GeocodeOk(longitude=-105.2773, latitude=40.0176)

    def test_zero_results(self):
        client, _ = _client(FakeHttp({"status": "ZERO_RESULTS", "results": []}), cls=GeocodingClient)
        assert client.geocode("nowhere") == GeocodeFailed("status=ZERO_RESULTS")


@pytest.mark.parametrize("kwargs", [{"api_key": ""}, {"api_key": None}, {"api_key": "k", "retries": 0}])
def test_bad_construction(kwargs):
    with pytest.raises(ValueError):
        DistanceMatrixClient(**kwargs)
