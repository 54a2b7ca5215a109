import time

import pytest
import requests

from conftest import FakeClient, make_response, ok_tile, status
from errors import (
    InvalidTilePath, MissingQuery, UnknownTileSource,
    UpstreamError, UpstreamUnavailable,
)
from relay import fetch_tile, parse_tile_path, search


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


# ─── URL translation ─────────────────────────────────────────────────────────
@pytest.mark.parametrize("path, url", [
    ("osm/13/4486/2739.png", "https://a.tile.openstreetmap.org/13/4486/2739.png"),
    ("google/13/4486/2739", "https://mt1.google.com/vt/lyrs=s&x=4486&y=2739&z=13"),
    ("google/13/4486/2739.png", "https://mt1.google.com/vt/lyrs=s&x=4486&y=2739&z=13"),
    ("carto/13/4486/2739.png", "https://a.basemaps.cartocdn.com/dark_all/13/4486/2739.png"),
])
def test_tile_paths_map_to_upstream(path, url):
    assert parse_tile_path(path).upstream_url == url


def test_tile_request_fields():
    tile = parse_tile_path("carto/3/4/5.png")
    assert (tile.provider, tile.zoom, tile.x, tile.y, tile.format) == ("carto", 3, 4, 5, "png")


@pytest.mark.parametrize("path", ["bing/1/2/3.png", "osm", "", "OSM/1/2/3.png"])
def test_unknown_tile_source(path):
    with pytest.raises(UnknownTileSource) as exc:
        parse_tile_path(path)
    assert exc.value.status_code == 400


@pytest.mark.parametrize("path", [
    "google/13/4486",
    "google/13/4486/2739/1",
    "osm/13/4486/2739",
    "osm/a/b/c.png",
    "carto/13/-1/2.png",
    "carto/13//2.png",
])
def test_invalid_tile_path(path):
    with pytest.raises(InvalidTilePath) as exc:
        parse_tile_path(path)
    assert exc.value.status_code == 400


def test_bad_path_never_reaches_upstream():
    client = FakeClient(ok_tile())
    with pytest.raises(UnknownTileSource):
        fetch_tile(client, "bing/1/2/3.png")
    assert client.calls == []


# ─── fetch_tile ──────────────────────────────────────────────────────────────
def test_fetch_tile_success_sets_headers_and_streams():
    body = b"\x89PNG" + b"x" * 100
    client = FakeClient(ok_tile(body, **{"Cache-Control": "no-cache"}))
    sleep = SleepRecorder()

    relay = fetch_tile(client, "osm/13/4486/2739.png", "http://map.local/", sleep=sleep)

    assert relay.status == 200
    assert relay.headers["Content-Type"] == "image/png"
    assert relay.headers["Content-Length"] == str(len(body))
    assert relay.headers["Cache-Control"] == "public, max-age=86400"
    assert b"".join(relay.body) == body
    assert sleep.delays == []

    call = client.calls[0]
    assert call["url"] == "https://a.tile.openstreetmap.org/13/4486/2739.png"
    assert call["headers"]["User-Agent"] == "OSM-Proxy-App/1.0"
    assert call["headers"]["Referer"] == "http://map.local/"


def test_fetch_tile_without_referer_sends_none():
    client = FakeClient(ok_tile())
    fetch_tile(client, "carto/1/0/0.png", sleep=SleepRecorder()).body.close()
    assert "Referer" not in client.calls[0]["headers"]


def test_fetch_tile_retries_with_linear_backoff():
    client = FakeClient(requests.ConnectionError("reset"), status(503), ok_tile(b"tile"))
    sleep = SleepRecorder()

    relay = fetch_tile(client, "google/13/4486/2739", sleep=sleep)

    assert len(client.calls) == 3
    assert sleep.delays == [pytest.approx(0.2), pytest.approx(0.4)]
    assert b"".join(relay.body) == b"tile"


def test_fetch_tile_gives_up_after_three_transport_errors():
    client = FakeClient(requests.ConnectionError("down"))
    sleep = SleepRecorder()

    with pytest.raises(UpstreamUnavailable) as exc:
        fetch_tile(client, "osm/1/1/1.png", sleep=sleep)

    assert exc.value.status_code == 502
    assert len(client.calls) == 3
    assert sleep.delays == [pytest.approx(0.2), pytest.approx(0.4)]


def test_fetch_tile_propagates_last_upstream_status():
    client = FakeClient(status(500), status(404))

    with pytest.raises(UpstreamError) as exc:
        fetch_tile(client, "osm/1/1/1.png", sleep=SleepRecorder())

    assert exc.value.status_code == 404
    assert len(client.calls) == 3


def test_fetch_tile_last_attempt_decides_failure_kind():
    client = FakeClient(status(503), status(503), requests.Timeout("slow"))

    with pytest.raises(UpstreamUnavailable):
        fetch_tile(client, "osm/1/1/1.png", sleep=SleepRecorder())


def test_relay_close_releases_unread_body():
    resp = make_response(200, b"abc", {"Content-Type": "image/png"})
    client = FakeClient(lambda: resp)

    relay = fetch_tile(client, "osm/1/1/1.png", sleep=SleepRecorder())
    relay.body.close()

    assert resp.raw.closed


def test_reading_body_releases_upstream():
    resp = make_response(200, b"abc", {"Content-Type": "image/png"})
    client = FakeClient(lambda: resp)

    relay = fetch_tile(client, "osm/1/1/1.png", sleep=SleepRecorder())

    assert b"".join(relay.body) == b"abc"
    assert resp.raw.closed


class DripRaw:
    """Upstream body that sends one byte every *interval* seconds."""

    def __init__(self, size, interval):
        self.size, self.interval = size, interval
        self.closed = False

    def stream(self, amt, decode_content=None):
        for _ in range(self.size):
            if self.closed:
                return
            time.sleep(self.interval)
            yield b"x"

    def close(self):
        self.closed = True


def test_slow_upstream_body_is_cut_at_request_deadline():
    resp = make_response(200, b"", {"Content-Type": "image/png"})
    resp.raw = DripRaw(size=40, interval=0.05)
    client = FakeClient(lambda: resp)
    client.request_timeout = 0.2

    relay = fetch_tile(client, "osm/1/1/1.png", sleep=SleepRecorder())
    started = time.monotonic()
    data = b"".join(relay.body)
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert 0 < len(data) < 40
    assert resp.raw.closed


def test_slow_search_body_is_cut_at_request_deadline():
    resp = make_response(200, b"")
    resp.raw = DripRaw(size=40, interval=0.05)
    client = FakeClient(lambda: resp)
    client.request_timeout = 0.2

    relay = search(client, "berlin")

    assert len(b"".join(relay.body)) < 40
    assert resp.raw.closed


# ─── search ──────────────────────────────────────────────────────────────────
def test_search_requires_query():
    client = FakeClient(ok_tile())
    with pytest.raises(MissingQuery) as exc:
        search(client, "")
    assert exc.value.status_code == 400
    assert client.calls == []


def test_search_relays_json_verbatim():
    payload = b'[{"lat": "51.1", "lon": "17.0", "display_name": "Wroclaw"}]'
    client = FakeClient(lambda: make_response(200, payload, {"Content-Type": "application/json"}))

    relay = search(client, "Wrocław, Poland")

    assert relay.status == 200
    assert relay.headers == {"Content-Type": "application/json"}
    assert b"".join(relay.body) == payload
    call = client.calls[0]
    assert call["url"] == "https://nominatim.openstreetmap.org/search"
    assert call["params"] == {"format": "json", "q": "Wrocław, Poland"}


def test_search_passes_through_upstream_status_without_retry():
    client = FakeClient(lambda: make_response(429, b"[]"))

    relay = search(client, "berlin")

    assert relay.status == 429
    assert b"".join(relay.body) == b"[]"
    assert len(client.calls) == 1


def test_search_transport_error_is_500():
    client = FakeClient(requests.ConnectionError("down"))
    with pytest.raises(UpstreamUnavailable) as exc:
        search(client, "berlin")
    assert exc.value.status_code == 500
    assert len(client.calls) == 1
