"""
Tile and geocoding relays.

Both go through the shared OutboundClient and hand back a RelayResponse
whose body is streamed straight off the upstream socket.
"""
from __future__ import annotations
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

import requests

from config import (
    CARTO_TILE_URL, GOOGLE_TILE_URL, OSM_TILE_URL, NOMINATIM_SEARCH_URL,
    STREAM_CHUNK_BYTES, TILE_BACKOFF_SEC, TILE_CACHE_CONTROL,
    TILE_MAX_ATTEMPTS, USER_AGENT,
)
from errors import (
    InvalidTilePath, MissingQuery, UnknownTileSource,
    UpstreamError, UpstreamUnavailable,
)
from upstream import OutboundClient

log = logging.getLogger(__name__)

TILE_URLS: Dict[str, str] = {
    "osm":    OSM_TILE_URL,
    "google": GOOGLE_TILE_URL,
    "carto":  CARTO_TILE_URL,
}
#: providers that also accept a suffix-less z/x/y
_SUFFIX_OPTIONAL = {"google"}

_SEGMENT_RX = re.compile(r"[0-9]+")


# ───────────────────────────────── types ────────────────────────────────────
@dataclass(frozen=True)
class TileRequest:
    provider: str
    zoom: int
    x: int
    y: int
    format: str = "png"

    @property
    def upstream_url(self) -> str:
        return TILE_URLS[self.provider].format(z=self.zoom, x=self.x, y=self.y)


@dataclass
class RelayResponse:
    status: int
    headers: Dict[str, str]
    body: UpstreamBody


# ───────────────────────────────── helpers ──────────────────────────────────
class UpstreamBody:
    """
    Chunked view of an upstream response body. Iterating stops once the
    per-call deadline passes; ``close()`` releases the upstream connection
    whether or not the body was read.
    """

    def __init__(self, resp: requests.Response, deadline: float, decode: bool):
        self._resp     = resp
        self._deadline = deadline
        self._decode   = decode

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._resp.raw.stream(STREAM_CHUNK_BYTES,
                                               decode_content=self._decode):
                if time.monotonic() > self._deadline:
                    log.warning("[Relay] %s passed the request deadline, dropping the rest",
                                self._resp.url)
                    break
                if chunk:
                    yield chunk
        finally:
            self.close()

    def close(self) -> None:
        self._resp.close()


def _deadline(client: OutboundClient) -> float:
    return time.monotonic() + client.request_timeout


def parse_tile_path(path: str) -> TileRequest:
    """
    ``osm/13/4486/2739.png`` → TileRequest('osm', 13, 4486, 2739).

    osm and carto need the ``.png`` suffix; google takes it or leaves it.
    """
    provider, sep, rest = path.lstrip("/").partition("/")
    if provider not in TILE_URLS or not sep:
        raise UnknownTileSource()

    fmt = ""
    if rest.endswith(".png"):
        rest, fmt = rest[: -len(".png")], "png"
    elif provider not in _SUFFIX_OPTIONAL:
        raise InvalidTilePath(f"Invalid {provider} tile path")

    parts = rest.split("/")
    if len(parts) != 3 or not all(_SEGMENT_RX.fullmatch(p) for p in parts):
        raise InvalidTilePath(f"Invalid {provider} tile path")

    z, x, y = (int(p) for p in parts)
    return TileRequest(provider, z, x, y, fmt)


# ───────────────────────────────── public api ───────────────────────────────
def fetch_tile(
    client: OutboundClient,
    provider_path: str,
    referer: Optional[str] = None,
    *,
    sleep: Optional[Callable[[float], None]] = None,
) -> RelayResponse:
    """
    Fetch one tile with up to TILE_MAX_ATTEMPTS tries and linear backoff
    (attempt k failing waits k × TILE_BACKOFF_SEC, nothing after the last).

    The last attempt decides the failure: a transport error raises
    UpstreamUnavailable (502), a non-200 raises UpstreamError with that status.
    """
    sleep = sleep or time.sleep
    tile = parse_tile_path(provider_path)
    url  = tile.upstream_url

    headers = {"User-Agent": USER_AGENT}
    if referer:
        headers["Referer"] = referer

    resp: Optional[requests.Response] = None
    error: Optional[Exception] = None
    for attempt in range(1, TILE_MAX_ATTEMPTS + 1):
        resp, error = None, None
        deadline = _deadline(client)
        try:
            resp = client.get(url, headers=headers)
        except requests.RequestException as exc:
            error = exc
            log.warning("[Tile] attempt %d/%d – error fetching %s: %s",
                        attempt, TILE_MAX_ATTEMPTS, url, exc)
        else:
            if resp.status_code == 200:
                break
            log.warning("[Tile] attempt %d/%d – upstream returned %d for %s",
                        attempt, TILE_MAX_ATTEMPTS, resp.status_code, url)
            resp.close()

        if attempt < TILE_MAX_ATTEMPTS:
            sleep(attempt * TILE_BACKOFF_SEC)

    if error is not None or resp is None:
        log.error("[Tile] failed to fetch %s after %d attempts: %s",
                  url, TILE_MAX_ATTEMPTS, error)
        raise UpstreamUnavailable("Failed to fetch tile", 502) from error

    if resp.status_code != 200:
        log.error("[Tile] upstream returned %d for %s", resp.status_code, url)
        raise UpstreamError("Tile not available", resp.status_code)

    out = {
        "Content-Type": resp.headers.get("Content-Type") or "application/octet-stream",
        "Cache-Control": TILE_CACHE_CONTROL,
    }
    # raw bytes are relayed, so length and encoding stay consistent
    for name in ("Content-Length", "Content-Encoding"):
        if resp.headers.get(name):
            out[name] = resp.headers[name]

    return RelayResponse(resp.status_code, out, UpstreamBody(resp, deadline, decode=False))


def search(client: OutboundClient, query: str) -> RelayResponse:
    """Single-shot Nominatim search; the JSON body is relayed untouched."""
    if not query:
        raise MissingQuery()

    deadline = _deadline(client)
    try:
        resp = client.get(
            NOMINATIM_SEARCH_URL,
            headers={"User-Agent": USER_AGENT},
            params={"format": "json", "q": query},
        )
    except requests.RequestException as exc:
        log.error("[Nominatim] error fetching %r: %s", query, exc)
        raise UpstreamUnavailable("Failed to search location", 500) from exc

    log.info("[Nominatim] q=%r -> %d", query, resp.status_code)
    return RelayResponse(
        resp.status_code,
        {"Content-Type": "application/json"},
        UpstreamBody(resp, deadline, decode=True),
    )
