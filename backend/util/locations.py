"""
Read-through TTL cache over the locations.json backing store.
"""
from __future__ import annotations
import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from config import LOCATIONS_TTL_SEC

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientLocation:
    lat: float
    lon: float
    as_label: str = ""
    as_name: str = ""
    details: str = ""

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "as": self.as_label,
            "asname": self.as_name,
            "details": self.details,
        }


# ───────────────────────────────── parsing ──────────────────────────────────
def parse_location_string(loc: str) -> Tuple[float, float]:
    """``"51.1, 17.03"`` → (51.1, 17.03); ValueError if malformed or out of range."""
    parts = loc.split(",")
    if len(parts) != 2:
        raise ValueError(f"invalid location format: {loc!r}")

    try:
        lat = float(parts[0].strip())
    except ValueError:
        raise ValueError(f"invalid latitude: {parts[0]!r}") from None
    if not -90 <= lat <= 90:
        raise ValueError(f"latitude out of range: {lat}")

    try:
        lon = float(parts[1].strip())
    except ValueError:
        raise ValueError(f"invalid longitude: {parts[1]!r}") from None
    if not -180 <= lon <= 180:
        raise ValueError(f"longitude out of range: {lon}")

    return lat, lon


def read_locations(path: Path) -> List[ClientLocation]:
    """
    Load raw ``{location, as, asname, details}`` records and keep the valid
    ones. Bad records are logged and skipped; I/O or JSON errors propagate.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"{path} must hold a JSON array")

    out: List[ClientLocation] = []
    for rec in raw:
        if not isinstance(rec, dict):
            log.warning("[Locations] skipping non-object entry: %r", rec)
            continue
        try:
            lat, lon = parse_location_string(str(rec.get("location", "")))
        except ValueError as exc:
            log.warning("[Locations] skipping invalid location: %s", exc)
            continue
        out.append(ClientLocation(
            lat=lat,
            lon=lon,
            as_label=str(rec.get("as", "")),
            as_name=str(rec.get("asname", "")),
            details=str(rec.get("details", "")),
        ))
    return out


# ───────────────────────────────── locking ──────────────────────────────────
class RWLock:
    """Many readers or one writer. Waiting writers do not block new readers."""

    def __init__(self) -> None:
        self._cond    = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


# ───────────────────────────────── cache ────────────────────────────────────
@dataclass(frozen=True)
class _Entry:
    snapshot: Tuple[ClientLocation, ...]
    captured_at: float


class LocationCache:
    """
    ``get()`` serves the last snapshot while it is younger than *ttl* and
    otherwise reloads synchronously. Concurrent reloads are not merged;
    the last one to finish wins.
    """

    def __init__(
        self,
        loader: Callable[[], Sequence[ClientLocation]],
        ttl: float = LOCATIONS_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl    = ttl
        self._clock  = clock
        self._lock   = RWLock()
        self._entry: Optional[_Entry] = None

    @classmethod
    def from_file(cls, path: Path, **kw) -> "LocationCache":
        return cls(lambda: read_locations(path), **kw)

    def get(self) -> Tuple[ClientLocation, ...]:
        with self._lock.read():
            entry = self._entry
            if entry is not None and self._clock() - entry.captured_at < self._ttl:
                return entry.snapshot

        try:
            snapshot = tuple(self._loader())
        except Exception:                          # degrade to an empty list
            log.exception("[Locations] failed to read locations")
            snapshot = ()

        with self._lock.write():
            self._entry = _Entry(snapshot, self._clock())
        log.debug("[Locations] reloaded %d entries", len(snapshot))
        return snapshot
