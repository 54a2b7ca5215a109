"""
Append-only request audit log.

The file is one pretty-printed JSON array holding every record ever
written; each append reads it, adds one entry and rewrites it whole.
"""
from __future__ import annotations
import datetime as _dt
import json
import logging
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import List

from util.cache import atomic_write_json, read_json, with_lock

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    timestamp: str
    method: str
    path: str
    query: str = ""
    user_agent: str = ""
    remote_addr: str = ""
    x_forwarded_for: str = "N/A"
    referer: str = ""

    @classmethod
    def from_request(cls, req) -> "AuditRecord":
        """Snapshot a Flask/werkzeug request; call while its context is live."""
        now = _dt.datetime.now(_dt.timezone.utc).replace(microsecond=0)
        return cls(
            timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            method=req.method,
            path=req.path,
            query=req.query_string.decode("latin-1"),
            user_agent=req.headers.get("User-Agent", ""),
            remote_addr=req.remote_addr or "",
            x_forwarded_for=req.headers.get("X-Forwarded-For") or "N/A",
            referer=req.headers.get("Referer", ""),
        )

    @classmethod
    def from_dict(cls, raw: dict) -> "AuditRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in raw.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)


class RequestAuditLog:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._mutex = threading.Lock()          # serializes threads
        self._file_lock = with_lock(self.path)  # serializes worker processes

    def record(self, rec: AuditRecord) -> None:
        """Append *rec*. Never raises – failures are logged and dropped."""
        log.info("%s", json.dumps(rec.to_dict(), ensure_ascii=False))
        try:
            with self._mutex, self._file_lock:
                self._append(rec)
        except Exception:
            log.exception("[Audit] dropped record for %s %s", rec.method, rec.path)

    def _append(self, rec: AuditRecord) -> None:
        existing = read_json(self.path, default=[])
        if not isinstance(existing, list):
            raise ValueError(f"{self.path} does not hold a JSON array")
        existing.append(rec.to_dict())
        atomic_write_json(self.path, existing, indent=4)

    def records(self) -> List[AuditRecord]:
        with self._mutex, self._file_lock:
            raw = read_json(self.path, default=[])
        return [AuditRecord.from_dict(r) for r in raw]
