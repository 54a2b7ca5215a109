"""
Small helpers for json-on-disk: atomic writes and a sibling FileLock.
"""
from __future__ import annotations
import json, os, shutil, tempfile
from pathlib import Path
from typing import Any
from filelock import FileLock

from config import LOCK_TIMEOUT_SEC

# ───────────────────────────────── public api ───────────────────────────────
def read_json(path: Path, default: Any = None) -> Any:
    """Parsed contents of *path*; *default* if missing or empty."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    if not text.strip():
        return default
    return json.loads(text)

def atomic_write_json(path: Path, data: Any, indent: int | None = None) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=indent)
        os.chmod(tmp, 0o644)                     # mkstemp creates 0600
        shutil.move(tmp, path)                   # atomic rename on same FS
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

def with_lock(path: Path) -> FileLock:
    """Return a FileLock guarding *path* (json) with sane timeout."""
    return FileLock(str(path) + ".lock", timeout=LOCK_TIMEOUT_SEC)
