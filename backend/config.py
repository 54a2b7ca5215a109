"""
Global paths, upstream endpoints and config switches.
Everything environment-driven is read once, on import.
"""
from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ─── upstream selection ──────────────────────────────────────────────────────
#: "" = direct, "socks5://[user:pass@]host:port", or any forward-proxy URL
PROXY_ADDR = os.getenv("PROXY_ADDR", "").strip()

#: relay endpoints follow PROXY_ADDR unless forced on
RELAY_ENDPOINTS = _env_flag("RELAY_ENDPOINTS", default=bool(PROXY_ADDR))

# ─── server ──────────────────────────────────────────────────────────────────
SERVER_PORT = int(os.getenv("SERVER_PORT", "5050"))

# ─── on-disk state ───────────────────────────────────────────────────────────
LOG_DIR        = Path("/tmp") / os.getenv("LOG_DIR", "data")
AUDIT_LOG      = LOG_DIR / "requests.log"
LOCATIONS_FILE = Path(os.getenv("LOCATIONS_FILE", str(BASE_DIR / "locations.json")))

# create folders on import
LOG_DIR.mkdir(parents=True, exist_ok=True)

#: keep audit lock waits well below the outbound request timeout
LOCK_TIMEOUT_SEC = 20

# ─── outbound client ─────────────────────────────────────────────────────────
CONNECT_TIMEOUT_SEC = 10
REQUEST_TIMEOUT_SEC = 30
POOL_MAXSIZE        = 100
USER_AGENT          = "OSM-Proxy-App/1.0"

# ─── tile relay ──────────────────────────────────────────────────────────────
TILE_MAX_ATTEMPTS   = 3
TILE_BACKOFF_SEC    = 0.2
TILE_CACHE_CONTROL  = "public, max-age=86400"
STREAM_CHUNK_BYTES  = 16 * 1024

OSM_TILE_URL    = "https://a.tile.openstreetmap.org/{z}/{x}/{y}.png"
GOOGLE_TILE_URL = "https://mt1.google.com/vt/lyrs=s&x={x}&y={y}&z={z}"
CARTO_TILE_URL  = "https://a.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}.png"

# ─── geocoding relay ─────────────────────────────────────────────────────────
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"

# ─── location cache ──────────────────────────────────────────────────────────
LOCATIONS_TTL_SEC = 3.0
