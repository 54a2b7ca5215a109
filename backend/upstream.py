"""
Outbound connection setup: one pooled requests.Session per process,
routed direct, through a forward HTTP(S) proxy, or through SOCKS5.

Timeouts: requests only knows (connect, read), so the 30 s overall limit
is a per-call deadline checked by the relays while streaming the body.
Idle pooled connections are not reaped after 90 s: urllib3 has no idle
timeout. The pool is capped at POOL_MAXSIZE and never blocks; urllib3
discards a kept-alive socket the server has closed when it is reused.
"""
from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import InvalidSchema

from config import CONNECT_TIMEOUT_SEC, REQUEST_TIMEOUT_SEC, POOL_MAXSIZE
from errors import ConfigError

log = logging.getLogger(__name__)

_FORWARD_SCHEMES = ("http", "https")
_SOCKS_SCHEMES   = ("socks5", "socks5h")


class UpstreamMode(str, enum.Enum):
    DIRECT  = "direct"
    FORWARD = "forward"
    SOCKS5  = "socks5"


@dataclass(frozen=True)
class UpstreamConfig:
    mode: UpstreamMode
    url: Optional[str] = None        # proxy URL handed to requests
    host: Optional[str] = None       # "host:port" of the proxy
    username: Optional[str] = None

    def describe(self) -> str:
        """Proxy URL with the password masked, for logs."""
        if self.url is None:
            return "direct"
        parts = urlsplit(self.url)
        if parts.password is None:
            return self.url
        netloc = f"{parts.username}:***@{self.host}"
        return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


def parse_upstream(spec: str) -> UpstreamConfig:
    """
    Map the single PROXY_ADDR value onto exactly one upstream mode.

    ``""`` is direct, ``socks5://[user:pass@]host:port`` is SOCKS5, and
    anything else (``http(s)://…`` or a bare ``host:port``) is a forward
    proxy. Raises ConfigError when the proxy address does not parse.
    """
    spec = (spec or "").strip()
    if not spec:
        return UpstreamConfig(UpstreamMode.DIRECT)

    raw   = spec if "://" in spec else f"http://{spec}"
    parts = urlsplit(raw)
    try:
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"Invalid PROXY_ADDR port: {spec!r}") from exc
    if not parts.hostname:
        raise ConfigError(f"Invalid PROXY_ADDR, no host: {spec!r}")

    scheme = parts.scheme.lower()
    netloc = parts.netloc
    host   = netloc.rpartition("@")[2]

    if scheme in _SOCKS_SCHEMES:
        if port is None:
            raise ConfigError(f"SOCKS5 proxy needs host:port: {spec!r}")
        # socks5h: let the proxy resolve upstream hostnames
        url = urlunsplit(("socks5h", netloc, "", "", ""))
        return UpstreamConfig(UpstreamMode.SOCKS5, url=url, host=host,
                              username=parts.username)

    if scheme not in _FORWARD_SCHEMES:
        raise ConfigError(f"Unsupported PROXY_ADDR scheme {scheme!r}: {spec!r}")
    url = urlunsplit((scheme, netloc, parts.path, "", ""))
    return UpstreamConfig(UpstreamMode.FORWARD, url=url, host=host,
                          username=parts.username)


class OutboundClient:
    """
    Read-only wrapper around the shared session. Every call streams and
    carries the fixed (connect, read) timeouts.
    """

    def __init__(self, session: requests.Session, config: UpstreamConfig):
        self._session = session
        self._config  = config
        self._timeout = (CONNECT_TIMEOUT_SEC, REQUEST_TIMEOUT_SEC)

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    @property
    def mode(self) -> UpstreamMode:
        return self._config.mode

    @property
    def timeout(self) -> tuple:
        return self._timeout

    @property
    def request_timeout(self) -> float:
        """Overall budget for one call, body included; relays enforce it."""
        return float(REQUEST_TIMEOUT_SEC)

    def get(self, url: str, *, headers: Mapping[str, str] | None = None,
            params: Mapping[str, str] | None = None) -> requests.Response:
        return self._session.get(url, headers=headers, params=params,
                                 timeout=self._timeout, stream=True)

    def close(self) -> None:
        self._session.close()


def configure(spec: str, session: requests.Session | None = None) -> OutboundClient:
    """Build the process-wide OutboundClient. Called once at startup."""
    cfg = parse_upstream(spec)

    session = session or requests.Session()
    session.trust_env = False                    # PROXY_ADDR is the only switch
    adapter = HTTPAdapter(pool_connections=POOL_MAXSIZE, pool_maxsize=POOL_MAXSIZE,
                          pool_block=False)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if cfg.mode is not UpstreamMode.DIRECT:
        session.proxies = {"http": cfg.url, "https": cfg.url}

    if cfg.mode is UpstreamMode.SOCKS5:
        # build the SOCKS manager now so a broken setup fails at startup
        try:
            adapter.proxy_manager_for(cfg.url)
        except (InvalidSchema, ValueError) as exc:
            raise ConfigError(f"SOCKS5 proxy setup failed: {exc}") from exc
        log.info("[Upstream] SOCKS5 proxy enabled: %s", cfg.describe())
    elif cfg.mode is UpstreamMode.FORWARD:
        log.info("[Upstream] HTTP/HTTPS proxy enabled: %s", cfg.describe())
    else:
        log.info("[Upstream] proxy disabled – using direct connection")

    return OutboundClient(session, cfg)
