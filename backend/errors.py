"""
Error taxonomy shared by the connector and the relays.

Relay errors carry the HTTP status they map to; the relay blueprint turns
them into short plain-text responses.
"""
from __future__ import annotations


class GatewayError(Exception):
    """Base for everything the gateway raises on purpose."""


class ConfigError(GatewayError):
    """Malformed PROXY_ADDR – fatal at startup."""


class RelayError(GatewayError):
    status_code = 500
    message = "Relay error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidTilePath(RelayError):
    status_code = 400
    message = "Invalid tile path"


class UnknownTileSource(RelayError):
    status_code = 400
    message = "Invalid tile source"


class MissingQuery(RelayError):
    status_code = 400
    message = "Missing query parameter"


class UpstreamUnavailable(RelayError):
    status_code = 502
    message = "Failed to reach upstream"


class UpstreamError(RelayError):
    """Upstream answered, but never with a 200."""

    message = "Upstream not available"
