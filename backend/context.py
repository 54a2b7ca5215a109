"""
Process-lifetime collaborators, built once and handed to the Flask app.
"""
from __future__ import annotations
from dataclasses import dataclass

from flask import current_app

import config
from upstream import OutboundClient, configure
from util.audit import RequestAuditLog
from util.locations import LocationCache

EXTENSION_KEY = "gateway"


@dataclass
class GatewayContext:
    client: OutboundClient
    locations: LocationCache
    audit: RequestAuditLog
    relay_enabled: bool = False

    @classmethod
    def from_config(cls) -> "GatewayContext":
        """Raises ConfigError when PROXY_ADDR is malformed."""
        return cls(
            client=configure(config.PROXY_ADDR),
            locations=LocationCache.from_file(config.LOCATIONS_FILE,
                                              ttl=config.LOCATIONS_TTL_SEC),
            audit=RequestAuditLog(config.AUDIT_LOG),
            relay_enabled=config.RELAY_ENDPOINTS,
        )


def get_context() -> GatewayContext:
    return current_app.extensions[EXTENSION_KEY]
