import io
from typing import Callable, List, Union

import pytest
import requests
from urllib3.response import HTTPResponse

from app import create_app
from context import GatewayContext
from upstream import UpstreamConfig, UpstreamMode
from util.audit import RequestAuditLog
from util.locations import ClientLocation, LocationCache


def make_response(status: int = 200, body: bytes = b"", headers: dict = None,
                  url: str = "https://upstream.test/") -> requests.Response:
    """A real requests.Response backed by an in-memory, streamable body."""
    headers = dict(headers or {})
    resp = requests.Response()
    resp.status_code = status
    resp.headers.update(headers)
    resp.url = url
    resp.raw = HTTPResponse(body=io.BytesIO(body), headers=headers,
                            status=status, preload_content=False)
    return resp


Outcome = Union[Exception, Callable[[], requests.Response]]


class FakeClient:
    """
    Scripted stand-in for OutboundClient. Each call consumes one outcome;
    the last one repeats once the script runs out.
    """

    def __init__(self, *outcomes: Outcome):
        self.outcomes: List[Outcome] = list(outcomes)
        self.calls: List[dict] = []
        self.config = UpstreamConfig(UpstreamMode.DIRECT)
        self.mode = self.config.mode
        self.request_timeout = 30.0

    def get(self, url, *, headers=None, params=None):
        self.calls.append({"url": url, "headers": dict(headers or {}),
                           "params": dict(params or {})})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome()


def ok_tile(body: bytes = b"\x89PNG-tile", **extra) -> Callable[[], requests.Response]:
    headers = {"Content-Type": "image/png", "Content-Length": str(len(body))}
    headers.update(extra)
    return lambda: make_response(200, body, headers)


def status(code: int) -> Callable[[], requests.Response]:
    return lambda: make_response(code, b"nope", {"Content-Type": "text/plain"})


@pytest.fixture
def sample_locations():
    return [
        ClientLocation(51.10997, 17.031984, "AS8246", "Orange Polska", "Wroclaw"),
        ClientLocation(45.0, 20.0, "AS1", "Example", "https://example.org"),
    ]


@pytest.fixture
def audit_log(tmp_path):
    return RequestAuditLog(tmp_path / "requests.log")


@pytest.fixture
def build_app(audit_log, sample_locations):
    def build(client=None, relay_enabled=True, locations=None):
        locs = sample_locations if locations is None else locations
        ctx = GatewayContext(
            client=client or FakeClient(ok_tile()),
            locations=LocationCache(lambda: list(locs)),
            audit=audit_log,
            relay_enabled=relay_enabled,
        )
        app = create_app(ctx)
        app.config.update(TESTING=True)
        return app
    return build
