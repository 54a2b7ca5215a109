"""
/proxy/tiles/<provider>/…  &  /proxy/nominatim
Thin wrappers around relay with plain-text errors.
"""
from __future__ import annotations
from flask import Blueprint, Response, make_response, request

from context import get_context
from errors import RelayError
from relay import RelayResponse, fetch_tile, search

bp = Blueprint("proxy", __name__, url_prefix="/proxy")

def _stream(relay: RelayResponse) -> Response:
    # Response.close() closes the body, so the upstream is released and
    # call_on_close hooks run even if the client disconnects early
    return Response(relay.body, status=relay.status, headers=relay.headers)

@bp.errorhandler(RelayError)
def relay_error(err: RelayError) -> Response:
    return make_response(err.message, err.status_code,
                         {"Content-Type": "text/plain; charset=utf-8"})

@bp.get("/tiles/<path:tile_path>")
def tiles(tile_path: str) -> Response:
    relay = fetch_tile(get_context().client, tile_path,
                       request.headers.get("Referer"))
    return _stream(relay)

@bp.get("/nominatim")
def nominatim() -> Response:
    relay = search(get_context().client, request.args.get("q", ""))
    return _stream(relay)
