"""
/api/locations – cached pins for the map client
"""
from __future__ import annotations
from flask import Blueprint, jsonify

from context import get_context

bp = Blueprint("locations", __name__, url_prefix="/api")

@bp.get("/locations")
def locations() -> tuple:
    snapshot = get_context().locations.get()
    return jsonify([loc.to_dict() for loc in snapshot]), 200
