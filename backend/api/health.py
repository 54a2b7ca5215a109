"""
/hz  &  /robots.txt
"""
from __future__ import annotations
from flask import Blueprint, send_from_directory

from config import BASE_DIR

bp = Blueprint("health", __name__)

@bp.get("/hz")
def hz() -> tuple:
    return "OK", 200, {"Content-Type": "text/plain; charset=utf-8"}

@bp.get("/robots.txt")
def robots():
    return send_from_directory(BASE_DIR, "robots.txt", mimetype="text/plain")
