"""
Bundle and register all blueprints with the Flask app.
"""
from flask import Flask
from . import health, locations, proxy

def register_blueprints(app: Flask, relay_enabled: bool) -> None:
    app.register_blueprint(health.bp)
    if relay_enabled:
        app.register_blueprint(proxy.bp)
        app.register_blueprint(locations.bp)
