# backend/app.py
import logging, os
from typing import Optional
from flask import Flask, request
from flask_cors import CORS

from config import SERVER_PORT              # ← absolute import
from api import register_blueprints         # ← absolute import
from context import EXTENSION_KEY, GatewayContext
from util.audit import AuditRecord

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s osm: %(name)s %(levelname)s %(message)s",
)
log = logging.getLogger("osm")

# --- factory --------------------------------------------------------------
def create_app(ctx: Optional[GatewayContext] = None) -> Flask:
    """Build the app; a malformed PROXY_ADDR raises ConfigError here."""
    ctx = ctx or GatewayContext.from_config()

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = ctx
    CORS(app)
    register_blueprints(app, ctx.relay_enabled)
    log.info("proxy endpoints %s (upstream=%s)",
             "enabled" if ctx.relay_enabled else "disabled", ctx.client.mode.value)

    # audit every request once the response has gone out
    @app.after_request
    def audit(resp):
        rec = AuditRecord.from_request(request)
        resp.call_on_close(lambda: ctx.audit.record(rec))
        return resp

    return app

# --------------------------------------------------------------------------
app = create_app()         # ← Gunicorn expects this symbol

if __name__ == "__main__":
    debug = os.environ.get("FLASK_ENV") != "production"
    host  = "127.0.0.1" if debug else "0.0.0.0"
    log.info("OSM gateway starting on port %d", SERVER_PORT)
    app.run(debug=debug, host=host, port=SERVER_PORT, threaded=True)
