"""Flask application factory and bootstrap.

This module provides the create_app() factory function wiring configuration,
the document store and the provisioning service into the SCIM and health
blueprints.
"""
from __future__ import annotations
import logging
import os
from typing import Optional

from flask import Flask

from scimgw.config import AppConfig, load_settings
from scimgw.core.provisioning_service import ProvisioningService
from scimgw.store import DocumentStore


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(config: Optional[AppConfig] = None, store: Optional[DocumentStore] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        config: Settings to use (default: load_settings())
        store: Document store to serve (default: built from the settings)
    """
    cfg = config or load_settings()
    if store is None:
        store = DocumentStore(cfg.db_path, persistence=cfg.persistence)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["DOCUMENT_STORE"] = store
    app.config["PROVISIONING_SERVICE"] = ProvisioningService.from_store(store, cfg)
    app.json.sort_keys = False

    _configure_logging(app)

    from scimgw.api import errors, health, scim

    app.register_blueprint(health.bp)
    app.register_blueprint(scim.bp)
    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}; plugin={cfg.plugin_name}")
    print("[flask_app] SCIM API registered at /scim/v2")
    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo data")

    return app


def _configure_logging(app: Flask) -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("scimgw").setLevel(level)


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", "8880")))
