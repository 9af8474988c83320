# rentledger/__init__.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional

from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from .extensions import cors, db, jwt


# --- Config ------------------------------------------------------------------
def _get_allowed_origins(app: Flask) -> list[str]:
    """Allowed CORS origins: local frontend defaults plus CORS_ALLOWED_ORIGINS."""
    default = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    extra = app.config.get("CORS_ALLOWED_ORIGINS", "")
    extra_list = [o.strip() for o in extra.split(",") if o.strip()]
    return sorted(set(default + extra_list))


def _configure_logging(app: Flask) -> None:
    """JSON logs to stdout."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(level)
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers in reloaders
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)


def _configure_cors(app: Flask) -> None:
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": _get_allowed_origins(app)}},
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )


def _configure_proxy(app: Flask) -> None:
    """Respect X-Forwarded-* from the reverse proxy."""
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore


def _load_config(app: Flask, config_object: Optional[str | Any]) -> None:
    if config_object is None:
        config_object = os.getenv("CONFIG_CLASS", "rentledger.config.Config")
    app.config.from_object(config_object)

    if not app.config.get("SECRET_KEY") and not app.testing:
        raise ValueError("SECRET_KEY environment variable must be set")
    if not app.config.get("JWT_SECRET_KEY"):
        app.config["JWT_SECRET_KEY"] = app.config["SECRET_KEY"]
    app.config.setdefault("API_PREFIX", "/api")


def _register_blueprints(app: Flask) -> None:
    """Register all API blueprints under /api."""
    from .routes.bills import bp as bills_bp
    from .routes.scheduler import bp as scheduler_bp

    for bp in (bills_bp, scheduler_bp):
        app.register_blueprint(bp, url_prefix=app.config["API_PREFIX"])
        app.logger.debug("Registered blueprint %s at %s", bp.name, app.config["API_PREFIX"])


# --- Application Factory ------------------------------------------------------
def create_app(config_object: Optional[str | Any] = None, clock=None) -> Flask:
    """
    Standard Flask application factory.

    `config_object` may be:
      - a config object
      - dotted path to a config class (e.g., "rentledger.config.DevelopmentConfig")
      - None (then CONFIG_CLASS env or rentledger.config.Config)

    `clock` replaces the system clock for bill generation and payments.
    """
    from .cli import register_cli
    from .errors import register_error_handlers
    from .services import init_billing

    app = Flask(__name__, instance_relative_config=True)
    _load_config(app, config_object)

    # Core middleware/logging/CORS
    _configure_logging(app)
    _configure_proxy(app)
    _configure_cors(app)

    # Init extensions & blueprints
    db.init_app(app)
    jwt.init_app(app)
    billing = init_billing(app, clock=clock)
    _register_blueprints(app)
    register_error_handlers(app)
    register_cli(app)

    @app.get(app.config["API_PREFIX"] + "/health")
    def health():
        return jsonify(
            {
                "status": "ok",
                "time": datetime.utcnow().isoformat() + "Z",
                "service": "rentledger",
            }
        ), 200

    if app.config.get("BILL_SCHEDULER_ENABLED") and not app.testing:
        billing.scheduler.start(app)

    return app
