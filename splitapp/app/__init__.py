"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask db migrate` to work without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow, balance cache) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers; every handler rolls the session back so
     a failed request never leaves a half-written expense behind
  6. Register a custom JSON provider: Decimal out as string, JSON floats in
     as Decimal (monetary amounts never pass through binary floats)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import json
import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from splitapp.config import config_by_name, validate_production_config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal, and its decoder turns
# 10.10 into a binary float. Both directions are overridden so amounts stay
# exact end to end.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str and parses JSON numbers with a fraction as
    Decimal.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
             request body {"amount": 10.10} → Decimal("10.10")
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)

    def loads(self, s, **kwargs):
        kwargs.setdefault("parse_float", Decimal)
        return json.loads(s, **kwargs)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from splitapp.app.extensions import balance_cache, db, ma
    db.init_app(app)
    ma.init_app(app)
    balance_cache.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # The imports are intentionally unused by name — side effect is the point.
    with app.app_context():
        from splitapp.app.models import (  # noqa: F401
            expense,
            group,
            membership,
            payer,
            payment,
            profile,
            split,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Services log through logging.getLogger(__name__), so the "splitapp"
    package logger carries the configured level. basicConfig is a no-op when
    the host (gunicorn, pytest) has already configured the root logger.
    """
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("splitapp").setLevel(level)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Blueprint names match the route files in app/routes/.
    """
    from splitapp.app.routes.balances import balances_bp
    from splitapp.app.routes.expenses import expenses_bp
    from splitapp.app.routes.groups import groups_bp
    from splitapp.app.routes.meta import meta_bp
    from splitapp.app.routes.payments import payments_bp
    from splitapp.app.routes.profile import profile_bp

    app.register_blueprint(groups_bp,   url_prefix="/api/v1/groups")
    app.register_blueprint(payments_bp, url_prefix="/api/v1/groups")
    # These own group-scoped paths (/groups/<id>/expenses, /groups/<id>/balance)
    # as well as top-level ones (/balances, /profile, /meta, /health).
    app.register_blueprint(expenses_bp, url_prefix="/api/v1")
    app.register_blueprint(balances_bp, url_prefix="/api/v1")
    app.register_blueprint(profile_bp,  url_prefix="/api/v1")
    app.register_blueprint(meta_bp,     url_prefix="/api/v1")


def _flatten_messages(messages, prefix: str = "") -> list[tuple[str | None, str]]:
    """
    Flattens marshmallow's nested messages into (field, message) pairs.
    Nested keys are joined with "." (e.g. "splits.0.amount").
    """
    pairs: list[tuple[str | None, str]] = []
    if isinstance(messages, dict):
        for key, value in messages.items():
            name = prefix if key == "_schema" else (f"{prefix}.{key}" if prefix else str(key))
            pairs.extend(_flatten_messages(value, name))
    elif isinstance(messages, list):
        for item in messages:
            pairs.extend(_flatten_messages(item, prefix))
    else:
        pairs.append((prefix or None, str(messages)))
    return pairs


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors as VALIDATION_FAILED (400),
                        with every violated rule in `details`
      HTTPException   → werkzeug errors (unknown route, malformed JSON) keep
                        their status
      SQLAlchemyError → STORE_FAILURE (500); safe for the client to retry
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from splitapp.app.errors import AppError, ErrorCode
    from splitapp.app.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        db.session.rollback()
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        db.session.rollback()
        pairs = _flatten_messages(error.messages) or [(None, "Invalid input.")]
        field, message = pairs[0]

        body = {
            "error": {
                "code": ErrorCode.VALIDATION_FAILED,
                "message": message,
                "details": [f"{f}: {m}" if f else m for f, m in pairs],
            }
        }
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        db.session.rollback()
        return jsonify({
            "error": {
                "code": (error.name or "HTTP_ERROR").upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_failure(error: SQLAlchemyError):
        db.session.rollback()
        app.logger.error(
            "Store failure: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.STORE_FAILURE,
                "message": "The data store failed to complete the request. Please retry.",
            }
        }), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body.
        """
        db.session.rollback()
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            # Reflect origin when present so bearer-auth requests from local
            # dev servers are accepted by browsers.
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response
