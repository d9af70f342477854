"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and `alembic` can read the metadata without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register the route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string
     (monetary amounts are transmitted as strings, never JS numbers)
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from groupledger.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str so jsonify() never produces float amounts.

    Example: Decimal("10.50") → "10.50" (not 10.5)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
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
    from groupledger.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Importing the models populates SQLAlchemy's MetaData for create_all()
    # and Alembic.
    with app.app_context():
        from groupledger.app.models import (  # noqa: F401
            group,
            membership,
            settlement,
            split,
            transaction,
        )

    _register_blueprints(app)
    _register_error_handlers(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the `groupledger` logger hierarchy.

    Service modules log through logging.getLogger(__name__); records carry
    transaction_id / group_id in `extra`.
    """
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    package_logger = logging.getLogger("groupledger")
    package_logger.setLevel(level)
    app.logger.setLevel(level)

    if not logging.getLogger().handlers and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers the route blueprints under the /api/v1 prefix.

    Both blueprints own paths from more than one resource
    (/groups/<id>/balances and /balances; /transactions/<id>/splits/repair),
    so each route file spells out its full path below /api/v1.
    """
    from groupledger.app.routes.balances import balances_bp
    from groupledger.app.routes.transactions import transactions_bp

    app.register_blueprint(balances_bp,     url_prefix="/api/v1")
    app.register_blueprint(transactions_bp, url_prefix="/api/v1")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with its HTTP status.
                        Engine errors (InvalidInput, SplitPersistenceError,
                        BalanceComputationError) arrive here as AppErrors.
      ValidationError → marshmallow errors as MISSING_FIELD / INVALID_FIELD /
                        a registered code (400)
      Exception       → generic INTERNAL_ERROR (500); traceback logged only.

    Stack traces never leave the server.
    """
    from groupledger.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("%r", error, exc_info=error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST schema error only ("one error, not many").

        When the message is itself a registered ErrorCode (for example
        INVALID_AMOUNT_PRECISION raised by a schema validator) that code is
        used directly.
        """
        field, raw_message = _first_validation_message(error.messages)

        if raw_message in vars(ErrorCode).values():
            code = raw_message
            message = _code_to_message(code)
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field
        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        # Routing errors (404, 405) keep their own response.
        if isinstance(error, HTTPException):
            return error

        app.logger.exception("Unhandled exception: %s", error)
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_validation_message(messages, field: str | None = None) -> tuple[str | None, str]:
    """Digs the first (field, message) pair out of marshmallow's nested messages."""
    if isinstance(messages, dict):
        if not messages:
            return field, "Invalid input."
        key, value = next(iter(messages.items()))
        if field is None and isinstance(key, str) and key != "_schema":
            field = key
        return _first_validation_message(value, field)
    if isinstance(messages, list):
        if not messages:
            return field, "Invalid input."
        return _first_validation_message(messages[0], field)
    return field, str(messages)


def _code_to_message(code: str) -> str:
    """Human-readable default message for a code raised as a ValidationError."""
    _messages = {
        "INVALID_AMOUNT": "Amount must be a number greater than zero and at most 9999999999.99.",
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_CURRENCY": "Currency must be a three-letter ISO 4217 code.",
    }
    return _messages.get(code, "Invalid input.")
