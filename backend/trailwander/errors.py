# backend/trailwander/errors.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from flask import jsonify, request
from flask.signals import got_request_exception
from werkzeug.exceptions import HTTPException

log = logging.getLogger(__name__)


class TrailWanderError(Exception):
    """Base error; ``status`` is the HTTP status the error handler replies with."""

    status = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"message": self.message, "status": self.status}}


class BadRequestError(TrailWanderError):
    status = 400
    default_message = "Bad Request"


class InvalidFilterValue(BadRequestError):
    """A filter value has the wrong shape, e.g. ``features`` is not a list."""

    default_message = "Invalid filter value"


class InvalidFilterKey(BadRequestError):
    """A min/max range key has no unit-qualified column in the field table."""

    default_message = "Invalid filter key"


class UnauthorizedError(TrailWanderError):
    status = 401
    default_message = "Unauthorized"


class NotFoundError(TrailWanderError):
    status = 404
    default_message = "Not Found"


class DatabaseError(TrailWanderError):
    default_message = "Database error, transaction did not process. Please try again."


class SearchExecutionError(TrailWanderError):
    default_message = "Error executing search query"


class GeocodingError(TrailWanderError):
    status = 502
    default_message = "Map lookup failed"


# note about app.logger and the module loggers:
# both propagate to the root logger configured by start_log(), so they end up
# in the same rotating log files. Only %(name)s differs between them.

def register_error_handlers(app):
    setup_signals(app)

    @app.errorhandler(TrailWanderError)
    def handle_trailwander(e: TrailWanderError):
        if e.status >= 500:
            app.logger.error("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        else:
            app.logger.info("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(HTTPException)
    def handle_http(e: HTTPException):
        app.logger.warning("HTTP %s on %s %s", e.code, request.method, request.path)
        resp = e.get_response()
        payload = {"error": {"message": e.description, "status": e.code}}
        resp.data = json.dumps(payload)
        resp.content_type = "application/json"
        return resp

    @app.errorhandler(Exception)
    def handle_uncaught(e: Exception):
        app.logger.exception("Unhandled exception")
        return jsonify(error={"message": "Internal Server Error", "status": 500}), 500

    @app.teardown_request
    def log_teardown(exc):
        if exc is not None:
            app.logger.exception("Teardown exception", exc_info=exc)
        return None


def setup_signals(app):
    def on_exc(sender, exception, **extra):
        if isinstance(exception, TrailWanderError) and exception.status < 500:
            return
        app.logger.exception("Signal caught exception")
    got_request_exception.connect(on_exc, app)
