from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """
    Raised by services and handlers; rendered as the JSON error envelope.
    """

    def __init__(self, status: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.extra = extra

    def to_response(self):
        body: dict[str, Any] = {"success": False, "message": self.message}
        body.update(self.extra)
        return jsonify(body), self.status


def ok(status: int = 200, **payload: Any):
    body: dict[str, Any] = {"success": True}
    body.update(payload)
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status >= 500:
            app.logger.error("ApiError %s: %s (request_id=%s)", e.status, e.message, getattr(g, "request_id", None))
        return e.to_response()

    @app.errorhandler(ValueError)
    def _value_error(e: ValueError):  # type: ignore[no-redef]
        app.logger.warning("Bad request value: %s (request_id=%s)", e, getattr(g, "request_id", None))
        return jsonify({"success": False, "message": str(e) or "Invalid request"}), 400

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            app.logger.warning(
                "Forbidden: user=%s request_id=%s",
                getattr(getattr(g, "current_user", None), "id", None),
                getattr(g, "request_id", None),
            )
        message = e.description or e.name
        if e.code == 413:
            message = "File too large. Maximum size is 10MB."
        return jsonify({"success": False, "message": message}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e: Exception):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        return jsonify({"success": False, "message": "Internal server error"}), 500
