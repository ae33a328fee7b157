"""Standardised API responses.

Usage
-----
    from joinery.utils.errors import api_error, api_ok, E

    return api_ok(rows, count=len(rows))
    return api_error(E.VALIDATION_REQUIRED, "name is required")

Every body has the same envelope:

    success  {"data": ..., "error": null, "count"?: int, "warnings"?: [...]}
    failure  {"data": null, "error": {"message": str, "code": str, "details"?: {...}}}
"""

from __future__ import annotations

import logging

from flask import jsonify

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants. All carry the ERR_ prefix."""

    # Authentication / permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404 (also used for cross-tenant access)
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_AMBIGUOUS = "ERR_CONFLICT_AMBIGUOUS"
    EXHAUSTED_RETRIES = "ERR_EXHAUSTED_RETRIES"

    # Rate limiting – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 5xx
    UPSTREAM = "ERR_UPSTREAM"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_AMBIGUOUS: 409,
    E.EXHAUSTED_RETRIES: 409,
    E.RATE_LIMITED: 429,
    E.UPSTREAM: 502,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload. Dropped for 401 / 403.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    error: dict = {"message": message, "code": code}
    if details and http_status not in (401, 403):
        error["details"] = details

    return jsonify({"data": None, "error": error}), http_status


def api_ok(data, *, status: int = 200, count: int | None = None, warnings: list | None = None):
    """Return a standard JSON success response."""
    body: dict = {"data": data, "error": None}
    if count is not None:
        body["count"] = count
    if warnings:
        body["warnings"] = warnings
    return jsonify(body), status


def register_error_handlers(app):
    """Render ApiError subclasses and stray HTTP errors in the standard envelope."""
    from werkzeug.exceptions import HTTPException

    from joinery.core.exceptions import ApiError

    @app.errorhandler(ApiError)
    def _handle_api_error(exc):
        if exc.http_status >= 500:
            logger.error("%s: %s", exc.code, exc.message, extra={"event_type": "api_error"})
        body = exc.to_dict()
        return jsonify({"data": None, "error": body}), exc.http_status

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc):
        code = {
            401: E.UNAUTHENTICATED,
            403: E.FORBIDDEN,
            404: E.NOT_FOUND,
            429: E.RATE_LIMITED,
        }.get(exc.code, E.VALIDATION_INVALID if (exc.code or 500) < 500 else E.INTERNAL)
        return api_error(code, exc.description or exc.name, status=exc.code)

    @app.errorhandler(Exception)
    def _handle_unexpected(exc):
        logger.exception("Unhandled error: %s", exc)
        return api_error(E.INTERNAL, "Internal server error")
