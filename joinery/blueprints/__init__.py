"""
Joinery Core
Blueprint helpers shared by the HTTP surface.
"""

from flask import current_app, request

from joinery.core.exceptions import ValidationError
from joinery.utils.errors import E


def services():
    """The app's service graph (see joinery.build_services)."""
    return current_app.extensions["joinery"]


def json_body(required=False):
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise ValidationError("JSON body required", code=E.VALIDATION_REQUIRED)
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def page_args(default_limit=200, max_limit=1000):
    """limit / offset query params → gateway ``range`` (inclusive bounds).

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return {"from": offset, "to": offset + max(limit, 1) - 1}
