"""
Rate limiting configuration.

The Limiter instance is created in joinery/__init__.py with no default
limits; this module applies limits per route category and a per-tenant
plan quota keyed on the resolved principal.

Plan quotas:
    - trial:        100 requests/minute
    - starter:      300 requests/minute
    - professional: 600 requests/minute
    - enterprise:  5000 requests/minute
"""

import logging

from flask import current_app, g, request as flask_request

logger = logging.getLogger(__name__)

PLAN_RATE_LIMITS = {
    "trial": "100/minute",
    "starter": "300/minute",
    "professional": "600/minute",
    "enterprise": "5000/minute",
}

DEFAULT_PLAN_LIMIT = "100/minute"


def tenant_rate_limit_key():
    """tenant:<id> when a principal is resolved, else remote IP."""
    principal = getattr(g, "principal", None)
    if principal is not None:
        return f"tenant:{principal.tenant_id}"
    return flask_request.remote_addr or "unknown"


def tenant_plan_limit():
    principal = getattr(g, "principal", None)
    if principal is None:
        return DEFAULT_PLAN_LIMIT
    try:
        org = current_app.extensions["joinery"].profiles.organization(principal.tenant_id)
    except Exception:  # noqa: BLE001 - limiter must never fail the request
        return DEFAULT_PLAN_LIMIT
    return PLAN_RATE_LIMITS.get(org.get("plan") or "trial", DEFAULT_PLAN_LIMIT)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - auth (login/register):  10/minute per IP
        - data endpoints:         per-tenant plan quota
        - health:                 exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit("10/minute")(bp)

    for bp_name in ("db_bp", "rpc_bp", "projects_bp", "pipeline_bp", "directory_bp",
                    "bootstrap_bp", "storage_bp", "stock_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(tenant_plan_limit, key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: auth 10/min, data endpoints per tenant plan")
