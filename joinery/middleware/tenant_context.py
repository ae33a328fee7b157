"""
Tenant Context Middleware — establishes the Principal for every API request.

  Authorization: Bearer <token>
      → IdentityProvider.verify          (401 on missing / invalid / expired)
      → ProfileDirectory.lookup(user_id) (403 when no profile)
      → organization must be active      (403 otherwise)
      → g.principal = Principal(user_id, email, tenant_id, role)

Downstream code never reads tenant or role from the request body; it only
uses g.principal.
"""

import logging

from flask import current_app, g, request

from joinery.core.exceptions import UnauthenticatedError
from joinery.services.identity import resolve_principal

logger = logging.getLogger(__name__)

# Paths that skip tenant context (unauthenticated paths only)
TENANT_SKIP_PREFIXES = (
    "/api/health",
    "/api/auth/register",
    "/api/auth/login",
    "/api/storage/signed/",
)


def bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.principal = None

        if request.method == "OPTIONS" or not request.path.startswith("/api/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        token = bearer_token()
        if token is None:
            raise UnauthenticatedError("Missing authorization token")

        services = current_app.extensions["joinery"]
        g.principal = resolve_principal(services.identity, services.profiles, token)
        return None

    logger.info("Tenant context middleware installed")


def current_principal():
    principal = getattr(g, "principal", None)
    if principal is None:
        raise UnauthenticatedError("Authentication required")
    return principal
