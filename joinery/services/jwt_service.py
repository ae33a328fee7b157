"""
JWT Service — access token generation and verification.

Access token:  1 hour (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "email": <email>,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Tenant and role are deliberately NOT in the token: they are resolved from
user_profiles on every request so a role change takes effect immediately.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return int(current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES))


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: str, email: str) -> dict:
    """Generate an access token. Returns the token plus its metadata."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return {
        "access_token": jwt.encode(payload, _get_secret(), algorithm=ALGORITHM),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(
        token, _get_secret(), algorithms=[ALGORITHM], options={"require": ["sub", "exp"]},
    )

    # Verify token type
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode an access token — convenience wrapper."""
    return decode_token(token, expected_type="access")
