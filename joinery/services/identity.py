"""
Identity boundary — who is calling, and on behalf of which tenant.

IdentityProvider     verify(bearer_token) → Identity | UnauthenticatedError
LocalIdentityProvider  bcrypt + PyJWT implementation over auth_identities
ProfileDirectory     lookup(user_id) → Profile(tenant_id, role) | NotFoundError
Principal            (user_id, email, tenant_id, role) for one request

Core components receive a Principal; they never resolve one themselves.
"""

import logging
import uuid
from dataclasses import asdict, dataclass

import jwt

from joinery.core.exceptions import (
    DuplicateKeyError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from joinery.models.auth import AuthIdentity, Organization, UserProfile
from joinery.models.base import utcnow
from joinery.services import jwt_service
from joinery.utils.crypto import DEFAULT_ROUNDS, hash_password, verify_password
from joinery.utils.errors import E

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str


@dataclass(frozen=True)
class Profile:
    user_id: str
    tenant_id: int
    role: str


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str | None
    tenant_id: int
    role: str

    def to_dict(self):
        return asdict(self)


class IdentityProvider:
    """Interface to the authentication provider."""

    def verify(self, bearer_token: str) -> Identity:
        raise NotImplementedError

    def create_user(self, email: str, password: str) -> Identity:
        raise NotImplementedError

    def delete_user(self, user_id: str) -> None:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> tuple[Identity, dict]:
        raise NotImplementedError

    def set_password(self, user_id: str, password: str) -> None:
        raise NotImplementedError

    def check_password(self, user_id: str, password: str) -> bool:
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    """Identities stored in auth_identities; bearer tokens are HS256 JWTs."""

    def __init__(self, store, bcrypt_rounds: int = DEFAULT_ROUNDS):
        self.store = store
        self.bcrypt_rounds = bcrypt_rounds

    def verify(self, bearer_token):
        if not bearer_token:
            raise UnauthenticatedError("Missing bearer token")
        try:
            payload = jwt_service.decode_access_token(bearer_token)
        except jwt.ExpiredSignatureError:
            raise UnauthenticatedError("Token expired") from None
        except jwt.InvalidTokenError:
            raise UnauthenticatedError("Invalid token") from None

        rows = self.store.select(AuthIdentity, [AuthIdentity.id == str(payload["sub"])])
        if not rows:
            raise UnauthenticatedError("Invalid token")
        return Identity(user_id=rows[0]["id"], email=rows[0]["email"])

    def create_user(self, email, password):
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("email and password are required", code=E.VALIDATION_REQUIRED)
        if len(password) < 8:
            raise ValidationError("Password must be at least 8 characters", details={"field": "password"})
        user_id = str(uuid.uuid4())
        try:
            self.store.insert(AuthIdentity, [{
                "id": user_id,
                "email": email,
                "password_hash": hash_password(password, rounds=self.bcrypt_rounds),
            }])
        except DuplicateKeyError:
            raise DuplicateKeyError("User", field="email", value=email) from None
        return Identity(user_id=user_id, email=email)

    def delete_user(self, user_id):
        self.store.delete(AuthIdentity, [AuthIdentity.id == user_id])

    def set_password(self, user_id, password):
        if not password or len(password) < 8:
            raise ValidationError("Password must be at least 8 characters", details={"field": "password"})
        self.store.update(AuthIdentity, [AuthIdentity.id == user_id], {
            "password_hash": hash_password(password, rounds=self.bcrypt_rounds),
        })

    def check_password(self, user_id, password) -> bool:
        rows = self.store.select(AuthIdentity, [AuthIdentity.id == user_id])
        return bool(rows) and verify_password(password or "", rows[0]["password_hash"])

    def sign_in(self, email, password):
        email = (email or "").strip().lower()
        rows = self.store.select(AuthIdentity, [AuthIdentity.email == email])
        if not rows or not verify_password(password or "", rows[0]["password_hash"]):
            raise UnauthenticatedError("Invalid email or password")
        identity = Identity(user_id=rows[0]["id"], email=rows[0]["email"])
        self.store.update(AuthIdentity, [AuthIdentity.id == identity.user_id],
                          {"last_sign_in_at": utcnow()})
        return identity, jwt_service.generate_access_token(identity.user_id, identity.email)


class ProfileDirectory:
    """Resolves a user id to the tenant and role it acts under."""

    def __init__(self, store):
        self.store = store

    def lookup(self, user_id) -> Profile:
        rows = self.store.select(UserProfile, [UserProfile.id == user_id])
        if not rows:
            raise NotFoundError(resource="User profile", resource_id=user_id)
        row = rows[0]
        return Profile(user_id=row["id"], tenant_id=row["tenant_id"], role=row["role"])

    def organization(self, tenant_id) -> dict:
        rows = self.store.select(Organization, [Organization.id == tenant_id])
        if not rows:
            raise NotFoundError(resource="Organization", resource_id=tenant_id)
        return rows[0]


def resolve_principal(identity_provider, profiles, bearer_token) -> Principal:
    """Bearer token → Principal. Raises Unauthenticated / Forbidden."""
    identity = identity_provider.verify(bearer_token)
    try:
        profile = profiles.lookup(identity.user_id)
    except NotFoundError:
        raise ForbiddenError("User profile not found") from None
    org = profiles.organization(profile.tenant_id)
    if not org.get("is_active", True):
        raise ForbiddenError("Organization is deactivated")
    return Principal(
        user_id=identity.user_id,
        email=identity.email,
        tenant_id=profile.tenant_id,
        role=profile.role,
    )
