"""
Account service — tenant registration, login and the caller's own profile.

Registration is a Saga with exactly two compensated steps:

  1. create identity
  2. create organization        undo on later failure: delete identity
  3. create owner profile       undo on failure: delete organization, identity
  4. company settings           best-effort → warning
  5. default phase templates    best-effort → warning

Organizations and profiles are written straight to the store: they exist
before any principal does, so the gateway cannot scope them yet.
"""

import logging
import re
from datetime import timedelta

from joinery.core.exceptions import (
    DuplicateKeyError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from joinery.models.auth import Organization, UserProfile
from joinery.models.base import utcnow
from joinery.services.identity import Principal
from joinery.services.query_gateway import Operation
from joinery.services.saga import Saga
from joinery.utils.errors import E

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,98}[a-z0-9])?$")

DEFAULT_PHASES = (
    # production
    ("siteSurvey", "Site Survey", "#5e4e81", 1, "production"),
    ("md", "Manufacturing Drawings", "#5a2cdb", 2, "production"),
    ("order", "Order Materials", "#af72ba", 3, "production"),
    ("timber", "Timber Production", "#547d56", 4, "production"),
    ("orderGlazing", "Order Glazing", "#79a4cf", 5, "production"),
    ("orderSpray", "Order Spray Materials", "#eb86d8", 6, "production"),
    ("spray", "Spraying", "#e99f62", 7, "production"),
    ("glazing", "Glazing", "#485d68", 8, "production"),
    ("qc", "QC & Packing", "#63a3ab", 9, "production"),
    ("dispatch", "Dispatch/Installation", "#02802a", 10, "production"),
    # pipeline
    ("initialContact", "Initial Contact", "#8b5a3c", 1, "pipeline"),
    ("quote", "Quote", "#4a90e2", 2, "pipeline"),
    ("depositReceived", "Deposit Received", "#1a5d1a", 3, "pipeline"),
)

_ORG_PUBLIC = ("id", "name", "slug", "plan", "is_active", "trial_ends_at", "max_users")


def default_phase_rows():
    return [
        {"phase_key": k, "phase_name": n, "phase_color": c, "phase_order": o, "phase_type": t}
        for k, n, c, o, t in DEFAULT_PHASES
    ]


def slugify(text):
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")[:100]


class AccountService:
    def __init__(self, store, gateway, identity, profiles, *, trial_days=14,
                 max_storage_mb=500, max_users=5):
        self.store = store
        self.gateway = gateway
        self.identity = identity
        self.profiles = profiles
        self.trial_days = trial_days
        self.max_storage_mb = max_storage_mb
        self.max_users = max_users

    # ── registration ─────────────────────────────────────────────────────

    def register(self, email, password, company_name, company_slug=None, owner_name=None):
        """Create identity, organization and owner profile. Returns (data, warnings)."""
        missing = [name for name, value in (
            ("email", email), ("password", password), ("company_name", company_name),
        ) if not value]
        if missing:
            raise ValidationError(
                "Missing required fields", details={"fields": missing}, code=E.VALIDATION_REQUIRED,
            )
        slug = (company_slug or slugify(company_name)).strip().lower()
        if not _SLUG_RE.match(slug):
            raise ValidationError("Company URL may only contain a-z, 0-9 and '-'",
                                  details={"field": "company_slug"})
        if self.store.count(Organization, [Organization.slug == slug]):
            raise DuplicateKeyError("Organization", field="slug", value=slug)

        saga = Saga("register")
        identity = saga.step(
            "create_identity",
            lambda: self.identity.create_user(email, password),
            compensate=lambda ident: self.identity.delete_user(ident.user_id),
        )
        org = saga.step(
            "create_organization",
            lambda: self.store.insert(Organization, [{
                "name": company_name,
                "slug": slug,
                "owner_email": identity.email,
                "plan": "trial",
                "max_users": self.max_users,
                "max_storage_mb": self.max_storage_mb,
                "trial_ends_at": utcnow() + timedelta(days=self.trial_days),
            }])[0],
            compensate=lambda o: self.store.delete(Organization, [Organization.id == o["id"]]),
        )
        saga.tenant_id = org["id"]
        profile = saga.step(
            "create_profile",
            lambda: self.store.insert(UserProfile, [{
                "id": identity.user_id,
                "tenant_id": org["id"],
                "email": identity.email,
                "full_name": owner_name or identity.email.split("@")[0],
                "role": "owner",
            }])[0],
        )

        owner = Principal(user_id=identity.user_id, email=identity.email,
                          tenant_id=org["id"], role="owner")
        saga.best_effort("create_company_settings", lambda: self.gateway.execute(
            Operation.INSERT, "company_settings", owner,
            data={"company_name": company_name, "email": identity.email},
        ))
        saga.best_effort("create_default_phases", lambda: self.gateway.execute(
            Operation.INSERT, "custom_phases", owner, data=default_phase_rows(),
        ))

        logger.info(
            "Registered organization %s", slug,
            extra={"tenant_id": org["id"], "user_id": identity.user_id,
                   "event_type": "tenant_registered"},
        )
        data = {
            "organization": {k: org[k] for k in ("id", "name", "slug")},
            "user": {"id": identity.user_id, "email": identity.email},
            "profile": profile,
        }
        return data, saga.warnings

    # ── session ──────────────────────────────────────────────────────────

    def login(self, email, password):
        if not email or not password:
            raise ValidationError("Email and password required", code=E.VALIDATION_REQUIRED)
        identity, token = self.identity.sign_in(email, password)
        try:
            profile = self.store.select(UserProfile, [UserProfile.id == identity.user_id])[0]
        except IndexError:
            raise ForbiddenError("User profile not found") from None
        org = self.profiles.organization(profile["tenant_id"])
        if not org.get("is_active"):
            raise ForbiddenError("Organization is deactivated")
        logger.info("Login", extra={"tenant_id": org["id"], "user_id": identity.user_id,
                                    "event_type": "login"})
        return {
            "session": token,
            "user": {
                "id": identity.user_id,
                "email": identity.email,
                "full_name": profile["full_name"],
                "role": profile["role"],
                "tenant_id": profile["tenant_id"],
            },
            "organization": {k: org.get(k) for k in _ORG_PUBLIC},
        }

    def me(self, principal):
        rows = self.store.select(UserProfile, [UserProfile.id == principal.user_id,
                                               UserProfile.tenant_id == principal.tenant_id])
        if not rows:
            raise NotFoundError(resource="Profile", resource_id=principal.user_id)
        org = self.profiles.organization(principal.tenant_id)
        return {"user": rows[0], "organization": {k: org.get(k) for k in _ORG_PUBLIC}}

    def update_me(self, principal, payload):
        """Only full_name and avatar_url are self-editable."""
        values = {k: payload[k] for k in ("full_name", "avatar_url") if k in (payload or {})}
        if not values:
            raise ValidationError("Nothing to update", code=E.VALIDATION_REQUIRED)
        rows = self.store.update(UserProfile, [UserProfile.id == principal.user_id,
                                               UserProfile.tenant_id == principal.tenant_id], values)
        if not rows:
            raise NotFoundError(resource="Profile", resource_id=principal.user_id)
        return rows[0]

    def change_password(self, principal, new_password, current_password=None):
        if current_password is not None and not self.identity.check_password(
                principal.user_id, current_password):
            raise UnauthenticatedError("Current password is incorrect")
        self.identity.set_password(principal.user_id, new_password)
        logger.info("Password changed", extra={"tenant_id": principal.tenant_id,
                                               "user_id": principal.user_id,
                                               "event_type": "password_changed"})
