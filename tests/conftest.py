"""
Shared pytest fixtures for the Joinery Core test suite.

Provides:
    - app: Flask application (session-scoped, blob root in a tmp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB + blob cleanup (autouse)
    - client: Flask test client
    - services: the app's service graph
    - tenant_a / tenant_b: two pre-created organizations
    - principal: factory → Principal(tenant, role)
    - seed: shorthand for inserting rows straight into the store
    - auth_headers: factory → Authorization header for a real user
"""

import shutil
import uuid

import pytest

from joinery import create_app
from joinery.models import db as _db
from joinery.models.auth import Organization, UserProfile
from joinery.models.registry import model_for
from joinery.services.account_service import default_phase_rows
from joinery.services.identity import Principal


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    blob_root = tmp_path_factory.mktemp("blobs")
    return create_app("testing", overrides={"BLOB_STORAGE_ROOT": str(blob_root)})


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, then reset tables and blobs."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    shutil.rmtree(app.config["BLOB_STORAGE_ROOT"], ignore_errors=True)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def services(app):
    return app.extensions["joinery"]


@pytest.fixture()
def store(services):
    return services.store


# ── Tenants & principals ─────────────────────────────────────────────────


def _make_org(store, slug, **extra):
    return store.insert(Organization, [{"name": slug.title(), "slug": slug, **extra}])[0]["id"]


@pytest.fixture()
def tenant_a(store):
    tenant_id = _make_org(store, "alpha-joinery")
    store.insert(model_for("custom_phases"),
                 [dict(row, tenant_id=tenant_id) for row in default_phase_rows()])
    return tenant_id


@pytest.fixture()
def tenant_b(store):
    tenant_id = _make_org(store, "bravo-joinery")
    store.insert(model_for("custom_phases"),
                 [dict(row, tenant_id=tenant_id) for row in default_phase_rows()])
    return tenant_id


@pytest.fixture()
def principal(store):
    """principal(tenant_id, role="owner") → Principal with a matching profile row."""

    def _make(tenant_id, role="owner"):
        user_id = str(uuid.uuid4())
        email = f"{role}-{user_id[:8]}@example.com"
        store.insert(UserProfile, [{"id": user_id, "tenant_id": tenant_id,
                                    "email": email, "role": role}])
        return Principal(user_id=user_id, email=email, tenant_id=tenant_id, role=role)

    return _make


@pytest.fixture()
def seed(store):
    """seed("projects", tenant_id, {...}, {...}) → inserted rows."""

    def _seed(table, tenant_id, *rows):
        return store.insert(model_for(table), [dict(r, tenant_id=tenant_id) for r in rows])

    return _seed


@pytest.fixture()
def auth_headers(services, store):
    """auth_headers(tenant_id, role="owner") → {"Authorization": "Bearer ..."}."""

    def _headers(tenant_id, role="owner"):
        email = f"{role}-{uuid.uuid4().hex[:8]}@example.com"
        identity = services.identity.create_user(email, "correct-horse-1")
        store.insert(UserProfile, [{"id": identity.user_id, "tenant_id": tenant_id,
                                    "email": email, "role": role}])
        _, token = services.identity.sign_in(email, "correct-horse-1")
        return {"Authorization": f"Bearer {token['access_token']}"}

    return _headers
