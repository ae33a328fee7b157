"""
Joinery Core
Flask Application Factory.

Usage:
    from joinery import create_app
    app = create_app()           # defaults to APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
from dataclasses import dataclass

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from joinery.config import config
from joinery.middleware.logging_config import configure_logging
from joinery.middleware.rate_limiter import init_rate_limits
from joinery.middleware.security_headers import init_security_headers
from joinery.middleware.tenant_context import init_tenant_context
from joinery.middleware.timing import init_request_timing
from joinery.models import db
from joinery.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


@dataclass
class Services:
    """Per-app service graph, reachable as ``current_app.extensions["joinery"]``."""

    store: object
    identity: object
    profiles: object
    gateway: object
    allocator: object
    lifecycle: object
    account: object
    rpc: object
    bootstrap: object
    storage: object
    stock: object


def build_services(app) -> Services:
    from joinery.services.account_service import AccountService
    from joinery.services.bootstrap_service import BootstrapService
    from joinery.services.identity import LocalIdentityProvider, ProfileDirectory
    from joinery.services.lifecycle import LifecycleOrchestrator
    from joinery.services.query_gateway import QueryGateway
    from joinery.services.rpc_service import RpcService
    from joinery.services.sequence_allocator import SequenceAllocator
    from joinery.services.stock_service import StockService
    from joinery.services.storage_service import LocalBlobStore, TenantBlobGateway
    from joinery.services.store import SqlStore

    cfg = app.config
    store = SqlStore(db.session)
    identity = LocalIdentityProvider(store, bcrypt_rounds=cfg["BCRYPT_ROUNDS"])
    profiles = ProfileDirectory(store)
    gateway = QueryGateway(store)
    allocator = SequenceAllocator(store, max_attempts=cfg["SEQUENCE_MAX_ATTEMPTS"])
    return Services(
        store=store,
        identity=identity,
        profiles=profiles,
        gateway=gateway,
        allocator=allocator,
        lifecycle=LifecycleOrchestrator(gateway, allocator),
        account=AccountService(
            store, gateway, identity, profiles,
            trial_days=cfg["TRIAL_DAYS"],
            max_storage_mb=cfg["DEFAULT_MAX_STORAGE_MB"],
            max_users=cfg["DEFAULT_MAX_USERS"],
        ),
        rpc=RpcService(gateway),
        bootstrap=BootstrapService(gateway),
        storage=TenantBlobGateway(
            LocalBlobStore(cfg["BLOB_STORAGE_ROOT"]), store, cfg["SECRET_KEY"],
            default_max_mb=cfg["DEFAULT_MAX_STORAGE_MB"],
            signed_url_expires=cfg["SIGNED_URL_EXPIRES"],
        ),
        stock=StockService(gateway, allocator),
    )


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides:   Optional mapping applied on top of the config class.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    register_error_handlers(app)

    # ── Request pipeline: timing → security headers → tenant → limiter ──
    init_request_timing(app)
    init_security_headers(app)
    init_tenant_context(app)
    limiter.init_app(app)

    # ── Import all models so Alembic / create_all see them ───────────────
    from joinery.models import archive as _archive_models      # noqa: F401
    from joinery.models import auth as _auth_models            # noqa: F401
    from joinery.models import directory as _directory_models  # noqa: F401
    from joinery.models import project as _project_models      # noqa: F401

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:  # noqa: BLE001
            app.logger.warning("db.create_all() failed: %s", e)

    app.extensions["joinery"] = build_services(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from joinery.blueprints.auth_bp import auth_bp
    from joinery.blueprints.bootstrap_bp import bootstrap_bp
    from joinery.blueprints.db_bp import db_bp
    from joinery.blueprints.directory_bp import directory_bp
    from joinery.blueprints.health_bp import health_bp
    from joinery.blueprints.pipeline_bp import pipeline_bp
    from joinery.blueprints.projects_bp import projects_bp
    from joinery.blueprints.rpc_bp import rpc_bp
    from joinery.blueprints.stock_bp import stock_bp
    from joinery.blueprints.storage_bp import storage_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(db_bp)
    app.register_blueprint(rpc_bp)
    app.register_blueprint(bootstrap_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(pipeline_bp)
    app.register_blueprint(directory_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(storage_bp)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
