"""
Auth Models — organizations (tenants), identities, user profiles, settings.

organizations is the isolation root: its primary key IS the tenant id, so
every other tenant-scoped table points at organizations.id.

auth_identities belongs to the identity provider adapter, not to a tenant.
It is never exposed through the query gateway.
"""

from joinery.models import db
from joinery.models.base import SerializerMixin, TenantModel, table_args, utcnow


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS (tenants)
# ═══════════════════════════════════════════════════════════════
class Organization(SerializerMixin, db.Model):
    __tablename__ = "organizations"
    __table_args__ = table_args()

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    owner_email = db.Column(db.String(200))
    plan = db.Column(db.String(50), default="trial")
    max_users = db.Column(db.Integer, default=5)
    max_storage_mb = db.Column(db.Integer, default=500)
    current_storage_bytes = db.Column(db.BigInteger, default=0)
    is_active = db.Column(db.Boolean, default=True)
    trial_ends_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Organization {self.slug}>"


# ═══════════════════════════════════════════════════════════════
# 2. IDENTITIES (local identity provider)
# ═══════════════════════════════════════════════════════════════
class AuthIdentity(SerializerMixin, db.Model):
    __tablename__ = "auth_identities"

    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    last_sign_in_at = db.Column(db.DateTime)


# ═══════════════════════════════════════════════════════════════
# 3. USER PROFILES
# ═══════════════════════════════════════════════════════════════
class UserProfile(TenantModel):
    __tablename__ = "user_profiles"

    # Same value as auth_identities.id; kept FK-free so the identity
    # provider can live outside this database.
    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default="worker")
    avatar_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


# ═══════════════════════════════════════════════════════════════
# 4. COMPANY SETTINGS
# ═══════════════════════════════════════════════════════════════
class CompanySettings(TenantModel):
    __tablename__ = "company_settings"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(200))
    logo_url = db.Column(db.String(500))
    address = db.Column(db.Text)
    phone = db.Column(db.String(50))
    email = db.Column(db.String(200))
    vat_number = db.Column(db.String(50))
    currency = db.Column(db.String(3), default="GBP")
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", name="uq_company_settings_tenant"),
    )
