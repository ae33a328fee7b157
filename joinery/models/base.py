"""
TenantModel — Abstract base class for tenant-scoped models.

All models that need tenant isolation inherit from TenantModel instead of
db.Model directly. This adds:
  - tenant_id FK column with index
  - query_for_tenant(tenant_id) classmethod
  - to_dict() column serialisation shared with the store adapter
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from joinery.models import db


def utcnow():
    return datetime.now(timezone.utc)


# Row ids are never reused after a delete (AUTOINCREMENT on SQLite).
MONOTONIC_IDS = {"sqlite_autoincrement": True}


def table_args(*constraints):
    """__table_args__ tuple: the given constraints plus MONOTONIC_IDS."""
    return (*constraints, MONOTONIC_IDS)


def _serialize(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class SerializerMixin:
    """Column-level dict serialisation (no relationships)."""

    def to_dict(self, columns=None):
        names = columns or [c.name for c in self.__table__.columns]
        return {name: _serialize(getattr(self, name)) for name in names}


class TenantModel(SerializerMixin, db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True
    __table_args__ = MONOTONIC_IDS

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id):
        """Return a query filtered by tenant_id."""
        return cls.query.filter_by(tenant_id=tenant_id)
