"""Directory models — clients, suppliers, team members (holidays, wages) and stock."""

from joinery.models import db
from joinery.models.base import TenantModel, table_args, utcnow


class Client(TenantModel):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    client_number = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200))
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    address = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "client_number", name="uq_clients_tenant_number"),
    )


class Supplier(TenantModel):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200))
    category = db.Column(db.String(100))
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    address = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class TeamMember(TenantModel):
    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    employee_number = db.Column(db.String(20), nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    department = db.Column(db.String(50))  # office | production | site
    job_type = db.Column(db.String(50))
    status = db.Column(db.String(20), default="active")
    hourly_rate = db.Column(db.Float)
    color = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "employee_number", name="uq_team_members_tenant_number"),
    )


class StockCategory(TenantModel):
    __tablename__ = "stock_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    parent_category_id = db.Column(
        db.Integer, db.ForeignKey("stock_categories.id", ondelete="SET NULL"),
    )
    created_at = db.Column(db.DateTime, default=utcnow)


class StockItem(TenantModel):
    __tablename__ = "stock_items"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("stock_categories.id", ondelete="SET NULL"),
    )
    item_number = db.Column(db.String(30))
    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(20), default="pcs")
    current_quantity = db.Column(db.Float, default=0)
    min_quantity = db.Column(db.Float, default=0)
    cost_per_unit = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "item_number", name="uq_stock_items_tenant_number"),
    )


# Movement types and the sign they apply to current_quantity.
STOCK_TRANSACTION_TYPES = {
    "in": 1,
    "adjustment_add": 1,
    "out": -1,
    "adjustment_remove": -1,
}


class StockTransaction(TenantModel):
    """One stock movement; quantity_after is the item's level once it applied."""

    __tablename__ = "stock_transactions"

    id = db.Column(db.Integer, primary_key=True)
    stock_item_id = db.Column(
        db.Integer, db.ForeignKey("stock_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    transaction_type = db.Column(db.String(30), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    quantity_before = db.Column(db.Float, nullable=False)
    quantity_after = db.Column(db.Float, nullable=False)
    notes = db.Column(db.Text)
    # Plain ids: projects are archived or deleted while their stock history stays.
    project_id = db.Column(db.Integer)
    project_material_id = db.Column(db.Integer)
    created_by = db.Column(db.String(36))
    created_at = db.Column(db.DateTime, default=utcnow)


class EmployeeHoliday(TenantModel):
    __tablename__ = "employee_holidays"

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    days = db.Column(db.Float)
    holiday_type = db.Column(db.String(30), default="annual")
    status = db.Column(db.String(20), default="approved")
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class Wage(TenantModel):
    __tablename__ = "wages"

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date)
    gross_amount = db.Column(db.Float, nullable=False)
    hours = db.Column(db.Float)
    payment_date = db.Column(db.Date)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
