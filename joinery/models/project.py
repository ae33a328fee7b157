"""
Project domain models — pipeline projects, production projects and their
dependent record sets (phases, materials, files, elements, spray, blockers,
alerts, dispatch items, note reads) plus the tenant phase templates.

Column sets shared with the archive tables live in *Columns mixins so an
archived copy carries exactly the live row's data. Foreign keys are declared
on the concrete live classes only; archived copies must outlive the rows
they reference.
"""

from joinery.models import db
from joinery.models.base import TenantModel, table_args, utcnow

PHASE_TYPES = ("pipeline", "production")
PHASE_INITIAL_STATUS = "notStarted"


# ═══════════════════════════════════════════════════════════════
# Shared column sets
# ═══════════════════════════════════════════════════════════════
class ProjectColumns:
    project_number = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(200))
    project_type = db.Column(db.String(50), default="other")
    site_address = db.Column(db.Text)
    deadline = db.Column(db.Date)
    estimated_value = db.Column(db.Float)
    contract_value = db.Column(db.Float)
    notes = db.Column(db.Text)
    status = db.Column(db.String(30), default="active")
    converted_from_pipeline = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class PhaseColumns:
    phase_key = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(30), nullable=False, default=PHASE_INITIAL_STATUS)
    order_position = db.Column(db.Integer)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    assigned_to = db.Column(db.Integer)  # team_members.id
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class MaterialColumns:
    item_name = db.Column(db.String(200), nullable=False)
    stock_item_id = db.Column(db.Integer)
    quantity_needed = db.Column(db.Float, default=0)
    quantity_reserved = db.Column(db.Float, default=0)
    unit = db.Column(db.String(20))
    unit_cost = db.Column(db.Float)
    status = db.Column(db.String(30), default="needed")
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class FileColumns:
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    bucket = db.Column(db.String(50), default="project-documents")
    file_size = db.Column(db.BigInteger)
    file_type = db.Column(db.String(100))
    folder_name = db.Column(db.String(100))
    uploaded_by = db.Column(db.String(36))
    created_at = db.Column(db.DateTime, default=utcnow)


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════
class CustomPhase(TenantModel):
    """Tenant-level phase template, copied by value onto new projects."""

    __tablename__ = "custom_phases"

    id = db.Column(db.Integer, primary_key=True)
    phase_key = db.Column(db.String(50), nullable=False)
    phase_name = db.Column(db.String(100), nullable=False)
    phase_color = db.Column(db.String(20))
    phase_order = db.Column(db.Integer, nullable=False, default=0)
    phase_type = db.Column(db.String(20), nullable=False)  # pipeline | production
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "phase_type", "phase_key", name="uq_custom_phases_key"),
    )


# ═══════════════════════════════════════════════════════════════
# Pipeline
# ═══════════════════════════════════════════════════════════════
class PipelineProject(TenantModel):
    __tablename__ = "pipeline_projects"

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(200))
    project_type = db.Column(db.String(50), default="other")
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"))
    site_address = db.Column(db.Text)
    estimated_value = db.Column(db.Float)
    notes = db.Column(db.Text)
    status = db.Column(db.String(30), default="active")
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "project_number", name="uq_pipeline_projects_tenant_number"),
    )


class PipelinePhase(PhaseColumns, TenantModel):
    __tablename__ = "pipeline_phases"

    id = db.Column(db.Integer, primary_key=True)
    pipeline_project_id = db.Column(
        db.Integer, db.ForeignKey("pipeline_projects.id"), nullable=False, index=True,
    )

    __table_args__ = table_args(
        db.UniqueConstraint("pipeline_project_id", "phase_key", name="uq_pipeline_phases_key"),
    )


# ═══════════════════════════════════════════════════════════════
# Production
# ═══════════════════════════════════════════════════════════════
class Project(ProjectColumns, TenantModel):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"))
    # Back-reference to the converted pipeline row. Not a FK: the pipeline
    # row is deleted at the end of conversion.
    pipeline_project_id = db.Column(db.Integer)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "project_number", name="uq_projects_tenant_number"),
        db.UniqueConstraint("tenant_id", "pipeline_project_id", name="uq_projects_tenant_pipeline"),
    )


class ProjectPhase(PhaseColumns, TenantModel):
    __tablename__ = "project_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)

    __table_args__ = table_args(
        db.UniqueConstraint("project_id", "phase_key", name="uq_project_phases_key"),
    )


class ProjectMaterial(MaterialColumns, TenantModel):
    __tablename__ = "project_materials"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)


class ProjectFile(FileColumns, TenantModel):
    """A file belongs to either a pipeline or a production project."""

    __tablename__ = "project_files"

    id = db.Column(db.Integer, primary_key=True)
    production_project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), index=True)
    pipeline_project_id = db.Column(db.Integer, db.ForeignKey("pipeline_projects.id"), index=True)


class ProjectElement(TenantModel):
    __tablename__ = "project_elements"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    element_type = db.Column(db.String(50))
    name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, default=1)
    width = db.Column(db.Float)
    height = db.Column(db.Float)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectSpraySetting(TenantModel):
    __tablename__ = "project_spray_settings"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    colour = db.Column(db.String(100))
    finish = db.Column(db.String(50))
    sheen = db.Column(db.String(20))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectSprayItem(TenantModel):
    __tablename__ = "project_spray_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    element_id = db.Column(db.Integer, db.ForeignKey("project_elements.id"))
    name = db.Column(db.String(200), nullable=False)
    colour = db.Column(db.String(100))
    quantity = db.Column(db.Integer, default=1)
    status = db.Column(db.String(30), default="pending")
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectBlocker(TenantModel):
    __tablename__ = "project_blockers"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(36))
    resolved = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectAlert(TenantModel):
    __tablename__ = "project_alerts"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    alert_type = db.Column(db.String(50))
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectDispatchItem(TenantModel):
    __tablename__ = "project_dispatch_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    item_name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, default=1)
    status = db.Column(db.String(30), default="pending")
    dispatched_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)


class ProjectImportantNoteRead(TenantModel):
    __tablename__ = "project_important_notes_reads"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=False)
    read_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("project_id", "user_id", name="uq_note_reads_project_user"),
    )
