"""
Archive models — immutable point-in-time copies of production projects.

An archived project owns its copied phases, materials and files through
archived_project_id. The copied rows keep the live ids they were taken from
(project_id, original_id) as plain integers, since the live rows are deleted
once the copy succeeds.
"""

from joinery.models import db
from joinery.models.base import TenantModel, table_args, utcnow
from joinery.models.project import (
    FileColumns,
    MaterialColumns,
    PhaseColumns,
    ProjectColumns,
)

ARCHIVE_TYPES = ("completed", "failed")


class ArchivedProject(ProjectColumns, TenantModel):
    __tablename__ = "archived_projects"

    id = db.Column(db.Integer, primary_key=True)
    original_id = db.Column(db.Integer, nullable=False)
    client_id = db.Column(db.Integer)
    pipeline_project_id = db.Column(db.Integer)
    archive_type = db.Column(db.String(20), nullable=False, default="completed")
    archived_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = table_args(
        db.UniqueConstraint("tenant_id", "original_id", name="uq_archived_projects_original"),
    )


class ArchivedProjectPhase(PhaseColumns, TenantModel):
    __tablename__ = "archived_project_phases"

    id = db.Column(db.Integer, primary_key=True)
    archived_project_id = db.Column(
        db.Integer, db.ForeignKey("archived_projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_id = db.Column(db.Integer)


class ArchivedProjectMaterial(MaterialColumns, TenantModel):
    __tablename__ = "archived_project_materials"

    id = db.Column(db.Integer, primary_key=True)
    archived_project_id = db.Column(
        db.Integer, db.ForeignKey("archived_projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    project_id = db.Column(db.Integer)


class ArchivedProjectFile(FileColumns, TenantModel):
    __tablename__ = "archived_project_files"

    id = db.Column(db.Integer, primary_key=True)
    archived_project_id = db.Column(
        db.Integer, db.ForeignKey("archived_projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    production_project_id = db.Column(db.Integer)
    pipeline_project_id = db.Column(db.Integer)
