"""
Table allow-list for the generic query gateway.

Maps every externally addressable table name to its model class. A table
that is not listed here cannot be reached through /api/db/query, whatever
the caller's role. auth_identities is deliberately absent.
"""

from types import MappingProxyType

from joinery.models.archive import (
    ArchivedProject,
    ArchivedProjectFile,
    ArchivedProjectMaterial,
    ArchivedProjectPhase,
)
from joinery.models.auth import CompanySettings, Organization, UserProfile
from joinery.models.directory import (
    Client,
    EmployeeHoliday,
    StockCategory,
    StockItem,
    StockTransaction,
    Supplier,
    TeamMember,
    Wage,
)
from joinery.models.project import (
    CustomPhase,
    PipelinePhase,
    PipelineProject,
    Project,
    ProjectAlert,
    ProjectBlocker,
    ProjectDispatchItem,
    ProjectElement,
    ProjectFile,
    ProjectImportantNoteRead,
    ProjectMaterial,
    ProjectPhase,
    ProjectSprayItem,
    ProjectSpraySetting,
)

_MODELS = (
    Organization, UserProfile, CompanySettings,
    Client, Supplier, TeamMember, EmployeeHoliday, Wage,
    StockCategory, StockItem, StockTransaction,
    PipelineProject, PipelinePhase, Project, ProjectPhase, CustomPhase,
    ProjectMaterial, ProjectFile, ProjectElement,
    ProjectSpraySetting, ProjectSprayItem,
    ProjectAlert, ProjectBlocker, ProjectDispatchItem, ProjectImportantNoteRead,
    ArchivedProject, ArchivedProjectPhase, ArchivedProjectMaterial, ArchivedProjectFile,
)

ALLOWED_TABLES = MappingProxyType({m.__tablename__: m for m in _MODELS})

# organizations.id IS the tenant id; every other table carries tenant_id.
TENANT_COLUMN_OVERRIDES = MappingProxyType({"organizations": "id"})

# Tables a worker may update/upsert, and the subset it may insert into.
WORKER_WRITABLE_TABLES = frozenset({
    "project_phases",
    "pipeline_phases",
    "project_spray_items",
    "project_important_notes_reads",
})
WORKER_INSERTABLE_TABLES = frozenset({"project_important_notes_reads"})

# Payroll: every operation needs owner or admin, reads included.
ADMIN_ONLY_TABLES = frozenset({"wages"})
ADMIN_ROLES = frozenset({"owner", "admin"})

# Tables whose gateway updates are limited to these columns. Plan, quota
# and usage fields on organizations are written by the services only.
GATEWAY_WRITABLE_COLUMNS = MappingProxyType({
    "organizations": frozenset({"name", "owner_email"}),
})


def tenant_column(table):
    return TENANT_COLUMN_OVERRIDES.get(table, "tenant_id")


def model_for(table):
    """Return the model for an allow-listed table name, or None."""
    return ALLOWED_TABLES.get(table)
