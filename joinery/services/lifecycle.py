"""
Lifecycle orchestrator — create, convert, archive and delete projects.

States: pipeline → production → archived (terminal). Both transitions are
one-way and cannot be replayed on the same row.

Every operation is a Saga (see joinery.services.saga) over gateway calls:

  create   allocate number + insert root          (required)
           scaffold phases from CustomPhase        (best-effort → warnings)
  convert  insert production row                  (required, undo: delete it)
           scaffold production phases              (best-effort)
           move files to the production row        (required, undo: move back)
           delete pipeline phases, pipeline row    (required, undo: re-insert)
  archive  insert archived root                   (required, undo: delete it)
           copy phases / materials / files         (required, undo: delete copies)
           delete live dependents, then root       (required, undo: re-insert)
  delete   dependency-ordered cascade              (required, undo: re-insert)

Gateway calls run with ``authorize=False``: the role check happens once per
operation here, while allow-list and tenant scope are still enforced on
every call. Re-inserting deleted rows goes straight to the store so the
original ids come back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from joinery.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from joinery.models.archive import ARCHIVE_TYPES
from joinery.models.base import utcnow
from joinery.models.project import PHASE_INITIAL_STATUS
from joinery.models.registry import model_for
from joinery.services.query_gateway import Operation, normalize_role
from joinery.services.saga import Saga

logger = logging.getLogger(__name__)

WRITE_ROLES = frozenset({"owner", "admin", "manager"})
DELETE_ROLES = frozenset({"owner", "admin"})

_NOT_COPIED = ("id", "tenant_id", "project_number", "created_at", "updated_at")

# Deepest children first; the root row goes last.
PRODUCTION_CASCADE = (
    ("project_spray_items", "project_id"),
    ("project_spray_settings", "project_id"),
    ("project_elements", "project_id"),
    ("project_files", "production_project_id"),
    ("project_materials", "project_id"),
    ("project_phases", "project_id"),
    ("project_blockers", "project_id"),
    ("project_alerts", "project_id"),
    ("project_dispatch_items", "project_id"),
    ("project_important_notes_reads", "project_id"),
)
PIPELINE_CASCADE = (
    ("pipeline_phases", "pipeline_project_id"),
    ("project_files", "pipeline_project_id"),
)
ARCHIVE_COPIES = (
    ("project_phases", "project_id", "archived_project_phases"),
    ("project_materials", "project_id", "archived_project_materials"),
    ("project_files", "production_project_id", "archived_project_files"),
)


@dataclass(frozen=True)
class ProjectKind:
    state: str
    label: str
    table: str
    sequence: str
    phase_table: str
    phase_owner: str
    cascade: tuple


KINDS = {
    "production": ProjectKind(
        "production", "Project", "projects", "project",
        "project_phases", "project_id", PRODUCTION_CASCADE,
    ),
    "pipeline": ProjectKind(
        "pipeline", "Pipeline project", "pipeline_projects", "pipeline-project",
        "pipeline_phases", "pipeline_project_id", PIPELINE_CASCADE,
    ),
}


def _eq(column, value):
    return {"type": "eq", "column": column, "value": value}


@dataclass
class LifecycleResult:
    """Primary outcome plus the secondary steps that did not complete."""

    data: Any
    state: str
    warnings: list = field(default_factory=list)

    def to_dict(self):
        return {
            "data": self.data,
            "state": self.state,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class LifecycleOrchestrator:
    def __init__(self, gateway, allocator):
        self.gateway = gateway
        self.allocator = allocator

    @property
    def store(self):
        return self.gateway.store

    # ── public operations ────────────────────────────────────────────────

    def create(self, principal, kind, payload=None) -> LifecycleResult:
        """Insert a numbered pipeline or production project and scaffold its phases."""
        self._require(principal, WRITE_ROLES, "create projects")
        meta = self._kind(kind)
        values = self._clean_payload(payload)
        saga = Saga(f"create_{meta.state}", tenant_id=principal.tenant_id)

        def insert(number):
            return self._q(Operation.INSERT, meta.table, principal,
                           data={**values, "project_number": number}, single=True)

        if values.get("project_number"):
            root = saga.step("insert_root", lambda: self._q(
                Operation.INSERT, meta.table, principal, data=values, single=True))
        else:
            values.pop("project_number", None)
            root = saga.step("insert_root", lambda: self.allocator.insert_with_number(
                principal.tenant_id, meta.sequence, insert))

        phases = saga.best_effort(
            "scaffold_phases", lambda: self._scaffold(principal, meta, root["id"]), default=[],
        )
        logger.info(
            "Created %s %s", meta.state, root["project_number"],
            extra={"tenant_id": principal.tenant_id, "event_type": "lifecycle_create"},
        )
        return LifecycleResult(data={**root, "phases": phases}, state=meta.state,
                               warnings=saga.warnings)

    def convert(self, principal, pipeline_id) -> LifecycleResult:
        """Turn a pipeline project into a production project."""
        self._require(principal, WRITE_ROLES, "convert projects")
        source_kind, target_kind = KINDS["pipeline"], KINDS["production"]
        pipeline = self._fetch_root(principal, source_kind, pipeline_id)
        pipeline_id = pipeline["id"]

        existing = self._q(Operation.SELECT, "projects", principal,
                           filters=[_eq("pipeline_project_id", pipeline_id)], maybe_single=True)
        if existing:
            raise ConflictError(
                "Pipeline project has already been converted",
                details={"project_id": existing["id"]},
            )

        shared = (set(model_for("projects").__table__.columns.keys())
                  & set(model_for("pipeline_projects").__table__.columns.keys()))
        values = {k: v for k, v in pipeline.items() if k in shared and k not in _NOT_COPIED}
        values.update(pipeline_project_id=pipeline_id, converted_from_pipeline=True)

        saga = Saga("convert", tenant_id=principal.tenant_id)

        def insert(number):
            return self._q(Operation.INSERT, "projects", principal,
                           data={**values, "project_number": number}, single=True)

        project = saga.step(
            "insert_project",
            lambda: self.allocator.insert_with_number(principal.tenant_id, "project", insert),
            compensate=lambda p: self._discard_project(principal, p["id"]),
        )
        phases = saga.best_effort(
            "scaffold_phases", lambda: self._scaffold(principal, target_kind, project["id"]),
            default=[],
        )
        saga.step(
            "reassign_files",
            lambda: self._q(Operation.UPDATE, "project_files", principal,
                            filters=[_eq("pipeline_project_id", pipeline_id)],
                            data={"production_project_id": project["id"],
                                  "pipeline_project_id": None}),
            compensate=lambda moved: self._move_files_back(principal, moved, pipeline_id),
        )
        saga.step(
            "delete_pipeline_phases",
            lambda: self._q(Operation.DELETE, "pipeline_phases", principal,
                            filters=[_eq("pipeline_project_id", pipeline_id)]),
            compensate=lambda rows: self._restore("pipeline_phases", rows),
        )
        saga.step(
            "delete_pipeline_project",
            lambda: self._q(Operation.DELETE, "pipeline_projects", principal,
                            filters=[_eq("id", pipeline_id)], single=True),
            compensate=lambda row: self._restore("pipeline_projects", [row]),
        )
        logger.info(
            "Converted pipeline %s into %s", pipeline["project_number"], project["project_number"],
            extra={"tenant_id": principal.tenant_id, "event_type": "lifecycle_convert"},
        )
        return LifecycleResult(data={**project, "phases": phases}, state="production",
                               warnings=saga.warnings)

    def archive(self, principal, project_id, archive_type="completed") -> LifecycleResult:
        """Copy a production project into the archive, then delete the live graph."""
        self._require(principal, WRITE_ROLES, "archive projects")
        archive_type = archive_type or "completed"
        if archive_type not in ARCHIVE_TYPES:
            raise ValidationError(
                f"archive_type must be one of {', '.join(ARCHIVE_TYPES)}",
                details={"archive_type": archive_type},
            )
        meta = KINDS["production"]
        project = self._fetch_root(principal, meta, project_id)
        project_id = project["id"]

        saga = Saga("archive", tenant_id=principal.tenant_id)
        archive_cols = model_for("archived_projects").__table__.columns.keys()
        values = {k: v for k, v in project.items() if k in archive_cols and k != "id"}
        values.update(original_id=project_id, archive_type=archive_type,
                      archived_at=utcnow().isoformat())

        archived = saga.step(
            "insert_archive",
            lambda: self._q(Operation.INSERT, "archived_projects", principal,
                            data=values, single=True),
            compensate=lambda row: self._q(Operation.DELETE, "archived_projects", principal,
                                           filters=[_eq("id", row["id"])]),
        )
        copied = {}
        for live_table, owner_col, archive_table in ARCHIVE_COPIES:
            copied[archive_table] = saga.step(
                f"copy_{live_table}",
                lambda lt=live_table, oc=owner_col, at=archive_table: self._copy_into_archive(
                    principal, lt, oc, project_id, at, archived["id"]),
                compensate=lambda rows, at=archive_table: self._q(
                    Operation.DELETE, at, principal,
                    filters=[_eq("archived_project_id", archived["id"])]),
            )

        self._cascade(saga, principal, meta, project_id)
        logger.info(
            "Archived %s as %s", project["project_number"], archive_type,
            extra={"tenant_id": principal.tenant_id, "event_type": "lifecycle_archive"},
        )
        data = {
            **archived,
            "phases": copied["archived_project_phases"],
            "materials": copied["archived_project_materials"],
            "files": copied["archived_project_files"],
        }
        return LifecycleResult(data=data, state="archived", warnings=saga.warnings)

    def delete(self, principal, kind, entity_id) -> LifecycleResult:
        """Hard-delete a project and every dependent row, deepest first."""
        self._require(principal, DELETE_ROLES, "delete projects")
        meta = self._kind(kind)
        root = self._fetch_root(principal, meta, entity_id)

        saga = Saga(f"delete_{meta.state}", tenant_id=principal.tenant_id)
        deleted = self._cascade(saga, principal, meta, root["id"])
        logger.info(
            "Deleted %s %s", meta.state, root["project_number"],
            extra={"tenant_id": principal.tenant_id, "event_type": "lifecycle_delete"},
        )
        return LifecycleResult(data={"id": root["id"], "deleted": deleted}, state="deleted",
                               warnings=saga.warnings)

    # ── steps ────────────────────────────────────────────────────────────

    def _scaffold(self, principal, meta, owner_id):
        templates = self._q(
            Operation.SELECT, "custom_phases", principal,
            filters=[_eq("phase_type", meta.state)],
            order=[{"column": "phase_order", "ascending": True}, {"column": "id"}],
        )
        if not templates:
            return []
        rows = [
            {
                meta.phase_owner: owner_id,
                "phase_key": t["phase_key"],
                "status": PHASE_INITIAL_STATUS,
                "order_position": t["phase_order"],
            }
            for t in templates
        ]
        return self._q(Operation.INSERT, meta.phase_table, principal, data=rows)

    def _cascade(self, saga, principal, meta, owner_id):
        deleted = {}
        for table, column in meta.cascade:
            rows = saga.step(
                f"delete_{table}",
                lambda t=table, c=column: self._q(Operation.DELETE, t, principal,
                                                  filters=[_eq(c, owner_id)]),
                compensate=lambda rows, t=table: self._restore(t, rows),
            )
            deleted[table] = len(rows)
        saga.step(
            f"delete_{meta.table}",
            lambda: self._q(Operation.DELETE, meta.table, principal,
                            filters=[_eq("id", owner_id)], single=True),
            compensate=lambda row: self._restore(meta.table, [row]),
        )
        deleted[meta.table] = 1
        return deleted

    def _copy_into_archive(self, principal, live_table, owner_col, owner_id,
                           archive_table, archived_id):
        live = self._q(Operation.SELECT, live_table, principal,
                       filters=[_eq(owner_col, owner_id)], order={"column": "id"})
        if not live:
            return []
        cols = model_for(archive_table).__table__.columns.keys()
        copies = [
            {**{k: v for k, v in row.items() if k in cols and k != "id"},
             "archived_project_id": archived_id}
            for row in live
        ]
        return self._q(Operation.INSERT, archive_table, principal, data=copies)

    def _discard_project(self, principal, project_id):
        self._q(Operation.DELETE, "project_phases", principal,
                filters=[_eq("project_id", project_id)])
        self._q(Operation.DELETE, "projects", principal, filters=[_eq("id", project_id)])

    def _move_files_back(self, principal, moved, pipeline_id):
        ids = [f["id"] for f in moved or []]
        if ids:
            self._q(Operation.UPDATE, "project_files", principal,
                    filters=[{"type": "in", "column": "id", "value": ids}],
                    data={"production_project_id": None, "pipeline_project_id": pipeline_id})

    def _restore(self, table, rows):
        if rows:
            self.store.insert(model_for(table), rows)

    # ── helpers ──────────────────────────────────────────────────────────

    def _q(self, op, table, principal, **kwargs):
        return self.gateway.execute(op, table, principal, authorize=False, **kwargs).data

    def _fetch_root(self, principal, meta, entity_id):
        try:
            return self._q(Operation.SELECT, meta.table, principal,
                           filters=[_eq("id", entity_id)], single=True)
        except (NotFoundError, ValidationError):
            raise NotFoundError(
                resource=meta.label, resource_id=entity_id, tenant_id=principal.tenant_id,
            ) from None

    @staticmethod
    def _kind(kind):
        try:
            return KINDS[kind]
        except KeyError:
            raise ValidationError(
                f"Unknown project kind '{kind}'", details={"supported": list(KINDS)},
            ) from None

    @staticmethod
    def _clean_payload(payload):
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise ValidationError("payload must be an object")
        return {k: v for k, v in payload.items()
                if k not in ("id", "tenant_id", "created_at", "updated_at")}

    @staticmethod
    def _require(principal, roles, action):
        if normalize_role(principal.role) not in roles:
            raise ForbiddenError(f"Your role cannot {action}")
