"""
Generic query gateway — filtered CRUD over allow-listed tables with a
forced tenant scope.

    gateway.execute("select", "team_members", principal,
                    filters=[{"type": "eq", "column": "department", "value": "office"}],
                    order={"column": "full_name", "ascending": True})

Checks run in this order, all before any store call:
  1. the operation is one of Operation
  2. the table is in the allow-list (ForbiddenError otherwise)
  3. the principal's role may perform the operation on the table
  4. filters, projection, ordering and payload are well-formed

Scope rules:
  - select/update/delete: ``tenant_id = principal.tenant_id`` is ANDed in
    front of every caller filter. organizations is scoped by its id.
  - insert/upsert: tenant_id is overwritten on every record.
  - update: tenant_id / id / created_at are stripped from the payload;
    organizations only accepts its GATEWAY_WRITABLE_COLUMNS.
  - foreign keys in a write payload must point at rows of the same tenant.

``single`` raises NotFoundError on zero rows and AmbiguousResultError on
more than one; ``maybe_single`` returns None on zero rows. For update and
delete the row count is checked before anything is mutated.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from joinery.core.exceptions import (
    AmbiguousResultError,
    ApiError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from joinery.models.registry import (
    ADMIN_ONLY_TABLES,
    ADMIN_ROLES,
    GATEWAY_WRITABLE_COLUMNS,
    WORKER_INSERTABLE_TABLES,
    WORKER_WRITABLE_TABLES,
    model_for,
    tenant_column,
)
from joinery.services.filter_compiler import compile_filters
from joinery.utils.errors import E
from joinery.utils.helpers import coerce_value

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Invalid operation '{value}'",
                details={"supported": [op.value for op in cls]},
            ) from None


# ── Role permissions ────────────────────────────────────────────────────
ROLE_PERMISSIONS = {
    "owner":   {"select": True, "insert": True,  "update": True,  "delete": True},
    "admin":   {"select": True, "insert": True,  "update": True,  "delete": True},
    "manager": {"select": True, "insert": True,  "update": True,  "delete": False},
    "worker":  {"select": True, "insert": False, "update": True,  "delete": False},
    "viewer":  {"select": True, "insert": False, "update": False, "delete": False},
}

_IMMUTABLE_ON_UPDATE = ("id", "tenant_id", "created_at")
_ORG_OPERATIONS = (Operation.SELECT, Operation.UPDATE)
_COUNT_MODES = ("exact", "planned", "estimated")


def normalize_role(role):
    role = (role or "viewer").lower()
    return role if role in ROLE_PERMISSIONS else "viewer"


def check_permission(role, operation, table):
    """Return True if ``role`` may run ``operation`` against ``table``."""
    role = normalize_role(role)
    perms = ROLE_PERMISSIONS[role]
    op = Operation.parse(operation)
    if table in ADMIN_ONLY_TABLES and role not in ADMIN_ROLES:
        return False
    if op is Operation.SELECT:
        return perms["select"]
    if op is Operation.INSERT:
        if role == "worker":
            return table in WORKER_INSERTABLE_TABLES
        return perms["insert"]
    if op in (Operation.UPDATE, Operation.UPSERT):
        if role == "worker":
            return table in WORKER_WRITABLE_TABLES
        if op is Operation.UPSERT:
            return perms["insert"] or perms["update"]
        return perms["update"]
    return perms["delete"]


@dataclass
class QueryResult:
    data: Any = None
    count: int | None = None
    error: dict | None = None

    def to_dict(self):
        body = {"data": self.data, "error": self.error}
        if self.count is not None:
            body["count"] = self.count
        return body


class QueryGateway:
    """Tenant-scoped CRUD front for the backing store."""

    def __init__(self, store):
        self.store = store

    # ── public API ───────────────────────────────────────────────────────

    def execute(
        self,
        operation,
        table,
        principal,
        *,
        select="*",
        filters=None,
        order=None,
        limit=None,
        range=None,
        single=False,
        maybe_single=False,
        count=None,
        data=None,
        on_conflict=None,
        authorize=True,
    ) -> QueryResult:
        op = Operation.parse(operation)
        if not table:
            raise ValidationError("table is required", code=E.VALIDATION_REQUIRED)
        model = model_for(table)
        if model is None:
            logger.warning(
                "Gateway rejected table %s", table,
                extra={"event_type": "gateway_forbidden_table"},
            )
            raise ForbiddenError("Access to this table is not allowed")
        if principal is None or getattr(principal, "tenant_id", None) is None:
            raise UnauthenticatedError()
        if authorize and not check_permission(principal.role, op, table):
            logger.warning(
                "Permission denied: %s tried %s on %s", principal.role, op.value, table,
                extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id,
                       "event_type": "gateway_forbidden_role"},
            )
            raise ForbiddenError(
                f"Permission denied: {op.value} on {table} requires higher privileges"
            )

        tenant_col = tenant_column(table)
        if tenant_col != "tenant_id" and op not in _ORG_OPERATIONS:
            raise ForbiddenError(f"{op.value} is not allowed on {table}")

        ctx = _Context(
            model=model,
            table=table,
            tenant_id=principal.tenant_id,
            tenant_col=tenant_col,
            columns=self._projection(model, select),
            single=bool(single) and not maybe_single,
            maybe_single=bool(maybe_single),
        )

        if op is Operation.SELECT:
            return self._select(ctx, filters, order, limit, range, count)
        if op is Operation.INSERT:
            return self._insert(ctx, data)
        if op is Operation.UPDATE:
            return self._update(ctx, filters, data)
        if op is Operation.DELETE:
            return self._delete(ctx, filters)
        return self._upsert(ctx, data, on_conflict)

    def safe_execute(self, *args, **kwargs) -> QueryResult:
        """Like execute(), but returns the error in the result instead of raising."""
        try:
            return self.execute(*args, **kwargs)
        except ApiError as exc:
            return QueryResult(error=exc.to_dict())

    # ── operations ───────────────────────────────────────────────────────

    def _select(self, ctx, filters, order, limit, range_, count):
        where = ctx.scope() + compile_filters(ctx.model, filters)
        order_by = self._order(ctx.model, order)
        offset, size = self._window(limit, range_)
        if count is not None and count not in _COUNT_MODES:
            raise ValidationError(f"Invalid count mode '{count}'")

        total = self.store.count(ctx.model, where) if count else None
        rows = self.store.select(ctx.model, where, order_by=order_by, limit=size, offset=offset)
        return QueryResult(data=ctx.shape(rows), count=total)

    def _insert(self, ctx, data):
        records = self._records(data, ctx)
        pinned = []
        for record in records:
            record = dict(record)
            if self._integer_pk(ctx.model):
                record.pop("id", None)
            record["tenant_id"] = ctx.tenant_id
            pinned.append(record)
        self._check_references(ctx, pinned)
        rows = self.store.insert(ctx.model, pinned)
        return QueryResult(data=ctx.shape(rows))

    def _update(self, ctx, filters, data):
        if not isinstance(data, dict) or not data:
            raise ValidationError("update requires a data object", code=E.VALIDATION_REQUIRED)
        values = {k: v for k, v in data.items()
                  if k not in _IMMUTABLE_ON_UPDATE and k != ctx.tenant_col}
        writable = GATEWAY_WRITABLE_COLUMNS.get(ctx.table)
        if writable is not None:
            blocked = sorted(set(values) - writable)
            if blocked:
                raise ForbiddenError(
                    f"Columns cannot be updated on {ctx.table}",
                    details={"columns": blocked, "writable": sorted(writable)},
                )
        if not values:
            raise ValidationError("update payload has no writable columns")
        where = ctx.scope() + compile_filters(ctx.model, filters)
        if not self._pre_check(ctx, where):
            return QueryResult(data=None)
        self._check_references(ctx, [values])
        rows = self.store.update(ctx.model, where, values)
        return QueryResult(data=ctx.shape(rows))

    def _delete(self, ctx, filters):
        where = ctx.scope() + compile_filters(ctx.model, filters)
        if not self._pre_check(ctx, where):
            return QueryResult(data=None)
        rows = self.store.delete(ctx.model, where)
        return QueryResult(data=ctx.shape(rows))

    def _upsert(self, ctx, data, on_conflict):
        records = [dict(r, tenant_id=ctx.tenant_id) for r in self._records(data, ctx)]
        conflict = self._conflict_columns(ctx.model, on_conflict)

        if conflict == ["id"] and self._integer_pk(ctx.model):
            # A generated id that is not ours is treated as absent: insert fresh.
            pk = ctx.model.__table__.columns["id"]
            ids = {coerce_value(pk, r["id"]) for r in records if r.get("id") is not None}
            owned = set()
            if ids:
                owned = {row["id"] for row in self.store.select(
                    ctx.model, ctx.scope() + [pk.in_(ids)])}
            for record in records:
                if record.get("id") is not None and coerce_value(pk, record["id"]) not in owned:
                    record.pop("id")

        self._check_references(ctx, records)
        rows = self.store.upsert(ctx.model, records, conflict, scope=ctx.scope())
        return QueryResult(data=ctx.shape(rows))

    # ── helpers ──────────────────────────────────────────────────────────

    def _pre_check(self, ctx, where):
        """Enforce single / maybe_single before a mutation. False = nothing to do."""
        if not (ctx.single or ctx.maybe_single):
            return True
        matched = self.store.count(ctx.model, where)
        if matched == 0:
            if ctx.single:
                raise NotFoundError(resource=ctx.table, tenant_id=ctx.tenant_id)
            return False
        if matched > 1:
            raise AmbiguousResultError(ctx.table, matched)
        return True

    @staticmethod
    def _integer_pk(model):
        pk = model.__table__.columns.get("id")
        return pk is not None and pk.primary_key and pk.type.python_type is int

    @staticmethod
    def _records(data, ctx):
        if isinstance(data, dict):
            records = [data]
        elif isinstance(data, list) and all(isinstance(r, dict) for r in data):
            records = data
        else:
            raise ValidationError("data must be an object or a list of objects")
        if not records:
            raise ValidationError("data must not be empty", code=E.VALIDATION_REQUIRED)
        if (ctx.single or ctx.maybe_single) and len(records) > 1:
            raise AmbiguousResultError(ctx.table, len(records))
        return records

    @staticmethod
    def _projection(model, select):
        if select in (None, "", "*"):
            return None
        names = [s.strip() for s in str(select).split(",") if s.strip()]
        cols = model.__table__.columns
        bad = [n for n in names if n not in cols]
        if bad:
            raise ValidationError(
                f"Unknown select column(s) for {model.__tablename__}: {', '.join(bad)}",
                details={"columns": bad},
            )
        return names

    @staticmethod
    def _order(model, order):
        if not order:
            return []
        items = order if isinstance(order, list) else [order]
        clauses = []
        for item in items:
            if not isinstance(item, dict) or "column" not in item:
                raise ValidationError("order entries must be {column, ascending}")
            col = model.__table__.columns.get(item["column"])
            if col is None:
                raise ValidationError(
                    f"Unknown order column '{item['column']}'",
                    details={"column": item["column"]},
                )
            clause = col.asc() if item.get("ascending", True) else col.desc()
            if "nullsFirst" in item:
                clause = clause.nulls_first() if item["nullsFirst"] else clause.nulls_last()
            clauses.append(clause)
        return clauses

    @staticmethod
    def _window(limit, range_):
        offset, size = None, None
        if range_ is not None:
            try:
                start, end = int(range_["from"]), int(range_["to"])
            except (KeyError, TypeError, ValueError):
                raise ValidationError("range must be {from, to} integers") from None
            if start < 0 or end < start:
                raise ValidationError("range bounds are invalid")
            offset, size = start, end - start + 1
        if limit is not None:
            try:
                limit = int(limit)
            except (TypeError, ValueError):
                raise ValidationError("limit must be an integer") from None
            if limit < 0:
                raise ValidationError("limit must not be negative")
            size = limit if size is None else min(size, limit)
        return offset, size

    @staticmethod
    def _conflict_columns(model, on_conflict):
        if not on_conflict:
            return ["id"]
        names = [c.strip() for c in str(on_conflict).split(",") if c.strip()]
        cols = model.__table__.columns
        bad = [n for n in names if n not in cols]
        if bad:
            raise ValidationError(
                f"Unknown onConflict column(s): {', '.join(bad)}", details={"columns": bad},
            )
        return names

    def _check_references(self, ctx, records):
        """Every tenant-scoped FK value in ``records`` must belong to the caller's tenant."""
        for col in ctx.model.__table__.columns:
            for fk in col.foreign_keys:
                target = model_for(fk.column.table.name)
                if target is None or "tenant_id" not in target.__table__.columns:
                    continue
                values = {coerce_value(col, r[col.name]) for r in records
                          if r.get(col.name) is not None}
                if not values:
                    continue
                target_pk = target.__table__.columns[fk.column.name]
                found = self.store.count(
                    target, [target.tenant_id == ctx.tenant_id, target_pk.in_(values)],
                )
                if found != len(values):
                    raise NotFoundError(resource=target.__tablename__, tenant_id=ctx.tenant_id)


@dataclass
class _Context:
    model: Any
    table: str
    tenant_id: int
    tenant_col: str
    columns: list | None
    single: bool
    maybe_single: bool

    def scope(self):
        return [getattr(self.model, self.tenant_col) == self.tenant_id]

    def shape(self, rows):
        if self.columns:
            rows = [{k: row[k] for k in self.columns} for row in rows]
        if not (self.single or self.maybe_single):
            return rows
        if not rows:
            if self.single:
                raise NotFoundError(resource=self.table, tenant_id=self.tenant_id)
            return None
        if len(rows) > 1:
            raise AmbiguousResultError(self.table, len(rows))
        return rows[0]
