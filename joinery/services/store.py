"""
SqlStore — the backing-store adapter.

The only component that touches the SQLAlchemy session. Every other layer
talks to the store through six calls:

    select / count / insert / update / delete / upsert

each taking a model class plus a list of SQLAlchemy boolean clauses built by
the caller (the query gateway always includes the tenant predicate).

Every mutating call is its own unit of work: it commits on success and rolls
back on failure. Multi-table consistency is the lifecycle orchestrator's job
(see joinery.services.saga), not the store's.

Store errors are classified, never swallowed:
  IntegrityError, unique violation → DuplicateKeyError   (409)
  IntegrityError, anything else    → ValidationError     (400, constraint)
  any other SQLAlchemyError        → UpstreamError       (502)
"""

import logging
import re
from contextlib import contextmanager

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from joinery.core.exceptions import DuplicateKeyError, UpstreamError, ValidationError
from joinery.utils.errors import E
from joinery.utils.helpers import coerce_value

logger = logging.getLogger(__name__)

_UNIQUE_SQLSTATE = "23505"
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: ([\w., ]+)")


def _is_unique_violation(exc):
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate:
        return sqlstate == _UNIQUE_SQLSTATE
    text = str(orig or exc).lower()
    return "unique" in text or "duplicate" in text


def _unique_columns(model, exc):
    """Best-effort list of the columns behind a unique violation."""
    orig = getattr(exc, "orig", None)
    name = getattr(getattr(orig, "diag", None), "constraint_name", None)
    if name:
        for constraint in model.__table__.constraints:
            if constraint.name == name:
                return [c.name for c in constraint.columns]
        return None
    match = _SQLITE_UNIQUE.search(str(orig or exc))
    if match:
        return [part.strip().split(".")[-1] for part in match.group(1).split(",")]
    return None


def _classify(model, exc):
    if _is_unique_violation(exc):
        columns = _unique_columns(model, exc)
        return DuplicateKeyError(model.__tablename__, field=",".join(columns) if columns else None)
    return ValidationError(
        f"Constraint violation on {model.__tablename__}",
        code=E.VALIDATION_CONSTRAINT,
    )


class SqlStore:
    """Relational store adapter over a SQLAlchemy session (or scoped_session)."""

    def __init__(self, session):
        self.session = session

    # ── helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def columns(model):
        return model.__table__.columns

    def clean(self, model, row: dict) -> dict:
        """Validate column names and coerce values for ``model``."""
        cols = self.columns(model)
        unknown = [k for k in row if k not in cols]
        if unknown:
            raise ValidationError(
                f"Unknown column(s) for {model.__tablename__}: {', '.join(sorted(unknown))}",
                details={"columns": sorted(unknown)},
            )
        return {k: coerce_value(cols[k], v) for k, v in row.items()}

    @contextmanager
    def _reading(self, model):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store read failed on %s: %s", model.__tablename__, exc)
            raise UpstreamError(f"Store read failed on {model.__tablename__}") from exc

    @contextmanager
    def _writing(self, model):
        try:
            yield
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Integrity error on %s: %s", model.__tablename__, exc.orig)
            raise _classify(model, exc) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Store write failed on %s: %s", model.__tablename__, exc)
            raise UpstreamError(f"Store write failed on {model.__tablename__}") from exc
        except Exception:
            self.session.rollback()
            raise

    # ── reads ────────────────────────────────────────────────────────────

    def select(self, model, where=(), order_by=(), limit=None, offset=None) -> list[dict]:
        stmt = sa.select(model).where(*where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._reading(model):
            return [obj.to_dict() for obj in self.session.scalars(stmt).all()]

    def count(self, model, where=()) -> int:
        stmt = sa.select(sa.func.count()).select_from(model).where(*where)
        with self._reading(model):
            return self.session.scalar(stmt) or 0

    # ── writes ───────────────────────────────────────────────────────────

    def insert(self, model, rows: list[dict]) -> list[dict]:
        with self._writing(model):
            objs = [model(**self.clean(model, row)) for row in rows]
            self.session.add_all(objs)
            self.session.flush()
            result = [obj.to_dict() for obj in objs]
        return result

    def update(self, model, where, values: dict) -> list[dict]:
        """Apply ``values`` to every row matching ``where``; return the new rows."""
        with self._writing(model):
            values = self.clean(model, values)
            objs = self.session.scalars(sa.select(model).where(*where)).all()
            for obj in objs:
                for key, value in values.items():
                    setattr(obj, key, value)
            self.session.flush()
            result = [obj.to_dict() for obj in objs]
        return result

    def delete(self, model, where) -> list[dict]:
        """Delete every row matching ``where``; return the rows as they were."""
        with self._writing(model):
            objs = self.session.scalars(sa.select(model).where(*where)).all()
            result = [obj.to_dict() for obj in objs]
            for obj in objs:
                self.session.delete(obj)
            self.session.flush()
        return result

    def upsert(self, model, rows: list[dict], conflict_columns, scope=()) -> list[dict]:
        """Insert or update each row, matching on ``conflict_columns`` within ``scope``.

        A row missing any conflict column is inserted. Matching never looks
        outside ``scope``, so a conflict key owned by another tenant surfaces
        as a DuplicateKeyError on insert rather than an update.
        """
        with self._writing(model):
            result = []
            for row in rows:
                values = self.clean(model, row)
                obj = None
                if all(values.get(c) is not None for c in conflict_columns):
                    match = [getattr(model, c) == values[c] for c in conflict_columns]
                    obj = self.session.scalars(
                        sa.select(model).where(*scope, *match)
                    ).first()
                if obj is None:
                    obj = model(**values)
                    self.session.add(obj)
                else:
                    for key, value in values.items():
                        setattr(obj, key, value)
                self.session.flush()
                result.append(obj.to_dict())
        return result
