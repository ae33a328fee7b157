"""
Stock service — categories, items, movements and low-stock alerts.

Every call goes through the query gateway with the caller's role, so the
allow-list, tenant scope and role matrix of /api/db/query apply unchanged.

A movement is recorded in two writes:

    insert stock_transactions row      (undo: delete it)
    update stock_items.current_quantity (guarded by the level that was read)

The update only matches while the item still holds the level the movement
was computed from. If another movement landed in between, nothing is
updated, the transaction row is removed again and ConflictError is raised.
"""

import logging
import math

from joinery.core.exceptions import ConflictError, NotFoundError, ValidationError
from joinery.models.directory import STOCK_TRANSACTION_TYPES
from joinery.models.registry import model_for
from joinery.services.query_gateway import Operation
from joinery.services.saga import Saga
from joinery.utils.errors import E

logger = logging.getLogger(__name__)

# Levels only change through record_transaction().
_MANAGED_COLUMNS = ("current_quantity",)


def _eq(column, value):
    return {"type": "eq", "column": column, "value": value}


def _level_filter(level):
    if level is None:
        return {"type": "is", "column": "current_quantity", "value": None}
    return _eq("current_quantity", level)


def _quantity(value):
    if isinstance(value, bool):
        raise ValidationError("quantity must be a number", details={"quantity": value})
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be a number", details={"quantity": value}) from None
    if not math.isfinite(quantity) or quantity <= 0:
        raise ValidationError("quantity must be greater than zero", details={"quantity": value})
    return quantity


class StockService:
    def __init__(self, gateway, allocator):
        self.gateway = gateway
        self.allocator = allocator

    # ── categories ───────────────────────────────────────────────────────

    def categories(self, principal):
        return self._q(Operation.SELECT, "stock_categories", principal,
                       order={"column": "name"})

    def create_category(self, principal, payload):
        return self._q(Operation.INSERT, "stock_categories", principal,
                       data=self._clean(payload), single=True)

    def delete_category(self, principal, category_id):
        category = self._fetch(principal, "stock_categories", "Stock category", category_id)
        in_use = self._q(Operation.SELECT, "stock_items", principal, select="id",
                         filters=[_eq("category_id", category["id"])], limit=1)
        if in_use:
            raise ConflictError(
                "Cannot delete a category that still has items. Move the items first.",
                details={"category_id": category["id"]},
            )
        return self._q(Operation.DELETE, "stock_categories", principal,
                       filters=[_eq("id", category["id"])], single=True)

    # ── items ────────────────────────────────────────────────────────────

    def items(self, principal, category_id=None, low_stock=False):
        filters = [_eq("category_id", category_id)] if category_id is not None else []
        rows = self._q(Operation.SELECT, "stock_items", principal,
                       filters=filters, order={"column": "name"})
        if low_stock:
            rows = [r for r in rows if self._is_low(r)]
        return self._with_categories(principal, rows)

    def item(self, principal, item_id):
        """Item with its category and full movement history (newest first)."""
        item = self._fetch(principal, "stock_items", "Stock item", item_id)
        item = self._with_categories(principal, [item])[0]
        item["transactions"] = self._history(principal, item["id"])
        return item

    def create_item(self, principal, payload):
        values = self._clean(payload)

        def insert(number):
            return self._q(Operation.INSERT, "stock_items", principal,
                           data={**values, "item_number": number}, single=True)

        if values.get("item_number"):
            item = self._q(Operation.INSERT, "stock_items", principal, data=values, single=True)
        else:
            values.pop("item_number", None)
            item = self.allocator.insert_with_number(principal.tenant_id, "stock-item", insert)
        logger.info(
            "Created stock item %s", item["item_number"],
            extra={"tenant_id": principal.tenant_id, "event_type": "stock_item_create"},
        )
        return item

    def update_item(self, principal, item_id, payload):
        values = self._clean(payload)
        managed = sorted(set(values) & set(_MANAGED_COLUMNS))
        if managed:
            raise ValidationError(
                "Stock levels change through transactions only",
                details={"columns": managed},
            )
        return self._q(Operation.UPDATE, "stock_items", principal,
                       filters=[_eq("id", item_id)], data=values, single=True)

    def delete_item(self, principal, item_id):
        """Delete an item and its movement history."""
        item = self._fetch(principal, "stock_items", "Stock item", item_id)
        saga = Saga("delete_stock_item", tenant_id=principal.tenant_id)
        history = saga.step(
            "delete_stock_transactions",
            lambda: self._q(Operation.DELETE, "stock_transactions", principal,
                            filters=[_eq("stock_item_id", item["id"])]),
            compensate=lambda rows: self._restore("stock_transactions", rows),
        )
        saga.step(
            "delete_stock_item",
            lambda: self._q(Operation.DELETE, "stock_items", principal,
                            filters=[_eq("id", item["id"])], single=True),
        )
        return {"id": item["id"], "deleted": {"stock_transactions": len(history),
                                              "stock_items": 1}}

    # ── movements ────────────────────────────────────────────────────────

    def record_transaction(self, principal, item_id, payload):
        """Apply an in / out / adjustment movement and log it.

        Returns ``{"transaction": row, "new_quantity": float}``. Taking out
        more than the item holds raises ValidationError and writes nothing.
        """
        payload = payload or {}
        kind = payload.get("type") or payload.get("transaction_type")
        if kind not in STOCK_TRANSACTION_TYPES:
            raise ValidationError(
                f"type must be one of {', '.join(STOCK_TRANSACTION_TYPES)}",
                details={"type": kind},
            )
        quantity = _quantity(payload.get("quantity"))
        item = self._fetch(principal, "stock_items", "Stock item", item_id)

        level = item.get("current_quantity")
        before = level or 0
        after = before + STOCK_TRANSACTION_TYPES[kind] * quantity
        if after < 0:
            raise ValidationError(
                "Insufficient stock",
                details={"available": before, "requested": quantity},
                code=E.VALIDATION_CONSTRAINT,
            )

        saga = Saga("stock_transaction", tenant_id=principal.tenant_id)
        transaction = saga.step(
            "insert_transaction",
            lambda: self._q(Operation.INSERT, "stock_transactions", principal, data={
                "stock_item_id": item["id"],
                "transaction_type": kind,
                "quantity": quantity,
                "quantity_before": before,
                "quantity_after": after,
                "notes": payload.get("notes"),
                "project_id": payload.get("project_id"),
                "project_material_id": payload.get("project_material_id"),
                "created_by": principal.user_id,
            }, single=True),
            compensate=lambda row: self._q(Operation.DELETE, "stock_transactions", principal,
                                           filters=[_eq("id", row["id"])]),
        )

        def apply_level():
            updated = self._q(Operation.UPDATE, "stock_items", principal,
                              filters=[_eq("id", item["id"]), _level_filter(level)],
                              data={"current_quantity": after}, maybe_single=True)
            if updated is None:
                raise ConflictError(
                    "Stock level changed while the transaction was recorded; retry",
                    details={"stock_item_id": item["id"]},
                )
            return updated

        saga.step("update_quantity", apply_level)
        logger.info(
            "Stock %s %s x%s: %s -> %s", item.get("item_number"), kind, quantity, before, after,
            extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id,
                   "event_type": "stock_transaction"},
        )
        return {"transaction": transaction, "new_quantity": after}

    def transactions(self, principal, item_id):
        item = self._fetch(principal, "stock_items", "Stock item", item_id)
        return self._history(principal, item["id"])

    def alerts(self, principal):
        """Items at or below their minimum level, lowest stock first."""
        rows = [r for r in self._q(Operation.SELECT, "stock_items", principal,
                                   order={"column": "name"})
                if self._is_low(r)]
        rows.sort(key=lambda r: r.get("current_quantity") or 0)
        return self._with_categories(principal, rows)

    # ── helpers ──────────────────────────────────────────────────────────

    def _history(self, principal, item_id):
        return self._q(Operation.SELECT, "stock_transactions", principal,
                       filters=[_eq("stock_item_id", item_id)],
                       order=[{"column": "created_at", "ascending": False},
                              {"column": "id", "ascending": False}])

    def _with_categories(self, principal, rows):
        ids = sorted({r["category_id"] for r in rows if r.get("category_id") is not None})
        names = {}
        if ids:
            names = {c["id"]: c for c in self._q(
                Operation.SELECT, "stock_categories", principal, select="id,name",
                filters=[{"type": "in", "column": "id", "value": ids}])}
        return [{**r, "category": names.get(r.get("category_id"))} for r in rows]

    @staticmethod
    def _is_low(row):
        return (row.get("current_quantity") or 0) <= (row.get("min_quantity") or 0)

    def _fetch(self, principal, table, label, entity_id):
        try:
            return self._q(Operation.SELECT, table, principal,
                           filters=[_eq("id", entity_id)], single=True)
        except (NotFoundError, ValidationError):
            raise NotFoundError(
                resource=label, resource_id=entity_id, tenant_id=principal.tenant_id,
            ) from None

    def _restore(self, table, rows):
        if rows:
            self.gateway.store.insert(model_for(table), rows)

    def _q(self, op, table, principal, **kwargs):
        return self.gateway.execute(op, table, principal, **kwargs).data

    @staticmethod
    def _clean(payload):
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise ValidationError("payload must be an object")
        return {k: v for k, v in payload.items()
                if k not in ("id", "tenant_id", "created_at", "updated_at", "category")}
