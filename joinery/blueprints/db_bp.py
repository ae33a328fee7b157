"""
Generic query endpoint.

  POST /api/db/query
  {
    "operation": "select" | "insert" | "update" | "delete" | "upsert",
    "table": "projects",
    "select": "id,name",
    "filters": [{"type": "eq", "column": "status", "value": "active"}],
    "order": {"column": "created_at", "ascending": false},
    "limit": 50, "range": {"from": 0, "to": 49},
    "single": false, "maybeSingle": false, "count": "exact",
    "data": {...} | [...], "onConflict": "id"
  }

The caller's tenant always comes from the bearer token; any tenant_id in the
body is overwritten.
"""

from flask import Blueprint

from joinery.blueprints import json_body, services
from joinery.middleware.tenant_context import current_principal
from joinery.utils.errors import api_ok

db_bp = Blueprint("db_bp", __name__, url_prefix="/api/db")


@db_bp.route("/query", methods=["POST"])
def query():
    body = json_body(required=True)
    result = services().gateway.execute(
        body.get("operation"),
        body.get("table"),
        current_principal(),
        select=body.get("select") or "*",
        filters=body.get("filters"),
        order=body.get("order"),
        limit=body.get("limit"),
        range=body.get("range"),
        single=bool(body.get("single")),
        maybe_single=bool(body.get("maybeSingle")),
        count=body.get("count"),
        data=body.get("data"),
        on_conflict=body.get("onConflict"),
    )
    return api_ok(result.data, count=result.count)
