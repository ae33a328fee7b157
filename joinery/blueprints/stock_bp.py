"""
Stock blueprint.

  GET    /api/stock/categories
  POST   /api/stock/categories
  DELETE /api/stock/categories/<id>          409 while items remain
  GET    /api/stock/items                    ?category_id= &low_stock=true
  GET    /api/stock/items/<id>               with category and transactions
  POST   /api/stock/items                    STK00001 unless item_number given
  PUT    /api/stock/items/<id>
  DELETE /api/stock/items/<id>
  POST   /api/stock/items/<id>/transaction   { type, quantity, notes?, project_id? }
  GET    /api/stock/items/<id>/transactions
  GET    /api/stock/alerts
"""

from flask import Blueprint, request

from joinery.blueprints import json_body, services
from joinery.middleware.tenant_context import current_principal
from joinery.utils.errors import api_ok

stock_bp = Blueprint("stock_bp", __name__, url_prefix="/api/stock")


# ── Categories ───────────────────────────────────────────────────────────


@stock_bp.route("/categories", methods=["GET"])
def list_categories():
    rows = services().stock.categories(current_principal())
    return api_ok(rows, count=len(rows))


@stock_bp.route("/categories", methods=["POST"])
def create_category():
    category = services().stock.create_category(current_principal(), json_body(required=True))
    return api_ok(category, status=201)


@stock_bp.route("/categories/<int:category_id>", methods=["DELETE"])
def delete_category(category_id):
    return api_ok(services().stock.delete_category(current_principal(), category_id))


# ── Items ────────────────────────────────────────────────────────────────


@stock_bp.route("/items", methods=["GET"])
def list_items():
    rows = services().stock.items(
        current_principal(),
        category_id=request.args.get("category_id", type=int),
        low_stock=request.args.get("low_stock", "").lower() == "true",
    )
    return api_ok(rows, count=len(rows))


@stock_bp.route("/items/<int:item_id>", methods=["GET"])
def get_item(item_id):
    return api_ok(services().stock.item(current_principal(), item_id))


@stock_bp.route("/items", methods=["POST"])
def create_item():
    item = services().stock.create_item(current_principal(), json_body(required=True))
    return api_ok(item, status=201)


@stock_bp.route("/items/<int:item_id>", methods=["PUT"])
def update_item(item_id):
    item = services().stock.update_item(current_principal(), item_id, json_body(required=True))
    return api_ok(item)


@stock_bp.route("/items/<int:item_id>", methods=["DELETE"])
def delete_item(item_id):
    return api_ok(services().stock.delete_item(current_principal(), item_id))


# ── Movements ────────────────────────────────────────────────────────────


@stock_bp.route("/items/<int:item_id>/transaction", methods=["POST"])
def record_transaction(item_id):
    result = services().stock.record_transaction(
        current_principal(), item_id, json_body(required=True),
    )
    return api_ok(result, status=201)


@stock_bp.route("/items/<int:item_id>/transactions", methods=["GET"])
def list_transactions(item_id):
    rows = services().stock.transactions(current_principal(), item_id)
    return api_ok(rows, count=len(rows))


@stock_bp.route("/alerts", methods=["GET"])
def alerts():
    rows = services().stock.alerts(current_principal())
    return api_ok(rows, count=len(rows))
