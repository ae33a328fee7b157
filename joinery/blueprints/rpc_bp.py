"""
RPC endpoint — POST /api/rpc/call  { "functionName": "...", "params": {...} }
"""

from flask import Blueprint

from joinery.blueprints import json_body, services
from joinery.middleware.tenant_context import current_principal
from joinery.utils.errors import api_ok

rpc_bp = Blueprint("rpc_bp", __name__, url_prefix="/api/rpc")


@rpc_bp.route("/call", methods=["POST"])
def call():
    body = json_body(required=True)
    data = services().rpc.call(
        body.get("functionName") or body.get("function"),
        body.get("params"),
        current_principal(),
    )
    return api_ok(data)
