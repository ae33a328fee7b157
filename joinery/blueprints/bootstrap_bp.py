"""
Bootstrap endpoints.

  GET /api/bootstrap          — everything needed after login
  GET /api/bootstrap/minimal  — profile, organization, branding
"""

from flask import Blueprint, jsonify

from joinery.blueprints import services
from joinery.middleware.tenant_context import current_principal

bootstrap_bp = Blueprint("bootstrap_bp", __name__, url_prefix="/api/bootstrap")


def _respond(data, errors):
    return jsonify({"data": data, "error": None, "errors": errors}), 200


@bootstrap_bp.route("", methods=["GET"])
def load():
    return _respond(*services().bootstrap.load(current_principal()))


@bootstrap_bp.route("/minimal", methods=["GET"])
def minimal():
    return _respond(*services().bootstrap.minimal(current_principal()))
