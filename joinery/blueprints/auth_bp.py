"""
Auth Blueprint — tenant registration and session endpoints.

  POST /api/auth/register         — new organization + owner account
  POST /api/auth/login            — email + password → access token
  GET  /api/auth/me               — current profile and organization
  PUT  /api/auth/me               — update full_name / avatar_url
  POST /api/auth/change-password  — set a new password
"""

from flask import Blueprint

from joinery.blueprints import json_body, services
from joinery.middleware.tenant_context import current_principal
from joinery.utils.errors import api_ok

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email", "password", "company_name", "company_slug"?, "full_name"? }
    """
    data = json_body(required=True)
    result, warnings = services().account.register(
        email=data.get("email"),
        password=data.get("password"),
        company_name=data.get("company_name"),
        company_slug=data.get("company_slug"),
        owner_name=data.get("full_name"),
    )
    return api_ok(result, status=201, warnings=[w.to_dict() for w in warnings])


@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body(required=True)
    return api_ok(services().account.login(data.get("email"), data.get("password")))


@auth_bp.route("/me", methods=["GET"])
def me():
    return api_ok(services().account.me(current_principal()))


@auth_bp.route("/me", methods=["PUT"])
def update_me():
    return api_ok(services().account.update_me(current_principal(), json_body(required=True)))


@auth_bp.route("/change-password", methods=["POST"])
def change_password():
    data = json_body(required=True)
    services().account.change_password(
        current_principal(),
        data.get("new_password") or data.get("password"),
        current_password=data.get("current_password"),
    )
    return api_ok({"changed": True})
