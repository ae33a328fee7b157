"""
Production projects blueprint — /api/projects.

Besides the shared CRUD routes:
  POST /api/projects/<id>/archive   { "archive_type": "completed" | "failed" }
"""

from flask import Blueprint

from joinery.blueprints import json_body, services
from joinery.blueprints.project_routes import lifecycle_response, register_project_routes
from joinery.middleware.tenant_context import current_principal

projects_bp = Blueprint("projects_bp", __name__, url_prefix="/api/projects")
register_project_routes(projects_bp, "production")


@projects_bp.route("/<int:project_id>/archive", methods=["POST"])
def archive_project(project_id):
    body = json_body()
    result = services().lifecycle.archive(
        current_principal(), project_id, body.get("archive_type") or "completed",
    )
    return lifecycle_response(result)
