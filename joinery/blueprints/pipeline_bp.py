"""
Pipeline projects blueprint — /api/pipeline.

Besides the shared CRUD routes:
  POST /api/pipeline/<id>/convert   pipeline → production project
"""

from flask import Blueprint

from joinery.blueprints import services
from joinery.blueprints.project_routes import lifecycle_response, register_project_routes
from joinery.middleware.tenant_context import current_principal

pipeline_bp = Blueprint("pipeline_bp", __name__, url_prefix="/api/pipeline")
register_project_routes(pipeline_bp, "pipeline")


@pipeline_bp.route("/<int:pipeline_id>/convert", methods=["POST"])
def convert_pipeline(pipeline_id):
    result = services().lifecycle.convert(current_principal(), pipeline_id)
    return lifecycle_response(result, status=201)
