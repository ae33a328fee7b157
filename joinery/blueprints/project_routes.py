"""
Routes shared by the production (/api/projects) and pipeline (/api/pipeline)
blueprints. Reads and plain updates go through the query gateway; create and
delete go through the lifecycle orchestrator.

  GET    /                      list (limit / offset / status)
  GET    /<id>                  one project plus its phases
  POST   /                      create (numbered, phases scaffolded)
  PUT    /<id>                  update
  DELETE /<id>                  delete with dependents
  PUT    /<id>/phase/<key>      update one phase
"""

from flask import request

from joinery.blueprints import json_body, page_args, services
from joinery.middleware.tenant_context import current_principal
from joinery.services.lifecycle import KINDS
from joinery.services.query_gateway import Operation
from joinery.utils.errors import api_ok


def _eq(column, value):
    return {"type": "eq", "column": column, "value": value}


def lifecycle_response(result, status=200):
    return api_ok(result.data, status=status, warnings=[w.to_dict() for w in result.warnings])


def register_project_routes(bp, kind):
    meta = KINDS[kind]

    @bp.route("", methods=["GET"])
    def list_projects():
        filters = []
        if request.args.get("status"):
            filters.append(_eq("status", request.args["status"]))
        result = services().gateway.execute(
            Operation.SELECT, meta.table, current_principal(),
            filters=filters,
            order={"column": "created_at", "ascending": False},
            range=page_args(),
            count="exact",
        )
        return api_ok(result.data, count=result.count)

    @bp.route("/<int:project_id>", methods=["GET"])
    def get_project(project_id):
        principal = current_principal()
        gateway = services().gateway
        project = gateway.execute(
            Operation.SELECT, meta.table, principal,
            filters=[_eq("id", project_id)], single=True,
        ).data
        phases = gateway.execute(
            Operation.SELECT, meta.phase_table, principal,
            filters=[_eq(meta.phase_owner, project_id)],
            order={"column": "order_position"},
        ).data
        return api_ok({**project, "phases": phases})

    @bp.route("", methods=["POST"])
    def create_project():
        result = services().lifecycle.create(current_principal(), kind, json_body(required=True))
        return lifecycle_response(result, status=201)

    @bp.route("/<int:project_id>", methods=["PUT"])
    def update_project(project_id):
        data = json_body(required=True)
        result = services().gateway.execute(
            Operation.UPDATE, meta.table, current_principal(),
            filters=[_eq("id", project_id)], data=data, single=True,
        )
        return api_ok(result.data)

    @bp.route("/<int:project_id>", methods=["DELETE"])
    def delete_project(project_id):
        return lifecycle_response(services().lifecycle.delete(current_principal(), kind, project_id))

    @bp.route("/<int:project_id>/phase/<phase_key>", methods=["PUT"])
    def update_phase(project_id, phase_key):
        data = json_body(required=True)
        result = services().gateway.execute(
            Operation.UPDATE, meta.phase_table, current_principal(),
            filters=[_eq(meta.phase_owner, project_id), _eq("phase_key", phase_key)],
            data={k: v for k, v in data.items() if k not in (meta.phase_owner, "phase_key")},
            single=True,
        )
        return api_ok(result.data)
