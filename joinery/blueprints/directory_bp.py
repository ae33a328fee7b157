"""
Directory blueprint — clients, suppliers and team members.

  GET    /api/<resource>         list (limit / offset)
  GET    /api/<resource>/<id>
  POST   /api/<resource>         clients get CL0001, team members EMP001
  PUT    /api/<resource>/<id>
  DELETE /api/<resource>/<id>

  GET    /api/clients/<id>/projects             production + pipeline rows
  GET    /api/team/<id>/holidays  POST same       ?year=YYYY
  DELETE /api/team/holidays/<id>
  GET    /api/team/<id>/wages     POST same       owner / admin only

All access goes through the query gateway, so role checks and tenant scope
are the same as for /api/db/query.
"""

from dataclasses import dataclass

from flask import Blueprint, request

from joinery.blueprints import json_body, page_args, services
from joinery.middleware.tenant_context import current_principal
from joinery.services.query_gateway import Operation
from joinery.utils.errors import api_ok

directory_bp = Blueprint("directory_bp", __name__, url_prefix="/api")


@dataclass(frozen=True)
class Resource:
    path: str
    table: str
    order_by: str
    sequence: str | None = None
    number_column: str | None = None


RESOURCES = (
    Resource("clients", "clients", "name", "client", "client_number"),
    Resource("suppliers", "suppliers", "name"),
    Resource("team", "team_members", "full_name", "employee", "employee_number"),
)


def _by_id(entity_id):
    return [{"type": "eq", "column": "id", "value": entity_id}]


def _register(res):
    def list_view():
        result = services().gateway.execute(
            Operation.SELECT, res.table, current_principal(),
            order={"column": res.order_by}, range=page_args(), count="exact",
        )
        return api_ok(result.data, count=result.count)

    def get_view(entity_id):
        result = services().gateway.execute(
            Operation.SELECT, res.table, current_principal(),
            filters=_by_id(entity_id), single=True,
        )
        return api_ok(result.data)

    def create_view():
        principal = current_principal()
        data = json_body(required=True)
        svc = services()

        def insert(number=None):
            row = dict(data, **({res.number_column: number} if number else {}))
            return svc.gateway.execute(
                Operation.INSERT, res.table, principal, data=row, single=True,
            ).data

        if res.sequence is None or data.get(res.number_column):
            return api_ok(insert(), status=201)
        return api_ok(
            svc.allocator.insert_with_number(principal.tenant_id, res.sequence, insert),
            status=201,
        )

    def update_view(entity_id):
        result = services().gateway.execute(
            Operation.UPDATE, res.table, current_principal(),
            filters=_by_id(entity_id), data=json_body(required=True), single=True,
        )
        return api_ok(result.data)

    def delete_view(entity_id):
        result = services().gateway.execute(
            Operation.DELETE, res.table, current_principal(),
            filters=_by_id(entity_id), single=True,
        )
        return api_ok(result.data)

    base = f"/{res.path}"
    item = f"/{res.path}/<int:entity_id>"
    directory_bp.add_url_rule(base, f"list_{res.path}", list_view, methods=["GET"])
    directory_bp.add_url_rule(base, f"create_{res.path}", create_view, methods=["POST"])
    directory_bp.add_url_rule(item, f"get_{res.path}", get_view, methods=["GET"])
    directory_bp.add_url_rule(item, f"update_{res.path}", update_view, methods=["PUT"])
    directory_bp.add_url_rule(item, f"delete_{res.path}", delete_view, methods=["DELETE"])


for _res in RESOURCES:
    _register(_res)


# ── Client projects ──────────────────────────────────────────────────────


@directory_bp.route("/clients/<int:client_id>/projects", methods=["GET"])
def client_projects(client_id):
    principal = current_principal()
    gateway = services().gateway
    client = gateway.execute(Operation.SELECT, "clients", principal,
                             filters=_by_id(client_id), single=True).data
    newest_first = [{"column": "created_at", "ascending": False},
                    {"column": "id", "ascending": False}]
    by_client = [{"type": "eq", "column": "client_id", "value": client["id"]}]
    return api_ok({
        "production_projects": gateway.execute(Operation.SELECT, "projects", principal,
                                               filters=by_client, order=newest_first).data,
        "pipeline_projects": gateway.execute(Operation.SELECT, "pipeline_projects", principal,
                                             filters=by_client, order=newest_first).data,
    })


# ── Team holidays and wages ──────────────────────────────────────────────


def _member_rows(table, member_id, order_by, extra_filters=()):
    principal = current_principal()
    gateway = services().gateway
    member = gateway.execute(Operation.SELECT, "team_members", principal,
                             filters=_by_id(member_id), single=True).data
    result = gateway.execute(
        Operation.SELECT, table, principal,
        filters=[{"type": "eq", "column": "team_member_id", "value": member["id"]},
                 *extra_filters],
        order=[{"column": order_by, "ascending": False}, {"column": "id", "ascending": False}],
    )
    return api_ok(result.data, count=len(result.data))


def _add_member_row(table, member_id):
    data = dict(json_body(required=True), team_member_id=member_id)
    result = services().gateway.execute(
        Operation.INSERT, table, current_principal(), data=data, single=True,
    )
    return api_ok(result.data, status=201)


@directory_bp.route("/team/<int:member_id>/holidays", methods=["GET"])
def list_holidays(member_id):
    """?year=YYYY keeps holidays that start and end inside that year."""
    year = request.args.get("year", type=int)
    within = ()
    if year:
        within = ({"type": "gte", "column": "start_date", "value": f"{year}-01-01"},
                  {"type": "lte", "column": "end_date", "value": f"{year}-12-31"})
    return _member_rows("employee_holidays", member_id, "start_date", within)


@directory_bp.route("/team/<int:member_id>/holidays", methods=["POST"])
def add_holiday(member_id):
    return _add_member_row("employee_holidays", member_id)


@directory_bp.route("/team/holidays/<int:holiday_id>", methods=["DELETE"])
def delete_holiday(holiday_id):
    result = services().gateway.execute(
        Operation.DELETE, "employee_holidays", current_principal(),
        filters=_by_id(holiday_id), single=True,
    )
    return api_ok(result.data)


@directory_bp.route("/team/<int:member_id>/wages", methods=["GET"])
def list_wages(member_id):
    return _member_rows("wages", member_id, "period_start")


@directory_bp.route("/team/<int:member_id>/wages", methods=["POST"])
def add_wage(member_id):
    return _add_member_row("wages", member_id)
