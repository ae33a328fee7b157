"""
RPC service — named server-side functions behind a role allow-list.

    rpc.call("safe_upsert_project_phases",
             {"p_project_id": 12, "p_phases": [{"phase_key": "md", "status": "inProgress"}]},
             principal)

The caller's tenant is injected as ``p_tenant_id`` and overrides whatever
the caller sent. Unknown functions are Forbidden, not Invalid.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from joinery.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from joinery.services.query_gateway import Operation, normalize_role
from joinery.utils.errors import E

logger = logging.getLogger(__name__)

_PHASE_FIELDS = ("status", "order_position", "start_date", "end_date", "assigned_to", "notes")


@dataclass(frozen=True)
class RpcFunction:
    roles: frozenset
    handler: Callable


class RpcService:
    def __init__(self, gateway):
        self.gateway = gateway
        managers = frozenset({"owner", "admin", "manager"})
        self.functions = {
            "safe_upsert_project_phases": RpcFunction(
                managers, lambda p, params: self._upsert_phases(
                    p, params, "projects", "project_phases", "project_id", "p_project_id"),
            ),
            "safe_upsert_pipeline_phases": RpcFunction(
                managers, lambda p, params: self._upsert_phases(
                    p, params, "pipeline_projects", "pipeline_phases",
                    "pipeline_project_id", "p_pipeline_project_id"),
            ),
        }

    def call(self, function, params, principal):
        if not function:
            raise ValidationError("Function name required", code=E.VALIDATION_REQUIRED)
        fn = self.functions.get(function)
        if fn is None:
            raise ForbiddenError("Function not allowed")
        if normalize_role(principal.role) not in fn.roles:
            logger.warning(
                "RPC denied: %s tried to call %s", principal.role, function,
                extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id,
                       "event_type": "rpc_forbidden"},
            )
            raise ForbiddenError(f"Permission denied: {function} requires higher privileges")
        if params is not None and not isinstance(params, dict):
            raise ValidationError("params must be an object")
        params = {**(params or {}), "p_tenant_id": principal.tenant_id}
        return fn.handler(principal, params)

    # ── functions ────────────────────────────────────────────────────────

    def _upsert_phases(self, principal, params, owner_table, phase_table, owner_col, param):
        owner_id = params.get(param)
        phases = params.get("p_phases")
        if owner_id is None or not isinstance(phases, list) or not phases:
            raise ValidationError(
                f"{param} and a non-empty p_phases list are required",
                code=E.VALIDATION_REQUIRED,
            )
        try:
            self.gateway.execute(
                Operation.SELECT, owner_table, principal, select="id",
                filters=[{"type": "eq", "column": "id", "value": owner_id}],
                single=True, authorize=False,
            )
        except ValidationError:
            raise NotFoundError(resource=owner_table, resource_id=owner_id) from None

        rows = []
        for phase in phases:
            if not isinstance(phase, dict) or not phase.get("phase_key"):
                raise ValidationError("Every phase needs a phase_key", code=E.VALIDATION_REQUIRED)
            row = {k: phase[k] for k in _PHASE_FIELDS if k in phase}
            row.update({owner_col: owner_id, "phase_key": phase["phase_key"]})
            rows.append(row)

        return self.gateway.execute(
            Operation.UPSERT, phase_table, principal, data=rows,
            on_conflict=f"{owner_col},phase_key", authorize=False,
        ).data
