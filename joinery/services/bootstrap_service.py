"""
Bootstrap service — everything the client needs right after login, in one call.

Each sub-load goes through the gateway with the caller's principal. A failed
sub-load is reported under ``errors`` as "<label>: <message>" and its slot
falls back to an empty value; the rest of the payload is still returned.
"""

import logging
from collections import defaultdict

from joinery.services.query_gateway import Operation

logger = logging.getLogger(__name__)

_ORG_FIELDS = "id,name,slug,plan,is_active,trial_ends_at,max_users"


class BootstrapService:
    def __init__(self, gateway):
        self.gateway = gateway

    def _load(self, errors, label, principal, table, default, **kwargs):
        result = self.gateway.safe_execute(Operation.SELECT, table, principal, **kwargs)
        if result.error:
            errors.append(f"{label}: {result.error['message']}")
            return default
        return result.data if result.data is not None else default

    def load(self, principal):
        errors = []
        by_id = {"type": "eq", "column": "id", "value": principal.user_id}

        profile = self._load(errors, "profile", principal, "user_profiles", None,
                             filters=[by_id], single=True)
        organization = self._load(errors, "organization", principal, "organizations", None,
                                  select=_ORG_FIELDS, single=True)
        team = self._load(errors, "team", principal, "team_members", [],
                          order={"column": "full_name"})
        projects = self._load(errors, "projects", principal, "projects", [],
                              order={"column": "project_number", "ascending": False})
        project_phases = self._load(errors, "projectPhases", principal, "project_phases", [],
                                    order={"column": "order_position"})
        pipeline = self._load(errors, "pipeline", principal, "pipeline_projects", [],
                              order={"column": "created_at", "ascending": False})
        pipeline_phases = self._load(errors, "pipelinePhases", principal, "pipeline_phases", [],
                                     order={"column": "order_position"})
        custom_phases = self._load(errors, "customPhases", principal, "custom_phases", [],
                                   order=[{"column": "phase_type"}, {"column": "phase_order"}])
        settings = self._load(errors, "settings", principal, "company_settings", {},
                              maybe_single=True)

        if errors:
            logger.warning(
                "Bootstrap partial load: %s", "; ".join(errors),
                extra={"tenant_id": principal.tenant_id, "user_id": principal.user_id,
                       "event_type": "bootstrap_partial"},
            )

        return {
            "user": _user(profile),
            "organization": organization,
            "team": team,
            "projects": projects,
            "projectPhases": _group(project_phases, "project_id"),
            "pipeline": pipeline,
            "pipelinePhases": _group(pipeline_phases, "pipeline_project_id"),
            "customPhases": custom_phases,
            "settings": settings,
        }, errors or None

    def minimal(self, principal):
        """Profile, organization and branding only — for quick permission checks."""
        errors = []
        profile = self._load(
            errors, "profile", principal, "user_profiles", None,
            select="id,email,full_name,role,avatar_url,tenant_id",
            filters=[{"type": "eq", "column": "id", "value": principal.user_id}], single=True,
        )
        organization = self._load(errors, "organization", principal, "organizations", None,
                                  select="id,name,slug,plan,is_active", single=True)
        settings = self._load(errors, "settings", principal, "company_settings", None,
                              select="company_name,logo_url", maybe_single=True)
        return {"user": profile, "organization": organization, "settings": settings}, errors or None


def _user(profile):
    if not profile:
        return None
    return {k: profile.get(k) for k in
            ("id", "email", "full_name", "role", "avatar_url", "tenant_id")}


def _group(rows, key):
    grouped = defaultdict(list)
    for row in rows:
        grouped[str(row[key])].append(row)
    return dict(grouped)
