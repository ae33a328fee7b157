"""
Tests: post-login bootstrap payload.
"""

import pytest

from joinery.core.exceptions import UpstreamError


@pytest.fixture()
def bootstrap(services):
    return services.bootstrap


@pytest.fixture()
def owner(principal, tenant_a):
    return principal(tenant_a, "owner")


def test_full_payload(bootstrap, services, owner, seed, tenant_a, tenant_b):
    lifecycle = services.lifecycle
    project = lifecycle.create(owner, "production", {"name": "Doors"}).data
    pipeline = lifecycle.create(owner, "pipeline", {"name": "Windows"}).data
    seed("team_members", tenant_a, {"employee_number": "EMP001", "full_name": "Zed"},
         {"employee_number": "EMP002", "full_name": "Amy"})
    seed("team_members", tenant_b, {"employee_number": "EMP001", "full_name": "Other"})

    data, errors = bootstrap.load(owner)

    assert errors is None
    assert data["user"]["id"] == owner.user_id
    assert data["user"]["role"] == "owner"
    assert data["organization"]["id"] == tenant_a
    assert data["organization"]["slug"] == "alpha-joinery"
    assert [m["full_name"] for m in data["team"]] == ["Amy", "Zed"]
    assert [p["id"] for p in data["projects"]] == [project["id"]]
    assert [p["id"] for p in data["pipeline"]] == [pipeline["id"]]
    assert len(data["projectPhases"][str(project["id"])]) == 10
    assert len(data["pipelinePhases"][str(pipeline["id"])]) == 3
    assert len(data["customPhases"]) == 13
    assert data["settings"] == {}


def test_partial_failure_reports_errors(bootstrap, services, owner, monkeypatch):
    original = services.gateway.execute

    def execute(op, table, principal, **kwargs):
        if table == "team_members":
            raise UpstreamError("Store read failed on team_members")
        return original(op, table, principal, **kwargs)

    monkeypatch.setattr(services.gateway, "execute", execute)

    data, errors = bootstrap.load(owner)

    assert errors == ["team: Store read failed on team_members"]
    assert data["team"] == []
    assert data["organization"]["id"] == owner.tenant_id


def test_minimal(bootstrap, owner, seed, tenant_a):
    seed("company_settings", tenant_a, {"company_name": "Alpha Joinery", "logo_url": "logo.png"})
    data, errors = bootstrap.minimal(owner)
    assert errors is None
    assert set(data["user"]) == {"id", "email", "full_name", "role", "avatar_url", "tenant_id"}
    assert data["organization"]["plan"] == "trial"
    assert data["settings"] == {"company_name": "Alpha Joinery", "logo_url": "logo.png"}
