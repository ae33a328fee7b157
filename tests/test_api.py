"""
Tests: HTTP surface — envelope, auth middleware and the blueprints.

Categories:
    1. Health and middleware (auth, headers, envelope)
    2. Registration and session endpoints
    3. /api/db/query
    4. Project / pipeline endpoints
    5. Directory and stock endpoints
    6. RPC, bootstrap and storage endpoints
"""

import io
from datetime import date

import pytest

YEAR = date.today().year


@pytest.fixture()
def owner_headers(auth_headers, tenant_a):
    return auth_headers(tenant_a, "owner")


def _query(client, headers, **body):
    return client.post("/api/db/query", json=body, headers=headers)


# ── 1. Health & middleware ───────────────────────────────────────────────


class TestMiddleware:
    def test_health_is_public(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"
        assert client.get("/api/health/ready").get_json() == {"status": "ok"}

    def test_missing_token_is_401_envelope(self, client):
        res = client.post("/api/db/query", json={"operation": "select", "table": "projects"})
        assert res.status_code == 401
        assert res.get_json() == {
            "data": None,
            "error": {"message": "Missing authorization token", "code": "ERR_UNAUTHENTICATED"},
        }

    def test_garbage_token_is_401(self, client):
        res = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "ERR_UNAUTHENTICATED"

    def test_security_and_request_id_headers(self, client, owner_headers):
        res = client.get("/api/auth/me", headers=owner_headers)
        assert res.status_code == 200
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "DENY"
        assert res.headers.get("X-Request-ID")

    def test_unknown_route_uses_envelope(self, client, owner_headers):
        res = client.get("/api/nowhere", headers=owner_headers)
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "ERR_NOT_FOUND"

    def test_deactivated_org_is_403(self, client, auth_headers, store, tenant_a):
        from joinery.models.auth import Organization

        headers = auth_headers(tenant_a, "owner")
        store.update(Organization, [Organization.id == tenant_a], {"is_active": False})
        res = client.get("/api/auth/me", headers=headers)
        assert res.status_code == 403


# ── 2. Auth ──────────────────────────────────────────────────────────────


class TestAuthEndpoints:
    def test_register_then_login(self, client):
        res = client.post("/api/auth/register", json={
            "email": "jo@oakandash.co.uk", "password": "correct-horse-1",
            "company_name": "Oak & Ash", "full_name": "Jo Oak",
        })
        assert res.status_code == 201
        body = res.get_json()
        assert body["error"] is None
        assert body["data"]["organization"]["slug"] == "oak-ash"
        assert "warnings" not in body

        res = client.post("/api/auth/login", json={
            "email": "jo@oakandash.co.uk", "password": "correct-horse-1",
        })
        assert res.status_code == 200
        token = res.get_json()["data"]["session"]["access_token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.get_json()["data"]["user"]["full_name"] == "Jo Oak"

    def test_register_duplicate_slug_is_409(self, client):
        payload = {"email": "a@example.com", "password": "correct-horse-1",
                   "company_name": "Same Name"}
        assert client.post("/api/auth/register", json=payload).status_code == 201
        res = client.post("/api/auth/register", json={**payload, "email": "b@example.com"})
        assert res.status_code == 409
        assert res.get_json()["error"]["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_register_requires_body(self, client):
        res = client.post("/api/auth/register")
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "ERR_VALIDATION_REQUIRED"

    def test_bad_login_is_401(self, client):
        res = client.post("/api/auth/login", json={"email": "x@example.com", "password": "nopenope"})
        assert res.status_code == 401

    def test_update_me_and_change_password(self, client, owner_headers):
        res = client.put("/api/auth/me", json={"full_name": "Renamed"}, headers=owner_headers)
        assert res.get_json()["data"]["full_name"] == "Renamed"

        res = client.post("/api/auth/change-password", headers=owner_headers, json={
            "current_password": "correct-horse-1", "new_password": "correct-horse-2",
        })
        assert res.get_json()["data"] == {"changed": True}


# ── 3. Generic query ─────────────────────────────────────────────────────


class TestQueryEndpoint:
    def test_insert_pins_tenant_and_select_counts(self, client, owner_headers, tenant_a, tenant_b):
        res = _query(client, owner_headers, operation="insert", table="suppliers",
                     data={"name": "Timber Co", "tenant_id": tenant_b}, single=True)
        assert res.status_code == 200
        assert res.get_json()["data"]["tenant_id"] == tenant_a

        res = _query(client, owner_headers, operation="select", table="suppliers",
                     select="id,name", count="exact")
        body = res.get_json()
        assert body["count"] == 1
        assert body["data"] == [{"id": body["data"][0]["id"], "name": "Timber Co"}]

    def test_forbidden_table(self, client, owner_headers):
        res = _query(client, owner_headers, operation="select", table="auth_identities")
        assert res.status_code == 403
        assert res.get_json()["error"] == {"message": "Access to this table is not allowed",
                                           "code": "ERR_FORBIDDEN"}

    def test_worker_cannot_delete(self, client, auth_headers, tenant_a):
        headers = auth_headers(tenant_a, "worker")
        res = _query(client, headers, operation="delete", table="clients",
                     filters=[{"type": "eq", "column": "id", "value": 1}])
        assert res.status_code == 403

    def test_maybe_single_returns_null(self, client, owner_headers):
        res = _query(client, owner_headers, operation="select", table="clients",
                     filters=[{"type": "eq", "column": "id", "value": 999}], maybeSingle=True)
        assert res.status_code == 200
        assert res.get_json()["data"] is None

    def test_single_missing_is_404(self, client, owner_headers):
        res = _query(client, owner_headers, operation="select", table="clients",
                     filters=[{"type": "eq", "column": "id", "value": 999}], single=True)
        assert res.status_code == 404

    def test_unknown_filter_type_is_400(self, client, owner_headers):
        res = _query(client, owner_headers, operation="select", table="clients",
                     filters=[{"type": "regex", "column": "name", "value": ".*"}])
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "ERR_VALIDATION_INVALID"

    def test_body_must_be_object(self, client, owner_headers):
        res = client.post("/api/db/query", json=[1, 2], headers=owner_headers)
        assert res.status_code == 400


# ── 4. Projects & pipeline ───────────────────────────────────────────────


class TestProjectEndpoints:
    def test_create_get_update_list(self, client, owner_headers):
        res = client.post("/api/projects", json={"name": "Staircase"}, headers=owner_headers)
        assert res.status_code == 201
        project = res.get_json()["data"]
        assert project["project_number"] == f"PR001/{YEAR}"
        assert len(project["phases"]) == 10

        res = client.get(f"/api/projects/{project['id']}", headers=owner_headers)
        assert [p["phase_key"] for p in res.get_json()["data"]["phases"]][0] == "siteSurvey"

        res = client.put(f"/api/projects/{project['id']}", json={"status": "on_hold"},
                         headers=owner_headers)
        assert res.get_json()["data"]["status"] == "on_hold"

        res = client.get("/api/projects?status=on_hold", headers=owner_headers)
        assert res.get_json()["count"] == 1

    def test_update_phase(self, client, owner_headers):
        project = client.post("/api/projects", json={}, headers=owner_headers).get_json()["data"]
        res = client.put(f"/api/projects/{project['id']}/phase/md",
                         json={"status": "inProgress"}, headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["status"] == "inProgress"

    def test_convert_and_archive(self, client, owner_headers):
        pipeline = client.post("/api/pipeline", json={"name": "Sash"},
                               headers=owner_headers).get_json()["data"]
        assert pipeline["project_number"] == f"PL001/{YEAR}"

        res = client.post(f"/api/pipeline/{pipeline['id']}/convert", headers=owner_headers)
        assert res.status_code == 201
        project = res.get_json()["data"]
        assert project["converted_from_pipeline"] is True

        assert client.get(f"/api/pipeline/{pipeline['id']}", headers=owner_headers).status_code == 404

        res = client.post(f"/api/projects/{project['id']}/archive",
                          json={"archive_type": "failed"}, headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["archive_type"] == "failed"
        assert client.get(f"/api/projects/{project['id']}", headers=owner_headers).status_code == 404

    def test_project_without_templates_has_no_phases(self, client, owner_headers, store, tenant_a):
        from joinery.models.project import CustomPhase

        store.delete(CustomPhase, [CustomPhase.tenant_id == tenant_a])
        res = client.post("/api/projects", json={}, headers=owner_headers)
        assert res.status_code == 201
        assert res.get_json()["data"]["phases"] == []

    def test_delete_requires_admin(self, client, auth_headers, owner_headers, tenant_a):
        project = client.post("/api/projects", json={}, headers=owner_headers).get_json()["data"]
        manager = auth_headers(tenant_a, "manager")
        assert client.delete(f"/api/projects/{project['id']}", headers=manager).status_code == 403

        res = client.delete(f"/api/projects/{project['id']}", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["deleted"]["projects"] == 1

    def test_other_tenant_gets_404(self, client, auth_headers, owner_headers, tenant_b):
        project = client.post("/api/projects", json={}, headers=owner_headers).get_json()["data"]
        other = auth_headers(tenant_b, "owner")
        assert client.get(f"/api/projects/{project['id']}", headers=other).status_code == 404
        assert client.delete(f"/api/projects/{project['id']}", headers=other).status_code == 404


# ── 5. Directory ─────────────────────────────────────────────────────────


class TestDirectoryEndpoints:
    def test_clients_are_numbered(self, client, owner_headers):
        first = client.post("/api/clients", json={"name": "Ann"}, headers=owner_headers)
        second = client.post("/api/clients", json={"name": "Bob"}, headers=owner_headers)
        assert first.status_code == 201
        assert first.get_json()["data"]["client_number"] == "CL0001"
        assert second.get_json()["data"]["client_number"] == "CL0002"

        res = client.get("/api/clients", headers=owner_headers)
        assert [c["name"] for c in res.get_json()["data"]] == ["Ann", "Bob"]
        assert res.get_json()["count"] == 2

    def test_supplied_number_is_kept(self, client, owner_headers):
        res = client.post("/api/team", json={"full_name": "Cat", "employee_number": "EMP042"},
                          headers=owner_headers)
        assert res.get_json()["data"]["employee_number"] == "EMP042"
        res = client.post("/api/team", json={"full_name": "Dan"}, headers=owner_headers)
        assert res.get_json()["data"]["employee_number"] == "EMP043"

    def test_suppliers_crud(self, client, owner_headers):
        created = client.post("/api/suppliers", json={"name": "Glass Ltd"},
                              headers=owner_headers).get_json()["data"]
        url = f"/api/suppliers/{created['id']}"
        assert client.put(url, json={"name": "Glass plc"},
                          headers=owner_headers).get_json()["data"]["name"] == "Glass plc"
        assert client.delete(url, headers=owner_headers).status_code == 200
        assert client.get(url, headers=owner_headers).status_code == 404

    def test_client_projects(self, client, owner_headers, auth_headers, tenant_b):
        customer = client.post("/api/clients", json={"name": "Ann"},
                               headers=owner_headers).get_json()["data"]
        client.post("/api/projects", json={"name": "Doors", "client_id": customer["id"]},
                    headers=owner_headers)
        client.post("/api/pipeline", json={"name": "Windows", "client_id": customer["id"]},
                    headers=owner_headers)
        client.post("/api/projects", json={"name": "Unrelated"}, headers=owner_headers)

        res = client.get(f"/api/clients/{customer['id']}/projects", headers=owner_headers)
        body = res.get_json()["data"]
        assert res.status_code == 200
        assert [p["name"] for p in body["production_projects"]] == ["Doors"]
        assert [p["name"] for p in body["pipeline_projects"]] == ["Windows"]

        other = auth_headers(tenant_b, "owner")
        assert client.get(f"/api/clients/{customer['id']}/projects",
                          headers=other).status_code == 404

    def test_team_holidays(self, client, owner_headers):
        member = client.post("/api/team", json={"full_name": "Eve"},
                             headers=owner_headers).get_json()["data"]
        url = f"/api/team/{member['id']}/holidays"
        first = client.post(url, json={"start_date": f"{YEAR}-03-02", "end_date": f"{YEAR}-03-06",
                                       "days": 5}, headers=owner_headers)
        assert first.status_code == 201
        client.post(url, json={"start_date": f"{YEAR - 1}-08-01", "end_date": f"{YEAR - 1}-08-02"},
                    headers=owner_headers)

        assert len(client.get(url, headers=owner_headers).get_json()["data"]) == 2
        this_year = client.get(f"{url}?year={YEAR}", headers=owner_headers).get_json()["data"]
        assert [h["start_date"] for h in this_year] == [f"{YEAR}-03-02"]

        holiday_id = first.get_json()["data"]["id"]
        assert client.delete(f"/api/team/holidays/{holiday_id}",
                             headers=owner_headers).status_code == 200
        assert len(client.get(url, headers=owner_headers).get_json()["data"]) == 1

    def test_wages_need_owner_or_admin(self, client, owner_headers, auth_headers, tenant_a):
        member = client.post("/api/team", json={"full_name": "Fay"},
                             headers=owner_headers).get_json()["data"]
        url = f"/api/team/{member['id']}/wages"
        res = client.post(url, json={"period_start": f"{YEAR}-01-01", "gross_amount": 2400},
                          headers=owner_headers)
        assert res.status_code == 201
        assert res.get_json()["data"]["team_member_id"] == member["id"]
        assert client.get(url, headers=owner_headers).get_json()["count"] == 1

        manager = auth_headers(tenant_a, "manager")
        assert client.get(url, headers=manager).status_code == 403
        assert client.post(url, json={"period_start": f"{YEAR}-02-01", "gross_amount": 1},
                           headers=manager).status_code == 403
        assert _query(client, manager, operation="select", table="wages").status_code == 403


class TestStockEndpoints:
    def test_item_transaction_flow(self, client, owner_headers):
        category = client.post("/api/stock/categories", json={"name": "Timber"},
                               headers=owner_headers).get_json()["data"]
        res = client.post("/api/stock/items", headers=owner_headers, json={
            "name": "Oak", "category_id": category["id"],
            "current_quantity": 6, "min_quantity": 5,
        })
        assert res.status_code == 201
        item = res.get_json()["data"]
        assert item["item_number"] == "STK00001"

        url = f"/api/stock/items/{item['id']}"
        moved = client.post(f"{url}/transaction", json={"type": "out", "quantity": 2},
                            headers=owner_headers)
        assert moved.status_code == 201
        assert moved.get_json()["data"]["new_quantity"] == 4

        short = client.post(f"{url}/transaction", json={"type": "out", "quantity": 5},
                            headers=owner_headers)
        assert short.status_code == 400
        assert short.get_json()["error"]["message"] == "Insufficient stock"

        detail = client.get(url, headers=owner_headers).get_json()["data"]
        assert detail["current_quantity"] == 4
        assert detail["category"]["name"] == "Timber"
        history = client.get(f"{url}/transactions", headers=owner_headers).get_json()
        assert history["count"] == 1

        alerts = client.get("/api/stock/alerts", headers=owner_headers).get_json()["data"]
        assert [a["id"] for a in alerts] == [item["id"]]
        low = client.get("/api/stock/items?low_stock=true", headers=owner_headers).get_json()
        assert low["count"] == 1

        assert client.put(url, json={"current_quantity": 99},
                          headers=owner_headers).status_code == 400
        assert client.delete(f"/api/stock/categories/{category['id']}",
                             headers=owner_headers).status_code == 409
        assert client.delete(url, headers=owner_headers).status_code == 200
        assert client.get(url, headers=owner_headers).status_code == 404

    def test_viewer_cannot_move_stock(self, client, owner_headers, auth_headers, tenant_a):
        item = client.post("/api/stock/items", json={"name": "Pine", "current_quantity": 3},
                           headers=owner_headers).get_json()["data"]
        viewer = auth_headers(tenant_a, "viewer")
        res = client.post(f"/api/stock/items/{item['id']}/transaction",
                          json={"type": "out", "quantity": 1}, headers=viewer)
        assert res.status_code == 403
        assert client.get(f"/api/stock/items/{item['id']}",
                          headers=viewer).get_json()["data"]["current_quantity"] == 3


# ── 6. RPC, bootstrap, storage ───────────────────────────────────────────


class TestOtherEndpoints:
    def test_rpc_call(self, client, owner_headers):
        project = client.post("/api/projects", json={}, headers=owner_headers).get_json()["data"]
        res = client.post("/api/rpc/call", headers=owner_headers, json={
            "functionName": "safe_upsert_project_phases",
            "params": {"p_project_id": project["id"],
                       "p_phases": [{"phase_key": "qc", "status": "completed"}]},
        })
        assert res.status_code == 200
        assert res.get_json()["data"][0]["status"] == "completed"

    def test_rpc_unknown_function(self, client, owner_headers):
        res = client.post("/api/rpc/call", json={"functionName": "exec_sql"}, headers=owner_headers)
        assert res.status_code == 403

    def test_bootstrap(self, client, owner_headers):
        res = client.get("/api/bootstrap", headers=owner_headers)
        body = res.get_json()
        assert res.status_code == 200
        assert body["errors"] is None
        assert body["data"]["organization"]["slug"] == "alpha-joinery"
        assert client.get("/api/bootstrap/minimal", headers=owner_headers).status_code == 200

    def test_storage_round_trip(self, client, owner_headers, tenant_a):
        res = client.post(
            "/api/storage/upload", headers=owner_headers,
            data={"bucket": "project-documents", "path": "3/plan.pdf",
                  "file": (io.BytesIO(b"%PDF plan"), "plan.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 201
        path = res.get_json()["data"]["path"]
        assert path == f"{tenant_a}/3/plan.pdf"

        res = client.get("/api/storage/download", headers=owner_headers,
                         query_string={"bucket": "project-documents", "path": path})
        assert res.data == b"%PDF plan"
        assert res.mimetype == "application/pdf"

        signed = client.post("/api/storage/signed-url", headers=owner_headers,
                             json={"bucket": "project-documents", "path": path}).get_json()["data"]
        assert client.get(signed["signedUrl"]).data == b"%PDF plan"

        usage = client.get("/api/storage/usage", headers=owner_headers).get_json()["data"]
        assert usage["plan"] == "trial"

        res = client.post("/api/storage/remove", headers=owner_headers,
                          json={"bucket": "project-documents", "paths": ["3/plan.pdf"]})
        assert res.get_json()["data"]["removed"] == [path]

    def test_storage_traversal_is_403(self, client, owner_headers):
        res = client.get("/api/storage/download", headers=owner_headers,
                         query_string={"bucket": "project-documents", "path": "../1/x.pdf"})
        assert res.status_code == 403

    def test_signed_link_tampered(self, client):
        assert client.get("/api/storage/signed/not.a.token").status_code == 403
