"""
Tests: projects, assignments and notifications HTTP API.

Covers:
    1. Bearer auth on /api/v1/* (health stays public)
    2. Project create / list / detail
    3. Assignment flow over HTTP
    4. Error mapping (422 / 403 / 404 / 409)
    5. Revenue endpoints
"""

import datetime

import jwt as pyjwt
import pytest


def _project_body(fabricator_id, **extra):
    body = {
        "name": "Steel Frame",
        "client_name": "Acme Construction",
        "fabricator_ids": [fabricator_id],
        "revenue": 500000,
        "budget": 100000,
    }
    body.update(extra)
    return body


class TestAuth:
    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_checks_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_missing_token(self, client):
        res = client.get("/api/v1/projects")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_garbage_token(self, client):
        res = client.get("/api/v1/projects", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_expired_token(self, client, app, supervisor):
        now = datetime.datetime.now(datetime.timezone.utc)
        token = pyjwt.encode(
            {"sub": str(supervisor.id), "type": "access", "iat": now - datetime.timedelta(hours=2),
             "exp": now - datetime.timedelta(hours=1)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        res = client.get("/api/v1/projects", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_token_for_unknown_user_forbidden(self, client, app):
        from ehub.services.jwt_service import generate_access_token

        res = client.get(
            "/api/v1/projects", headers={"Authorization": f"Bearer {generate_access_token(9999)}"},
        )
        assert res.status_code == 403

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})
        assert res.headers["X-Request-ID"] == "abc-123"


class TestProjectEndpoints:
    def test_create_and_fetch(self, client, supervisor, fabricator, auth_headers):
        res = client.post("/api/v1/projects", json=_project_body(fabricator.id), headers=auth_headers(supervisor))
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "assigned_to_fabricator"
        assert data["fabricator_ids"] == [fabricator.id]
        assert data["revenue"] == 500000.0

        res = client.get(f"/api/v1/projects/{data['id']}", headers=auth_headers(fabricator))
        assert res.status_code == 200
        assert res.get_json()["name"] == "Steel Frame"

    def test_create_validation_error(self, client, supervisor, auth_headers):
        res = client.post("/api/v1/projects", json={"name": ""}, headers=auth_headers(supervisor))
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "client_name" in body["details"]

    @pytest.mark.parametrize("field,value", [("revenue", 1e30), ("budget", "10000000000000")])
    def test_oversized_money_is_validation_error(self, client, supervisor, fabricator, auth_headers, field, value):
        body = _project_body(fabricator.id, **{field: value})
        res = client.post("/api/v1/projects", json=body, headers=auth_headers(supervisor))
        assert res.status_code == 422
        data = res.get_json()
        assert data["code"] == "ERR_VALIDATION_INVALID"
        assert data["details"] == {field: "out of range"}

    def test_non_object_body(self, client, supervisor, auth_headers):
        res = client.post("/api/v1/projects", json=[1, 2], headers=auth_headers(supervisor))
        assert res.status_code == 422

    def test_fabricator_cannot_create(self, client, fabricator, auth_headers):
        res = client.post("/api/v1/projects", json=_project_body(fabricator.id), headers=auth_headers(fabricator))
        assert res.status_code == 403

    def test_unknown_project(self, client, admin, auth_headers):
        res = client.get("/api/v1/projects/999", headers=auth_headers(admin))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_and_archived(self, client, project, supervisor, auth_headers):
        res = client.get("/api/v1/projects", headers=auth_headers(supervisor))
        assert res.get_json()["total"] == 1
        client.post(f"/api/v1/projects/{project.id}/complete", headers=auth_headers(supervisor))
        assert client.get("/api/v1/projects", headers=auth_headers(supervisor)).get_json()["total"] == 0
        res = client.get("/api/v1/projects?archived=true", headers=auth_headers(supervisor))
        assert [p["id"] for p in res.get_json()["items"]] == [project.id]

    def test_invalid_transition_is_conflict(self, client, project, admin, auth_headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/transitions",
            json={"status": "client_signoff"}, headers=auth_headers(admin),
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["current_status"] == "assigned_to_fabricator"


class TestAssignmentFlow:
    def test_invite_accept_over_http(self, client, manual_project, supervisor, fabricator, auth_headers):
        res = client.post(
            f"/api/v1/projects/{manual_project.id}/assignments",
            json={"fabricator_id": fabricator.id, "message": "Join us"},
            headers=auth_headers(supervisor),
        )
        assert res.status_code == 201
        data = res.get_json()
        assert data["project"]["status"] == "pending_assignment"
        assert len(data["tasks"]) == 2
        assignment_id = data["assignment"]["id"]

        res = client.get("/api/v1/assignments", headers=auth_headers(fabricator))
        assert [a["id"] for a in res.get_json()["items"]] == [assignment_id]

        res = client.post(
            f"/api/v1/assignments/{assignment_id}/accept",
            json={"response": "Happy to"}, headers=auth_headers(fabricator),
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["assignment"]["status"] == "accepted"
        assert body["project"]["status"] == "planning"

        res = client.post(f"/api/v1/assignments/{assignment_id}/decline", headers=auth_headers(fabricator))
        assert res.status_code == 409

    def test_duplicate_invite_conflict(self, client, project, supervisor, fabricator, auth_headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/assignments",
            json={"fabricator_id": fabricator.id}, headers=auth_headers(supervisor),
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_assignments_require_fabricator_role(self, client, supervisor, auth_headers):
        res = client.get("/api/v1/assignments", headers=auth_headers(supervisor))
        assert res.status_code == 403

    def test_work_log_over_http(self, client, project, fabricator, auth_headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/work-logs",
            json={"hours_worked": 3, "progress_percentage": 40, "description": "Assembly"},
            headers=auth_headers(fabricator),
        )
        assert res.status_code == 201
        assert res.get_json()["project"]["progress"] == 40

        res = client.get(f"/api/v1/projects/{project.id}/work-logs", headers=auth_headers(fabricator))
        assert res.get_json()["summary"]["total_hours"] == 3.0


class TestRevenueEndpoints:
    def test_over_allocation_details(self, client, project, supervisor, fabricator, auth_headers):
        res = client.put(
            f"/api/v1/projects/{project.id}/revenue",
            json={"allocations": {str(fabricator.id): 600000}},
            headers=auth_headers(supervisor),
        )
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_OVER_ALLOCATION"
        assert body["details"]["excess"] == 100000.0
        assert body["details"]["field"] == "revenue"

    def test_oversized_allocation_is_validation_error(self, client, project, supervisor, fabricator, auth_headers):
        res = client.put(
            f"/api/v1/projects/{project.id}/revenue",
            json={"allocations": {str(fabricator.id): "1e30"}},
            headers=auth_headers(supervisor),
        )
        assert res.status_code == 422
        assert res.get_json()["details"] == {f"allocations[{fabricator.id}]": "out of range"}

    def test_allocate_then_summary(self, client, project, supervisor, fabricator, auth_headers):
        res = client.put(
            f"/api/v1/projects/{project.id}/revenue",
            json={"allocations": [{"fabricator_id": fabricator.id, "amount": 500000}]},
            headers=auth_headers(supervisor),
        )
        assert res.status_code == 200
        assert res.get_json()["remaining_revenue"] == 0.0

        res = client.post(f"/api/v1/projects/{project.id}/revenue/clear", headers=auth_headers(supervisor))
        assert res.get_json()["allocated_revenue"] == 0.0

    def test_fabricator_cannot_view_revenue(self, client, project, fabricator, auth_headers):
        res = client.get(f"/api/v1/projects/{project.id}/revenue", headers=auth_headers(fabricator))
        assert res.status_code == 403


class TestDocumentationEndpoint:
    def test_attach_then_submit(self, client, project, fabricator, auth_headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/documentation",
            json={"attachments": [{"name": "as-built", "url": "https://files.ehub.test/as-built.pdf"}]},
            headers=auth_headers(fabricator),
        )
        assert res.status_code == 200
        assert [a["name"] for a in res.get_json()["attachments"]] == ["as-built"]

        res = client.post(
            f"/api/v1/projects/{project.id}/transitions",
            json={"status": "supervisor_review"}, headers=auth_headers(fabricator),
        )
        assert res.status_code == 200
        assert res.get_json()["status"] == "supervisor_review"

    def test_outsider_forbidden(self, client, project, second_fabricator, auth_headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/documentation",
            json={"documentation_url": "https://files.ehub.test/x.pdf"},
            headers=auth_headers(second_fabricator),
        )
        assert res.status_code == 403


class TestNotificationEndpoints:
    def test_inbox_and_read_all(self, client, manual_project, supervisor, fabricator, auth_headers):
        client.post(
            f"/api/v1/projects/{manual_project.id}/assignments",
            json={"fabricator_id": fabricator.id}, headers=auth_headers(supervisor),
        )
        res = client.get("/api/v1/notifications", headers=auth_headers(fabricator))
        body = res.get_json()
        assert body["total"] == 1
        assert body["unread"] == 1

        nid = body["items"][0]["id"]
        res = client.post(f"/api/v1/notifications/{nid}/read", headers=auth_headers(supervisor))
        assert res.status_code == 404

        res = client.post("/api/v1/notifications/read-all", headers=auth_headers(fabricator))
        assert res.get_json()["marked"] == 1
        res = client.get("/api/v1/notifications/unread-count", headers=auth_headers(fabricator))
        assert res.get_json()["unread"] == 0


@pytest.mark.parametrize("path", ["/api/v1/projects/1/complete", "/api/v1/assignments/1/accept"])
def test_write_routes_need_token(client, path):
    assert client.post(path).status_code == 401


def test_malformed_request_id_replaced(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "bad id with spaces"})
    assert res.headers["X-Request-ID"] != "bad id with spaces"
    assert len(res.headers["X-Request-ID"]) == 12
