"""
Defect API tests — CRUD, role enforcement, listing, comments and history.
"""

from datetime import date, timedelta

import pytest

from defect_tracker.models import db
from defect_tracker.models.defect import Defect


def _create_defect(client, headers, project_id, **overrides):
    payload = {"project_id": project_id, "title": "Cracked facade panel"}
    payload.update(overrides)
    res = client.post("/api/v1/defects", json=payload, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestDefectCRUD:
    def test_engineer_creates(self, client, project, engineer, auth_headers):
        body = _create_defect(client, auth_headers(engineer), project.id, priority="critical")
        assert body["status"] == "new"
        assert body["priority"] == "critical"
        assert body["reporter"]["username"] == "erik"
        assert body["project"]["id"] == project.id

    def test_observer_cannot_create(self, client, project, observer, auth_headers):
        res = client.post("/api/v1/defects", json={"project_id": project.id, "title": "Crack"},
                          headers=auth_headers(observer))
        assert res.status_code == 403
        assert Defect.query.count() == 0

    def test_missing_title(self, client, project, engineer, auth_headers):
        res = client.post("/api/v1/defects", json={"project_id": project.id},
                          headers=auth_headers(engineer))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_non_object_body(self, client, engineer, auth_headers):
        res = client.post("/api/v1/defects", json=["x"], headers=auth_headers(engineer))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"body": "invalid"}

    def test_description_must_be_text(self, client, project, engineer, auth_headers):
        h = auth_headers(engineer)
        res = client.post("/api/v1/defects", json={"project_id": project.id, "title": "Loose cladding",
                                                   "description": {"a": 1}}, headers=h)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"description": "invalid"}
        assert Defect.query.count() == 0

        d = _create_defect(client, h, project.id)
        res = client.put(f"/api/v1/defects/{d['id']}", json={"description": ["a"]}, headers=h)
        assert res.status_code == 400

    def test_unknown_project(self, client, engineer, auth_headers):
        res = client.post("/api/v1/defects", json={"project_id": 404, "title": "Orphan defect"},
                          headers=auth_headers(engineer))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_detail(self, client, project, engineer, observer, auth_headers):
        d = _create_defect(client, auth_headers(engineer), project.id)
        client.post(f"/api/v1/defects/{d['id']}/comments", json={"content": "Seen on site"},
                    headers=auth_headers(observer))
        res = client.get(f"/api/v1/defects/{d['id']}", headers=auth_headers(observer))
        assert res.status_code == 200
        body = res.get_json()
        assert [c["content"] for c in body["comments"]] == ["Seen on site"]
        assert body["attachments"] == []
        assert body["history"][0]["action"] == "created"

    def test_detail_not_found(self, client, observer, auth_headers):
        res = client.get("/api/v1/defects/999", headers=auth_headers(observer))
        assert res.status_code == 404

    def test_update_transition(self, client, project, engineer, auth_headers):
        h = auth_headers(engineer)
        d = _create_defect(client, h, project.id)
        res = client.put(f"/api/v1/defects/{d['id']}", json={"status": "in_progress"}, headers=h)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "in_progress"
        assert body["allowed_transitions"] == ["cancelled", "new", "review"]

    def test_invalid_transition(self, client, project, engineer, auth_headers):
        h = auth_headers(engineer)
        d = _create_defect(client, h, project.id)
        res = client.put(f"/api/v1/defects/{d['id']}", json={"status": "closed"}, headers=h)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"]["allowed"] == ["cancelled", "in_progress"]
        assert db.session.get(Defect, d["id"]).status == "new"

    def test_observer_cannot_update(self, client, project, engineer, observer, auth_headers):
        d = _create_defect(client, auth_headers(engineer), project.id)
        res = client.put(f"/api/v1/defects/{d['id']}", json={"priority": "low"},
                         headers=auth_headers(observer))
        assert res.status_code == 403

    def test_only_manager_deletes(self, client, project, engineer, manager, auth_headers):
        d = _create_defect(client, auth_headers(engineer), project.id)
        res = client.delete(f"/api/v1/defects/{d['id']}", headers=auth_headers(engineer))
        assert res.status_code == 403
        res = client.delete(f"/api/v1/defects/{d['id']}", headers=auth_headers(manager))
        assert res.status_code == 200
        assert client.get(f"/api/v1/defects/{d['id']}",
                          headers=auth_headers(manager)).status_code == 404


class TestDefectListing:
    @pytest.fixture()
    def seeded(self, client, project, stage, engineer, other_engineer, auth_headers):
        h = auth_headers(engineer)
        _create_defect(client, h, project.id, title="Low drip", priority="low")
        _create_defect(client, h, project.id, title="Critical crack", priority="critical",
                       description="Structural, near column C4", stage_id=stage.id)
        _create_defect(client, h, project.id, title="Medium scuff", priority="medium",
                       assignee_id=other_engineer.id)
        return h

    def test_pagination(self, client, seeded):
        res = client.get("/api/v1/defects?page=2&limit=2", headers=seeded)
        body = res.get_json()
        assert body["pagination"] == {"total": 3, "page": 2, "limit": 2, "total_pages": 2}
        assert len(body["items"]) == 1

    def test_filters(self, client, seeded, stage, other_engineer):
        res = client.get(f"/api/v1/defects?stage_id={stage.id}", headers=seeded)
        assert [d["title"] for d in res.get_json()["items"]] == ["Critical crack"]
        res = client.get(f"/api/v1/defects?assignee_id={other_engineer.id}", headers=seeded)
        assert [d["title"] for d in res.get_json()["items"]] == ["Medium scuff"]
        res = client.get("/api/v1/defects?priority=low", headers=seeded)
        assert res.get_json()["pagination"]["total"] == 1

    def test_search_title_and_description(self, client, seeded):
        res = client.get("/api/v1/defects?search=COLUMN", headers=seeded)
        assert [d["title"] for d in res.get_json()["items"]] == ["Critical crack"]
        res = client.get("/api/v1/defects?search=scuff", headers=seeded)
        assert res.get_json()["pagination"]["total"] == 1

    def test_sort_by_priority_uses_severity_order(self, client, seeded):
        res = client.get("/api/v1/defects?sort_by=priority&sort_order=asc", headers=seeded)
        assert [d["priority"] for d in res.get_json()["items"]] == ["low", "medium", "critical"]

    def test_unknown_sort_falls_back(self, client, seeded):
        res = client.get("/api/v1/defects?sort_by=password_hash", headers=seeded)
        assert res.status_code == 200
        assert res.get_json()["pagination"]["total"] == 3

    def test_observer_can_list(self, client, seeded, observer, auth_headers):
        res = client.get("/api/v1/defects", headers=auth_headers(observer))
        assert res.status_code == 200

    def test_list_requires_auth(self, client):
        assert client.get("/api/v1/defects").status_code == 401


class TestCommentsAndHistory:
    def test_observer_comments(self, client, project, engineer, observer, auth_headers):
        d = _create_defect(client, auth_headers(engineer), project.id)
        res = client.post(f"/api/v1/defects/{d['id']}/comments", json={"content": "  ok  "},
                          headers=auth_headers(observer))
        assert res.status_code == 201
        assert res.get_json()["content"] == "ok"
        assert res.get_json()["user"]["username"] == "otto"

        res = client.get(f"/api/v1/defects/{d['id']}/comments", headers=auth_headers(observer))
        assert len(res.get_json()["items"]) == 1

    def test_empty_comment(self, client, project, engineer, auth_headers):
        d = _create_defect(client, auth_headers(engineer), project.id)
        res = client.post(f"/api/v1/defects/{d['id']}/comments", json={"content": "   "},
                          headers=auth_headers(engineer))
        assert res.status_code == 400

    def test_history_newest_first(self, client, project, engineer, auth_headers):
        h = auth_headers(engineer)
        d = _create_defect(client, h, project.id)
        due = (date.today() + timedelta(days=7)).isoformat()
        client.put(f"/api/v1/defects/{d['id']}", json={"status": "in_progress", "due_date": due},
                   headers=h)
        res = client.get(f"/api/v1/defects/{d['id']}/history", headers=h)
        items = res.get_json()["items"]
        assert len(items) == 3
        assert items[-1]["action"] == "created"
        assert {i["field"] for i in items[:2]} == {"status", "due_date"}
        assert all(i["user"]["username"] == "erik" for i in items)

    def test_history_missing_defect(self, client, engineer, auth_headers):
        res = client.get("/api/v1/defects/999/history", headers=auth_headers(engineer))
        assert res.status_code == 404
