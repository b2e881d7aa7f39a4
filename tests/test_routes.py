from io import BytesIO

import openpyxl
import pytest

from models import db
from tasks.export import XLSX_MIMETYPE

PASSWORD = "secret123"


@pytest.fixture
def task_id(client, world, auth):
    resp = client.post("/api/tasks", headers=auth(world.manager), json={
        "title": "Inventory",
        "assigned_to": world.alice.id,
        "start_date": "2024-01-10",
        "end_date": "2024-01-11",
        "subtasks": [
            {"date": "2024-01-10", "description": "shelves", "hours_spent": 2},
            {"date": "2024-01-11", "description": "backroom"},
        ],
    })
    assert resp.status_code == 201
    return resp.get_json()["task"]["id"]


def test_health(client):
    assert client.get("/api/health").get_json() == {"status": "healthy"}


def test_login(client, world):
    resp = client.post("/api/auth/login", json={"email": "ALICE@acme.com", "password": PASSWORD})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["token"]
    assert body["user"]["email"] == "alice@acme.com"
    assert "password" not in body["user"]


def test_login_rejects_bad_password(client, world):
    resp = client.post("/api/auth/login", json={"email": "alice@acme.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "message": "Invalid email or password"}


def test_login_requires_fields(client):
    resp = client.post("/api/auth/login", json={})
    body = resp.get_json()
    assert resp.status_code == 400
    assert body["success"] is False
    assert set(body["errors"]["missing_fields"]) == {"email", "password"}


def test_profile_requires_token(client, world, auth):
    assert client.get("/api/auth/profile").status_code == 401
    resp = client.get("/api/auth/profile", headers=auth(world.bob))
    assert resp.get_json()["user"]["id"] == world.bob.id


def test_inactive_user_token_rejected(client, world, auth):
    headers = auth(world.bob)
    world.bob.is_active = False
    db.session.commit()
    assert client.get("/api/auth/profile", headers=headers).status_code == 401


def test_staff_cannot_create_tasks(client, world, auth):
    resp = client.post("/api/tasks", headers=auth(world.alice), json={"title": "x"})
    assert resp.status_code == 403
    assert resp.get_json()["success"] is False


def test_create_and_fetch_task(client, world, auth, task_id):
    resp = client.get(f"/api/tasks/{task_id}", headers=auth(world.alice))
    task = resp.get_json()["task"]
    assert resp.status_code == 200
    assert [d["date"] for d in task["days"]] == ["2024-01-10", "2024-01-11"]
    assert task["status"] == "pending"
    assert task["assigned_to"]["id"] == world.alice.id


def test_other_staff_cannot_view_task(client, world, auth, task_id):
    assert client.get(f"/api/tasks/{task_id}", headers=auth(world.bob)).status_code == 403


def test_missing_task_is_json_404(client, world, auth):
    resp = client.get("/api/tasks/9999", headers=auth(world.admin))
    assert resp.status_code == 404
    assert resp.get_json() == {"success": False, "message": "Task not found"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_subtask_lifecycle(client, world, auth, task_id):
    headers = auth(world.alice)
    task = client.get(f"/api/tasks/{task_id}", headers=headers).get_json()["task"]
    first, second = [day["subtasks"][0]["id"] for day in task["days"]]

    resp = client.patch(f"/api/tasks/{task_id}/subtasks/{first}", headers=headers, json={"status": "completed"})
    assert resp.status_code == 200
    assert resp.get_json()["subtask"]["completed_at"] is not None
    assert resp.get_json()["task"]["progress"] == 50

    client.put(f"/api/tasks/{task_id}/subtasks/{second}", headers=headers, json={"status": "completed"})
    task = client.get(f"/api/tasks/{task_id}", headers=headers).get_json()["task"]
    assert (task["progress"], task["status"]) == (100, "completed")

    resp = client.post(f"/api/tasks/{task_id}/subtasks", headers=headers, json={
        "date": "2024-01-11", "description": "late find",
    })
    assert resp.status_code == 201
    assert resp.get_json()["task"]["status"] == "in-progress"

    resp = client.delete(f"/api/tasks/{task_id}/subtasks/{resp.get_json()['subtask']['id']}", headers=headers)
    assert resp.get_json()["task"]["status"] == "completed"


def test_subtask_validation_envelope(client, world, auth, task_id):
    resp = client.post(f"/api/tasks/{task_id}/subtasks", headers=auth(world.alice), json={
        "date": "2024-01-10", "description": "x", "status": "done",
    })
    body = resp.get_json()
    assert resp.status_code == 400
    assert body["success"] is False
    assert "status" in body["errors"]


def test_update_rejects_status_write(client, world, auth, task_id):
    resp = client.put(f"/api/tasks/{task_id}", headers=auth(world.manager), json={"status": "completed"})
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"status": "read-only"}


def test_list_tasks_paginates(client, world, auth, task_id):
    body = client.get("/api/tasks?limit=5", headers=auth(world.manager)).get_json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["tasks"][0]["id"] == task_id
    assert client.get("/api/tasks", headers=auth(world.carol)).get_json()["total"] == 0


def test_delete_task(client, world, auth, task_id):
    resp = client.delete(f"/api/tasks/{task_id}", headers=auth(world.manager))
    assert resp.get_json()["deleted_subtasks"] == 2
    assert client.get(f"/api/tasks/{task_id}", headers=auth(world.manager)).status_code == 404


def test_report_endpoint(client, world, auth, task_id):
    resp = client.get("/api/tasks/reports?month=1&year=2024", headers=auth(world.manager))
    report = resp.get_json()["report"]
    assert report["summary"]["total_tasks"] == 1
    assert len(report["details"][0]["days"]) == 2


def test_export_endpoint(client, world, auth, task_id):
    resp = client.get("/api/tasks/reports/export?month=1&year=2024", headers=auth(world.manager))
    assert resp.status_code == 200
    assert resp.mimetype == XLSX_MIMETYPE
    assert "tasks_report_1_2024.xlsx" in resp.headers["Content-Disposition"]

    ws = openpyxl.load_workbook(BytesIO(resp.data)).active
    assert ws.max_row == 2
    assert ws["B2"].value == "Inventory"


def test_dashboard_endpoint(client, world, auth, task_id):
    stats = client.get("/api/tasks/dashboard/stats", headers=auth(world.alice)).get_json()["stats"]
    assert stats["total_tasks"] == 1


def test_companies_scope(client, world, auth):
    admin_view = client.get("/api/companies", headers=auth(world.admin)).get_json()["companies"]
    assert {c["slug"] for c in admin_view} == {"acme", "globex"}

    manager_view = client.get("/api/companies", headers=auth(world.manager)).get_json()["companies"]
    assert [c["slug"] for c in manager_view] == ["acme"]
    assert client.get(f"/api/companies/{world.globex.id}", headers=auth(world.manager)).status_code == 403


def test_create_company(client, world, auth):
    resp = client.post("/api/companies", headers=auth(world.admin), json={"name": "Initech Labs"})
    assert resp.status_code == 201
    assert resp.get_json()["company"]["slug"] == "initech-labs"
    assert resp.get_json()["company"]["user_count"] == 0

    dup = client.post("/api/companies", headers=auth(world.admin), json={"name": "Acme"})
    assert dup.status_code == 409
    assert client.post("/api/companies", headers=auth(world.manager), json={"name": "X"}).status_code == 403


def test_wrong_type_fields_are_400(client, world, auth, task_id):
    resp = client.post("/api/tasks", headers=auth(world.manager), json={
        "title": 123, "assigned_to": world.alice.id,
        "start_date": "2024-01-10", "end_date": "2024-01-11",
    })
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"title": "must be a string"}

    headers = auth(world.alice)
    resp = client.post(f"/api/tasks/{task_id}/subtasks", headers=headers, json={"date": "2024-01-10", "description": 5})
    assert resp.status_code == 400
    assert resp.get_json()["errors"] == {"description": "must be a string"}

    resp = client.post(f"/api/tasks/{task_id}/subtasks", headers=headers, json={
        "date": "2024-01-10", "description": "x", "hours_spent": "nan",
    })
    assert resp.status_code == 400
    assert "hours_spent" in resp.get_json()["errors"]

    resp = client.post("/api/auth/login", json={"email": 1, "password": "x"})
    assert resp.status_code == 400


def test_non_object_body_is_400(client, world, auth):
    resp = client.post("/api/tasks", headers=auth(world.manager), json=["title"])
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_list_subtasks_endpoint(client, world, auth, task_id):
    resp = client.get(f"/api/tasks/{task_id}/subtasks", headers=auth(world.alice))
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["total"] == 2
    assert [s["date"] for s in body["subtasks"]] == ["2024-01-10", "2024-01-11"]
    assert client.get(f"/api/tasks/{task_id}/subtasks", headers=auth(world.carol)).status_code == 403


def test_export_filename_for_quarter(client, world, auth, task_id):
    resp = client.get("/api/tasks/reports/export?report_type=quarterly&quarter=1&year=2024", headers=auth(world.manager))
    assert resp.status_code == 200
    assert "tasks_report_Q1_2024.xlsx" in resp.headers["Content-Disposition"]


def test_saved_reports_endpoints(client, world, auth, task_id):
    resp = client.post(f"/api/tasks/reports/saved/{world.alice.id}?month=1&year=2024", headers=auth(world.manager))
    assert resp.status_code == 201
    saved = resp.get_json()["report"]
    assert saved["stats"]["total_tasks"] == 1
    assert saved["staff"]["id"] == world.alice.id

    body = client.get("/api/tasks/reports/saved", headers=auth(world.manager)).get_json()
    assert [r["id"] for r in body["reports"]] == [saved["id"]]
    assert client.get("/api/tasks/reports/saved", headers=auth(world.other_manager)).get_json()["total"] == 0
    assert client.get("/api/tasks/reports/saved", headers=auth(world.alice)).status_code == 403


def test_update_company(client, world, auth):
    resp = client.patch(f"/api/companies/{world.acme.id}", headers=auth(world.admin), json={
        "name": "Acme Corp", "slug": "Acme Corp", "status": "inactive",
    })
    company = resp.get_json()["company"]
    assert resp.status_code == 200
    assert (company["name"], company["slug"], company["status"]) == ("Acme Corp", "acme-corp", "inactive")

    dup = client.patch(f"/api/companies/{world.acme.id}", headers=auth(world.admin), json={"slug": "globex"})
    assert dup.status_code == 409
    bad = client.patch(f"/api/companies/{world.acme.id}", headers=auth(world.admin), json={"status": "closed"})
    assert bad.status_code == 400
    assert client.patch(f"/api/companies/{world.acme.id}", headers=auth(world.manager), json={"name": "x"}).status_code == 403
    assert client.patch("/api/companies/9999", headers=auth(world.admin), json={"name": "x"}).status_code == 404


def test_delete_company_with_tasks_is_refused(client, world, auth, task_id):
    resp = client.delete(f"/api/companies/{world.acme.id}", headers=auth(world.admin))
    assert resp.status_code == 422
    assert resp.get_json()["errors"] == {"tasks": 1}


def test_delete_company_detaches_members(client, world, auth):
    from models.company import Company
    from models.user import User

    globex_id, carol_id = world.globex.id, world.carol.id
    resp = client.delete(f"/api/companies/{globex_id}", headers=auth(world.admin))
    assert resp.status_code == 200
    assert resp.get_json()["detached_users"] == 2

    db.session.expire_all()
    assert db.session.get(Company, globex_id) is None
    assert db.session.get(User, carol_id).company_id is None
    assert client.delete(f"/api/companies/{world.acme.id}", headers=auth(world.manager)).status_code == 403
