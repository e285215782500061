import json
import os
import uuid

from sqlmodel import select

from conftest import auth_headers
from core.config import UPLOAD_DIR
from models.assignment import Assignment, AssignmentStatus
from models.issue import IssueCategory, IssueStatus


def test_create_issue_keeps_address_and_tags(client, resident):
    response = client.post(
        "/api/issues/",
        data={
            "title": "Broken street light",
            "description": "Light near gate 2 does not turn on",
            "category": "electricity",
            "priority": "high",
            "address": json.dumps({"blockNumber": "A", "floorNumber": "G", "area": "Gate 2"}),
            "tags": "light, night",
            "longitude": "77.59",
            "latitude": "12.97",
        },
        headers=auth_headers(resident),
    )

    assert response.status_code == 201
    issue = response.json()["data"]
    assert issue["status"] == "new"
    assert issue["priority"] == "high"
    assert issue["reportedBy"] == str(resident.id)
    assert issue["address"] == {"blockNumber": "A", "floorNumber": "G", "area": "Gate 2"}
    assert issue["tags"] == ["light", "night"]
    assert issue["isOverdue"] is False

    detail = client.get(f"/api/issues/{issue['id']}", headers=auth_headers(resident))
    assert detail.json()["data"]["issue"]["address"]["area"] == "Gate 2"


def test_create_issue_with_media(client, resident):
    response = client.post(
        "/api/issues/",
        data={"title": "Ceiling crack", "description": "Crack above the lobby", "category": "maintenance"},
        files=[("media", ("crack.png", b"\x89PNG fake", "image/png"))],
        headers=auth_headers(resident),
    )

    assert response.status_code == 201
    images = response.json()["data"]["images"]
    assert len(images) == 1
    assert images[0]["url"].startswith("/uploads/issues/")
    assert os.path.isfile(os.path.join(UPLOAD_DIR, "issues", os.path.basename(images[0]["url"])))


def test_create_issue_rejects_non_media_files(client, resident):
    response = client.post(
        "/api/issues/",
        data={"title": "Noise", "description": "Loud noise at night", "category": "noise"},
        files=[("media", ("notes.txt", b"hello", "text/plain"))],
        headers=auth_headers(resident),
    )
    assert response.status_code == 400


def test_create_issue_validation(client, resident):
    response = client.post(
        "/api/issues/",
        data={"title": "x" * 101, "description": "Something", "category": "not-a-category"},
        headers=auth_headers(resident),
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
    message = response.json()["message"]
    assert message.startswith("title: ")
    assert "category: " in message


def test_missing_issue_is_404_before_permission_check(client, resident):
    headers = auth_headers(resident)
    assert client.get(f"/api/issues/{uuid.uuid4()}", headers=headers).status_code == 404

    response = client.get("/api/issues/not-a-valid-id", headers=headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Issue not found"


def test_resident_cannot_read_someone_elses_issue(client, make_issue, resident, other_resident):
    issue = make_issue(other_resident)
    response = client.get(f"/api/issues/{issue.id}", headers=auth_headers(resident))
    assert response.status_code == 403


def test_resident_list_only_shows_own_issues(client, make_issue, resident, other_resident, committee):
    make_issue(resident, title="Mine")
    make_issue(other_resident, title="Theirs")

    mine = client.get("/api/issues/", headers=auth_headers(resident)).json()["data"]
    assert [issue["title"] for issue in mine["issues"]] == ["Mine"]
    assert mine["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    everything = client.get("/api/issues/", headers=auth_headers(committee)).json()["data"]
    assert everything["pagination"]["total"] == 2


def test_technician_cannot_use_issue_list(client, technician):
    assert client.get("/api/issues/", headers=auth_headers(technician)).status_code == 403
    assert client.get("/api/issues/admin/all", headers=auth_headers(technician)).status_code == 200


def test_list_filters_and_search(client, make_issue, committee, resident):
    make_issue(resident, title="Leaking tap", category=IssueCategory.water)
    make_issue(resident, title="Lift stuck", category=IssueCategory.elevator)

    headers = auth_headers(committee)
    by_category = client.get("/api/issues/admin/all?category=elevator", headers=headers).json()["data"]
    assert [issue["title"] for issue in by_category["issues"]] == ["Lift stuck"]

    by_search = client.get("/api/issues/admin/all?search=tap", headers=headers).json()["data"]
    assert [issue["title"] for issue in by_search["issues"]] == ["Leaking tap"]


def test_resident_updates_own_new_issue_only(client, session, make_issue, resident):
    issue = make_issue(resident)
    headers = auth_headers(resident)

    response = client.put(f"/api/issues/{issue.id}", json={"title": "Updated title"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Updated title"

    response = client.put(f"/api/issues/{issue.id}", json={"internalNotes": "secret"}, headers=headers)
    assert response.status_code == 403

    issue.status = IssueStatus.assigned
    session.add(issue)
    session.commit()
    response = client.put(f"/api/issues/{issue.id}", json={"title": "Too late"}, headers=headers)
    assert response.status_code == 403


def test_update_rejects_null_for_required_fields(client, session, make_issue, resident):
    issue = make_issue(resident, title="Original title")
    headers = auth_headers(resident)

    for field in ("title", "description", "category", "priority", "cost"):
        response = client.put(f"/api/issues/{issue.id}", json={field: None}, headers=headers)
        assert response.status_code == 400, field
        assert field in response.json()["message"]

    session.refresh(issue)
    assert issue.title == "Original title"

    cleared = client.put(f"/api/issues/{issue.id}", json={"customCategory": None}, headers=headers)
    assert cleared.status_code == 200


def test_update_cannot_change_reporter_or_status(client, make_issue, resident, other_resident, committee):
    issue = make_issue(resident)
    response = client.put(
        f"/api/issues/{issue.id}",
        json={"reportedBy": str(other_resident.id), "status": "closed", "internalNotes": "Check valve"},
        headers=auth_headers(committee),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["reportedBy"] == str(resident.id)
    assert data["status"] == "new"
    assert data["internalNotes"] == "Check valve"


def test_status_jump_only_stamps_target(client, make_issue, resident, technician):
    issue = make_issue(resident)
    response = client.put(
        f"/api/issues/{issue.id}/status",
        json={"status": "resolved", "notes": "Fixed on first visit"},
        headers=auth_headers(technician),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "resolved"
    assert data["resolvedAt"] is not None
    assert data["assignedAt"] is None
    assert data["startedAt"] is None
    assert data["resolutionTime"] is not None


def test_assign_then_progress_then_resolve(client, session, make_issue, resident, committee, technician):
    issue = make_issue(resident)
    response = client.post(
        f"/api/issues/{issue.id}/assign",
        json={"technicianId": str(technician.id), "estimatedCompletionTime": 4, "isUrgent": True},
        headers=auth_headers(committee),
    )

    assert response.status_code == 200
    assignment = response.json()["data"]
    assert assignment["status"] == "pending"
    assert assignment["assignedTo"] == str(technician.id)
    assert assignment["isUrgent"] is True
    assert assignment["estimatedDuration"] == 240

    session.refresh(issue)
    assert issue.status == IssueStatus.assigned
    assert issue.assigned_to == technician.id
    assert issue.assigned_at is not None

    tech_headers = auth_headers(technician)
    client.put(f"/api/issues/{issue.id}/status", json={"status": "in_progress"}, headers=tech_headers)
    work = session.exec(select(Assignment).where(Assignment.issue_id == issue.id)).one()
    session.refresh(work)
    assert work.status == AssignmentStatus.in_progress
    assert work.actual_start_time is not None

    client.put(f"/api/issues/{issue.id}/status", json={"status": "resolved"}, headers=tech_headers)
    session.refresh(work)
    assert work.status == AssignmentStatus.completed
    assert work.actual_completion_time is not None

    detail = client.get(f"/api/issues/{issue.id}", headers=auth_headers(resident)).json()["data"]
    assert detail["issue"]["status"] == "resolved"
    assert [item["status"] for item in detail["assignments"]] == ["completed"]


def test_assign_rules(client, make_issue, resident, committee, technician, other_resident):
    issue = make_issue(resident)

    response = client.post(
        f"/api/issues/{issue.id}/assign",
        json={"technicianId": str(technician.id)},
        headers=auth_headers(technician),
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/issues/{issue.id}/assign",
        json={"technicianId": str(other_resident.id)},
        headers=auth_headers(committee),
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Technician not found"

    closed = make_issue(resident, status=IssueStatus.closed)
    response = client.post(
        f"/api/issues/{closed.id}/assign",
        json={"technicianId": str(technician.id)},
        headers=auth_headers(committee),
    )
    assert response.status_code == 400


def test_delete_issue_is_committee_only(client, session, make_issue, resident, committee, technician):
    issue = make_issue(resident)
    assert client.delete(f"/api/issues/{issue.id}", headers=auth_headers(resident)).status_code == 403
    assert client.delete(f"/api/issues/{issue.id}", headers=auth_headers(technician)).status_code == 403

    response = client.delete(f"/api/issues/{issue.id}", headers=auth_headers(committee))
    assert response.status_code == 200
    assert client.get(f"/api/issues/{issue.id}", headers=auth_headers(committee)).status_code == 404


def test_categories_and_analytics(client, make_issue, resident, committee):
    categories = client.get("/api/issues/categories").json()["data"]
    assert {"value": "water", "label": "Water"} in categories
    assert len(categories) == len(IssueCategory)

    make_issue(resident, category=IssueCategory.water)
    make_issue(resident, category=IssueCategory.water, status=IssueStatus.resolved)

    analytics = client.get("/api/issues/analytics?period=week", headers=auth_headers(committee)).json()["data"]
    assert analytics["totalIssues"] == 2
    assert analytics["resolvedIssues"] == 1
    assert analytics["resolutionRate"] == 50.0
    assert analytics["categoryDistribution"] == {"water": 2}

    bad = client.get("/api/issues/analytics?period=decade", headers=auth_headers(committee))
    assert bad.status_code == 400
    assert client.get("/api/issues/analytics", headers=auth_headers(resident)).status_code == 403


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["success"] is False
