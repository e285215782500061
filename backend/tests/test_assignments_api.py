from datetime import timedelta

import pytest

from conftest import auth_headers
from models.assignment import Assignment, AssignmentStatus
from models.issue import IssueStatus
from models.user import UserRole


@pytest.fixture
def make_assignment(session, make_issue, resident, committee):
    def _make(technician, status=AssignmentStatus.pending, issue_status=IssueStatus.assigned):
        issue = make_issue(resident, status=issue_status, assigned_to=technician.id, assigned_by=committee.id)
        assignment = Assignment(
            issue_id=issue.id,
            assigned_to=technician.id,
            assigned_by=committee.id,
            status=status,
        )
        session.add(assignment)
        session.commit()
        session.refresh(assignment)
        return assignment, issue

    return _make


def test_accept_then_start_twice_keeps_start_time(client, session, make_assignment, technician):
    assignment, issue = make_assignment(technician)
    headers = auth_headers(technician)

    accepted = client.post(f"/api/assignments/{assignment.id}/accept", headers=headers)
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "accepted"

    first = client.post(f"/api/assignments/{assignment.id}/start", headers=headers).json()["data"]
    second = client.post(f"/api/assignments/{assignment.id}/start", headers=headers).json()["data"]

    assert first["status"] == second["status"] == "in_progress"
    assert first["actualStartTime"] == second["actualStartTime"]

    session.refresh(issue)
    assert issue.status == IssueStatus.in_progress
    assert issue.started_at is not None


def test_second_start_keeps_issue_started_at(client, session, make_assignment, technician):
    assignment, issue = make_assignment(technician, status=AssignmentStatus.accepted)
    headers = auth_headers(technician)
    assert client.post(f"/api/assignments/{assignment.id}/start", headers=headers).status_code == 200

    session.refresh(issue)
    earlier = issue.started_at - timedelta(hours=5)
    issue.started_at = earlier
    session.add(issue)
    session.commit()

    assert client.post(f"/api/assignments/{assignment.id}/start", headers=headers).status_code == 200
    session.refresh(issue)
    assert issue.started_at == earlier
    assert issue.status == IssueStatus.in_progress


def test_start_before_accept_is_refused(client, make_assignment, technician):
    assignment, _ = make_assignment(technician)
    response = client.post(f"/api/assignments/{assignment.id}/start", headers=auth_headers(technician))
    assert response.status_code == 400


def test_reject_returns_issue_to_queue(client, session, make_assignment, technician):
    assignment, issue = make_assignment(technician)
    headers = auth_headers(technician)

    missing_reason = client.post(f"/api/assignments/{assignment.id}/reject", json={"reason": ""}, headers=headers)
    assert missing_reason.status_code == 400

    response = client.post(
        f"/api/assignments/{assignment.id}/reject",
        json={"reason": "Needs an electrician"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"
    assert response.json()["data"]["rejectionReason"] == "Needs an electrician"

    session.refresh(issue)
    assert issue.status == IssueStatus.new
    assert issue.assigned_to is None
    assert issue.assigned_at is None


def test_complete_resolves_issue_and_records_materials(client, session, make_assignment, technician):
    assignment, issue = make_assignment(technician, status=AssignmentStatus.in_progress)

    response = client.post(
        f"/api/assignments/{assignment.id}/complete",
        json={
            "completionNotes": "Replaced the valve",
            "timeSpent": 90,
            "materialsUsed": ["Valve", {"name": "Teflon tape", "quantity": 2, "unit": "roll", "cost": 40}],
        },
        headers=auth_headers(technician),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["timeSpent"] == 90
    assert [item["name"] for item in data["materialsUsed"]] == ["Valve", "Teflon tape"]
    assert data["materialsUsed"][0]["unit"] == "piece"

    session.refresh(issue)
    assert issue.status == IssueStatus.resolved
    assert issue.resolved_at is not None


def test_complete_rejects_negative_materials(client, session, make_assignment, technician):
    assignment, issue = make_assignment(technician, status=AssignmentStatus.in_progress)

    response = client.post(
        f"/api/assignments/{assignment.id}/complete",
        json={"materialsUsed": [{"name": "Pipe", "quantity": -2}]},
        headers=auth_headers(technician),
    )

    assert response.status_code == 400
    session.refresh(assignment)
    session.refresh(issue)
    assert assignment.status == AssignmentStatus.in_progress
    assert issue.status == IssueStatus.assigned


def test_committee_can_never_complete(client, make_assignment, technician, committee):
    assignment, _ = make_assignment(technician, status=AssignmentStatus.in_progress)
    response = client.post(f"/api/assignments/{assignment.id}/complete", json={}, headers=auth_headers(committee))
    assert response.status_code == 403


def test_other_technician_is_locked_out(client, make_user, make_assignment, technician):
    assignment, _ = make_assignment(technician)
    stranger = make_user(UserRole.technician)
    headers = auth_headers(stranger)

    assert client.get(f"/api/assignments/{assignment.id}", headers=headers).status_code == 403
    assert client.post(f"/api/assignments/{assignment.id}/accept", headers=headers).status_code == 403


def test_committee_cannot_accept_on_behalf_of_technician(client, make_assignment, technician, committee):
    assignment, _ = make_assignment(technician)
    response = client.post(f"/api/assignments/{assignment.id}/accept", headers=auth_headers(committee))
    assert response.status_code == 403


def test_update_fields_are_split_by_role(client, make_assignment, technician, committee):
    assignment, _ = make_assignment(technician)
    url = f"/api/assignments/{assignment.id}"

    ok = client.put(url, json={"technicianNotes": "Bring ladder"}, headers=auth_headers(technician))
    assert ok.status_code == 200
    assert ok.json()["data"]["technicianNotes"] == "Bring ladder"

    assert client.put(url, json={"paymentAmount": 500}, headers=auth_headers(technician)).status_code == 403

    ok = client.put(
        url,
        json={"paymentAmount": 500, "estimatedCompletionTime": "2030-01-01T10:00:00+05:30"},
        headers=auth_headers(committee),
    )
    assert ok.status_code == 200
    assert ok.json()["data"]["paymentAmount"] == 500
    assert ok.json()["data"]["estimatedCompletionTime"].startswith("2030-01-01T04:30:00")

    assert client.put(url, json={"technicianNotes": "x"}, headers=auth_headers(committee)).status_code == 403


def test_time_spent_must_be_non_negative(client, make_assignment, technician):
    assignment, _ = make_assignment(technician, status=AssignmentStatus.in_progress)
    url = f"/api/assignments/{assignment.id}/time"

    assert client.put(url, json={"timeSpent": -5}, headers=auth_headers(technician)).status_code == 400
    response = client.put(url, json={"timeSpent": 30}, headers=auth_headers(technician))
    assert response.json()["data"]["timeSpent"] == 30


def test_list_scoping(client, make_assignment, make_user, technician, committee, resident):
    make_assignment(technician)
    make_assignment(make_user(UserRole.technician))

    own = client.get("/api/assignments/", headers=auth_headers(technician)).json()["data"]
    assert own["pagination"]["total"] == 1

    every = client.get("/api/assignments/", headers=auth_headers(committee)).json()["data"]
    assert every["pagination"]["total"] == 2

    assert client.get("/api/assignments/", headers=auth_headers(resident)).status_code == 403


def test_technician_directory(client, make_user, committee, technician):
    make_user(UserRole.technician, specializations=["electrical"])

    everyone = client.get("/api/assignments/technicians", headers=auth_headers(committee)).json()["data"]
    assert len(everyone) == 2

    plumbers = client.get(
        "/api/assignments/technicians?specialization=plumbing", headers=auth_headers(committee)
    ).json()["data"]
    assert [tech["id"] for tech in plumbers] == [str(technician.id)]

    assert client.get("/api/assignments/technicians", headers=auth_headers(technician)).status_code == 403
