import pytest

from conftest import auth_headers
from models.assignment import Assignment, AssignmentStatus
from models.issue import IssueStatus
from routes import feedback as feedback_routes


@pytest.fixture
def resolved_issue(session, make_issue, resident, committee, technician):
    issue = make_issue(
        resident,
        status=IssueStatus.resolved,
        assigned_to=technician.id,
        assigned_by=committee.id,
    )
    assignment = Assignment(
        issue_id=issue.id,
        assigned_to=technician.id,
        assigned_by=committee.id,
        status=AssignmentStatus.completed,
    )
    session.add(assignment)
    session.commit()
    return issue


def submit(client, user, issue, rating, **extra):
    return client.post(
        "/api/feedback/",
        json={"issueId": str(issue.id), "rating": rating, **extra},
        headers=auth_headers(user),
    )


def test_feedback_rates_issue_assignment_and_technician(client, session, resolved_issue, resident, technician):
    response = submit(client, resident, resolved_issue, 4, comment="Quick fix", qualityRating=5, speedRating=3)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "approved"
    assert data["sentiment"] == "positive"
    assert data["averageDetailedRating"] == 4.0

    session.refresh(resolved_issue)
    session.refresh(technician)
    assert resolved_issue.rating == 4
    assert resolved_issue.rating_comment == "Quick fix"
    assert technician.rating_scores == [4]
    assert technician.rating == pytest.approx(4.0)
    assert technician.total_ratings == 1


def test_technician_average_across_issues(client, session, make_issue, resident, committee, technician):
    for score in (5, 2):
        issue = make_issue(resident, status=IssueStatus.closed, assigned_to=technician.id, assigned_by=committee.id)
        assert submit(client, resident, issue, score).status_code == 201

    session.refresh(technician)
    assert technician.rating == pytest.approx(3.5)

    summary = client.get(f"/api/feedback/technician/{technician.id}", headers=auth_headers(committee)).json()["data"]
    assert summary["summary"]["totalRatings"] == 2
    assert summary["summary"]["averageRating"] == 3.5
    assert len(summary["recentFeedback"]) == 2


def test_only_reporter_can_submit(client, resolved_issue, other_resident):
    assert submit(client, other_resident, resolved_issue, 5).status_code == 403


def test_issue_must_be_resolved_or_closed(client, make_issue, resident):
    issue = make_issue(resident, status=IssueStatus.in_progress)
    response = submit(client, resident, issue, 5)
    assert response.status_code == 400


def test_duplicate_feedback_is_refused(client, session, resolved_issue, resident, technician):
    assert submit(client, resident, resolved_issue, 5).status_code == 201
    assert submit(client, resident, resolved_issue, 1).status_code == 400

    session.refresh(technician)
    assert technician.rating_scores == [5]


@pytest.mark.parametrize("rating", [0, 6])
def test_rating_out_of_range(client, session, resolved_issue, resident, technician, rating):
    assert submit(client, resident, resolved_issue, rating).status_code == 400
    session.refresh(technician)
    assert technician.total_ratings == 0


def test_rating_a_non_technician_is_refused(client, session, make_issue, resident, other_resident, committee):
    issue = make_issue(resident, status=IssueStatus.resolved, assigned_to=other_resident.id, assigned_by=committee.id)

    response = submit(client, resident, issue, 5)

    assert response.status_code == 400
    assert response.json()["message"] == "Only technicians can receive ratings"
    session.refresh(issue)
    session.refresh(other_resident)
    assert issue.rating is None
    assert other_resident.total_ratings == 0
    assert client.get(f"/api/feedback/issue/{issue.id}", headers=auth_headers(resident)).status_code == 404


def test_anonymous_feedback_hides_author(client, resolved_issue, resident, committee, technician):
    submit(client, resident, resolved_issue, 3, isAnonymous=True)
    summary = client.get(f"/api/feedback/technician/{technician.id}", headers=auth_headers(committee)).json()["data"]
    assert summary["recentFeedback"][0]["userId"] is None


def test_pending_feedback_counts_once_on_approval(
    client, session, monkeypatch, resolved_issue, resident, committee, technician
):
    monkeypatch.setattr(feedback_routes, "FEEDBACK_AUTO_APPROVE", False)

    created = submit(client, resident, resolved_issue, 2).json()["data"]
    assert created["status"] == "pending"
    session.refresh(technician)
    assert technician.total_ratings == 0

    url = f"/api/feedback/{created['id']}/moderate"
    assert client.post(url, json={"action": "approve"}, headers=auth_headers(committee)).status_code == 200
    assert client.post(url, json={"action": "approve"}, headers=auth_headers(committee)).status_code == 200

    session.refresh(technician)
    assert technician.rating_scores == [2]


def test_moderation_is_committee_only(client, resolved_issue, resident):
    created = submit(client, resident, resolved_issue, 5).json()["data"]
    response = client.post(
        f"/api/feedback/{created['id']}/moderate",
        json={"action": "flag"},
        headers=auth_headers(resident),
    )
    assert response.status_code == 403


def test_reports_flag_feedback(client, resolved_issue, resident, other_resident):
    created = submit(client, resident, resolved_issue, 1).json()["data"]
    url = f"/api/feedback/{created['id']}/report"

    for _ in range(2):
        assert client.post(url, headers=auth_headers(other_resident)).json()["data"]["status"] == "approved"
    assert client.post(url, headers=auth_headers(other_resident)).json()["data"]["status"] == "flagged"


def test_technician_ratings_lookup_errors(client, committee, resident):
    headers = auth_headers(committee)
    assert client.get("/api/feedback/technician/not-an-id", headers=headers).status_code == 404
    assert client.get(f"/api/feedback/technician/{resident.id}", headers=headers).status_code == 400
