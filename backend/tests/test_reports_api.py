from datetime import timedelta

from conftest import PASSWORD, auth_headers
from models.issue import IssueCategory
from utils.timeutils import utcnow


def test_recurring_alerts_summary(client, make_issue, resident, committee):
    now = utcnow()
    for days_ago in (1, 2, 3, 4, 5):
        make_issue(resident, address={"blockNumber": "A"}, created_at=now - timedelta(days=days_ago))
    for days_ago in (1, 2, 60):
        make_issue(
            resident,
            category=IssueCategory.electricity,
            address={"area": "Parking"},
            created_at=now - timedelta(days=days_ago),
        )

    response = client.get("/api/recurring-alerts/", headers=auth_headers(committee))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalCount"] == 1
    assert data["highSeverity"] == 1
    alert = data["recurringProblems"][0]
    assert alert["id"] == "water_A"
    assert alert["readableLocation"] == "Block A"
    assert alert["recentIssueCount"] == 5


def test_detect_lists_every_recurring_group(client, make_issue, resident, committee):
    now = utcnow()
    for days_ago in (40, 50, 60):
        make_issue(resident, address={"blockNumber": "B"}, created_at=now - timedelta(days=days_ago))

    response = client.post("/api/recurring-alerts/detect", headers=auth_headers(committee))

    assert response.status_code == 200
    groups = response.json()["data"]
    assert [group["id"] for group in groups] == ["water_B"]
    assert groups[0]["severity"] == "low"


def test_recurring_alerts_are_committee_only(client, resident, technician):
    assert client.get("/api/recurring-alerts/", headers=auth_headers(resident)).status_code == 403
    assert client.post("/api/recurring-alerts/detect", headers=auth_headers(technician)).status_code == 403


def test_audit_log_listing_and_stats(client, resident, committee):
    client.post("/api/auth/login", json={"email": resident.email, "password": PASSWORD})
    client.post("/api/auth/login", json={"email": resident.email, "password": "Wrong@pass1"})
    client.cookies.clear()
    headers = auth_headers(committee)

    logs = client.get("/api/audit-logs/", headers=headers).json()["data"]
    assert logs["pagination"]["total"] == 2
    assert {log["action"] for log in logs["logs"]} == {"USER_LOGIN", "LOGIN_FAILED"}

    filtered = client.get("/api/audit-logs/?action=LOGIN_FAILED", headers=headers).json()["data"]
    assert [log["status"] for log in filtered["logs"]] == ["FAILED"]

    stats = client.get("/api/audit-logs/stats?days=7", headers=headers).json()["data"]
    by_action = {row["action"]: row for row in stats}
    assert by_action["USER_LOGIN"]["successCount"] == 1
    assert by_action["LOGIN_FAILED"]["failureCount"] == 1

    assert client.get("/api/audit-logs/", headers=auth_headers(resident)).status_code == 403
