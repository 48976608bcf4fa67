import pytest


@pytest.fixture()
def seeded_activity(client, auth_headers, activity_rows):
    """Two settings updates by the user, one by the operator."""
    client.put("/api/settings", json={"theme": "dark"}, headers=auth_headers["user"])
    client.put("/api/settings", json={"language": "de"}, headers=auth_headers["user"])
    client.put("/api/settings", json={"theme": "auto"}, headers=auth_headers["operator"])
    assert len(activity_rows()) == 3


def test_my_activity_paginates_newest_first(client, auth_headers, user_ids, seeded_activity):
    r = client.get("/api/activity/me?limit=1", headers=auth_headers["user"])
    assert r.status_code == 200
    assert r.json["pagination"] == {"total": 2, "limit": 1, "offset": 0}
    first = r.json["activities"][0]
    assert first["user_id"] == user_ids["user"]
    assert first["details"] == {"body": {"language": "de"}}

    r = client.get("/api/activity/me?limit=1&offset=1", headers=auth_headers["user"])
    assert r.json["activities"][0]["details"] == {"body": {"theme": "dark"}}


def test_stats_depend_on_role(client, auth_headers, seeded_activity):
    r = client.get("/api/activity/stats", headers=auth_headers["user"])
    assert r.status_code == 200
    assert r.json["stats"]["total_activities"] == 2
    assert r.json["stats"]["settings_changes"] == 2
    assert r.json["recentActions"] == [{"action": "settings_update", "count": 2}]

    r = client.get("/api/activity/stats", headers=auth_headers["operator"])
    assert r.status_code == 200
    assert r.json["stats"]["total_activities"] == 3
    assert r.json["stats"]["unique_users"] == 2
    assert r.json["stats"]["active_users_24h"] == 2


def test_all_activity_forbidden_for_user(client, auth_headers):
    r = client.get("/api/activity/all", headers=auth_headers["user"])
    assert r.status_code == 403
    assert r.json == {
        "success": False,
        "message": "Insufficient permissions",
        "required": ["operator", "administrator"],
        "current": "user",
    }


@pytest.mark.parametrize("role", ["operator", "administrator"])
def test_all_activity_with_filters(client, auth_headers, user_ids, seeded_activity, role):
    headers = auth_headers[role]
    r = client.get("/api/activity/all", headers=headers)
    assert r.status_code == 200
    assert r.json["pagination"]["total"] == 3
    assert {a["email"] for a in r.json["activities"]} == {"user@example.com", "operator@example.com"}

    r = client.get(f"/api/activity/all?userId={user_ids['operator']}", headers=headers)
    assert [a["role"] for a in r.json["activities"]] == ["operator"]

    r = client.get("/api/activity/all?action=login", headers=headers)
    assert r.json["activities"] == []

    r = client.get("/api/activity/all?userId=abc", headers=headers)
    assert r.status_code == 400


def test_my_analytics(client, auth_headers, seeded_activity):
    r = client.get("/api/analytics/me", headers=auth_headers["user"])
    assert r.status_code == 200
    analytics = r.json["analytics"]
    assert analytics["summary"]["total_activities"] == 2
    assert analytics["summary"]["email"] == "user@example.com"
    assert sum(d["count"] for d in analytics["activityTrend"]) == 2
    assert analytics["actionBreakdown"] == [{"action": "settings_update", "count": 2}]


def test_operator_analytics(client, auth_headers, seeded_activity):
    assert client.get("/api/analytics/operator", headers=auth_headers["user"]).status_code == 403

    r = client.get("/api/analytics/operator", headers=auth_headers["operator"])
    assert r.status_code == 200
    analytics = r.json["analytics"]
    assert analytics["stats"]["total_users"] == 3
    assert analytics["stats"]["total_activities"] == 3
    assert analytics["topUsers"][0]["email"] == "user@example.com"
    roles = {b["role"]: b for b in analytics["activityByRole"]}
    assert roles["user"]["total_activities"] == 2
    assert roles["administrator"]["total_activities"] == 0


def test_system_analytics_admin_only(client, auth_headers, seeded_activity):
    assert client.get("/api/analytics/system", headers=auth_headers["operator"]).status_code == 403

    r = client.get("/api/analytics/system", headers=auth_headers["administrator"])
    assert r.status_code == 200
    analytics = r.json["analytics"]
    assert analytics["stats"]["total_users"] == 3
    assert analytics["stats"]["active_7d"] == 2
    assert sum(h["count"] for h in analytics["hourlyActivity"]) == 3
    assert sum(g["new_users"] for g in analytics["userGrowth"]) == 3


def test_refresh_records_activity(client, auth_headers, user_ids, activity_rows):
    assert client.post("/api/analytics/refresh", headers=auth_headers["operator"]).status_code == 403

    r = client.post("/api/analytics/refresh", headers=auth_headers["administrator"])
    assert r.status_code == 200

    rows = activity_rows("analytics_refresh")
    assert len(rows) == 1
    assert rows[0].user_id == user_ids["administrator"]
    assert rows[0].resource_type == "analytics"
