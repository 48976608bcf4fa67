import json


def test_settings_created_with_defaults(client, auth_headers, user_ids):
    r = client.get("/api/settings", headers=auth_headers["user"])
    assert r.status_code == 200
    st = r.json["settings"]
    assert st["user_id"] == user_ids["user"]
    assert (st["theme"], st["language"], st["timezone"]) == ("light", "en", "UTC")
    assert st["notifications_enabled"] is True
    assert st["settings_data"] == {}


def test_settings_require_auth(client):
    assert client.get("/api/settings").status_code == 401
    assert client.put("/api/settings", json={"theme": "dark"}).status_code == 401


def test_update_settings_is_logged(client, auth_headers, user_ids, activity_rows):
    r = client.put(
        "/api/settings",
        json={"theme": "dark", "settings_data": {"sidebar": "collapsed"}, "token": "leak"},
        headers=auth_headers["operator"],
    )
    assert r.status_code == 200
    assert r.json["settings"]["theme"] == "dark"
    assert r.json["settings"]["settings_data"] == {"sidebar": "collapsed"}

    rows = activity_rows("settings_update")
    assert len(rows) == 1
    assert rows[0].user_id == user_ids["operator"]
    assert rows[0].resource_type == "user_settings"
    assert json.loads(rows[0].details) == {"body": {"theme": "dark", "settings_data": {"sidebar": "collapsed"}}}


def test_invalid_or_empty_update_is_rejected(client, auth_headers, activity_rows):
    headers = auth_headers["user"]
    r = client.put("/api/settings", json={"theme": "neon"}, headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "Invalid setting value provided"

    r = client.put("/api/settings", json={"notifications_enabled": "yes"}, headers=headers)
    assert r.status_code == 400

    r = client.put("/api/settings", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "No settings provided to update"

    # rejected updates leave the stored values alone
    assert client.get("/api/settings", headers=headers).json["settings"]["theme"] == "light"
    assert activity_rows("settings_update") == []


def test_system_settings_admin_only(client, auth_headers):
    r = client.get("/api/settings/system", headers=auth_headers["operator"])
    assert r.status_code == 403
    assert r.json["required"] == "administrator"
    assert r.json["current"] == "operator"

    r = client.get("/api/settings/system", headers=auth_headers["administrator"])
    assert r.status_code == 200
    system = r.json["system"]
    assert system["statistics"]["total_users"] == 3
    assert system["statistics"]["admin_count"] == 1
    assert system["database"]["dialect"] == "sqlite"
