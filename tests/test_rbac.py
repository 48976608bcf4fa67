"""Tests for the role hierarchy and the role-check decorators."""
from types import SimpleNamespace

import pytest
from flask import Flask, g, jsonify, request

from app.roledash import rbac
from app.roledash.rbac import (
    ROLE_HIERARCHY,
    AuthenticationRequired,
    InsufficientRole,
    Role,
    check_role,
    evaluate_role_requirement,
    get_role_level,
    has_higher_or_equal_role,
    is_valid_role,
    require_admin,
    require_exact_role,
)

ROLES = ["user", "operator", "administrator"]


def test_role_levels():
    assert [get_role_level(r) for r in ROLES] == [1, 2, 3]
    assert get_role_level(Role.OPERATOR) == 2
    assert get_role_level("superuser") == 0
    assert get_role_level(None) == 0


def test_is_valid_role():
    for r in ROLES:
        assert is_valid_role(r)
    assert is_valid_role(Role.ADMINISTRATOR)
    assert not is_valid_role("superuser")
    assert not is_valid_role("")
    assert not is_valid_role(None)


def test_hierarchy_is_immutable():
    with pytest.raises(TypeError):
        ROLE_HIERARCHY["superuser"] = 99  # type: ignore[index]


@pytest.mark.parametrize("r1", ROLES)
@pytest.mark.parametrize("r2", ROLES)
def test_dominance_matches_levels(r1, r2):
    assert has_higher_or_equal_role(r1, r2) == (get_role_level(r1) >= get_role_level(r2))


def test_dominance_reflexive_and_transitive():
    for r in ROLES:
        assert has_higher_or_equal_role(r, r)
    for a in ROLES:
        for b in ROLES:
            for c in ROLES:
                if has_higher_or_equal_role(a, b) and has_higher_or_equal_role(b, c):
                    assert has_higher_or_equal_role(a, c)


def test_evaluate_single_requirement():
    assert evaluate_role_requirement("administrator", "operator") is None
    assert evaluate_role_requirement("operator", "operator") is None
    with pytest.raises(InsufficientRole) as exc:
        evaluate_role_requirement("user", "operator")
    assert exc.value.required == "operator"
    assert exc.value.current == "user"


def test_evaluate_list_requirement_least_restrictive_wins():
    required = ["operator", "administrator"]
    assert evaluate_role_requirement("operator", required) is None
    assert evaluate_role_requirement("administrator", required) is None
    with pytest.raises(InsufficientRole):
        evaluate_role_requirement("user", required)


def test_evaluate_missing_role_is_authentication_required():
    with pytest.raises(AuthenticationRequired):
        evaluate_role_requirement(None, "user")
    with pytest.raises(AuthenticationRequired):
        evaluate_role_requirement("", "unknown-role")


def test_evaluate_unknown_actor_role_satisfies_nothing():
    with pytest.raises(InsufficientRole):
        evaluate_role_requirement("superuser", "user")


def test_evaluate_empty_list_never_allows():
    with pytest.raises(InsufficientRole):
        evaluate_role_requirement("administrator", [])


def test_evaluate_malformed_requirement():
    with pytest.raises(TypeError):
        evaluate_role_requirement("administrator", 3)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        evaluate_role_requirement("administrator", ["operator", None])  # type: ignore[list-item]


@pytest.fixture()
def client():
    app = Flask(__name__)

    @app.before_request
    def _attach_actor():
        if request.headers.get("X-Anonymous"):
            g.current_user = None
            return
        g.current_user = SimpleNamespace(id=1, role=request.headers.get("X-Role"))

    def ok():
        return jsonify({"ok": True})

    app.add_url_rule("/operator", "operator", check_role("operator")(ok))
    app.add_url_rule("/operator-list", "operator_list", check_role(["operator", "administrator"])(ok))
    app.add_url_rule("/admin", "admin", require_admin(ok))
    app.add_url_rule("/unknown-requirement", "unknown_requirement", check_role("auditor")(ok))
    app.add_url_rule("/malformed", "malformed", check_role(42)(ok))  # type: ignore[arg-type]
    app.add_url_rule("/exact-operator", "exact_operator", require_exact_role("operator")(ok))
    app.add_url_rule("/exact-unknown", "exact_unknown", require_exact_role("auditor")(ok))
    return app.test_client()


def _get(client, path, role=None, anonymous=False):
    headers = {}
    if role:
        headers["X-Role"] = role
    if anonymous:
        headers["X-Anonymous"] = "1"
    return client.get(path, headers=headers)


@pytest.mark.parametrize("role", ["operator", "administrator"])
def test_check_role_allows_operator_and_above(client, role):
    r = _get(client, "/operator", role)
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}


def test_check_role_denies_lower_role_with_diagnostics(client):
    r = _get(client, "/operator", "user")
    assert r.status_code == 403
    assert r.get_json() == {
        "success": False,
        "message": "Insufficient permissions",
        "required": "operator",
        "current": "user",
    }


def test_check_role_list_equivalent_to_operator(client):
    assert _get(client, "/operator-list", "operator").status_code == 200
    assert _get(client, "/operator-list", "administrator").status_code == 200
    r = _get(client, "/operator-list", "user")
    assert r.status_code == 403
    assert r.get_json()["required"] == ["operator", "administrator"]


def test_require_admin(client):
    assert _get(client, "/admin", "administrator").status_code == 200
    assert _get(client, "/admin", "operator").status_code == 403


@pytest.mark.parametrize("path", ["/operator", "/operator-list", "/admin", "/unknown-requirement", "/malformed"])
def test_missing_role_is_always_authentication_required(client, path):
    r = _get(client, path)
    assert r.status_code == 401
    assert r.get_json() == {"success": False, "message": "Authentication required"}

    r = _get(client, path, anonymous=True)
    assert r.status_code == 401


def test_level_zero_requirement_allows_any_known_actor(client):
    assert _get(client, "/unknown-requirement", "user").status_code == 200


def test_malformed_requirement_is_subsystem_failure(client):
    r = _get(client, "/malformed", "administrator")
    assert r.status_code == 500
    assert r.get_json() == {"success": False, "message": "Authorization check failed"}


def test_exact_role_ignores_hierarchy(client):
    assert _get(client, "/exact-operator", "operator").status_code == 200
    r = _get(client, "/exact-operator", "administrator")
    assert r.status_code == 403
    assert r.get_json() == {
        "success": False,
        "message": "Specific role required",
        "required": "operator",
        "current": "administrator",
    }


def test_exact_role_denies_unknown_requirement(client):
    assert _get(client, "/exact-unknown", "administrator").status_code == 403
    assert _get(client, "/exact-unknown", "auditor").status_code == 403


def test_exact_role_without_actor(client):
    assert _get(client, "/exact-operator", anonymous=True).status_code == 401


def test_exact_role_check_failure_is_500(client, monkeypatch):
    def broken(_role):
        raise RuntimeError("role registry unavailable")

    monkeypatch.setattr(rbac, "is_valid_role", broken)
    r = _get(client, "/exact-operator", "operator")
    assert r.status_code == 500
    assert r.json == {"success": False, "message": "Authorization check failed"}
