"""
Hierarchical role checks for JSON views.

Hierarchy: administrator > operator > user. A role satisfies a requirement
when its level is >= the required level; unknown roles have level 0.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum
from functools import wraps
from types import MappingProxyType
from typing import Any

from flask import current_app, g, jsonify


class Role(str, Enum):
    USER = "user"
    OPERATOR = "operator"
    ADMINISTRATOR = "administrator"


# Higher number = more privileges.
ROLE_HIERARCHY: MappingProxyType[str, int] = MappingProxyType(
    {
        Role.USER.value: 1,
        Role.OPERATOR.value: 2,
        Role.ADMINISTRATOR.value: 3,
    }
)

RoleRequirement = str | Role | Iterable[str | Role]


class AuthorizationError(Exception):
    pass


class AuthenticationRequired(AuthorizationError):
    """No actor, or an actor without a role."""


class InsufficientRole(AuthorizationError):
    def __init__(self, required: Any, current: str) -> None:
        super().__init__(f"role {current!r} does not satisfy {required!r}")
        self.required = required
        self.current = current


def _role_key(role: Any) -> str | None:
    if isinstance(role, Role):
        return role.value
    if isinstance(role, str):
        return role
    return None


def get_role_level(role: Any) -> int:
    key = _role_key(role)
    if key is None:
        return 0
    return ROLE_HIERARCHY.get(key, 0)


def is_valid_role(role: Any) -> bool:
    key = _role_key(role)
    return key is not None and key in ROLE_HIERARCHY


def has_higher_or_equal_role(role1: Any, role2: Any) -> bool:
    """True when role1 dominates role2."""
    return get_role_level(role1) >= get_role_level(role2)


def _required_levels(required: RoleRequirement) -> list[int]:
    if isinstance(required, (str, Role)):
        return [get_role_level(required)]
    if isinstance(required, (list, tuple, set, frozenset)):
        levels = []
        for r in required:
            if not isinstance(r, (str, Role)):
                raise TypeError(f"Role requirement entries must be role names, got {type(r).__name__}")
            levels.append(get_role_level(r))
        return levels
    raise TypeError(f"Unsupported role requirement: {required!r}")


def describe_requirement(required: RoleRequirement) -> str | list[str]:
    """JSON-friendly form of a requirement (for 403 payloads)."""
    if isinstance(required, (str, Role)):
        return _role_key(required) or ""
    return [_role_key(r) or "" for r in required]


def evaluate_role_requirement(user_role: str | None, required: RoleRequirement) -> None:
    """
    Returns None when allowed.

    Raises AuthenticationRequired when there is no role, InsufficientRole when
    the level is too low, TypeError for a malformed requirement. A list is
    satisfied by any one of its entries.
    """
    if not user_role:
        raise AuthenticationRequired()
    user_level = get_role_level(user_role)
    levels = _required_levels(required)
    if not any(user_level >= lvl for lvl in levels):
        raise InsufficientRole(describe_requirement(required), user_role)


def _reject(status: int, **payload: Any):
    body = {"success": False}
    body.update(payload)
    return jsonify(body), status


def _current_role() -> tuple[Any, str | None]:
    user = getattr(g, "current_user", None)
    role = getattr(user, "role", None) if user is not None else None
    return user, role


def check_role(required: RoleRequirement) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            try:
                user, role = _current_role()
                # Identity first: missing actor/role is never a privilege decision.
                if user is None or not role:
                    return _reject(401, message="Authentication required")
                evaluate_role_requirement(role, required)
            except AuthenticationRequired:
                return _reject(401, message="Authentication required")
            except InsufficientRole as e:
                g.missing_role = e.required
                current_app.logger.warning(
                    "Forbidden: required_role=%s current_role=%s request_id=%s",
                    e.required,
                    e.current,
                    getattr(g, "request_id", None),
                )
                return _reject(403, message="Insufficient permissions", required=e.required, current=e.current)
            except Exception:
                current_app.logger.exception(
                    "Role check error (requirement=%r request_id=%s)", required, getattr(g, "request_id", None)
                )
                return _reject(500, message="Authorization check failed")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_admin = check_role(Role.ADMINISTRATOR)
require_operator = check_role(Role.OPERATOR)
require_user = check_role(Role.USER)


def require_exact_role(exact_role: str | Role) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Exact match on the role name; the hierarchy is ignored."""
    required = _role_key(exact_role)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            try:
                user, role = _current_role()
                if user is None or not role:
                    return _reject(401, message="Authentication required")
                if required is None or not is_valid_role(required) or role != required:
                    g.missing_role = required
                    return _reject(403, message="Specific role required", required=required, current=role)
            except Exception:
                current_app.logger.exception(
                    "Exact role check error (role=%r request_id=%s)", exact_role, getattr(g, "request_id", None)
                )
                return _reject(500, message="Authorization check failed")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
