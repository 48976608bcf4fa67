from __future__ import annotations

import re
import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

import jwt
from flask import Blueprint, current_app, g, jsonify, request

from app.roledash.audit import (
    log_login,
    log_logout,
    log_password_change,
    log_profile_update,
    log_register,
)
from app.roledash.constants import MIN_PASSWORD_LENGTH
from app.roledash.db import db_session
from app.roledash.models import User, utcnow
from app.roledash.rbac import Role
from app.roledash.security import bearer_token, decode_token, hash_password, issue_token, verify_password
from app.roledash.utils import json_body

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_login_attempts_lock = threading.Lock()
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _take_login_attempt(ip: str) -> bool:
    """Prune, check and record in one step. False when the limit is already reached."""
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    with _login_attempts_lock:
        recent = [t for t in _login_attempts[ip] if t > cutoff]
        if len(recent) >= _LOGIN_RATE_LIMIT:
            _login_attempts[ip] = recent
            return False
        recent.append(now)
        _login_attempts[ip] = recent
        return True


def _reset_login_attempts(ip: str) -> None:
    with _login_attempts_lock:
        _login_attempts.pop(ip, None)


def load_current_user() -> None:
    """
    Resolves g.current_user from the bearer token.
    Also assigns a simple per-request request_id (for activity/log correlation).
    g.auth_error holds the reason when no user could be attached.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_error = None
    if request.path.startswith(("/health", "/healthz")):
        return

    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        g.auth_error = "No authentication token, access denied"
        return

    try:
        claims = decode_token(token)
    except jwt.InvalidTokenError:
        g.auth_error = "Token is not valid"
        return

    try:
        user = db_session().get(User, int(claims["userId"]))
    except (TypeError, ValueError):
        g.auth_error = "Token is not valid"
        return
    if not user or not user.is_active:
        g.auth_error = "User not found"
        return
    g.current_user = user


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if getattr(g, "current_user", None) is None:
            msg = getattr(g, "auth_error", None) or "No authentication token, access denied"
            return jsonify({"error": msg}), 401
        return fn(*args, **kwargs)

    return wrapped


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _validation_error(errors: list[str]):
    return jsonify({"success": False, "message": "Validation failed", "errors": errors}), 400


@bp.post("/register")
@log_register
def register():
    body = json_body()
    name = (body.get("name") or "").strip()
    email = (body.get("email") or "").strip().lower()
    password = body.get("password") or ""

    errors = []
    if not name:
        errors.append("Name is required")
    if not _EMAIL_RE.match(email):
        errors.append("Valid email is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if errors:
        return _validation_error(errors)

    s = db_session()
    if s.query(User).filter(User.email == email).one_or_none():
        return jsonify({"success": False, "message": "User already exists"}), 409

    user = User(email=email, name=name, password_hash=hash_password(password), role=Role.USER.value, is_active=True)
    s.add(user)
    s.commit()
    # Newly registered user is the actor for the register activity.
    g.current_user = user
    current_app.logger.info("User registered (user_id=%s request_id=%s)", user.id, g.request_id)
    return jsonify({"success": True, "token": issue_token(user.id), "user": user_to_dict(user)}), 201


@bp.post("/login")
@log_login
def login():
    body = json_body()
    email = (body.get("email") or "").strip().lower()
    password = body.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not _take_login_attempt(ip):
        return jsonify({"success": False, "message": "Too many login attempts. Please wait 5 minutes."}), 429

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        current_app.logger.info("Login failed (email=%s request_id=%s)", email, g.request_id)
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    _reset_login_attempts(ip)
    g.current_user = user
    return jsonify({"success": True, "token": issue_token(user.id), "user": user_to_dict(user)})


@bp.get("/me")
@login_required
def me():
    return jsonify({"success": True, "user": user_to_dict(g.current_user)})


@bp.post("/logout")
@login_required
@log_logout
def logout():
    # Tokens are stateless; the client discards its copy.
    return jsonify({"success": True, "message": "Logged out successfully"})


@bp.put("/profile")
@login_required
@log_profile_update
def update_profile():
    body = json_body()
    if "name" not in body and "email" not in body:
        return jsonify({"success": False, "message": "No profile fields provided to update"}), 400

    user: User = g.current_user
    s = db_session()
    name = (body.get("name") or "").strip() if "name" in body else user.name
    email = (body.get("email") or "").strip().lower() if "email" in body else user.email

    errors = []
    if not name:
        errors.append("Name cannot be empty")
    if not _EMAIL_RE.match(email):
        errors.append("Valid email is required")
    if errors:
        return _validation_error(errors)
    if email != user.email and s.query(User).filter(User.email == email).one_or_none():
        return jsonify({"success": False, "message": "Email already in use"}), 409

    user.name = name
    user.email = email
    s.commit()
    return jsonify({"success": True, "message": "Profile updated successfully", "user": user_to_dict(user)})


@bp.put("/password")
@login_required
@log_password_change
def change_password():
    body = json_body()
    current_password = body.get("current_password") or ""
    new_password = body.get("new_password") or ""
    user: User = g.current_user

    if not verify_password(current_password, user.password_hash):
        return jsonify({"success": False, "message": "Current password is incorrect"}), 400
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return _validation_error([f"Password must be at least {MIN_PASSWORD_LENGTH} characters"])

    user.password_hash = hash_password(new_password)
    db_session().commit()
    return jsonify({"success": True, "message": "Password changed successfully"})
