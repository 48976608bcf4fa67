from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.roledash.audit import log_settings_update
from app.roledash.auth import login_required
from app.roledash.constants import THEMES
from app.roledash.db import db_session
from app.roledash.models import ActivityLog, User, UserSettings, utcnow
from app.roledash.rbac import Role, require_admin
from app.roledash.utils import json_body

bp = Blueprint("settings", __name__)


def settings_to_dict(st: UserSettings) -> dict[str, Any]:
    return {
        "id": st.id,
        "user_id": st.user_id,
        "theme": st.theme,
        "notifications_enabled": st.notifications_enabled,
        "email_notifications": st.email_notifications,
        "language": st.language,
        "timezone": st.timezone,
        "settings_data": json.loads(st.settings_data) if st.settings_data else {},
        "created_at": st.created_at.isoformat() if st.created_at else None,
        "updated_at": st.updated_at.isoformat() if st.updated_at else None,
    }


def _get_or_create_settings(s: Session, user_id: int) -> UserSettings:
    st = s.query(UserSettings).filter(UserSettings.user_id == user_id).one_or_none()
    if st is None:
        st = UserSettings(user_id=user_id)
        s.add(st)
        s.commit()
    return st


def _apply_updates(st: UserSettings, body: dict[str, Any]) -> tuple[bool, str | None]:
    """Returns (changed, error)."""
    changed = False
    if "theme" in body:
        if body["theme"] not in THEMES:
            return False, "Invalid setting value provided"
        st.theme = body["theme"]
        changed = True
    for key in ("notifications_enabled", "email_notifications"):
        if key in body:
            if not isinstance(body[key], bool):
                return False, "Invalid setting value provided"
            setattr(st, key, body[key])
            changed = True
    for key, max_len in (("language", 10), ("timezone", 64)):
        if key in body:
            value = body[key]
            if not isinstance(value, str) or not value.strip() or len(value) > max_len:
                return False, "Invalid setting value provided"
            setattr(st, key, value.strip())
            changed = True
    if "settings_data" in body:
        if not isinstance(body["settings_data"], dict):
            return False, "Invalid setting value provided"
        st.settings_data = json.dumps(body["settings_data"], sort_keys=True)
        changed = True
    return changed, None


@bp.get("")
@login_required
def get_settings():
    st = _get_or_create_settings(db_session(), g.current_user.id)
    return jsonify({"success": True, "settings": settings_to_dict(st)})


@bp.put("")
@login_required
@log_settings_update
def update_settings():
    body = json_body()
    s = db_session()
    st = _get_or_create_settings(s, g.current_user.id)

    changed, error = _apply_updates(st, body)
    if error:
        s.rollback()
        return jsonify({"success": False, "message": error}), 400
    if not changed:
        return jsonify({"success": False, "message": "No settings provided to update"}), 400

    s.commit()
    return jsonify({"success": True, "message": "Settings updated successfully", "settings": settings_to_dict(st)})


def _count_users(s: Session, role: Role | None = None) -> int:
    q = s.query(func.count(User.id))
    if role is not None:
        q = q.filter(User.role == role.value)
    return int(q.scalar() or 0)


def _active_users_since(s: Session, days: int) -> int:
    cutoff = utcnow() - timedelta(days=days)
    return int(
        s.query(func.count(func.distinct(ActivityLog.user_id))).filter(ActivityLog.created_at > cutoff).scalar() or 0
    )


@bp.get("/system")
@login_required
@require_admin
def get_system_settings():
    s = db_session()
    engine = current_app.extensions["sqlalchemy_engine"]
    since_24h = utcnow() - timedelta(hours=24)

    statistics = {
        "total_users": _count_users(s),
        "admin_count": _count_users(s, Role.ADMINISTRATOR),
        "operator_count": _count_users(s, Role.OPERATOR),
        "user_count": _count_users(s, Role.USER),
        "total_activities": int(s.query(func.count(ActivityLog.id)).scalar() or 0),
        "users_with_settings": int(s.query(func.count(UserSettings.id)).scalar() or 0),
        "active_users_7d": _active_users_since(s, 7),
        "active_users_30d": _active_users_since(s, 30),
    }
    database = {
        "dialect": engine.dialect.name,
        "database_name": engine.url.database,
    }
    count_col = func.count(ActivityLog.id)
    recent = (
        s.query(ActivityLog.action, count_col)
        .filter(ActivityLog.created_at > since_24h)
        .group_by(ActivityLog.action)
        .order_by(count_col.desc())
        .limit(10)
        .all()
    )
    return jsonify(
        {
            "success": True,
            "system": {
                "statistics": statistics,
                "database": database,
                "recentActivity": [{"action": a, "count": int(c)} for a, c in recent],
            },
        }
    )
