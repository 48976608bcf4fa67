from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from flask import Blueprint, g, jsonify, request
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.roledash.auth import login_required
from app.roledash.constants import ACTION_LOGIN, ACTION_SETTINGS_UPDATE
from app.roledash.db import db_session
from app.roledash.models import ActivityLog, User, utcnow
from app.roledash.rbac import Role, check_role, has_higher_or_equal_role
from app.roledash.utils import isoformat, parse_pagination

bp = Blueprint("activity", __name__)


def activity_to_dict(row: ActivityLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "action": row.action,
        "resource_type": row.resource_type,
        "resource_id": row.resource_id,
        "details": json.loads(row.details) if row.details else {},
        "ip_address": row.ip_address,
        "user_agent": row.user_agent,
        "created_at": isoformat(row.created_at),
    }


def _pagination(total: int, limit: int, offset: int) -> dict[str, int]:
    return {"total": total, "limit": limit, "offset": offset}


def _action_counts(s: Session, *, user_id: int | None = None, limit: int = 10) -> list[dict[str, Any]]:
    count_col = func.count(ActivityLog.id)
    q = s.query(ActivityLog.action, count_col)
    if user_id is not None:
        q = q.filter(ActivityLog.user_id == user_id)
    rows = q.group_by(ActivityLog.action).order_by(count_col.desc()).limit(limit).all()
    return [{"action": a, "count": int(c)} for a, c in rows]


def _count_action(action: str):
    return func.count(case((ActivityLog.action == action, ActivityLog.id)))


@bp.get("/me")
@login_required
def my_activity():
    s = db_session()
    limit, offset = parse_pagination(50)
    base = s.query(ActivityLog).filter(ActivityLog.user_id == g.current_user.id)
    rows = base.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).offset(offset).all()
    return jsonify(
        {
            "success": True,
            "activities": [activity_to_dict(r) for r in rows],
            "pagination": _pagination(base.count(), limit, offset),
        }
    )


@bp.get("/stats")
@login_required
def activity_stats():
    s = db_session()
    user: User = g.current_user

    if has_higher_or_equal_role(user.role, Role.OPERATOR):
        now = utcnow()
        row = s.query(
            func.count(ActivityLog.id),
            func.count(func.distinct(ActivityLog.user_id)),
            _count_action(ACTION_LOGIN),
            _count_action(ACTION_SETTINGS_UPDATE),
            func.count(func.distinct(func.date(ActivityLog.created_at))),
        ).one()
        active_24h = (
            s.query(func.count(func.distinct(ActivityLog.user_id)))
            .filter(ActivityLog.created_at > now - timedelta(hours=24))
            .scalar()
        )
        active_7d = (
            s.query(func.count(func.distinct(ActivityLog.user_id)))
            .filter(ActivityLog.created_at > now - timedelta(days=7))
            .scalar()
        )
        stats = {
            "total_activities": int(row[0] or 0),
            "unique_users": int(row[1] or 0),
            "total_logins": int(row[2] or 0),
            "settings_changes": int(row[3] or 0),
            "active_days": int(row[4] or 0),
            "active_users_24h": int(active_24h or 0),
            "active_users_7d": int(active_7d or 0),
        }
        return jsonify({"success": True, "stats": stats, "topActions": _action_counts(s, limit=10)})

    row = (
        s.query(
            func.count(ActivityLog.id),
            _count_action(ACTION_LOGIN),
            _count_action(ACTION_SETTINGS_UPDATE),
            func.count(func.distinct(func.date(ActivityLog.created_at))),
            func.max(ActivityLog.created_at),
        )
        .filter(ActivityLog.user_id == user.id)
        .one()
    )
    stats = {
        "total_activities": int(row[0] or 0),
        "total_logins": int(row[1] or 0),
        "settings_changes": int(row[2] or 0),
        "active_days": int(row[3] or 0),
        "last_activity_at": isoformat(row[4]),
    }
    return jsonify({"success": True, "stats": stats, "recentActions": _action_counts(s, user_id=user.id, limit=5)})


@bp.get("/all")
@login_required
@check_role([Role.OPERATOR, Role.ADMINISTRATOR])
def all_activity():
    s = db_session()
    limit, offset = parse_pagination(100)
    user_id = (request.args.get("userId") or "").strip()
    action = (request.args.get("action") or "").strip()

    base = s.query(ActivityLog, User).outerjoin(User, ActivityLog.user_id == User.id)
    if user_id:
        try:
            base = base.filter(ActivityLog.user_id == int(user_id))
        except ValueError:
            return jsonify({"success": False, "message": "userId must be an integer"}), 400
    if action:
        base = base.filter(ActivityLog.action == action)

    total = base.count()
    rows = base.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).offset(offset).all()

    activities = []
    for log, u in rows:
        item = activity_to_dict(log)
        item.update(
            {
                "name": u.name if u else None,
                "email": u.email if u else None,
                "role": u.role if u else None,
            }
        )
        activities.append(item)
    return jsonify({"success": True, "activities": activities, "pagination": _pagination(total, limit, offset)})
