"""
Analytics dashboards.

Summaries are aggregated from activity_logs on read; there is no
materialized summary table to maintain.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any

from flask import Blueprint, g, jsonify
from sqlalchemy import case, extract, func
from sqlalchemy.orm import Session

from app.roledash.audit import record_activity
from app.roledash.auth import login_required
from app.roledash.constants import ACTION_ANALYTICS_REFRESH, ACTION_LOGIN
from app.roledash.db import db_session
from app.roledash.models import ActivityLog, User, UserSettings, utcnow
from app.roledash.rbac import Role, check_role, require_admin
from app.roledash.utils import isoformat

bp = Blueprint("analytics", __name__)


def _summary_query(s: Session):
    """Per-user totals (users without activity included)."""
    return (
        s.query(
            User.id,
            User.name,
            User.email,
            User.role,
            func.count(ActivityLog.id).label("total_activities"),
            func.count(case((ActivityLog.action == ACTION_LOGIN, ActivityLog.id))).label("total_logins"),
            func.max(ActivityLog.created_at).label("last_activity_at"),
        )
        .outerjoin(ActivityLog, ActivityLog.user_id == User.id)
        .group_by(User.id, User.name, User.email, User.role)
    )


def _summary_to_dict(row: Any) -> dict[str, Any]:
    return {
        "user_id": row.id,
        "name": row.name,
        "email": row.email,
        "role": row.role,
        "total_activities": int(row.total_activities or 0),
        "total_logins": int(row.total_logins or 0),
        "last_activity_at": isoformat(row.last_activity_at),
    }


def _daily_counts(s: Session, *, days: int, user_id: int | None = None, action: str | None = None,
                  distinct_users: bool = False, key: str = "count") -> list[dict[str, Any]]:
    day = func.date(ActivityLog.created_at)
    metric = func.count(func.distinct(ActivityLog.user_id)) if distinct_users else func.count(ActivityLog.id)
    q = s.query(day, metric).filter(ActivityLog.created_at > utcnow() - timedelta(days=days))
    if user_id is not None:
        q = q.filter(ActivityLog.user_id == user_id)
    if action is not None:
        q = q.filter(ActivityLog.action == action)
    rows = q.group_by(day).order_by(day.asc()).all()
    return [{"date": isoformat(d), key: int(c)} for d, c in rows]


def _top_actions(s: Session, *, limit: int, user_id: int | None = None) -> list[dict[str, Any]]:
    count_col = func.count(ActivityLog.id)
    q = s.query(ActivityLog.action, count_col, func.count(func.distinct(ActivityLog.user_id)))
    if user_id is not None:
        q = q.filter(ActivityLog.user_id == user_id)
    rows = q.group_by(ActivityLog.action).order_by(count_col.desc()).limit(limit).all()
    if user_id is not None:
        return [{"action": a, "count": int(c)} for a, c, _ in rows]
    return [{"action": a, "count": int(c), "unique_users": int(u)} for a, c, u in rows]


def _distinct_active(s: Session, since) -> int:
    return int(
        s.query(func.count(func.distinct(ActivityLog.user_id))).filter(ActivityLog.created_at > since).scalar() or 0
    )


@bp.get("/me")
@login_required
def my_analytics():
    s = db_session()
    user: User = g.current_user
    summary = _summary_query(s).filter(User.id == user.id).one_or_none()

    login_history = _daily_counts(s, days=30, user_id=user.id, action=ACTION_LOGIN)
    login_history.reverse()  # newest first
    return jsonify(
        {
            "success": True,
            "analytics": {
                "summary": _summary_to_dict(summary) if summary else {},
                "loginHistory": login_history,
                "activityTrend": _daily_counts(s, days=7, user_id=user.id),
                "actionBreakdown": _top_actions(s, limit=10, user_id=user.id),
            },
        }
    )


@bp.get("/operator")
@login_required
@check_role([Role.OPERATOR, Role.ADMINISTRATOR])
def operator_analytics():
    s = db_session()
    summaries = [_summary_to_dict(r) for r in _summary_query(s).all()]

    total_users = len(summaries)
    total_activities = sum(x["total_activities"] for x in summaries)
    last_times = [x["last_activity_at"] for x in summaries if x["last_activity_at"]]
    stats = {
        "total_users": total_users,
        "total_activities": total_activities,
        "avg_logins_per_user": (
            round(sum(x["total_logins"] for x in summaries) / total_users, 2) if total_users else 0
        ),
        "last_system_activity": max(last_times) if last_times else None,
    }

    by_role: dict[str, dict[str, Any]] = {}
    for x in summaries:
        bucket = by_role.setdefault(x["role"], {"role": x["role"], "user_count": 0, "total_activities": 0})
        bucket["user_count"] += 1
        bucket["total_activities"] += x["total_activities"]

    top_users = sorted(summaries, key=lambda x: x["total_activities"], reverse=True)[:10]
    return jsonify(
        {
            "success": True,
            "analytics": {
                "stats": stats,
                "activeUsersTrend": _daily_counts(s, days=30, distinct_users=True, key="active_users"),
                "topUsers": top_users,
                "activityByRole": sorted(by_role.values(), key=lambda b: b["total_activities"], reverse=True),
            },
        }
    )


@bp.get("/system")
@login_required
@require_admin
def system_analytics():
    s = db_session()
    now = utcnow()

    role_counts = dict(s.query(User.role, func.count(User.id)).group_by(User.role).all())
    stats = {
        "total_users": int(s.query(func.count(User.id)).scalar() or 0),
        "admin_count": int(role_counts.get(Role.ADMINISTRATOR.value, 0)),
        "operator_count": int(role_counts.get(Role.OPERATOR.value, 0)),
        "user_count": int(role_counts.get(Role.USER.value, 0)),
        "total_activities": int(s.query(func.count(ActivityLog.id)).scalar() or 0),
        "users_with_settings": int(s.query(func.count(UserSettings.id)).scalar() or 0),
        "active_24h": _distinct_active(s, now - timedelta(hours=24)),
        "active_7d": _distinct_active(s, now - timedelta(days=7)),
        "active_30d": _distinct_active(s, now - timedelta(days=30)),
    }

    hour = extract("hour", ActivityLog.created_at)
    hourly = (
        s.query(hour, func.count(ActivityLog.id))
        .filter(ActivityLog.created_at > now - timedelta(days=7))
        .group_by(hour)
        .order_by(hour)
        .all()
    )

    day = func.date(User.created_at)
    growth = (
        s.query(day, func.count(User.id))
        .filter(User.created_at > now - timedelta(days=30))
        .group_by(day)
        .order_by(day.asc())
        .all()
    )

    summaries = [_summary_to_dict(r) for r in _summary_query(s).all()]
    summaries.sort(key=lambda x: x["total_activities"], reverse=True)
    return jsonify(
        {
            "success": True,
            "analytics": {
                "stats": stats,
                "dailyActiveUsers": _daily_counts(s, days=30, distinct_users=True, key="dau"),
                "topActions": _top_actions(s, limit=15),
                "userSummaries": summaries,
                "hourlyActivity": [{"hour": int(h), "count": int(c)} for h, c in hourly],
                "userGrowth": [{"date": isoformat(d), "new_users": int(c)} for d, c in growth],
            },
        }
    )


@bp.post("/refresh")
@login_required
@require_admin
def refresh_analytics():
    record_activity(ACTION_ANALYTICS_REFRESH, resource_type="analytics")
    return jsonify({"success": True, "message": "Analytics refreshed successfully"})
