from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def issue_token(user_id: int) -> str:
    """Signed bearer token carrying the user id (claim ``userId``)."""
    now = datetime.now(timezone.utc)
    hours = int(current_app.config.get("JWT_EXPIRES_HOURS") or 24)
    payload = {
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    """Raises jwt.InvalidTokenError (incl. ExpiredSignatureError) on a bad token."""
    return jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[JWT_ALGORITHM],
        options={"require": ["exp", "userId"]},
    )


def bearer_token(header_value: str | None) -> str | None:
    value = (header_value or "").strip()
    if not value.startswith("Bearer "):
        return None
    token = value[len("Bearer "):].strip()
    return token or None
