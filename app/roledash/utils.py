from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import request

from app.roledash.audit import request_body


def json_body() -> dict[str, Any]:
    """Request JSON (or form) body as a dict; anything else becomes {}."""
    body = request_body(request)
    return body if isinstance(body, dict) else {}


def parse_pagination(default_limit: int, max_limit: int = 500) -> tuple[int, int]:
    """limit/offset from the query string, clamped to sane bounds."""
    def _int(name: str, default: int) -> int:
        try:
            return int((request.args.get(name) or "").strip() or default)
        except ValueError:
            return default

    limit = min(max(_int("limit", default_limit), 1), max_limit)
    offset = max(_int("offset", 0), 0)
    return limit, offset


def isoformat(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
