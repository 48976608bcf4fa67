"""
Activity logging for successful requests.

Views opt in with ``@log_activity("action", ...)``. When the view's response
is 2xx and an actor is attached to ``g.current_user``, an ActivityEntry is
built in the request thread and handed to the ActivityWriter, which persists
it on a background thread. The response is returned unchanged and never
waits on (or fails because of) the write.
"""
from __future__ import annotations

import atexit
import json
import logging
import threading
import weakref
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from flask import Request, Response, current_app, g, make_response, request
from sqlalchemy.orm import Session, sessionmaker

from app.roledash.constants import (
    ACTION_LOGIN,
    ACTION_LOGOUT,
    ACTION_PASSWORD_CHANGE,
    ACTION_PROFILE_UPDATE,
    ACTION_REGISTER,
    ACTION_SETTINGS_UPDATE,
    SENSITIVE_BODY_FIELDS,
    SENSITIVE_RESPONSE_FIELDS,
)
from app.roledash.models import ActivityLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEntry:
    user_id: int
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None


class SqlActivityStore:
    """Inserts one activity row per call, each in its own session/transaction."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def insert(self, entry: ActivityEntry) -> None:
        s = self._session_factory()
        try:
            s.add(
                ActivityLog(
                    user_id=entry.user_id,
                    action=entry.action,
                    resource_type=entry.resource_type,
                    resource_id=entry.resource_id,
                    details=json.dumps(entry.details, sort_keys=True, default=str),
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                )
            )
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()


class ActivityWriter:
    """
    Fire-and-forget persistence. submit() returns immediately; the future is
    only observed by _on_done, which logs failures.
    """

    def __init__(self, store: Any, *, max_workers: int = 2) -> None:
        self._store = store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="activity-log")
        self._pending = 0
        self._idle = threading.Condition()
        _live_writers.add(self)

    def submit(self, entry: ActivityEntry) -> Future | None:
        with self._idle:
            self._pending += 1
        try:
            fut = self._executor.submit(self._store.insert, entry)
        except RuntimeError as e:
            # executor already shut down (interpreter exit)
            self._settle()
            logger.error("Activity logging failed (action=%s user_id=%s): %s", entry.action, entry.user_id, e)
            return None
        fut.add_done_callback(lambda f: self._on_done(f, entry))
        return fut

    def _on_done(self, fut: Future, entry: ActivityEntry) -> None:
        try:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error("Activity logging failed (action=%s user_id=%s): %s", entry.action, entry.user_id, exc)
        finally:
            self._settle()

    def _settle(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def drain(self, timeout: float | None = None) -> bool:
        """Block until every scheduled write (and its callback) has finished. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


# writers still alive at interpreter exit; weak so discarded apps can be collected
_live_writers: weakref.WeakSet[ActivityWriter] = weakref.WeakSet()


@atexit.register
def _shutdown_live_writers() -> None:
    for writer in list(_live_writers):
        writer.shutdown()


def get_writer() -> ActivityWriter:
    return current_app.extensions["activity_writer"]


def sanitize(payload: Any, denylist: frozenset[str]) -> Any:
    """Shallow copy of a mapping without the denylisted keys."""
    if not isinstance(payload, Mapping):
        return payload
    return {k: v for k, v in payload.items() if k not in denylist}


def client_ip(req: Request) -> str | None:
    if req.remote_addr:
        return req.remote_addr
    forwarded = (req.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return req.environ.get("REMOTE_ADDR") or None


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return getattr(user, "id", None) if user is not None else None


def request_body(req: Request) -> Any:
    data = req.get_json(silent=True)
    if data is None and req.form:
        data = req.form.to_dict()
    return data


@dataclass(frozen=True)
class ActivityLogConfig:
    action: str
    resource_type: str | None = None
    # fixed value, or a callable taking the request; default is the "id" route param
    resource_id: Any = None
    get_details: Callable[[Request, Response, Any], Mapping[str, Any] | None] | None = None
    include_body: bool = False
    include_response: bool = False

    def resolve_resource_id(self, req: Request) -> str | None:
        if callable(self.resource_id):
            value = self.resource_id(req)
        elif self.resource_id is not None:
            value = self.resource_id
        else:
            value = (req.view_args or {}).get("id")
        return None if value is None else str(value)

    def build_details(self, req: Request, response: Response, data: Any) -> dict[str, Any]:
        details: dict[str, Any]
        if self.get_details is not None:
            details = dict(self.get_details(req, response, data) or {})
        elif self.include_body and (body := request_body(req)) is not None:
            details = {"body": sanitize(body, SENSITIVE_BODY_FIELDS)}
        else:
            details = {}
        # an empty payload is still recorded; only a missing one is skipped
        if self.include_response and data is not None:
            details["response"] = sanitize(data, SENSITIVE_RESPONSE_FIELDS)
        return details


def _build_entry(action: str, **kwargs: Any) -> ActivityEntry | None:
    user_id = current_user_id()
    if user_id is None:
        return None
    return ActivityEntry(
        user_id=user_id,
        action=action,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        **kwargs,
    )


class _ResponseHook:
    """Per-request interceptor: armed -> fired -> done. Only the first emit is observed."""

    ARMED = "armed"
    FIRED = "fired"
    DONE = "done"

    def __init__(self, config: ActivityLogConfig) -> None:
        self.config = config
        self.state = self.ARMED

    def emit(self, response: Response) -> Response:
        if self.state != self.ARMED:
            return response
        self.state = self.FIRED
        try:
            self._observe(response)
        except Exception:
            logger.exception("Activity logging error (action=%s)", self.config.action)
        finally:
            self.state = self.DONE
        return response

    def _observe(self, response: Response) -> None:
        if not (200 <= response.status_code < 300):
            return
        if current_user_id() is None:
            return
        cfg = self.config
        data = response.get_json(silent=True) if response.is_json else None
        entry = _build_entry(
            cfg.action,
            resource_type=cfg.resource_type,
            resource_id=cfg.resolve_resource_id(request),
            details=cfg.build_details(request, response, data),
        )
        if entry is not None:
            get_writer().submit(entry)


def _arm(config: ActivityLogConfig) -> _ResponseHook:
    hooks: dict[int, _ResponseHook] = g.setdefault("activity_hooks", {})
    hook = hooks.get(id(config))
    if hook is None:
        hook = hooks[id(config)] = _ResponseHook(config)
    return hook


def log_activity(
    action: str,
    *,
    resource_type: str | None = None,
    resource_id: Any = None,
    get_details: Callable[[Request, Response, Any], Mapping[str, Any] | None] | None = None,
    include_body: bool = False,
    include_response: bool = False,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    config = ActivityLogConfig(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        get_details=get_details,
        include_body=include_body,
        include_response=include_response,
    )

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            hook = _arm(config)
            response = make_response(fn(*args, **kwargs))
            return hook.emit(response)

        return wrapped

    return decorator


def record_activity(
    action: str,
    *,
    resource_type: str | None = None,
    resource_id: Any = None,
    details: Mapping[str, Any] | None = None,
) -> Future | None:
    """
    Record an activity from inside a handler. Skipped without an actor.
    Same fire-and-forget contract as log_activity.
    """
    entry = _build_entry(
        action,
        resource_type=resource_type,
        resource_id=None if resource_id is None else str(resource_id),
        details=dict(details or {}),
    )
    if entry is None:
        return None
    return get_writer().submit(entry)


def _body_field(req: Request, key: str) -> Any:
    body = request_body(req)
    return body.get(key) if isinstance(body, Mapping) else None


log_login = log_activity(
    ACTION_LOGIN,
    get_details=lambda req, resp, data: {"email": _body_field(req, "email"), "method": "jwt"},
)
log_logout = log_activity(ACTION_LOGOUT)
log_register = log_activity(
    ACTION_REGISTER,
    get_details=lambda req, resp, data: {"email": _body_field(req, "email"), "name": _body_field(req, "name")},
)
log_settings_update = log_activity(ACTION_SETTINGS_UPDATE, resource_type="user_settings", include_body=True)
log_profile_update = log_activity(ACTION_PROFILE_UPDATE, resource_type="user", include_body=True)
log_password_change = log_activity(ACTION_PASSWORD_CHANGE, resource_type="user")
