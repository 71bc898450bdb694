from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.pms.audit import record_event
from app.pms.db import db_session
from app.pms.models import User
from app.pms.rbac import user_permission_keys
from app.pms.security import ensure_csrf_token

bp = Blueprint("auth", __name__)


class LoginThrottle:
    """In-process sliding window of login attempts per client address."""

    def __init__(self, limit: int = 5, window_seconds: int = 300):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._attempts: dict[str, list[datetime]] = defaultdict(list)

    def blocked(self, key: str) -> bool:
        cutoff = datetime.utcnow() - self.window
        self._attempts[key] = [t for t in self._attempts[key] if t > cutoff]
        return len(self._attempts[key]) >= self.limit

    def hit(self, key: str) -> None:
        self._attempts[key].append(datetime.utcnow())

    def clear(self, key: str) -> None:
        self._attempts.pop(key, None)

    def reset(self) -> None:
        self._attempts.clear()


login_throttle = LoginThrottle()


def reset_login_attempts() -> None:
    login_throttle.reset()


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id used by error logs and audit events.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return

    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


def _user_json(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "name": user.display_name,
        "roles": sorted(r.key for r in user.roles),
        "permissions": user_permission_keys(user),
    }


def _session_response(user: User):
    return jsonify({"user": _user_json(user), "csrf_token": ensure_csrf_token()})


def _credentials() -> tuple[str, str]:
    payload = (request.get_json(silent=True) if request.is_json else request.form) or {}
    return (payload.get("email") or "").strip().lower(), payload.get("password") or ""


@bp.post("/login")
def login_post():
    email, password = _credentials()
    ip = request.remote_addr or "unknown"

    if login_throttle.blocked(ip):
        current_app.logger.warning("Login throttled (ip=%s email=%s)", ip, email)
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429
    login_throttle.hit(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials."}), 401

        session["user_id"] = user.id
        login_throttle.clear(ip)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return _session_response(user)
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"ok": True})


@bp.get("/me")
def me():
    user = getattr(g, "current_user", None)
    if not user:
        return jsonify({"error": "Authentication required."}), 401
    return _session_response(user)
