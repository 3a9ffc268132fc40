# backend/trailwander/user_login.py
"""
Request identity.

Signing users in (local passwords, OAuth, tokens) is handled by a separate
auth service which writes ``session["username"]``. This module only reads
that value, resolves it to a user id and guards the per-user routes.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from functools import wraps
from typing import Any, Optional

from flask import Blueprint, g, jsonify, session
from sqlalchemy import text

from .db import session_scope
from .errors import UnauthorizedError

log = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

SESSION_USER_KEY = "username"


def current_username() -> Optional[str]:
    raw_username = session.get(SESSION_USER_KEY)
    if isinstance(raw_username, str):
        candidate = raw_username.strip()
        return candidate or None
    return None


def get_user_id(username: str, db_session: Optional[Any] = None) -> Optional[int]:
    """Look up a user's id by username; None when there is no such user."""
    sql = text("SELECT id FROM users WHERE username = :username")
    if db_session is not None:
        value = db_session.execute(sql, {"username": username}).scalar()
    else:
        with session_scope() as s:
            value = s.execute(sql, {"username": username}).scalar()
    return int(value) if value is not None else None


def ensure_current_user(fn):
    """
    Decorator for routes with a ``<username>`` segment.

    The logged in user must be the one named in the URL; their id is stored
    on ``g.current_user_id`` for the view.

        @bp.route("/<username>/wishlist")
        @ensure_current_user
        def wishlist(username):
            ...g.current_user_id...
    """

    @wraps(fn)
    def wrapper(*args, **kwargs):
        username = kwargs.get("username")
        logged_in = current_username()
        if not logged_in:
            raise UnauthorizedError("Not authenticated.")
        if username != logged_in:
            log.info("user %s refused access to routes of %s", logged_in, username)
            raise UnauthorizedError()
        user_id = get_user_id(logged_in)
        if user_id is None:
            raise UnauthorizedError("Unknown user.")
        g.current_user_id = user_id
        return fn(*args, **kwargs)

    return wrapper


# -------- Session lifetime / refresh --------

@bp.record_once
def _configure_session_lifetime(setup_state):
    """Default to a 30-day permanent session unless configured elsewhere."""
    app = setup_state.app
    if not app.config.get("PERMANENT_SESSION_LIFETIME"):
        app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)


@bp.before_app_request
def _refresh_permanent_session():
    """Keep the rolling expiry moving while the user is active."""
    if session.get(SESSION_USER_KEY):
        session.permanent = True
        session.modified = True


# -------- Routes --------

@bp.route("/logout", methods=["POST", "GET"])
def logout():
    session.pop(SESSION_USER_KEY, None)
    return jsonify(ok=True), 200


@bp.route("/whoami", methods=["GET"])
def whoami():
    """{"username": "..."} if authenticated, else 401."""
    username = current_username()
    if not username:
        raise UnauthorizedError("Not authenticated.")
    return jsonify(ok=True, username=username), 200
