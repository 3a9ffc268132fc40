# backend/trailwander/db.py
"""
Database engine and sessions for the trail catalog (PostgreSQL + PostGIS).

The connection target is resolved once per process:

    DATABASE_URL                         full SQLAlchemy URL, wins outright
    DB_USER / DB_PASSWORD / DB_HOST /    parts, falling back to the libpq
    DB_PORT / DB_NAME                    PG* variables, then config/db.json
    TRAILWANDER_ENV=test                 switch DB_NAME for DB_TEST_NAME

Request handlers share one session per app context (released by
:func:`db_cleanup`); scripts and tests get a private one from
:func:`session_scope`.
"""
from __future__ import annotations

import json
import logging
import os
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from flask import Blueprint, g, has_app_context, jsonify
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

log = logging.getLogger(__name__)

bp = Blueprint("dbstatus", __name__)

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILES = (REPO_ROOT / "backend" / ".env", REPO_ROOT / ".env")
DB_JSON_PATH = REPO_ROOT / "config" / "db.json"

_G_SESSION_KEY = "trailwander_db"

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_request_sessions: Optional[scoped_session] = None
_engine_lock = threading.Lock()


@dataclass(frozen=True)
class DbSettings:
    user: str = "trails"
    password: str = "trails"
    host: str = "127.0.0.1"
    port: str = "5432"
    name: str = "tw"

    @property
    def url(self) -> str:
        # psycopg 3 driver; password may hold URL-reserved characters
        return f"postgresql+psycopg://{self.user}:{quote_plus(self.password)}@{self.host}:{self.port}/{self.name}"


def is_test_env() -> bool:
    return (os.getenv("TRAILWANDER_ENV") or "").strip().lower() == "test"


def _load_env_files() -> None:
    for env_file in ENV_FILES:
        if env_file.exists():
            log.debug("loading %s", env_file)
            load_dotenv(env_file, override=False)


def _read_db_json() -> Dict[str, str]:
    """Connection parts from config/db.json; see config/db.json.example."""
    if not DB_JSON_PATH.exists():
        return {}
    try:
        data = json.loads(DB_JSON_PATH.read_text(encoding="utf-8"))
    except Exception:
        log.warning("Failed to read %s", DB_JSON_PATH, exc_info=True)
        return {}
    if not isinstance(data, dict):
        log.warning("%s does not hold a JSON object; ignoring it", DB_JSON_PATH)
        return {}
    return {str(key): str(value) for key, value in data.items() if value is not None}


def load_db_settings() -> DbSettings:
    name_key = "DB_TEST_NAME" if is_test_env() else "DB_NAME"
    from_env = {
        "DB_USER": os.getenv("DB_USER") or os.getenv("PGUSER"),
        "DB_PASSWORD": os.getenv("DB_PASSWORD") or os.getenv("PGPASSWORD"),
        "DB_HOST": os.getenv("DB_HOST") or os.getenv("PGHOST"),
        "DB_PORT": os.getenv("DB_PORT") or os.getenv("PGPORT"),
        name_key: os.getenv(name_key) or (None if is_test_env() else os.getenv("PGDATABASE")),
    }
    from_json = _read_db_json() if any(value is None for value in from_env.values()) else {}

    def pick(key: str, default: str) -> str:
        return from_env.get(key) or from_json.get(key) or default

    return DbSettings(
        user=pick("DB_USER", DbSettings.user),
        password=pick("DB_PASSWORD", DbSettings.password),
        host=pick("DB_HOST", DbSettings.host),
        port=pick("DB_PORT", DbSettings.port),
        name=pick(name_key, "tw_test" if is_test_env() else DbSettings.name),
    )


def build_db_url() -> str:
    _load_env_files()
    return os.getenv("DATABASE_URL") or load_db_settings().url


def redact_url(url: str) -> str:
    return re.sub(r"(://[^:/@]+:)[^@]*@", r"\1***@", url)


def _env_flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip().lower() in ("1", "true", "yes", "on")


def _pool_options() -> Dict[str, Any]:
    return {
        "echo": _env_flag("SQLALCHEMY_ECHO", "0"),
        "pool_size": int(os.getenv("SQLALCHEMY_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("SQLALCHEMY_MAX_OVERFLOW", "10")),
        "pool_pre_ping": _env_flag("SQLALCHEMY_POOL_PRE_PING", "1"),
    }


def get_engine() -> Engine:
    """Process-wide pooled Engine, created on first use."""
    global _engine, _session_factory, _request_sessions
    if _engine is not None:
        return _engine
    with _engine_lock:
        if _engine is None:
            url = build_db_url()
            options = _pool_options()
            log.info("Creating DB engine url=%s %s", redact_url(url), options)
            _engine = create_engine(url, **options)
            _session_factory = sessionmaker(bind=_engine)
            _request_sessions = scoped_session(_session_factory)
    return _engine


def request_session() -> Session:
    """The session bound to the current app context, opened on first use."""
    session = g.get(_G_SESSION_KEY)
    if session is None:
        get_engine()
        session = _request_sessions()
        setattr(g, _G_SESSION_KEY, session)
    return session


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Yield a session for a unit of work.

    Inside an app context this is the request's shared session and stays
    open for teardown; elsewhere a private session is closed on exit. Either
    way an exception rolls back the open transaction.
    """
    owned = not has_app_context()
    if owned:
        get_engine()
        session = _session_factory()
    else:
        session = request_session()
    try:
        yield session
    except Exception:
        if session.in_transaction():
            session.rollback()
        raise
    finally:
        if owned:
            session.close()


def ping_db() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        log.exception("DB ping failed")
        return False
    return True


def db_cleanup(exc: Optional[BaseException]) -> None:
    """teardown_appcontext hook: roll back on error and release the request session."""
    session = g.pop(_G_SESSION_KEY, None) if has_app_context() else None
    if session is not None and exc is not None and session.in_transaction():
        session.rollback()
    if _request_sessions is not None:
        _request_sessions.remove()


@bp.get("/api/health")
def health():
    if ping_db():
        return jsonify(ok=True)
    return jsonify(ok=False, error="database unreachable"), 503


@bp.get("/api/dbpool")
def pool_status():
    """Checked-out connection count for the shared pool."""
    pool = get_engine().pool
    checked_out = pool.checkedout() if hasattr(pool, "checkedout") else None
    return jsonify(ok=True, checked_out=checked_out, status=pool.status())
