from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from trailwander.main import create_app


class FakeResult:
    """Just enough of SQLAlchemy's Result for the code under test."""

    def __init__(self, rows: Optional[List[Any]] = None, scalar: Any = None):
        self._rows = list(rows or [])
        self._scalar = scalar

    def scalar(self):
        if self._scalar is not None:
            return self._scalar
        if self._rows:
            first = self._rows[0]
            if isinstance(first, dict):
                return next(iter(first.values()))
            return first
        return None

    def scalars(self):
        values = []
        for row in self._rows:
            if isinstance(row, dict):
                values.append(next(iter(row.values())))
            else:
                values.append(row)
        return FakeResult(values)

    def mappings(self):
        return self

    def all(self):
        return list(self._rows)

    def first(self):
        return self._rows[0] if self._rows else None


class FakeSession:
    """Records every statement and replies with queued results in order."""

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.executed: List[Dict[str, Any]] = []
        self.commits = 0
        self.rollbacks = 0

    def queue(self, result: Any) -> "FakeSession":
        self.results.append(result)
        return self

    def execute(self, statement, params=None):
        self.executed.append({"sql": str(statement), "params": dict(params or {})})
        if not self.results:
            return FakeResult()
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def in_transaction(self):
        return False

    def close(self):
        pass


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def app():
    application = create_app(
        {"TESTING": True, "SECRET_KEY": "test-secret", "SEARCH_MAX_LIMIT": 50},
        configure_logging=False,
    )
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client, monkeypatch):
    """Log ``hiker`` in as user id 7 without touching the database."""
    import trailwander.user_login as user_login

    monkeypatch.setattr(user_login, "get_user_id", lambda username, db_session=None: 7 if username == "hiker" else None)
    with client.session_transaction() as sess:
        sess["username"] = "hiker"
    return client
