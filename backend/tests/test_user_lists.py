from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

import trailwander.user_lists as user_lists
from trailwander.errors import DatabaseError, NotFoundError
from tests.conftest import FakeResult, FakeSession


def test_empty_list_returns_no_trails(monkeypatch):
    monkeypatch.setattr(user_lists, "get_full_trails_by_ids", pytest.fail)
    session = FakeSession([FakeResult([])])
    assert user_lists.get_list_trails(7, "wishlist", db_session=session) == []
    assert "wanted_trails" in session.executed[0]["sql"]


def test_list_is_hydrated_for_the_user(monkeypatch):
    calls = []

    def fake_hydrate(trail_ids, user_id=None, *, unit, db_session):
        calls.append((list(trail_ids), user_id, unit))
        return [{"id": trail_id} for trail_id in trail_ids]

    monkeypatch.setattr(user_lists, "get_full_trails_by_ids", fake_hydrate)
    session = FakeSession([FakeResult([5, 3])])
    trails = user_lists.get_list_trails(7, "completed", "Metric", db_session=session)
    assert trails == [{"id": 3}, {"id": 5}]
    assert calls == [([3, 5], 7, "Metric")]
    assert "completed_trails" in session.executed[0]["sql"]


def test_unknown_list_name():
    with pytest.raises(ValueError):
        user_lists.get_list_trails(7, "favorites", db_session=FakeSession())


def test_add_to_list_commits():
    session = FakeSession([FakeResult([(3,)]), FakeResult()])
    assert user_lists.add_to_list(7, 3, "wishlist", db_session=session) == 3
    insert = session.executed[1]
    assert "INSERT INTO wanted_trails" in insert["sql"]
    assert "WHERE NOT EXISTS" in insert["sql"]
    assert insert["params"] == {"user_id": 7, "trail_id": 3}
    assert session.commits == 1


def test_add_unknown_trail():
    session = FakeSession([FakeResult([])])
    with pytest.raises(NotFoundError):
        user_lists.add_to_list(7, 999, "completed", db_session=session)
    assert session.commits == 0
    assert len(session.executed) == 1


def test_add_database_failure():
    session = FakeSession([FakeResult([(3,)]), IntegrityError("INSERT", {}, Exception("fk"))])
    with pytest.raises(DatabaseError):
        user_lists.add_to_list(7, 3, "completed", db_session=session)


def test_remove_from_list():
    session = FakeSession([FakeResult([4])])
    assert user_lists.remove_from_list(7, 4, "completed", db_session=session) == 4
    assert "DELETE FROM completed_trails" in session.executed[0]["sql"]
    assert session.commits == 1


def test_remove_missing_trail():
    session = FakeSession([FakeResult([])])
    with pytest.raises(NotFoundError):
        user_lists.remove_from_list(7, 4, "wishlist", db_session=session)
    assert session.commits == 0
    assert session.rollbacks == 1


def test_user_stats():
    row = {
        "total_distance": Decimal("14.75"),
        "highest_elevation": Decimal("2407"),
        "total_elevation_gain": Decimal("3100.5"),
        "trails_completed": 4,
    }
    session = FakeSession([FakeResult([row])])
    stats = user_lists.get_user_stats(7, "Imperial", db_session=session)
    assert stats == {
        "totalDistance": 14.75,
        "highestElevation": 2407.0,
        "totalElevationGain": 3100.5,
        "trailsCompleted": 4,
    }
    assert "distance_imperial" in session.executed[0]["sql"]


def test_user_stats_with_nothing_completed():
    row = {"total_distance": 0, "highest_elevation": None, "total_elevation_gain": 0, "trails_completed": 0}
    stats = user_lists.get_user_stats(7, "Metric", db_session=FakeSession([FakeResult([row])]))
    assert stats == {"totalDistance": 0, "highestElevation": None, "totalElevationGain": 0, "trailsCompleted": 0}


def test_user_profile_fields():
    session = FakeSession([FakeResult([{
        "id": 7,
        "username": "hiker",
        "first_name": "Ada",
        "last_name": "Ridge",
        "email": "ada@example.com",
        "profile_image_path": None,
    }])])
    profile = user_lists.get_user_profile("hiker", db_session=session)
    assert profile == {
        "id": 7,
        "username": "hiker",
        "firstName": "Ada",
        "lastName": "Ridge",
        "email": "ada@example.com",
        "profileImagePath": None,
    }
    assert session.executed[0]["params"] == {"username": "hiker"}
    assert "password" not in session.executed[0]["sql"]


def test_user_profile_missing_user():
    with pytest.raises(NotFoundError):
        user_lists.get_user_profile("nobody", db_session=FakeSession([FakeResult([])]))
