# backend/trailwander/user_lists.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from flask import Blueprint, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .db import session_scope
from .errors import DatabaseError, NotFoundError
from .filter_fields import DEFAULT_UNIT, normalize_unit
from .trails import (
    COMPLETED_TABLE,
    WISHLIST_TABLE,
    get_completed_ids,
    get_full_trails_by_ids,
    get_wishlisted_ids,
    verify_trail_exists,
)
from .user_login import ensure_current_user

log = logging.getLogger(__name__)

bp = Blueprint("user_lists", __name__, url_prefix="/users")

_LIST_TABLES = {"wishlist": WISHLIST_TABLE, "completed": COMPLETED_TABLE}


def _table_for(list_name: str) -> str:
    table = _LIST_TABLES.get(list_name)
    if table is None:
        raise ValueError("list_name must be 'wishlist' or 'completed'")
    return table


def get_list_trails(
    user_id: int,
    list_name: str,
    unit: str = DEFAULT_UNIT,
    db_session: Optional[Any] = None,
) -> List[Dict[str, Any]]:
    """Hydrated trails on one of the user's lists; an empty list when there are none."""
    _table_for(list_name)

    def _execute_with_session(session: Any) -> List[Dict[str, Any]]:
        if list_name == "wishlist":
            trail_ids = get_wishlisted_ids(session, user_id)
        else:
            trail_ids = get_completed_ids(session, user_id)
        if not trail_ids:
            return []
        return get_full_trails_by_ids(sorted(trail_ids), user_id, unit=unit, db_session=session)

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("get_list_trails: unable to read %s for user %s", list_name, user_id)
        raise DatabaseError(f"Unable to retrieve {list_name} for user {user_id}") from e


def add_to_list(user_id: int, trail_id: int, list_name: str, db_session: Optional[Any] = None) -> int:
    """Put a trail on the user's list. Adding a trail twice is a no-op. Returns the trail id."""
    table = _table_for(list_name)

    def _execute_with_session(session: Any) -> int:
        verify_trail_exists(trail_id, db_session=session)
        session.execute(
            text(
                f"""
                INSERT INTO {table} (user_id, trail_id)
                SELECT :user_id, :trail_id
                WHERE NOT EXISTS (
                    SELECT 1 FROM {table} WHERE user_id = :user_id AND trail_id = :trail_id
                )
                """
            ),
            {"user_id": user_id, "trail_id": trail_id},
        )
        session.commit()
        return trail_id

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("add_to_list: trail %s not added to %s for user %s", trail_id, list_name, user_id)
        raise DatabaseError(f"Trail {trail_id} not added to {list_name}") from e


def remove_from_list(user_id: int, trail_id: int, list_name: str, db_session: Optional[Any] = None) -> int:
    """Take a trail off the user's list. Raises NotFoundError if it was not on it."""
    table = _table_for(list_name)

    def _execute_with_session(session: Any) -> int:
        deleted = session.execute(
            text(
                f"""
                DELETE FROM {table}
                WHERE user_id = :user_id AND trail_id = :trail_id
                RETURNING trail_id
                """
            ),
            {"user_id": user_id, "trail_id": trail_id},
        ).scalars().all()
        if not deleted:
            session.rollback()
            raise NotFoundError(f"Trail not found on {list_name}.")
        session.commit()
        return trail_id

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("remove_from_list: trail %s not removed from %s for user %s", trail_id, list_name, user_id)
        raise DatabaseError(f"Trail {trail_id} not removed from {list_name}") from e


def get_user_stats(user_id: int, unit: str = DEFAULT_UNIT, db_session: Optional[Any] = None) -> Dict[str, Any]:
    """Totals over the user's completed trails, in ``unit``."""
    som = normalize_unit(unit).lower()
    sql = text(
        f"""
        SELECT COALESCE(SUM(ts.distance_{som}), 0) AS total_distance,
               MAX(ts.elevation_high_{som}) AS highest_elevation,
               COALESCE(SUM(ts.elevation_gain_{som}), 0) AS total_elevation_gain,
               COUNT(ct.trail_id) AS trails_completed
        FROM completed_trails ct
        JOIN trail_stats ts ON ts.trail_id = ct.trail_id
        WHERE ct.user_id = :user_id
        """
    )

    def _execute_with_session(session: Any) -> Dict[str, Any]:
        row = session.execute(sql, {"user_id": user_id}).mappings().first() or {}

        def _num(value: Any) -> Any:
            return float(value) if value is not None and not isinstance(value, int) else value

        return {
            "totalDistance": _num(row.get("total_distance")),
            "highestElevation": _num(row.get("highest_elevation")),
            "totalElevationGain": _num(row.get("total_elevation_gain")),
            "trailsCompleted": int(row.get("trails_completed") or 0),
        }

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("get_user_stats: failed for user %s", user_id)
        raise DatabaseError("Error fetching user stats") from e


def get_user_profile(username: str, db_session: Optional[Any] = None) -> Dict[str, Any]:
    """Public profile fields for ``username``; NotFoundError if there is no such user."""
    sql = text(
        """
        SELECT id, username, first_name, last_name, email, profile_image_path
        FROM users
        WHERE username = :username
        """
    )

    def _execute_with_session(session: Any) -> Optional[Dict[str, Any]]:
        return session.execute(sql, {"username": username}).mappings().first()

    try:
        if db_session is not None:
            row = _execute_with_session(db_session)
        else:
            with session_scope() as session:
                row = _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("get_user_profile: failed for %s", username)
        raise DatabaseError("Error fetching user") from e
    if row is None:
        raise NotFoundError(f"User {username} not found")
    return {
        "id": row["id"],
        "username": row["username"],
        "firstName": row["first_name"],
        "lastName": row["last_name"],
        "email": row["email"],
        "profileImagePath": row["profile_image_path"],
    }


# -------- Routes --------

def _request_unit() -> str:
    return normalize_unit(request.args.get("unit"))


@bp.route("/<username>", methods=["GET"])
@ensure_current_user
def user_profile_api(username: str):
    return jsonify(user=get_user_profile(username))


@bp.route("/<username>/wishlist", methods=["GET"])
@ensure_current_user
def wishlist_api(username: str):
    return jsonify(wishlist=get_list_trails(g.current_user_id, "wishlist", _request_unit()))


@bp.route("/<username>/wishlist/<int:trail_id>", methods=["POST"])
@ensure_current_user
def wishlist_add_api(username: str, trail_id: int):
    return jsonify(addedId=add_to_list(g.current_user_id, trail_id, "wishlist"))


@bp.route("/<username>/wishlist/<int:trail_id>", methods=["DELETE"])
@ensure_current_user
def wishlist_delete_api(username: str, trail_id: int):
    return jsonify(deletedId=remove_from_list(g.current_user_id, trail_id, "wishlist"))


@bp.route("/<username>/completed", methods=["GET"])
@ensure_current_user
def completed_api(username: str):
    return jsonify(completedList=get_list_trails(g.current_user_id, "completed", _request_unit()))


@bp.route("/<username>/completed/<int:trail_id>", methods=["POST"])
@ensure_current_user
def completed_add_api(username: str, trail_id: int):
    return jsonify(addedId=add_to_list(g.current_user_id, trail_id, "completed"))


@bp.route("/<username>/completed/<int:trail_id>", methods=["DELETE"])
@ensure_current_user
def completed_delete_api(username: str, trail_id: int):
    return jsonify(deletedId=remove_from_list(g.current_user_id, trail_id, "completed"))


@bp.route("/<username>/stats", methods=["GET"])
@ensure_current_user
def stats_api(username: str):
    """Distance, highest point and elevation gain over the user's completed trails."""
    return jsonify(userStats=get_user_stats(g.current_user_id, _request_unit()))
