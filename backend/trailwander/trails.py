# backend/trailwander/trails.py
from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from flask import Blueprint, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .db import session_scope
from .errors import BadRequestError, DatabaseError, NotFoundError
from .filter_fields import DEFAULT_UNIT, normalize_unit
from .helpers import parse_id_list, split_csv_ids
from .user_login import ensure_current_user

log = logging.getLogger(__name__)

bp = Blueprint("trails", __name__, url_prefix="/trails")

WISHLIST_TABLE = "wanted_trails"
COMPLETED_TABLE = "completed_trails"


def _json_number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def _unit_suffix(unit: Optional[str]) -> str:
    return normalize_unit(unit).lower()


def get_stats_by_ids(session: Any, trail_ids: List[int], unit: str = DEFAULT_UNIT) -> Dict[int, Dict[str, Any]]:
    """Return ``{trail_id: stats}`` with distance and elevation in ``unit``."""
    som = _unit_suffix(unit)
    sql = text(
        f"""
        SELECT trail_id,
               type,
               distance_{som} AS distance,
               elevation_high_{som} AS elevation_high,
               elevation_low_{som} AS elevation_low,
               elevation_gain_{som} AS elevation_gain,
               elevation_loss_{som} AS elevation_loss,
               avg_grade_percent,
               avg_grade_degree,
               max_grade_percent,
               max_grade_degree
        FROM trail_stats
        WHERE trail_id = ANY(CAST(:trail_ids AS int[]))
        """
    )
    stats: Dict[int, Dict[str, Any]] = {}
    for row in session.execute(sql, {"trail_ids": trail_ids}).mappings().all():
        stats[int(row["trail_id"])] = {
            "type": row["type"],
            "distance": _json_number(row["distance"]),
            "elevationHigh": _json_number(row["elevation_high"]),
            "elevationLow": _json_number(row["elevation_low"]),
            "elevationGain": _json_number(row["elevation_gain"]),
            "elevationLoss": _json_number(row["elevation_loss"]),
            "avgGradePercent": _json_number(row["avg_grade_percent"]),
            "avgGradeDegree": _json_number(row["avg_grade_degree"]),
            "maxGradePercent": _json_number(row["max_grade_percent"]),
            "maxGradeDegree": _json_number(row["max_grade_degree"]),
        }
    return stats


def get_features_by_ids(session: Any, trail_ids: List[int]) -> Dict[int, List[str]]:
    sql = text(
        """
        SELECT tf.trail_id, array_agg(f.feature_name ORDER BY f.feature_name) AS features
        FROM trail_features tf
        JOIN features f ON tf.feature_id = f.id
        WHERE tf.trail_id = ANY(CAST(:trail_ids AS int[]))
        GROUP BY tf.trail_id
        """
    )
    rows = session.execute(sql, {"trail_ids": trail_ids}).mappings().all()
    return {int(row["trail_id"]): list(row["features"] or []) for row in rows}


def get_images_by_ids(session: Any, trail_ids: List[int]) -> Dict[int, List[str]]:
    sql = text(
        """
        SELECT trail_id, array_agg(path ORDER BY id) AS paths
        FROM trail_images
        WHERE trail_id = ANY(CAST(:trail_ids AS int[]))
        GROUP BY trail_id
        """
    )
    rows = session.execute(sql, {"trail_ids": trail_ids}).mappings().all()
    return {int(row["trail_id"]): list(row["paths"] or []) for row in rows}


def get_coords_by_ids(session: Any, trail_ids: List[int]) -> Dict[int, List[Any]]:
    """Polyline coordinates per trail; PostGIS does the geometry to GeoJSON conversion."""
    sql = text(
        """
        SELECT trail_id, ST_AsGeoJSON(polyline) AS geojson
        FROM trail_polylines
        WHERE trail_id = ANY(CAST(:trail_ids AS int[]))
        """
    )
    coords: Dict[int, List[Any]] = {}
    for row in session.execute(sql, {"trail_ids": trail_ids}).mappings().all():
        geojson = row["geojson"]
        if isinstance(geojson, str):
            geojson = json.loads(geojson)
        coords[int(row["trail_id"])] = list((geojson or {}).get("coordinates") or [])
    return coords


def _user_trail_ids(session: Any, table: str, user_id: int, trail_ids: Optional[List[int]]) -> Set[int]:
    if table not in {WISHLIST_TABLE, COMPLETED_TABLE}:
        raise ValueError("table must be wanted_trails or completed_trails")
    sql_text = f"SELECT trail_id FROM {table} WHERE user_id = :user_id"
    params: Dict[str, Any] = {"user_id": user_id}
    if trail_ids is not None:
        sql_text += " AND trail_id = ANY(CAST(:trail_ids AS int[]))"
        params["trail_ids"] = trail_ids
    return {int(value) for value in session.execute(text(sql_text), params).scalars().all()}


def get_wishlisted_ids(session: Any, user_id: int, trail_ids: Optional[List[int]] = None) -> Set[int]:
    """Trail ids on the user's wishlist, optionally limited to ``trail_ids``."""
    return _user_trail_ids(session, WISHLIST_TABLE, user_id, trail_ids)


def get_completed_ids(session: Any, user_id: int, trail_ids: Optional[List[int]] = None) -> Set[int]:
    """Trail ids the user has completed, optionally limited to ``trail_ids``."""
    return _user_trail_ids(session, COMPLETED_TABLE, user_id, trail_ids)


def get_full_trails_by_ids(
    raw_trail_ids: Iterable[Any],
    user_id: Optional[int] = None,
    *,
    unit: str = DEFAULT_UNIT,
    db_session: Optional[Any] = None,
) -> List[Dict[str, Any]]:
    """
    Hydrate trail ids into full trail records.

    Each record carries the trail row plus ``stats`` (in ``unit``),
    ``features``, ``imagePaths``, ``coordinates`` and the ``isWishList`` /
    ``isComplete`` flags for ``user_id`` (both False without a user).
    Records come back in the order of ``raw_trail_ids``.

    Raises:
        BadRequestError  if an id is not numeric
        NotFoundError    if no id matches a trail (including an empty id list)
        DatabaseError    if a query fails
    """
    try:
        trail_ids = list(dict.fromkeys(parse_id_list(raw_trail_ids)))
    except ValueError as e:
        raise BadRequestError(str(e)) from None
    if not trail_ids:
        raise NotFoundError("No trails found for the provided IDs")

    def _execute_with_session(session: Any) -> List[Dict[str, Any]]:
        trail_rows = session.execute(
            text(
                """
                SELECT id, name, city, state, difficulty, dogs_allowed, description, land_manager
                FROM trails
                WHERE id = ANY(CAST(:trail_ids AS int[]))
                """
            ),
            {"trail_ids": trail_ids},
        ).mappings().all()

        if not trail_rows:
            raise NotFoundError("No trails found for the provided IDs")

        stats_map = get_stats_by_ids(session, trail_ids, unit)
        features_map = get_features_by_ids(session, trail_ids)
        images_map = get_images_by_ids(session, trail_ids)
        coords_map = get_coords_by_ids(session, trail_ids)
        wishlisted: Set[int] = set()
        completed: Set[int] = set()
        if user_id:
            wishlisted = get_wishlisted_ids(session, user_id, trail_ids)
            completed = get_completed_ids(session, user_id, trail_ids)

        by_id: Dict[int, Dict[str, Any]] = {}
        for row in trail_rows:
            trail_id = int(row["id"])
            by_id[trail_id] = {
                "id": trail_id,
                "name": row["name"],
                "city": row["city"],
                "state": row["state"],
                "difficulty": row["difficulty"],
                "dogsAllowed": row["dogs_allowed"],
                "description": row["description"],
                "landManager": row["land_manager"],
                "stats": stats_map.get(trail_id, {}),
                "features": features_map.get(trail_id, []),
                "imagePaths": images_map.get(trail_id, []),
                "coordinates": coords_map.get(trail_id, []),
                "isWishList": trail_id in wishlisted,
                "isComplete": trail_id in completed,
            }

        return [by_id[trail_id] for trail_id in trail_ids if trail_id in by_id]

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except SQLAlchemyError as e:
        log.exception("get_full_trails_by_ids: query failed")
        raise DatabaseError("Error retrieving trails by id") from e


def verify_trail_exists(trail_id: int, db_session: Optional[Any] = None) -> bool:
    """Return True or raise NotFoundError."""

    def _execute_with_session(session: Any) -> bool:
        row = session.execute(text("SELECT id FROM trails WHERE id = :trail_id"), {"trail_id": trail_id}).first()
        if row is None:
            raise NotFoundError(f"Trail id {trail_id} not found")
        return True

    if db_session is not None:
        return _execute_with_session(db_session)
    with session_scope() as session:
        return _execute_with_session(session)


def list_feature_names(db_session: Optional[Any] = None) -> List[str]:
    """Every feature name known to the catalog, alphabetically."""
    sql = text("SELECT feature_name FROM features ORDER BY feature_name")
    if db_session is not None:
        return list(db_session.execute(sql).scalars().all())
    with session_scope() as session:
        return list(session.execute(sql).scalars().all())


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@bp.route("/features", methods=["GET"])
def features_api():
    """GET /trails/features -> {"features": ["Cave", "Waterfall", ...]}"""
    return jsonify(features=list_feature_names())


@bp.route("/coords/<ids>", methods=["GET"])
def coords_api(ids: str):
    """GET /trails/coords/1,2,3 -> {"coords": [{"trailId": 1, "coordinates": [[lon, lat], ...]}]}"""
    try:
        trail_ids = parse_id_list(split_csv_ids(ids))
    except ValueError as e:
        raise BadRequestError(str(e)) from None
    if not trail_ids:
        raise BadRequestError("At least one trail id is required.")
    with session_scope() as session:
        coords_map = get_coords_by_ids(session, trail_ids)
    coords = [{"trailId": trail_id, "coordinates": coords_map[trail_id]} for trail_id in trail_ids if trail_id in coords_map]
    return jsonify(coords=coords)


@bp.route("/<int:trail_id>", methods=["GET"])
def trail_api(trail_id: int):
    return jsonify(trail=get_full_trails_by_ids([trail_id], unit=normalize_unit(request.args.get("unit"))))


@bp.route("/<int:trail_id>/<username>", methods=["GET"])
@ensure_current_user
def trail_for_user_api(trail_id: int, username: str):
    """Single trail with the logged in user's wishlist/completed flags."""
    unit = normalize_unit(request.args.get("unit"))
    return jsonify(trail=get_full_trails_by_ids([trail_id], g.current_user_id, unit=unit))
