# backend/trailwander/search.py

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import text

from .config_loader import get_search_default_limit, get_search_max_limit
from .db import session_scope
from .errors import InvalidFilterKey, InvalidFilterValue, SearchExecutionError
from .filter_fields import (
    DEFAULT_UNIT,
    FILTER_FIELDS,
    KIND_DIFFICULTY,
    KIND_DISTANCE,
    KIND_ELEVATION,
    KIND_EQUALITY,
    KIND_FEATURES,
    KIND_TYPE,
    FilterEntry,
    describe_filters,
    normalize_unit,
    parse_filters,
)
from .helpers import is_number, parse_json_object, parse_positive_int
from .query_params import ParamBinder
from .trails import get_full_trails_by_ids
from .user_login import ensure_current_user

log = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
# keeps (page - 1) * limit well inside a bigint OFFSET
MAX_PAGE = 1_000_000

BASE_PREDICATE = " WHERE 1=1 "

_TRAIL_JOINS = """
    FROM trails t
    LEFT JOIN trail_features tf ON t.id = tf.trail_id
    LEFT JOIN features f ON tf.feature_id = f.id
    LEFT JOIN trail_stats ts ON t.id = ts.trail_id
"""

_SEARCH_DOCUMENT = "COALESCE(t.name, '') || ' ' || COALESCE(t.city, '') || ' ' || COALESCE(t.state, '')"

_NON_WORD_RE = re.compile(r"[^\w\s]", re.UNICODE)

bp = Blueprint("search", __name__, url_prefix="/trails")


# ---------------------------------------------------------------------------
# Search term
# ---------------------------------------------------------------------------

def sanitize_search_term(search_term: Optional[str]) -> str:
    """
    Reduce free text to a ``to_tsquery`` expression where every word must match.

        "Cave & Falls!"  -> "Cave & Falls"
        "   "            -> ""

    Words are split on whitespace and stripped of everything that is not a
    word character; words left empty are dropped.
    """
    if not search_term or not isinstance(search_term, str):
        return ""
    words = []
    for raw_word in search_term.split():
        word = _NON_WORD_RE.sub("", raw_word)
        if word:
            words.append(word)
    return " & ".join(words)


def search_term_predicate(search_term: Optional[str], binder: ParamBinder) -> str:
    """Full-text predicate for ``search_term``, or "" when nothing survives sanitizing."""
    expression = sanitize_search_term(search_term)
    if not expression:
        if search_term and search_term.strip():
            log.debug("search term reduced to nothing after sanitizing; no text predicate")
        return ""
    placeholder = binder.add(expression)
    return f" AND to_tsvector('english', {_SEARCH_DOCUMENT}) @@ to_tsquery('english', {placeholder}) "


# ---------------------------------------------------------------------------
# Range filters
# ---------------------------------------------------------------------------

def _active_entry(
    entries: Iterable[FilterEntry],
    lookup_key: str,
    consumed: Set[str],
) -> Optional[FilterEntry]:
    for candidate in entries:
        if candidate.key in consumed or candidate.value is None:
            continue
        if candidate.kind == KIND_DISTANCE and candidate.lookup_key == lookup_key:
            return candidate
    return None


def build_distance_predicate(
    entry: FilterEntry,
    entries: Iterable[FilterEntry],
    binder: ParamBinder,
    fields: Mapping[str, str] = FILTER_FIELDS,
    consumed: Optional[Set[str]] = None,
) -> str:
    """
    Distance filter, inclusive on both ends.

    When the opposite bound for the same unit is also present the pair becomes
    one ``BETWEEN`` (swapped first if min > max) and both entries are marked
    consumed. Otherwise a single ``>=`` / ``<=`` comparison is emitted.
    """
    if consumed is None:
        consumed = set()
    current_column = fields.get(entry.lookup_key)
    paired_column = fields.get(entry.opposite_lookup_key)
    if not current_column or not paired_column:
        raise InvalidFilterKey(f"Invalid filter key: {entry.key}")

    paired = _active_entry(
        (candidate for candidate in entries if candidate is not entry),
        entry.opposite_lookup_key,
        consumed,
    )
    if paired is not None:
        if entry.bound == "min":
            low, high = entry.value, paired.value
        else:
            low, high = paired.value, entry.value
        if low > high:
            low, high = high, low
        column = current_column if entry.bound == "min" else paired_column
        low_param = binder.add(low)
        high_param = binder.add(high)
        consumed.update((entry.key, paired.key))
        return f" AND {column} BETWEEN {low_param} AND {high_param} "

    param = binder.add(entry.value)
    consumed.add(entry.key)
    operator = ">=" if entry.bound == "min" else "<="
    return f" AND {current_column} {operator} {param} "


def build_elevation_predicate(
    entry: FilterEntry,
    binder: ParamBinder,
    fields: Mapping[str, str] = FILTER_FIELDS,
) -> str:
    """Elevation, elevation gain and elevation loss: one strict threshold per key."""
    column = fields.get(entry.lookup_key)
    if not column:
        raise InvalidFilterKey(f"Invalid filter key: {entry.key}")
    operator = ">" if entry.bound == "min" else "<"
    param = binder.add(entry.value)
    return f" AND {column} {operator} {param} "


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def _features_predicate(names: Iterable[str], binder: ParamBinder) -> str:
    # trail must carry every requested feature, not just one of them
    distinct_names = list(dict.fromkeys(name.lower() for name in names))
    param = binder.add(distinct_names)
    return f"""
        AND t.id IN (
            SELECT tf_req.trail_id
            FROM trail_features tf_req
            JOIN features f_req ON tf_req.feature_id = f_req.id
            WHERE LOWER(f_req.feature_name) = ANY(CAST({param} AS text[]))
            GROUP BY tf_req.trail_id
            HAVING COUNT(DISTINCT LOWER(f_req.feature_name)) = {len(distinct_names)}
        ) """


def _equality_predicate(column: str, value: Any, binder: ParamBinder) -> str:
    if is_number(value):
        return f" AND {column} = {binder.add(value)} "
    return f" AND LOWER({column}) = LOWER({binder.add(str(value))}) "


def compose_entries(
    entries: Iterable[FilterEntry],
    binder: ParamBinder,
    fields: Mapping[str, str] = FILTER_FIELDS,
) -> str:
    """Translate parsed filter entries into AND-ed predicate text, binding values as it goes."""
    entries = tuple(entries)
    consumed: Set[str] = set()
    fragments: List[str] = []

    for entry in entries:
        if entry.key in consumed:
            continue

        if entry.kind == KIND_FEATURES:
            if entry.value:
                fragments.append(_features_predicate(entry.value, binder))

        elif entry.kind in (KIND_DIFFICULTY, KIND_TYPE):
            if entry.value:
                param = binder.add(list(entry.value))
                fragments.append(f" AND {fields[entry.key]} = ANY(CAST({param} AS text[])) ")

        elif entry.kind == KIND_DISTANCE:
            if entry.value is None:
                continue
            fragments.append(build_distance_predicate(entry, entries, binder, fields, consumed))

        elif entry.kind == KIND_ELEVATION:
            if entry.value is None:
                continue
            fragments.append(build_elevation_predicate(entry, binder, fields))

        elif entry.kind == KIND_EQUALITY:
            column = fields.get(entry.key)
            if column:
                fragments.append(_equality_predicate(column, entry.value, binder))

    return "".join(fragments)


def compose_predicate(
    filters: Optional[Mapping[str, Any]],
    binder: ParamBinder,
    fields: Mapping[str, str] = FILTER_FIELDS,
    unit: str = DEFAULT_UNIT,
) -> str:
    """Parse a raw filter map and compose it; the caller's mapping is left untouched."""
    return compose_entries(parse_filters(filters, unit), binder, fields)


def build_where_clause(
    search_term: Optional[str],
    filters: Optional[Mapping[str, Any]],
    binder: ParamBinder,
    unit: str = DEFAULT_UNIT,
    fields: Mapping[str, str] = FILTER_FIELDS,
) -> str:
    """``WHERE 1=1`` followed by the text predicate and every filter predicate."""
    return BASE_PREDICATE + search_term_predicate(search_term, binder) + compose_predicate(
        filters, binder, fields, unit
    )


# ---------------------------------------------------------------------------
# Count + page
# ---------------------------------------------------------------------------

def _page_args(page: Any, limit: Any, max_limit: Optional[int]) -> tuple[int, int]:
    try:
        page_value = parse_positive_int(page, "page", DEFAULT_PAGE, maximum=MAX_PAGE)
        limit_value = parse_positive_int(limit, "limit", DEFAULT_LIMIT)
    except ValueError as e:
        raise InvalidFilterValue(str(e)) from None
    if max_limit and limit_value > max_limit:
        log.info("search limit %s above cap; clamping to %s", limit_value, max_limit)
        limit_value = max_limit
    return page_value, limit_value


def search_trails(
    search_term: Optional[str] = None,
    page: Any = DEFAULT_PAGE,
    limit: Any = DEFAULT_LIMIT,
    filters: Optional[Mapping[str, Any]] = None,
    user_id: Optional[int] = None,
    unit: Optional[str] = DEFAULT_UNIT,
    *,
    max_limit: Optional[int] = None,
    db_session: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Search trails by free text and filters, one page at a time.

    Returns ``{"totalCount": int, "trails": [hydrated trail, ...]}`` where
    ``totalCount`` counts every match and ``trails`` holds only the requested
    page. ``filters`` accepts the keys listed in
    :data:`trailwander.filter_fields.FILTER_FIELDS` plus ``features``.

    Raises:
        InvalidFilterValue / InvalidFilterKey  before any query runs.
        SearchExecutionError                   when a query fails.
    """
    unit = normalize_unit(unit)
    if max_limit is None:
        max_limit = get_search_max_limit()
    page_value, limit_value = _page_args(page, limit, max_limit)
    offset_value = (page_value - 1) * limit_value

    entries = parse_filters(filters, unit)
    binder = ParamBinder()
    where_clause = BASE_PREDICATE + search_term_predicate(search_term, binder) + compose_entries(entries, binder)

    log.debug(
        "search_trails page=%s limit=%s unit=%s text=%s filters=%s",
        page_value,
        limit_value,
        unit,
        bool(sanitize_search_term(search_term)),
        describe_filters(entries),
    )

    count_sql = text(f"SELECT COUNT(DISTINCT t.id) AS total_count {_TRAIL_JOINS} {where_clause}")

    def _execute_with_session(session: Any) -> Dict[str, Any]:
        total_count = int(session.execute(count_sql, binder.params).scalar() or 0)

        limit_param = binder.add(limit_value)
        offset_param = binder.add(offset_value)
        ids_sql = text(
            f"SELECT DISTINCT t.id {_TRAIL_JOINS} {where_clause} "
            f"ORDER BY t.id LIMIT {limit_param} OFFSET {offset_param}"
        )
        trail_ids = [int(value) for value in session.execute(ids_sql, binder.params).scalars().all()]

        if not trail_ids:
            return {"totalCount": total_count, "trails": []}

        trails = get_full_trails_by_ids(trail_ids, user_id, unit=unit, db_session=session)
        return {"totalCount": total_count, "trails": trails}

    try:
        if db_session is not None:
            return _execute_with_session(db_session)
        with session_scope() as session:
            return _execute_with_session(session)
    except Exception as exc:
        log.exception("search_trails: query failed filters=%s", describe_filters(entries))
        raise SearchExecutionError() from exc


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _search_from_request(user_id: Optional[int]) -> Dict[str, Any]:
    args = request.args
    try:
        filters = parse_json_object(args.get("filters"))
    except ValueError as e:
        raise InvalidFilterValue(str(e)) from None

    cfg = current_app.config
    return search_trails(
        args.get("searchTerm"),
        args.get("page") or DEFAULT_PAGE,
        args.get("limit") or get_search_default_limit(cfg),
        filters,
        user_id,
        args.get("unit") or cfg.get("DEFAULT_UNIT") or DEFAULT_UNIT,
        max_limit=get_search_max_limit(cfg),
    )


@bp.route("/search", methods=["GET"])
def search_api():
    """
    GET /trails/search?searchTerm=&page=1&limit=10&unit=Imperial&filters={...}

    Example filters:
        {"type": ["Loop"], "city": "huntsville", "state": "al",
         "minDistanceImperial": 2, "features": ["Waterfall", "Cave"]}

    Response:
        {"result": {"totalCount": 12, "trails": [...]}}
    """
    return jsonify(result=_search_from_request(None))


@bp.route("/search/<username>", methods=["GET"])
@ensure_current_user
def search_for_user_api(username: str):
    """Same as /trails/search, with wishlist/completed flags for the logged in user."""
    return jsonify(result=_search_from_request(g.current_user_id))
