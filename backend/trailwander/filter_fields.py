# backend/trailwander/filter_fields.py
"""
Client filter keys, the columns they map to, and parsing of a raw filter map
into typed :class:`FilterEntry` records.

A search request carries its filters as a JSON object, e.g.::

    {"type": ["Loop"], "city": "huntsville", "minDistanceImperial": 2,
     "features": ["Waterfall", "Cave"]}

:func:`parse_filters` validates that object once, up front, and returns an
immutable tuple of entries; the predicate builders in :mod:`trailwander.search`
only ever see those entries.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import InvalidFilterValue
from .helpers import coerce_number

log = logging.getLogger(__name__)

UNITS = ("Imperial", "Metric")
DEFAULT_UNIT = "Imperial"

KIND_FEATURES = "features"
KIND_DIFFICULTY = "difficulty"
KIND_TYPE = "type"
KIND_DISTANCE = "distance"
KIND_ELEVATION = "elevation"
KIND_EQUALITY = "equality"

# Client-facing filter key -> SQL column expression.
# Aliases: t = trails, ts = trail_stats.
FILTER_FIELDS: Dict[str, str] = {
    "name": "t.name",
    "city": "t.city",
    "state": "t.state",
    "dogsAllowed": "t.dogs_allowed",
    "landManager": "t.land_manager",
    "difficulty": "t.difficulty",
    "type": "ts.type",
    "minDistanceImperial": "ts.distance_imperial",
    "maxDistanceImperial": "ts.distance_imperial",
    "minDistanceMetric": "ts.distance_metric",
    "maxDistanceMetric": "ts.distance_metric",
    "minElevationImperial": "ts.elevation_high_imperial",
    "maxElevationImperial": "ts.elevation_high_imperial",
    "minElevationMetric": "ts.elevation_high_metric",
    "maxElevationMetric": "ts.elevation_high_metric",
    "minElevationGainImperial": "ts.elevation_gain_imperial",
    "maxElevationGainImperial": "ts.elevation_gain_imperial",
    "minElevationGainMetric": "ts.elevation_gain_metric",
    "maxElevationGainMetric": "ts.elevation_gain_metric",
    "minElevationLossImperial": "ts.elevation_loss_imperial",
    "maxElevationLossImperial": "ts.elevation_loss_imperial",
    "minElevationLossMetric": "ts.elevation_loss_metric",
    "maxElevationLossMetric": "ts.elevation_loss_metric",
}

# Longest family names first so "minElevationGain" is not read as "minElevation" + "Gain".
_RANGE_KEY_RE = re.compile(r"^(min|max)(ElevationGain|ElevationLoss|Elevation|Distance)([A-Za-z]*)$")

US_STATES: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}


@dataclass(frozen=True)
class FilterEntry:
    """One validated filter.

    ``key`` is the key exactly as the caller sent it. Range entries also carry
    ``bound`` ("min" or "max"), ``family`` (e.g. "Distance", "ElevationGain")
    and ``unit`` (the suffix used to find the column, possibly unrecognized).
    """

    kind: str
    key: str
    value: Any
    bound: Optional[str] = None
    family: Optional[str] = None
    unit: Optional[str] = None

    @property
    def lookup_key(self) -> str:
        """Field table key; unit-qualified for range entries."""
        if self.kind in (KIND_DISTANCE, KIND_ELEVATION):
            return f"{self.bound}{self.family}{self.unit}"
        return self.key

    @property
    def opposite_lookup_key(self) -> str:
        other = "max" if self.bound == "min" else "min"
        return f"{other}{self.family}{self.unit}"


def normalize_unit(unit: Any) -> str:
    """Return ``"Imperial"`` or ``"Metric"``; None means the default unit."""
    if unit is None or (isinstance(unit, str) and not unit.strip()):
        return DEFAULT_UNIT
    if isinstance(unit, str):
        candidate = unit.strip().capitalize()
        if candidate in UNITS:
            return candidate
    raise InvalidFilterValue(f"Unit must be one of {', '.join(UNITS)}.")


def normalize_state(value: Any) -> Any:
    """Map a full US state name to its abbreviation; anything else passes through."""
    if isinstance(value, str):
        abbreviation = US_STATES.get(value.strip().lower())
        if abbreviation:
            return abbreviation
        return value.strip()
    return value


def _string_list(key: str, value: Any, *, allow_single: bool) -> List[str]:
    if allow_single and isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise InvalidFilterValue(f"{key} filter must be an array")
    if not all(isinstance(item, str) for item in value):
        raise InvalidFilterValue(f"{key} filter must be an array of strings")
    return [item.strip() for item in value if item.strip()]


def _is_falsy(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)):
        return value == 0
    return False


def _parse_range(key: str, value: Any, unit: str) -> Optional[FilterEntry]:
    match = _RANGE_KEY_RE.match(key)
    if match is None:
        return None
    bound, family, suffix = match.groups()
    kind = KIND_DISTANCE if family == "Distance" else KIND_ELEVATION
    if _is_falsy(value):
        log.debug("skipping empty range filter %s", key)
        return FilterEntry(kind=kind, key=key, value=None, bound=bound, family=family, unit=suffix or unit)
    number = coerce_number(value)
    if number is None:
        raise InvalidFilterValue(f"{key} filter must be a number")
    if number == 0:
        return FilterEntry(kind=kind, key=key, value=None, bound=bound, family=family, unit=suffix or unit)
    return FilterEntry(kind=kind, key=key, value=number, bound=bound, family=family, unit=suffix or unit)


def parse_filters(
    filters: Optional[Mapping[str, Any]],
    unit: str = DEFAULT_UNIT,
) -> Tuple[FilterEntry, ...]:
    """
    Validate a raw filter map and turn it into typed entries, in the map's key order.

    Raises:
        InvalidFilterValue  when a value has the wrong shape for its key.

    Range entries whose value is empty or zero are kept with ``value=None`` so
    the composer can skip them; keys the field table does not know are dropped
    with a log line.
    """
    if filters is None:
        return ()
    if not isinstance(filters, Mapping):
        raise InvalidFilterValue("filters must be a JSON object")

    entries: List[FilterEntry] = []
    for key, value in filters.items():
        if key == KIND_FEATURES:
            names = _string_list(key, value, allow_single=False)
            entries.append(FilterEntry(kind=KIND_FEATURES, key=key, value=tuple(names)))
            continue

        if key in (KIND_DIFFICULTY, KIND_TYPE):
            names = _string_list(key, value, allow_single=True)
            entries.append(FilterEntry(kind=key, key=key, value=tuple(names)))
            continue

        range_entry = _parse_range(key, value, unit)
        if range_entry is not None:
            entries.append(range_entry)
            continue

        if key in FILTER_FIELDS:
            if isinstance(value, (list, tuple, dict)):
                raise InvalidFilterValue(f"{key} filter must be a single value")
            if value is None:
                continue
            if key == "state":
                value = normalize_state(value)
            entries.append(FilterEntry(kind=KIND_EQUALITY, key=key, value=value))
            continue

        log.info("ignoring unknown filter key %r", key)

    return tuple(entries)


def describe_filters(entries: Union[List[FilterEntry], Tuple[FilterEntry, ...]]) -> List[str]:
    """Short, value-free summary of entries for log lines."""
    return [f"{entry.kind}:{entry.key}" for entry in entries]
