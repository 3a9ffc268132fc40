import pytest

from trailwander.errors import InvalidFilterKey, InvalidFilterValue
from trailwander.filter_fields import FILTER_FIELDS, KIND_DISTANCE, KIND_EQUALITY, FilterEntry, parse_filters
from trailwander.query_params import ParamBinder
from trailwander.search import (
    BASE_PREDICATE,
    build_distance_predicate,
    build_elevation_predicate,
    build_where_clause,
    compose_entries,
    compose_predicate,
    sanitize_search_term,
    search_term_predicate,
)


def _compose(filters, unit="Imperial"):
    binder = ParamBinder()
    predicate = compose_predicate(filters, binder, unit=unit)
    return predicate, binder


# -- search term --------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Cave & Falls!", "Cave & Falls"),
        ("  Blue   Trail ", "Blue & Trail"),
        ("Mt. Cheaha", "Mt & Cheaha"),
        ("trail_1", "trail_1"),
        ("   ", ""),
        ("!!! ???", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_sanitize_search_term(raw, expected):
    assert sanitize_search_term(raw) == expected


def test_search_term_predicate_binds_expression():
    binder = ParamBinder()
    predicate = search_term_predicate("Cave & Falls!", binder)
    assert "to_tsquery('english', :p1)" in predicate
    assert "to_tsvector('english'" in predicate
    assert binder.values == ["Cave & Falls"]


@pytest.mark.parametrize("raw", ["   ", "&&& !!", None])
def test_blank_search_term_emits_nothing(raw):
    binder = ParamBinder()
    assert search_term_predicate(raw, binder) == ""
    assert binder.count == 0


# -- distance -----------------------------------------------------------------

def test_inverted_distance_pair_is_swapped():
    predicate, binder = _compose({"minDistanceImperial": 10, "maxDistanceImperial": 2})
    assert predicate.strip() == "AND ts.distance_imperial BETWEEN :p1 AND :p2"
    assert binder.values == [2, 10]


def test_distance_pair_in_order_is_kept():
    predicate, binder = _compose({"minDistanceMetric": 3, "maxDistanceMetric": 8})
    assert "ts.distance_metric BETWEEN :p1 AND :p2" in predicate
    assert binder.values == [3, 8]


def test_distance_pair_starting_from_max_key():
    predicate, binder = _compose({"maxDistanceImperial": 2, "city": "Mentone", "minDistanceImperial": 10})
    assert predicate.count("BETWEEN") == 1
    assert binder.values == [2, 10, "Mentone"]
    assert "LOWER(t.city) = LOWER(:p3)" in predicate


def test_unit_less_distance_keys_pair_with_active_unit():
    predicate, binder = _compose({"minDistance": 10, "maxDistance": 2}, unit="Metric")
    assert "ts.distance_metric BETWEEN :p1 AND :p2" in predicate
    assert binder.values == [2, 10]


def test_min_distance_alone_is_one_sided():
    predicate, binder = _compose({"minDistanceImperial": 2})
    assert predicate.strip() == "AND ts.distance_imperial >= :p1"
    assert "<=" not in predicate
    assert "BETWEEN" not in predicate
    assert binder.values == [2]


def test_max_distance_alone_is_one_sided():
    predicate, binder = _compose({"maxDistanceImperial": 5.5})
    assert predicate.strip() == "AND ts.distance_imperial <= :p1"
    assert ">=" not in predicate
    assert binder.values == [5.5]


def test_distance_bounds_in_different_units_do_not_pair():
    predicate, binder = _compose({"minDistanceImperial": 2, "maxDistanceMetric": 10})
    assert "ts.distance_imperial >= :p1" in predicate
    assert "ts.distance_metric <= :p2" in predicate
    assert "BETWEEN" not in predicate


def test_zero_distance_is_skipped():
    predicate, binder = _compose({"minDistanceImperial": 0, "maxDistanceImperial": 4})
    assert predicate.strip() == "AND ts.distance_imperial <= :p1"
    assert binder.values == [4]


def test_unknown_unit_suffix_is_invalid_key():
    with pytest.raises(InvalidFilterKey):
        _compose({"minDistanceKelvin": 5})


def test_distance_builder_requires_both_columns():
    fields = {"minDistanceImperial": "ts.distance_imperial"}
    entry = FilterEntry(kind=KIND_DISTANCE, key="minDistanceImperial", value=2, bound="min", family="Distance", unit="Imperial")
    with pytest.raises(InvalidFilterKey):
        build_distance_predicate(entry, (entry,), ParamBinder(), fields)


def test_distance_builder_marks_pair_consumed():
    low = FilterEntry(kind=KIND_DISTANCE, key="minDistanceImperial", value=1, bound="min", family="Distance", unit="Imperial")
    high = FilterEntry(kind=KIND_DISTANCE, key="maxDistanceImperial", value=9, bound="max", family="Distance", unit="Imperial")
    consumed = set()
    build_distance_predicate(low, (low, high), ParamBinder(), FILTER_FIELDS, consumed)
    assert consumed == {"minDistanceImperial", "maxDistanceImperial"}


# -- elevation ----------------------------------------------------------------

def test_elevation_is_strict_and_single_sided():
    predicate, binder = _compose({"minElevationImperial": 1000, "maxElevationImperial": 200})
    assert "ts.elevation_high_imperial > :p1" in predicate
    assert "ts.elevation_high_imperial < :p2" in predicate
    assert "BETWEEN" not in predicate
    assert ">=" not in predicate
    assert binder.values == [1000, 200]


def test_elevation_gain_and_loss_columns():
    predicate, binder = _compose({"minElevationGain": 300, "maxElevationLoss": 900}, unit="Metric")
    assert "ts.elevation_gain_metric > :p1" in predicate
    assert "ts.elevation_loss_metric < :p2" in predicate


def test_elevation_builder_unknown_key():
    entry = parse_filters({"minElevationFathoms": 3})[0]
    with pytest.raises(InvalidFilterKey):
        build_elevation_predicate(entry, ParamBinder())


# -- features / enumerations / equality ---------------------------------------

def test_features_require_every_feature():
    predicate, binder = _compose({"features": ["Cave", "Waterfall", "cave"]})
    assert "ANY(CAST(:p1 AS text[]))" in predicate
    assert "HAVING COUNT(DISTINCT LOWER(f_req.feature_name)) = 2" in predicate
    assert binder.values == [["cave", "waterfall"]]


def test_empty_features_list_adds_nothing():
    predicate, binder = _compose({"features": []})
    assert predicate == ""
    assert binder.count == 0


def test_features_not_array_is_rejected_before_binding():
    binder = ParamBinder()
    with pytest.raises(InvalidFilterValue):
        compose_predicate({"city": "Mentone", "features": "Cave"}, binder)
    assert binder.count == 0


def test_difficulty_and_type_use_any():
    predicate, binder = _compose({"difficulty": ["Easy", "Moderate"], "type": ["Loop"]})
    assert "t.difficulty = ANY(CAST(:p1 AS text[]))" in predicate
    assert "ts.type = ANY(CAST(:p2 AS text[]))" in predicate
    assert binder.values == [["Easy", "Moderate"], ["Loop"]]


def test_text_equality_is_case_insensitive():
    predicate, binder = _compose({"city": "Huntsville", "state": "Alabama"})
    assert "LOWER(t.city) = LOWER(:p1)" in predicate
    assert "LOWER(t.state) = LOWER(:p2)" in predicate
    assert binder.values == ["Huntsville", "AL"]


def test_numeric_equality_compares_numbers():
    binder = ParamBinder()
    entries = (FilterEntry(kind=KIND_EQUALITY, key="name", value=42),)
    predicate = compose_entries(entries, binder)
    assert predicate.strip() == "AND t.name = :p1"
    assert binder.values == [42]


def test_unknown_filter_key_is_ignored():
    predicate, binder = _compose({"colour": "green"})
    assert predicate == ""
    assert binder.count == 0


# -- whole clause -------------------------------------------------------------

def test_empty_where_clause_is_valid():
    binder = ParamBinder()
    assert build_where_clause(None, None, binder) == BASE_PREDICATE
    assert binder.count == 0


def test_where_clause_numbers_text_param_first():
    binder = ParamBinder()
    clause = build_where_clause("Cave & Falls!", {"city": "Mentone"}, binder)
    assert clause.startswith(BASE_PREDICATE)
    assert ":p1" in clause and ":p2" in clause
    assert binder.values == ["Cave & Falls", "Mentone"]


def test_every_placeholder_has_a_value():
    binder = ParamBinder()
    clause = build_where_clause(
        "blue lake",
        {
            "features": ["Lake"],
            "difficulty": ["Easy"],
            "minDistanceImperial": 1,
            "maxDistanceImperial": 6,
            "minElevationGain": 100,
            "city": "Mentone",
        },
        binder,
    )
    for index in range(1, binder.count + 1):
        assert f":p{index}" in clause
    assert f":p{binder.count + 1}" not in clause


def test_composing_twice_is_identical():
    filters = {"features": ["Cave"], "minDistanceImperial": 10, "maxDistanceImperial": 2, "city": "Mentone"}
    first, first_binder = _compose(filters)
    second, second_binder = _compose(filters)
    assert first == second
    assert first_binder.values == second_binder.values


@pytest.mark.parametrize("value", ["Unknown", "yes", True])
def test_dogs_allowed_compares_as_text(value):
    predicate, binder = _compose({"dogsAllowed": value})
    assert predicate.strip() == "AND LOWER(t.dogs_allowed) = LOWER(:p1)"
    assert binder.values == [str(value)]
