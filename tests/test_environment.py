"""Tests for flotilla.environment — base environment plus environment sets."""

from flotilla.environment import compose_environment, merge_overlay

SETS = {
    "dev": {"DB_HOST": "localhost", "DEBUG": "1"},
    "local-db": {"DB_HOST": "127.0.0.1", "DB_PORT": "5433"},
}


def test_no_sets_returns_base_copy():
    base = {"A": "1"}
    result = compose_environment(base, SETS, [])
    assert result == {"A": "1"}
    assert result is not base


def test_overlay_beats_base():
    result = compose_environment({"DB_HOST": "db.internal", "A": "1"}, SETS, ["dev"])
    assert result == {"DB_HOST": "localhost", "DEBUG": "1", "A": "1"}


def test_later_set_wins():
    assert compose_environment({}, SETS, ["dev", "local-db"])["DB_HOST"] == "127.0.0.1"
    assert compose_environment({}, SETS, ["local-db", "dev"])["DB_HOST"] == "localhost"


def test_unknown_set_ignored():
    assert compose_environment({"A": "1"}, SETS, ["prod"]) == {"A": "1"}


def test_inputs_not_mutated():
    base = {"A": "1"}
    sets = {"dev": {"A": "2"}}
    compose_environment(base, sets, ["dev"])
    assert base == {"A": "1"}
    assert sets == {"dev": {"A": "2"}}


def test_pure():
    first = compose_environment({"A": "1"}, SETS, ["dev", "local-db"])
    second = compose_environment({"A": "1"}, SETS, ["dev", "local-db"])
    assert first == second


def test_merge_overlay():
    assert merge_overlay({"A": "1", "B": "2"}, {"B": "3"}) == {"A": "1", "B": "3"}
