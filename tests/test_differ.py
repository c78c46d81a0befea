"""Tests for fingerprint diff classification."""

from __future__ import annotations

from contextkeeper.differ import diff_fingerprints
from contextkeeper.models import SymbolFingerprint


def _fp(signature: str, body: str | None = None) -> SymbolFingerprint:
    return SymbolFingerprint(signature=signature, body_hash=body)


def test_identical_maps_produce_an_empty_diff() -> None:
    structure = {"add": _fp("function add($a, $b)", "h1")}

    result = diff_fingerprints(structure, dict(structure))

    assert result.is_empty


def test_added_and_removed_keys() -> None:
    result = diff_fingerprints({"old": _fp("function old()")}, {"new": _fp("function new()")})

    assert result.added == {"new"}
    assert result.removed == {"old"}


def test_signature_change_wins_over_body_change() -> None:
    before = {"add": _fp("function add($a, $b)", "h1")}
    after = {"add": _fp("function add($a, $b, $c)", "h2")}

    result = diff_fingerprints(before, after)

    assert result.signature_changed == {"add"}
    assert result.body_changed == frozenset()


def test_body_change_with_stable_signature() -> None:
    before = {"add": _fp("function add($a, $b)", "h1")}
    after = {"add": _fp("function add($a, $b)", "h2")}

    assert diff_fingerprints(before, after).body_changed == {"add"}


def test_missing_body_hash_never_reports_a_body_change() -> None:
    before = {"run": _fp("function run()", None), "stop": _fp("function stop()", "h1")}
    after = {"run": _fp("function run()", "h2"), "stop": _fp("function stop()", None)}

    assert diff_fingerprints(before, after).is_empty


def test_classes_are_disjoint_and_cover_every_changed_key() -> None:
    before = {
        "keep": _fp("k()", "a"),
        "sig": _fp("s()", "a"),
        "body": _fp("b()", "a"),
        "gone": _fp("g()", "a"),
    }
    after = {
        "keep": _fp("k()", "a"),
        "sig": _fp("s($x)", "a"),
        "body": _fp("b()", "b"),
        "fresh": _fp("f()", "a"),
    }

    result = diff_fingerprints(before, after)
    groups = [result.added, result.removed, result.signature_changed, result.body_changed]

    assert sum(len(group) for group in groups) == len(set().union(*groups))
    assert set().union(*groups) == {"sig", "body", "gone", "fresh"}
    assert result.added <= set(after) and not result.added & set(before)
    assert result.removed <= set(before) and not result.removed & set(after)


def test_empty_before_reports_everything_as_added() -> None:
    after = {"a": _fp("a()"), "b": _fp("b()")}

    result = diff_fingerprints({}, after)

    assert result.added == {"a", "b"}
    assert not (result.removed or result.signature_changed or result.body_changed)
