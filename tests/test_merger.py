"""Tests for merging coverage maps."""

import pytest

from v8coveragelib.merger import CoverageMerger, merge_coverage_maps, merge_file_coverage
from v8coveragelib.models import coverage_map_from_json, coverage_map_to_json


def _file(path="/proj/src/a.js", s=None, f=None, b=None, line=1):
    loc = {"start": {"line": line, "column": 0}, "end": {"line": line, "column": 10}}
    return {
        "path": path,
        "statementMap": {"0": loc, "1": {"start": {"line": 2, "column": 0}, "end": {"line": 2, "column": 5}}},
        "fnMap": {"0": {"name": "f", "decl": loc, "loc": loc, "line": line}},
        "branchMap": {"0": {"type": "if", "loc": loc, "locations": [loc, {"start": {}, "end": {}}], "line": line}},
        "s": s if s is not None else {"0": 1, "1": 0},
        "f": f if f is not None else {"0": 1},
        "b": b if b is not None else {"0": [1, 0]},
    }


@pytest.fixture
def first():
    return coverage_map_from_json({"/proj/src/a.js": _file(s={"0": 1, "1": 0}, f={"0": 1}, b={"0": [1, 0]})})


@pytest.fixture
def second():
    return coverage_map_from_json({"/proj/src/a.js": _file(s={"0": 2, "1": 1}, f={"0": 2}, b={"0": [0, 2]})})


def test_counts_are_added(first, second):
    """Hits of the same id are summed: 1 + 2 = 3."""
    merged = merge_coverage_maps(first, second)

    file_coverage = merged["/proj/src/a.js"]
    assert file_coverage.s == {"0": 3, "1": 1}
    assert file_coverage.f == {"0": 3}
    assert file_coverage.b == {"0": [1, 2]}


def test_merge_is_commutative(first, second):
    assert coverage_map_to_json(merge_coverage_maps(first, second)) == coverage_map_to_json(merge_coverage_maps(second, first))


def test_merge_is_associative(first, second):
    third = coverage_map_from_json({"/proj/src/b.js": _file(path="/proj/src/b.js")})

    left = merge_coverage_maps(merge_coverage_maps(first, second), third)
    right = merge_coverage_maps(first, merge_coverage_maps(second, third))

    assert coverage_map_to_json(left) == coverage_map_to_json(right)


def test_merge_with_itself_doubles(first):
    merged = merge_coverage_maps(first, first)

    assert merged["/proj/src/a.js"].s == {"0": 2, "1": 0}
    assert merged["/proj/src/a.js"].b == {"0": [2, 0]}


def test_merge_with_empty_map(first):
    assert coverage_map_to_json(merge_coverage_maps(first, {})) == coverage_map_to_json(first)
    assert coverage_map_to_json(merge_coverage_maps({}, first)) == coverage_map_to_json(first)


def test_merge_is_pure(first, second):
    merge_coverage_maps(first, second)

    assert first["/proj/src/a.js"].s == {"0": 1, "1": 0}
    assert second["/proj/src/a.js"].s == {"0": 2, "1": 1}


def test_new_files_are_added(first):
    other = coverage_map_from_json({"/proj/src/b.js": _file(path="/proj/src/b.js")})

    assert sorted(merge_coverage_maps(first, other)) == ["/proj/src/a.js", "/proj/src/b.js"]


def test_structural_skew_keeps_existing_counts(first):
    """An id that now describes a different range is not summed."""
    moved = coverage_map_from_json({"/proj/src/a.js": _file(s={"0": 5, "1": 5}, line=7)})

    merged, skewed = merge_file_coverage(first["/proj/src/a.js"], moved["/proj/src/a.js"])

    assert "statement:0" in skewed
    assert "function:0" in skewed
    assert "branch:0" in skewed
    assert merged.s["0"] == 1
    # statement 1 did not move and is still summed
    assert merged.s["1"] == 5


def test_branch_length_mismatch_is_skew(first):
    data = _file()
    data["branchMap"]["0"]["locations"].append({"start": {"line": 1, "column": 0}, "end": {"line": 1, "column": 1}})
    data["b"] = {"0": [1, 1, 1]}
    incoming = coverage_map_from_json({"/proj/src/a.js": data})

    _, skewed = merge_file_coverage(first["/proj/src/a.js"], incoming["/proj/src/a.js"])

    assert skewed == ["branch:0"]


def test_merger_accumulates(first, second):
    merger = CoverageMerger()

    merger.merge(first)
    merger.merge(second)
    merger.merge(None)

    assert merger.merges == 2
    assert merger.coverage_map["/proj/src/a.js"].s == {"0": 3, "1": 1}


def test_merger_snapshot_is_a_copy(first):
    merger = CoverageMerger()
    merger.merge(first)

    snapshot = merger.snapshot()
    snapshot["/proj/src/a.js"].s["0"] = 100

    assert merger.coverage_map["/proj/src/a.js"].s["0"] == 1


def test_merger_load_and_reset(first):
    merger = CoverageMerger()
    merger.load(first)
    merger.merge(first)

    assert merger.coverage_map["/proj/src/a.js"].s["0"] == 2
    assert first["/proj/src/a.js"].s["0"] == 1

    merger.reset()
    assert merger.coverage_map == {}
    assert merger.merges == 0
