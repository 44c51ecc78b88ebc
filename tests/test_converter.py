"""Tests for range to Istanbul conversion."""

import asyncio
import json

import pytest

from v8coveragelib.converter import (
    CoverageConverter,
    RangeTree,
    convert_profile_coverage,
    is_internal_path,
    should_convert_script,
)
from v8coveragelib.errors import InvalidCoverageError
from v8coveragelib.merger import merge_coverage_maps
from v8coveragelib.models import FunctionCoverage, ScriptCoverage, coverage_map_to_json
from v8coveragelib.sources import SourceMapCache

from .conftest import (
    ADD_JS,
    CHECK_JS,
    add_js_ranges,
    check_js_ranges,
    raw_coverage,
    script,
)


def _functions(*ranges):
    return [FunctionCoverage.model_validate({"ranges": [
        {"startOffset": s, "endOffset": e, "count": c} for s, e, c in ranges
    ]})]


def test_range_tree_innermost_range_wins():
    """The count of the innermost enclosing range applies."""
    tree = RangeTree(_functions((0, 100, 1), (10, 50, 5), (20, 30, 0)))

    assert tree.count(0, 100) == 1
    assert tree.count(12, 18) == 5
    assert tree.count(22, 28) == 0
    assert tree.count(60, 70) == 1


def test_range_tree_partial_overlap_uses_parent():
    """A span that crosses a child range boundary takes the parent's count."""
    tree = RangeTree(_functions((0, 100, 3), (10, 50, 0)))

    assert tree.count(40, 60) == 3


def test_range_tree_outside_any_range():
    """Code no range covers never ran."""
    tree = RangeTree(_functions((10, 20, 4)))

    assert tree.count(30, 40) == 0
    assert RangeTree([]).count(0, 5) == 0


def test_range_tree_sibling_functions():
    """Ranges of different functions are siblings under the script range."""
    tree = RangeTree([
        *_functions((0, 200, 1)),
        *_functions((10, 50, 7)),
        *_functions((60, 90, 0)),
    ])

    assert tree.count(15, 20) == 7
    assert tree.count(65, 70) == 0
    assert tree.count(100, 110) == 1


@pytest.mark.parametrize("url,expected", [
    ("file:///app/src/index.js", True),
    ("http://localhost:3000/static/js/main.js", True),
    ("https://example.com/app.js", True),
    ("http://localhost:3000/node_modules/react/index.js", False),
    ("http://localhost:3000/__cypress/runner/cypress_runner.js", False),
    ("http://localhost:3000/__/assets/index.js", False),
    ("chrome-extension://abc/content.js", False),
    ("", False),
    ("node:internal/bootstrap", False),
])
def test_should_convert_script(url, expected):
    """Only file/http(s) scripts outside dependencies and runner internals are converted."""
    assert should_convert_script(url) is expected


def test_is_internal_path():
    assert is_internal_path("/app/node_modules/lodash/lodash.js")
    assert not is_internal_path("/app/src/node_modules_helper.js")


def test_convert_statements_and_functions(add_js, add_js_snapshot):
    """Statements and functions get the count of their innermost engine range."""
    coverage_map = asyncio.run(convert_profile_coverage(add_js_snapshot, comment="client - test"))

    file_coverage = coverage_map[str(add_js)]
    assert file_coverage.path == str(add_js)
    assert file_coverage.s == {"0": 1, "1": 0, "2": 1}
    assert file_coverage.f == {"0": 1, "1": 0}
    assert file_coverage.fn_map["0"].name == "add"
    assert file_coverage.fn_map["1"].name == "unused"
    assert file_coverage.statement_map["1"].start.line == 6
    assert file_coverage.statement_map["1"].start.column == 2


def test_convert_if_without_else(check_js):
    """The implicit else of an if gets what did not enter the consequent."""
    raw = raw_coverage([script(check_js.as_uri(), check_js_ranges(CHECK_JS))])

    coverage_map = asyncio.run(convert_profile_coverage(raw, comment="client - test"))

    file_coverage = coverage_map[str(check_js)]
    assert file_coverage.b == {"0": [2, 0]}
    assert file_coverage.branch_map["0"].type == "if"
    assert len(file_coverage.branch_map["0"].locations) == 2
    assert file_coverage.s == {"0": 2, "1": 2, "2": 0, "3": 1, "4": 1}
    assert file_coverage.f == {"0": 2}


def test_convert_is_deterministic(add_js, add_js_snapshot):
    """Two conversions of the same script produce the same structure, so merging doubles every count."""
    first = asyncio.run(convert_profile_coverage(add_js_snapshot, comment="first"))
    second = asyncio.run(convert_profile_coverage(add_js_snapshot, comment="second"))

    assert coverage_map_to_json(first) == coverage_map_to_json(second)

    merged = merge_coverage_maps(first, second)
    assert merged[str(add_js)].s == {"0": 2, "1": 0, "2": 2}
    assert merged[str(add_js)].f == {"0": 2, "1": 0}


def test_unresolvable_script_is_skipped(tmp_path, add_js, check_js):
    """The second of three scripts cannot be resolved; the other two still convert."""
    missing = tmp_path / "src" / "missing.js"
    raw = raw_coverage([
        script(add_js.as_uri(), add_js_ranges(ADD_JS), "1"),
        script(missing.as_uri(), add_js_ranges(ADD_JS), "2"),
        script(check_js.as_uri(), check_js_ranges(CHECK_JS), "3"),
    ])

    coverage_map = asyncio.run(convert_profile_coverage(raw, comment="client - batch"))

    assert sorted(coverage_map) == sorted([str(add_js), str(check_js)])


def test_failing_script_does_not_abort_batch(add_js, check_js):
    """An exception while converting one script only loses that script."""

    class FlakyConverter(CoverageConverter):
        async def convert(self, script, root_mappings=None, cache=None):
            if script.url.endswith("check.js"):
                raise RuntimeError("boom")
            return await super().convert(script, root_mappings, cache)

    raw = raw_coverage([
        script(add_js.as_uri(), add_js_ranges(ADD_JS), "1"),
        script(check_js.as_uri(), check_js_ranges(CHECK_JS), "2"),
    ])

    coverage_map = asyncio.run(convert_profile_coverage(raw, comment="client - flaky", converter=FlakyConverter()))

    assert list(coverage_map) == [str(add_js)]


def test_internal_scripts_are_not_converted(tmp_path, add_js):
    """Scripts under node_modules are dropped before conversion."""
    vendored = tmp_path / "node_modules" / "lib" / "index.js"
    vendored.parent.mkdir(parents=True)
    vendored.write_text(ADD_JS)
    raw = raw_coverage([
        script(add_js.as_uri(), add_js_ranges(ADD_JS), "1"),
        script(vendored.as_uri(), add_js_ranges(ADD_JS), "2"),
    ])

    coverage_map = asyncio.run(convert_profile_coverage(raw, comment="client - vendored"))

    assert list(coverage_map) == [str(add_js)]


def test_invalid_raw_coverage():
    """A payload that is not engine coverage is rejected."""
    with pytest.raises(InvalidCoverageError):
        asyncio.run(convert_profile_coverage({"result": "nope"}, comment="client - bad"))


def test_source_mapped_bundle(bundled_project):
    """Coverage of a served bundle is attributed to the original file named by its source map."""
    header = "/* bundle header */\n"
    raw = raw_coverage([
        script("http://localhost:3000/static/bundle.js", add_js_ranges(ADD_JS, base=len(header))),
    ])

    coverage_map = asyncio.run(convert_profile_coverage(
        raw,
        comment="client - bundle",
        client_roots={"http://localhost:3000": str(bundled_project)},
    ))

    original = str(bundled_project / "src" / "add.js")
    assert list(coverage_map) == [original]
    assert coverage_map[original].s == {"0": 1, "1": 0, "2": 1}
    assert coverage_map[original].f == {"0": 1, "1": 0}
    assert coverage_map[original].statement_map["2"].start.line == 9


def test_convert_without_client_roots_skips_urls(bundled_project):
    """An http script with no matching client root cannot be localized and is skipped."""
    raw = raw_coverage([script("http://localhost:3000/static/bundle.js", add_js_ranges(ADD_JS))])

    assert asyncio.run(convert_profile_coverage(raw, comment="client - no roots")) == {}


def test_debug_dump(tmp_path, add_js, add_js_snapshot):
    """With a debug directory the filtered input and the result are written next to each other."""
    debug_dir = tmp_path / "debug"

    asyncio.run(convert_profile_coverage(add_js_snapshot, comment="client - http://localhost:3000/#/todos", debug_dir=debug_dir))

    dumps = list(debug_dir.iterdir())
    assert len(dumps) == 1
    assert dumps[0].name == "client-http-localhost-3000-todos.json"
    content = json.loads(dumps[0].read_text())
    assert content["coverage"]["result"][0]["url"] == add_js.as_uri()
    assert str(add_js) in content["result"]


def test_converter_uses_cache(add_js, add_js_snapshot):
    """Scripts resolved once are not resolved again within a run."""
    cache = SourceMapCache()
    asyncio.run(convert_profile_coverage(add_js_snapshot, comment="one", cache=cache))
    assert add_js.as_uri() in cache

    add_js.unlink()
    coverage_map = asyncio.run(convert_profile_coverage(add_js_snapshot, comment="two", cache=cache))
    assert str(add_js) in coverage_map


def test_convert_single_script(add_js):
    """CoverageConverter.convert works on one validated script."""
    converted = asyncio.run(CoverageConverter().convert(
        ScriptCoverage.model_validate(script(add_js.as_uri(), add_js_ranges(ADD_JS)))
    ))

    assert list(converted) == [str(add_js)]
