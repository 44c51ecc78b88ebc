"""
Conversion of V8 range coverage into Istanbul statement/function/branch coverage.

The engine reports, per function, a list of nested character ranges with hit
counts. The first range of a function covers the whole function; nested
ranges mark blocks whose count differs from their parent (typically 0 for
code that never ran). The count that applies to a piece of code is the
count of the innermost range enclosing it.

Statement, function and branch boundaries are not taken from the engine
but from a static parse of the original source, so the ids assigned to
them only depend on the file's text.
"""

import asyncio
import json
import logging
import sys
from bisect import bisect_left, bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import aiofiles
import aiofiles.os
from pydantic import Field

from v8coveragelib.code_parsing import SourceText, StaticStructure, get_static_structure
from v8coveragelib.errors import InvalidCoverageError
from v8coveragelib.merger import merge_coverage_maps
from v8coveragelib.models import (
    BaseObject,
    BranchMapping,
    CoverageMap,
    FileCoverage,
    FunctionCoverage,
    FunctionMapping,
    Location,
    RawEngineCoverage,
    ScriptCoverage,
    coverage_map_to_json,
)
from v8coveragelib.sources import OriginalSource, ResolvedScript, SourceMapCache, SourceResolver
from v8coveragelib.utils import debug_file_name, timed_context

l = logging.getLogger(__name__)

Span = Tuple[int, int]

# Paths that never hold application sources: dependencies, the test runner's
# own bundles and its asset proxy.
INTERNAL_PATH_MARKERS = ("/node_modules/", "/__cypress/", "/__/assets/")
CONVERTIBLE_URL_PREFIXES = ("file:", "http:", "https:")


def is_internal_path(path: str) -> bool:
    return any(marker in path for marker in INTERNAL_PATH_MARKERS)


def should_convert_script(url: str) -> bool:
    if not url.startswith(CONVERTIBLE_URL_PREFIXES):
        return False
    return not is_internal_path(url)


@dataclass
class _RangeNode:
    start: int
    end: int
    count: int
    children: List["_RangeNode"] = field(default_factory=list)
    child_starts: List[int] = field(default_factory=list)

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


class RangeTree:
    """
    All ranges of one script arranged by nesting. count(start, end) answers
    with the count of the innermost range that fully contains [start, end),
    or 0 when no range does.
    """

    def __init__(self, functions: Iterable[FunctionCoverage]):
        ranges = sorted(
            ((r.start_offset, r.end_offset, r.count) for fn in functions for r in fn.ranges),
            key=lambda r: (r[0], -r[1]),
        )
        self.root = _RangeNode(-1, sys.maxsize, 0)
        stack = [self.root]
        for start, end, count in ranges:
            while len(stack) > 1 and not stack[-1].contains(start, end):
                stack.pop()
            node = _RangeNode(start, end, count)
            parent = stack[-1]
            parent.children.append(node)
            parent.child_starts.append(start)
            stack.append(node)

    def count(self, start: int, end: int) -> int:
        node = self.root
        while True:
            i = bisect_right(node.child_starts, start) - 1
            if i < 0:
                break
            child = node.children[i]
            if not child.contains(start, end):
                break
            node = child
        return node.count


class SourceMapProjector:
    """Projects spans of an original source onto generated offsets through the map's tokens."""

    def __init__(self, index, generated: SourceText):
        per_source = defaultdict(list)
        for token in index:
            if not token.src:
                continue
            per_source[token.src].append(
                ((token.src_line, token.src_col), generated.offset(token.dst_line, token.dst_col))
            )

        self._keys: Dict[str, List[Tuple[int, int]]] = {}
        self._offsets: Dict[str, List[int]] = {}
        for source_id, entries in per_source.items():
            entries.sort()
            self._keys[source_id] = [key for key, _ in entries]
            self._offsets[source_id] = [offset for _, offset in entries]

    def project(self, source_id: str, start: Tuple[int, int], end: Tuple[int, int]) -> Optional[Span]:
        keys = self._keys.get(source_id)
        if not keys:
            return None
        i = bisect_left(keys, start)
        j = bisect_left(keys, end)
        if i >= j:
            return None
        offsets = self._offsets[source_id][i:j]
        return min(offsets), max(offsets) + 1


def _location(source: SourceText, span: Span) -> Location:
    return Location(start=source.position(span[0]), end=source.position(span[1]))


def build_file_coverage(path: str, structure: StaticStructure, count: Callable[[Span], int]) -> FileCoverage:
    source = structure.source
    file_coverage = FileCoverage(path=path)

    for i, span in enumerate(structure.statements):
        key = str(i)
        file_coverage.statement_map[key] = _location(source, span)
        file_coverage.s[key] = count(span)

    for i, function in enumerate(structure.functions):
        key = str(i)
        decl = _location(source, function.decl)
        file_coverage.fn_map[key] = FunctionMapping(
            name=function.name,
            decl=decl,
            loc=_location(source, function.loc),
            line=decl.start.line,
        )
        file_coverage.f[key] = count(function.body)

    for i, branch in enumerate(structure.branches):
        key = str(i)
        loc = _location(source, branch.loc)
        locations, counts = [], []
        for span in branch.locations:
            if span is None:
                locations.append(loc.model_copy(deep=True))
                counts.append(None)
            else:
                locations.append(_location(source, span))
                counts.append(count(span))
        if branch.type == "if" and counts[1] is None:
            # the engine has no range for a missing else; whatever did not
            # enter the consequent fell through it
            counts[1] = max(count(branch.loc) - counts[0], 0)
        file_coverage.branch_map[key] = BranchMapping(type=branch.type, loc=loc, locations=locations, line=loc.start.line)
        file_coverage.b[key] = counts

    return file_coverage


class CoverageConverter(BaseObject):
    resolver: SourceResolver = Field(default_factory=SourceResolver)

    async def convert(
        self,
        script: ScriptCoverage,
        root_mappings: Optional[Mapping[str, str]] = None,
        cache: Optional[SourceMapCache] = None,
    ) -> Optional[CoverageMap]:
        """
        Convert the coverage of one script into a coverage map fragment keyed
        by original file path. Returns None when the script's sources cannot
        be resolved.
        """
        resolved = await self.resolver.resolve(script.url, root_mappings, cache)
        if resolved is None:
            return None

        # parsing and attribution are CPU bound, keep them off the event loop
        return await asyncio.to_thread(self._convert_resolved, script, resolved)

    def _convert_resolved(self, script: ScriptCoverage, resolved: ResolvedScript) -> CoverageMap:
        tree = RangeTree(script.functions)
        projector = None
        if resolved.source_map is not None:
            projector = SourceMapProjector(resolved.source_map, SourceText(resolved.text))

        fragment: CoverageMap = {}
        for original in resolved.sources:
            if is_internal_path(original.path):
                self.debug(f"Excluding internal source {original.path}")
                continue
            file_coverage = self._convert_source(original, tree, projector)
            if original.path in fragment:
                fragment = merge_coverage_maps(fragment, {original.path: file_coverage})
            else:
                fragment[original.path] = file_coverage
        return fragment

    def _convert_source(self, original: OriginalSource, tree: RangeTree, projector: Optional[SourceMapProjector]) -> FileCoverage:
        structure = get_static_structure(original.text)
        if structure.has_error:
            self.debug(f"{original.path} has syntax errors, coverage is best effort")

        if projector is None or original.source_id is None:
            count = lambda span: tree.count(*span)
        else:
            source = structure.source

            def count(span: Span) -> int:
                generated = projector.project(
                    original.source_id,
                    source.line_column(span[0]),
                    source.line_column(span[1]),
                )
                if generated is None:
                    return 0
                return tree.count(*generated)

        return build_file_coverage(original.path, structure, count)


async def save_debug_file(payload, name: str, debug_dir: Union[str, Path]) -> None:
    """Best effort: the dump is diagnostic only, failures are logged and dropped."""
    try:
        debug_dir = Path(debug_dir)
        await aiofiles.os.makedirs(debug_dir, exist_ok=True)
        content = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
        async with aiofiles.open(debug_dir / debug_file_name(name), "w") as f:
            await f.write(content)
    except Exception as e:
        l.debug(f"Could not write debug dump for {name}: {e!r}")


async def convert_profile_coverage(
    raw: Union[RawEngineCoverage, dict],
    *,
    comment: str,
    client_roots: Optional[Mapping[str, str]] = None,
    cache: Optional[SourceMapCache] = None,
    converter: Optional[CoverageConverter] = None,
    debug_dir: Optional[Union[str, Path]] = None,
) -> CoverageMap:
    """
    Convert a whole engine snapshot into one coverage map. Every script is
    converted independently; a script that fails is logged and contributes
    nothing.
    """
    if not isinstance(raw, RawEngineCoverage):
        try:
            raw = RawEngineCoverage.model_validate(raw)
        except Exception as e:
            raise InvalidCoverageError(f"Invalid engine coverage for {comment}: {e}") from e

    converter = converter or CoverageConverter()
    if cache is None:
        cache = SourceMapCache()

    scripts = [script for script in raw.result if should_convert_script(script.url)]

    async def convert_one(script: ScriptCoverage) -> Optional[CoverageMap]:
        try:
            return await converter.convert(script, client_roots, cache)
        except Exception:
            l.exception(f"Could not convert to istanbul - {script.url}")
            return None

    with timed_context(l, f"Converting {len(scripts)} scripts for {comment}"):
        fragments = await asyncio.gather(*(convert_one(script) for script in scripts))

    result: CoverageMap = {}
    for fragment in fragments:
        if fragment:
            result = merge_coverage_maps(result, fragment)

    if debug_dir is not None:
        await save_debug_file(
            {
                "coverage": RawEngineCoverage(result=scripts, timestamp=raw.timestamp).dump(),
                "result": coverage_map_to_json(result),
            },
            comment,
            debug_dir,
        )
    return result
