import logging
from typing import List, Optional, Tuple

from pydantic import Field

from v8coveragelib.models import BaseObject, CoverageMap, FileCoverage, copy_coverage_map

l = logging.getLogger(__name__)

# (label, structural map attribute, counter attribute)
_COUNTERS = (
    ("statement", "statement_map", "s"),
    ("function", "fn_map", "f"),
    ("branch", "branch_map", "b"),
)


def _empty_hits(label: str, entry):
    if label == "branch":
        return [0] * len(entry.locations)
    return 0


def merge_file_coverage(existing: FileCoverage, incoming: FileCoverage) -> Tuple[FileCoverage, List[str]]:
    """
    Sum the counters of two observations of the same file. Ids present on
    both sides must describe the same source range; ids whose structure
    differs are structural skew: the incoming hits for them are dropped and
    the existing ones are kept untouched. Returns the merged copy and the
    skewed ids.
    """
    merged = existing.model_copy(deep=True)
    skewed = []

    for label, map_attr, counts_attr in _COUNTERS:
        merged_map = getattr(merged, map_attr)
        merged_counts = getattr(merged, counts_attr)
        incoming_counts = getattr(incoming, counts_attr)

        for key, entry in getattr(incoming, map_attr).items():
            hits = incoming_counts.get(key)
            if hits is None:
                hits = _empty_hits(label, entry)

            if key not in merged_map:
                merged_map[key] = entry.model_copy(deep=True)
                merged_counts[key] = list(hits) if label == "branch" else hits
                continue

            if merged_map[key] != entry:
                skewed.append(f"{label}:{key}")
                continue

            current = merged_counts.get(key)
            if current is None:
                current = _empty_hits(label, entry)

            if label == "branch":
                if len(current) != len(hits):
                    skewed.append(f"{label}:{key}")
                    continue
                merged_counts[key] = [a + b for a, b in zip(current, hits)]
            else:
                merged_counts[key] = current + hits

    return merged, skewed


def _merge_into(target: CoverageMap, fragment: CoverageMap) -> None:
    for path, incoming in fragment.items():
        existing = target.get(path)
        if existing is None:
            target[path] = incoming.model_copy(deep=True)
            continue

        merged, skewed = merge_file_coverage(existing, incoming)
        if skewed:
            l.warning(
                "Structural skew in %s: dropped incoming counters for %s",
                path,
                ", ".join(skewed),
            )
        target[path] = merged


def merge_coverage_maps(accumulated: CoverageMap, fragment: CoverageMap) -> CoverageMap:
    """Pure merge: neither argument is modified."""
    result = dict(accumulated)
    _merge_into(result, fragment)
    return result


class CoverageMerger(BaseObject):
    """Owner of the run's accumulated coverage map. Nothing else mutates it."""

    coverage_map: CoverageMap = Field(default_factory=dict)
    merges: int = 0

    def merge(self, fragment: Optional[CoverageMap]) -> CoverageMap:
        if not fragment:
            return self.coverage_map
        _merge_into(self.coverage_map, fragment)
        self.merges += 1
        self.debug(f"Merged {len(fragment)} files, {len(self.coverage_map)} files accumulated")
        return self.coverage_map

    def load(self, coverage_map: CoverageMap) -> None:
        self.coverage_map = copy_coverage_map(coverage_map)

    def reset(self) -> None:
        self.coverage_map = {}
        self.merges = 0

    def snapshot(self) -> CoverageMap:
        return copy_coverage_map(self.coverage_map)
