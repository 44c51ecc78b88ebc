from typing import List

from v8coveragelib.models import CoverageMap, ExclusionConfig
from .base import FilterPass
from .framework import CoverageFilter
from .skip_infrastructure import SkipInfrastructureFilter
from .skip_specs import SkipSpecFilesFilter, glob_match


def default_filter_passes() -> List[FilterPass]:
    return [SkipSpecFilesFilter(), SkipInfrastructureFilter()]


def default_coverage_filter() -> CoverageFilter:
    coverage_filter = CoverageFilter()
    for filter_pass in default_filter_passes():
        coverage_filter.register_pass(filter_pass)
    return coverage_filter


def filter_files_from_coverage(coverage_map: CoverageMap, config: ExclusionConfig) -> CoverageMap:
    """Drop test files, then bundler infrastructure, from a coverage map."""
    return default_coverage_filter().apply(coverage_map, config)


__all__ = [
    "CoverageFilter",
    "FilterPass",
    "SkipInfrastructureFilter",
    "SkipSpecFilesFilter",
    "default_coverage_filter",
    "default_filter_passes",
    "filter_files_from_coverage",
    "glob_match",
]
