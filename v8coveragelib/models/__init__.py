"""Models for engine coverage, Istanbul coverage maps and run configuration."""

from .base import BaseObject, CoverageBaseModel
from .raw import CoverageRange, FunctionCoverage, RawEngineCoverage, ScriptCoverage
from .coverage import (
    BranchMapping,
    CoverageMap,
    FileCoverage,
    FunctionMapping,
    Location,
    Position,
    copy_coverage_map,
    coverage_map_from_json,
    coverage_map_to_json,
    deserialize,
    serialize,
)
from .summary import CoverageMetric, CoverageSummary
from .config import CodeCoverageConfig, ExclusionConfig, RunSettings, RunType, load_config
from .events import CollectionEvent, EventKind, HostConfig

__all__ = [
    "BaseObject",
    "BranchMapping",
    "CodeCoverageConfig",
    "CollectionEvent",
    "CoverageBaseModel",
    "CoverageMap",
    "CoverageMetric",
    "CoverageRange",
    "CoverageSummary",
    "EventKind",
    "ExclusionConfig",
    "FileCoverage",
    "FunctionCoverage",
    "FunctionMapping",
    "HostConfig",
    "Location",
    "Position",
    "RawEngineCoverage",
    "RunSettings",
    "ScriptCoverage",
    "RunType",
    "copy_coverage_map",
    "coverage_map_from_json",
    "coverage_map_to_json",
    "deserialize",
    "load_config",
    "serialize",
]
