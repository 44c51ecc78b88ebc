import os
from typing import List

from pydantic import Field

from v8coveragelib.filters import CoverageFilter, default_coverage_filter
from v8coveragelib.merger import CoverageMerger
from v8coveragelib.models import BaseObject, CoverageMap, ExclusionConfig, HostConfig, RunSettings
from v8coveragelib.sources import SourceMapCache
from v8coveragelib.store import CoverageStore


def resolve_relative_paths(fragment: CoverageMap, project_root: str) -> CoverageMap:
    """Re-key relative paths under `project_root`. `path` always matches the key."""
    resolved: CoverageMap = {}
    for key, file_coverage in fragment.items():
        if os.path.isabs(key):
            resolved[key] = file_coverage
            continue
        absolute = os.path.normpath(os.path.join(project_root, key))
        resolved[absolute] = file_coverage.model_copy(update={"path": absolute})
    return resolved


class CoverageSession(BaseObject):
    """Everything one run accumulates. A new run gets a new session."""

    settings: RunSettings
    merger: CoverageMerger = Field(default_factory=CoverageMerger)
    cache: SourceMapCache = Field(default_factory=SourceMapCache)
    store: CoverageStore = Field(default_factory=CoverageStore)
    hosts: List[HostConfig] = Field(default_factory=list)
    coverage_filter: CoverageFilter = Field(default_factory=default_coverage_filter)
    exclusion: ExclusionConfig = Field(default_factory=ExclusionConfig)

    @classmethod
    def create(cls, settings: RunSettings) -> "CoverageSession":
        return cls(
            settings=settings,
            store=CoverageStore(path=settings.snapshot_path),
            exclusion=ExclusionConfig.from_settings(settings),
        )

    def add_host(self, host: HostConfig) -> bool:
        if any(known.url == host.url for known in self.hosts):
            return False
        self.hosts.append(host)
        return True

    def reset(self) -> None:
        self.merger.reset()
        self.cache.clear()
        self.hosts.clear()

    async def ingest(self, fragment: CoverageMap, project_root=None) -> CoverageMap:
        """Filter one fragment, fold it into the accumulated map and persist the result."""
        if project_root:
            fragment = resolve_relative_paths(fragment, project_root)
        filtered = self.coverage_filter.apply(fragment, self.exclusion)
        if not filtered:
            return filtered
        self.merger.merge(filtered)
        await self.store.save(self.merger.coverage_map)
        return filtered
