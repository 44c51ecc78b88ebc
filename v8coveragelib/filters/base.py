"""Filter pass model."""

from abc import ABC, abstractmethod

from pydantic import Field

from v8coveragelib.models import BaseObject, CoverageMap, ExclusionConfig


class FilterPass(BaseObject, ABC):
    """Abstract base class for passes that drop files from a coverage map."""

    name: str = Field(description="Unique name of this filter pass")
    enabled: bool = Field(
        default=True,
        description="Whether this filter is currently enabled"
    )

    @abstractmethod
    def excludes(self, file_path: str, config: ExclusionConfig) -> bool:
        """Whether the file keyed by file_path must be removed from the map."""
        pass

    def apply(self, coverage_map: CoverageMap, config: ExclusionConfig) -> CoverageMap:
        """Return a new map without the excluded files. The input is not modified.

        Args:
            coverage_map: The map to filter
            config: Test file patterns and working directory of the run

        Returns:
            The filtered map
        """
        kept = {}
        for file_path, file_coverage in coverage_map.items():
            if self.excludes(file_path, config):
                self.debug(f"{self.name} excluded {file_path}")
                continue
            kept[file_path] = file_coverage
        return kept
