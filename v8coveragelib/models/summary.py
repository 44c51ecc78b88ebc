from typing import Dict, Iterable

from pydantic import BaseModel, Field

from .coverage import CoverageMap, FileCoverage


class CoverageMetric(BaseModel):
    total: int = 0
    covered: int = 0
    skipped: int = 0

    @property
    def pct(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100.0 * self.covered / self.total, 2)

    def add(self, other: "CoverageMetric") -> None:
        self.total += other.total
        self.covered += other.covered
        self.skipped += other.skipped


def _metric(counts: Iterable[int]) -> CoverageMetric:
    metric = CoverageMetric()
    for count in counts:
        metric.total += 1
        if count > 0:
            metric.covered += 1
    return metric


class CoverageSummary(BaseModel):
    lines: CoverageMetric = Field(default_factory=CoverageMetric)
    statements: CoverageMetric = Field(default_factory=CoverageMetric)
    functions: CoverageMetric = Field(default_factory=CoverageMetric)
    branches: CoverageMetric = Field(default_factory=CoverageMetric)

    @classmethod
    def for_file(cls, file_coverage: FileCoverage) -> "CoverageSummary":
        return cls(
            lines=_metric(file_coverage.line_coverage().values()),
            statements=_metric(file_coverage.s.values()),
            functions=_metric(file_coverage.f.values()),
            branches=_metric(count for counts in file_coverage.b.values() for count in counts),
        )

    @classmethod
    def for_map(cls, coverage_map: CoverageMap) -> "CoverageSummary":
        summary = cls()
        for file_coverage in coverage_map.values():
            summary.merge(cls.for_file(file_coverage))
        return summary

    def merge(self, other: "CoverageSummary") -> None:
        self.lines.add(other.lines)
        self.statements.add(other.statements)
        self.functions.add(other.functions)
        self.branches.add(other.branches)

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {"total": m.total, "covered": m.covered, "skipped": m.skipped, "pct": m.pct}
            for name, m in (
                ("lines", self.lines),
                ("statements", self.statements),
                ("functions", self.functions),
                ("branches", self.branches),
            )
        }
