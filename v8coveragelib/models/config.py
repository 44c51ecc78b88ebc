import json
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml
from pydantic import Field, field_validator

from v8coveragelib.utils import is_true_value
from .base import CoverageBaseModel


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


class CodeCoverageConfig(CoverageBaseModel):
    """The recognized coverage options, validated once at startup."""

    client: bool = False
    client_roots: Dict[str, str] = Field(default_factory=dict, alias="clientRoots")
    ssr: Optional[str] = None
    api: List[str] = Field(default_factory=list)
    expect_backend_coverage_only: bool = Field(default=False, alias="expectBackendCoverageOnly")
    exclude: List[str] = Field(default_factory=list)

    @field_validator("api", "exclude", mode="before")
    @classmethod
    def _wrap_single_value(cls, value):
        return _as_list(value)

    @field_validator("client", "expect_backend_coverage_only", mode="before")
    @classmethod
    def _parse_bool_string(cls, value):
        if isinstance(value, str):
            return is_true_value(value)
        return value

    @field_validator("client_roots")
    @classmethod
    def _strip_trailing_slash(cls, value: Dict[str, str]):
        return {prefix.rstrip("/"): root for prefix, root in value.items()}

    def project_root_for(self, origin: str) -> Optional[str]:
        return self.client_roots.get(origin.rstrip("/"))


class RunType(str, Enum):
    e2e = "e2e"
    component = "component"


class RunSettings(CoverageBaseModel):
    enabled: bool = False
    is_interactive: bool = False
    testing_type: RunType = RunType.e2e
    spec_type: str = "integration"
    working_dir: Path = Field(default_factory=Path.cwd)
    spec_pattern: List[str] = Field(default_factory=list)
    snapshot_path: Path = Path(".nyc_output") / "out.json"
    debug_dir: Path = Path(".cache") / "_debug"
    backend_timeout: float = 30.0
    code_coverage: CodeCoverageConfig = Field(default_factory=CodeCoverageConfig)

    @field_validator("spec_pattern", mode="before")
    @classmethod
    def _wrap_single_pattern(cls, value):
        return _as_list(value)

    @property
    def collects_backend_coverage(self) -> bool:
        # Backend endpoints are only reachable while end-to-end specs drive a real server.
        return self.testing_type == RunType.e2e and self.spec_type == "integration"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "RunSettings":
        if environ is None:
            environ = os.environ
        lowered = {key.lower(): value for key, value in environ.items()}

        # Only the literal "true" turns coverage on, `coverage=1` does not.
        enabled = str(lowered.get("coverage", "")).lower() == "true"

        code_coverage = {}
        raw_config = lowered.get("code_coverage")
        if raw_config:
            code_coverage = yaml.safe_load(raw_config) or {}

        values = dict(enabled=enabled, code_coverage=code_coverage)
        values.update(overrides)
        return cls.model_validate(values)


def load_config(path: Union[str, Path]) -> RunSettings:
    with open(path, "r") as f:
        if str(path).endswith(".json"):
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    return RunSettings.model_validate(data or {})


class ExclusionConfig(CoverageBaseModel):
    working_dir: str = ""
    test_patterns: List[str] = Field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: RunSettings) -> "ExclusionConfig":
        return cls(
            working_dir=str(settings.working_dir),
            test_patterns=[*settings.spec_pattern, *settings.code_coverage.exclude],
        )
