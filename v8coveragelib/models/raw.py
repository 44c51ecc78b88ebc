"""Raw engine coverage as reported by the DevTools ``Profiler.takePreciseCoverage`` call."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ProtocolModel(BaseModel):
    # The protocol grows new fields between engine versions; ignore them.
    model_config = ConfigDict(extra='ignore', populate_by_name=True)


class CoverageRange(_ProtocolModel):
    start_offset: int = Field(alias="startOffset")
    end_offset: int = Field(alias="endOffset")
    count: int = 0


class FunctionCoverage(_ProtocolModel):
    function_name: str = Field(default="", alias="functionName")
    ranges: List[CoverageRange] = Field(default_factory=list)
    is_block_coverage: bool = Field(default=False, alias="isBlockCoverage")


class ScriptCoverage(_ProtocolModel):
    script_id: Optional[str] = Field(default=None, alias="scriptId")
    url: str
    functions: List[FunctionCoverage] = Field(default_factory=list)


class RawEngineCoverage(_ProtocolModel):
    result: List[ScriptCoverage] = Field(default_factory=list)
    timestamp: Optional[float] = None

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
