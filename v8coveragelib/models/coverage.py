import json
from typing import Any, Dict, List, Optional, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_serializer

from v8coveragelib.errors import InvalidCoverageError


class _IstanbulModel(BaseModel):
    # Istanbul writers attach keys we do not interpret (hash, _coverageSchema,
    # inputSourceMap, skip, ...). They are carried through verbatim.
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    @model_serializer(mode="wrap")
    def _omit_unset_fields(self, handler):
        # unset declared fields are left out, extras are written as they came in
        data = handler(self)
        extra = self.model_extra or {}
        return {key: value for key, value in data.items() if value is not None or key in extra}


class Position(_IstanbulModel):
    # Istanbul writes {} for the implicit `else` location of an if.
    line: Optional[int] = None
    column: Optional[int] = None


class Location(_IstanbulModel):
    start: Position = Field(default_factory=Position)
    end: Position = Field(default_factory=Position)


class FunctionMapping(_IstanbulModel):
    name: str
    decl: Location
    loc: Location
    line: Optional[int] = None


class BranchMapping(_IstanbulModel):
    type: str
    loc: Location
    locations: List[Location] = Field(default_factory=list)
    line: Optional[int] = None


class FileCoverage(_IstanbulModel):
    path: str
    statement_map: Dict[str, Location] = Field(default_factory=dict, alias="statementMap")
    fn_map: Dict[str, FunctionMapping] = Field(default_factory=dict, alias="fnMap")
    branch_map: Dict[str, BranchMapping] = Field(default_factory=dict, alias="branchMap")
    s: Dict[str, int] = Field(default_factory=dict)
    f: Dict[str, int] = Field(default_factory=dict)
    b: Dict[str, List[int]] = Field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def line_coverage(self) -> Dict[int, int]:
        """Line hits derived from statements: a line's count is the max count of the statements starting on it."""
        lines: Dict[int, int] = {}
        for stmt_id, loc in self.statement_map.items():
            line = loc.start.line
            if line is None:
                continue
            count = self.s.get(stmt_id, 0)
            if line not in lines or count > lines[line]:
                lines[line] = count
        return lines


CoverageMap: TypeAlias = Dict[str, FileCoverage]


def file_coverage_from_json(key: str, data: Dict[str, Any]) -> FileCoverage:
    if not isinstance(data, dict):
        raise InvalidCoverageError(f"Coverage entry for {key} is not an object")
    data = dict(data)
    data.setdefault("path", key)
    try:
        return FileCoverage.model_validate(data)
    except ValidationError as e:
        raise InvalidCoverageError(f"Invalid coverage entry for {key}: {e}") from e


def coverage_map_from_json(data: Any) -> CoverageMap:
    if not isinstance(data, dict):
        raise InvalidCoverageError(f"A coverage map must be a JSON object, got {type(data).__name__}")
    return {key: file_coverage_from_json(key, value) for key, value in data.items()}


def coverage_map_to_json(coverage_map: CoverageMap) -> Dict[str, Dict[str, Any]]:
    return {key: file_coverage.to_json() for key, file_coverage in coverage_map.items()}


def serialize(coverage_map: CoverageMap, indent: Optional[int] = 2) -> str:
    return json.dumps(coverage_map_to_json(coverage_map), indent=indent)


def deserialize(text: str) -> CoverageMap:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidCoverageError(f"Coverage map is not valid JSON: {e}") from e
    return coverage_map_from_json(data)


def copy_coverage_map(coverage_map: CoverageMap) -> CoverageMap:
    return {key: file_coverage.model_copy(deep=True) for key, file_coverage in coverage_map.items()}
