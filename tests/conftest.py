"""Pytest configuration and fixtures."""

import base64
import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from v8coveragelib.models import RunSettings

BASE64_DIGITS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

ADD_JS = """function add(a, b) {
  return a + b;
}

function unused() {
  return 42;
}

add(1, 2);
"""

CHECK_JS = """function check(x) {
  if (x > 0) {
    return "pos";
  }
  return "neg";
}
check(1);
check(2);
"""


def _vlq(value: int) -> str:
    value = ((-value) << 1) | 1 if value < 0 else value << 1
    out = ""
    while True:
        digit = value & 31
        value >>= 5
        if value:
            digit |= 32
        out += BASE64_DIGITS[digit]
        if not value:
            return out


def shifted_source_map(original: str, source_name: str, line_offset: int = 0, file: str = "bundle.js") -> Dict:
    """A source map for a bundle that is `original` preceded by `line_offset` header lines, one token per character."""
    lines = [""] * line_offset
    prev_src_line = prev_src_col = 0
    for src_line, text in enumerate(original.split("\n")):
        segments = []
        prev_gen_col = 0
        for col in range(len(text)):
            segments.append(
                _vlq(col - prev_gen_col) + _vlq(0) + _vlq(src_line - prev_src_line) + _vlq(col - prev_src_col)
            )
            prev_gen_col, prev_src_line, prev_src_col = col, src_line, col
        lines.append(",".join(segments))
    return {
        "version": 3,
        "file": file,
        "sources": [source_name],
        "sourcesContent": [original],
        "names": [],
        "mappings": ";".join(lines),
    }


def inline_source_map(source_map: Dict) -> str:
    payload = base64.b64encode(json.dumps(source_map).encode()).decode()
    return f"//# sourceMappingURL=data:application/json;charset=utf-8;base64,{payload}"


def block_end(text: str, start: int) -> int:
    """Offset just past the `}` closing the block opened after `start`."""
    depth = 0
    for i in range(text.index("{", start), len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    raise ValueError("unbalanced braces")


def add_js_ranges(text: str, base: int = 0) -> List[Dict]:
    """Engine functions for ADD_JS (at `base` inside the script) after `add(1, 2)` ran once."""
    add_start = text.index("function add")
    unused_start = text.index("function unused")
    return [
        {"functionName": "", "isBlockCoverage": True,
         "ranges": [{"startOffset": 0, "endOffset": base + len(text), "count": 1}]},
        {"functionName": "add", "isBlockCoverage": True,
         "ranges": [{"startOffset": base + add_start, "endOffset": base + block_end(text, add_start), "count": 1}]},
        {"functionName": "unused", "isBlockCoverage": True,
         "ranges": [{"startOffset": base + unused_start, "endOffset": base + block_end(text, unused_start), "count": 0}]},
    ]


def check_js_ranges(text: str) -> List[Dict]:
    """Engine functions for CHECK_JS after check(1) and check(2)."""
    fn_start = text.index("function check")
    neg_start = text.index('return "neg";')
    return [
        {"functionName": "", "isBlockCoverage": True,
         "ranges": [{"startOffset": 0, "endOffset": len(text), "count": 1}]},
        {"functionName": "check", "isBlockCoverage": True,
         "ranges": [
             {"startOffset": fn_start, "endOffset": block_end(text, fn_start), "count": 2},
             {"startOffset": neg_start, "endOffset": neg_start + len('return "neg";'), "count": 0},
         ]},
    ]


def raw_coverage(scripts: List[Dict]) -> Dict:
    return {"result": scripts, "timestamp": 1234.5}


def script(url: str, functions: List[Dict], script_id: str = "1") -> Dict:
    return {"scriptId": script_id, "url": url, "functions": functions}


class FakeEngine:
    """Stands in for a DevTools session: hands out the same snapshot on every take."""

    def __init__(self, snapshot: Optional[Dict] = None):
        self.snapshot = snapshot
        self.started = 0
        self.stopped = 0
        self.taken = 0

    async def start_precise_coverage(self):
        self.started += 1

    async def take_precise_coverage(self):
        self.taken += 1
        return self.snapshot

    async def stop_precise_coverage(self):
        self.stopped += 1


@pytest.fixture
def add_js(tmp_path: Path) -> Path:
    path = tmp_path / "src" / "add.js"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ADD_JS)
    return path


@pytest.fixture
def check_js(tmp_path: Path) -> Path:
    path = tmp_path / "src" / "check.js"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CHECK_JS)
    return path


@pytest.fixture
def bundled_project(tmp_path: Path) -> Path:
    """A served bundle with an inline source map pointing at webpack://app/./src/add.js."""
    root = tmp_path / "app"
    bundle = root / "static" / "bundle.js"
    bundle.parent.mkdir(parents=True, exist_ok=True)
    header = "/* bundle header */\n"
    source_map = shifted_source_map(ADD_JS, "webpack://app/./src/add.js", line_offset=1)
    bundle.write_text(header + ADD_JS + inline_source_map(source_map) + "\n")
    return root


@pytest.fixture
def add_js_snapshot(add_js: Path) -> Dict:
    return raw_coverage([script(add_js.as_uri(), add_js_ranges(ADD_JS))])


@pytest.fixture
def run_settings(tmp_path: Path) -> RunSettings:
    return RunSettings(
        enabled=True,
        working_dir=tmp_path,
        snapshot_path=tmp_path / ".nyc_output" / "out.json",
        debug_dir=tmp_path / ".cache" / "_debug",
        code_coverage={"client": True},
    )
