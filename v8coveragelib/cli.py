import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import yaml

import v8coveragelib
from v8coveragelib.converter import convert_profile_coverage
from v8coveragelib.errors import CoverageError
from v8coveragelib.filters import filter_files_from_coverage
from v8coveragelib.merger import CoverageMerger
from v8coveragelib.models import (
    CoverageSummary,
    ExclusionConfig,
    deserialize,
    load_config,
    serialize,
)

_l = logging.getLogger(__name__)


def _setup_logging(debug: bool) -> None:
    logging.getLogger("v8coveragelib").setLevel(logging.DEBUG if debug else logging.INFO)


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-v", "--version", action="version", version=f"{v8coveragelib.__version__}")
    parser.add_argument("--debug", action="store_true", default=False, help="Enable debug logging")


def _parse_client_roots(value):
    """`--client-roots` takes a YAML/JSON file or an inline YAML/JSON mapping."""
    if value is None:
        return {}
    if not value.lstrip().startswith("{") and Path(value).is_file():
        value = Path(value).read_text()
    try:
        roots = yaml.safe_load(value)
    except yaml.YAMLError as e:
        raise argparse.ArgumentTypeError(f"cannot parse client roots: {e}")
    if not isinstance(roots, dict):
        raise argparse.ArgumentTypeError(f"client roots must be a mapping of origin to directory, got {value!r}")
    return {str(prefix): str(root) for prefix, root in roots.items()}


def _write_output(text: str, output) -> None:
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text)
    _l.info(f"Wrote {output}")


def _read_coverage_map(path: Path):
    with open(path, "r") as f:
        return deserialize(f.read())


def convert_cli(argv=None):
    parser = argparse.ArgumentParser(
        description="Convert a saved DevTools precise coverage dump into Istanbul JSON"
    )
    _common_arguments(parser)
    parser.add_argument("raw_json", type=Path, help="Profiler.takePreciseCoverage result saved as JSON")
    parser.add_argument(
        "--client-roots",
        type=_parse_client_roots,
        default={},
        help="Mapping of served origin (e.g. http://localhost:3000) to the local directory it serves",
    )
    parser.add_argument("--output", type=Path, help="Where to write the coverage map (stdout when omitted)")
    parser.add_argument("--comment", default=None, help="Label used in logs and for the debug dump")
    parser.add_argument("--debug-dir", type=Path, default=None, help="Write the raw input and the result here")
    args = parser.parse_args(argv)
    _setup_logging(args.debug)

    try:
        with open(args.raw_json, "r") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        _l.error(f"Cannot read {args.raw_json}: {e}")
        return 1

    try:
        coverage_map = asyncio.run(
            convert_profile_coverage(
                raw,
                comment=args.comment or f"client - {args.raw_json.name}",
                client_roots=args.client_roots,
                debug_dir=args.debug_dir,
            )
        )
    except CoverageError as e:
        _l.error(str(e))
        return 1

    _l.info(f"Converted coverage for {len(coverage_map)} files")
    _write_output(serialize(coverage_map), args.output)
    return 0


def merge_cli(argv=None):
    parser = argparse.ArgumentParser(description="Merge Istanbul coverage maps")
    _common_arguments(parser)
    parser.add_argument("inputs", nargs="+", type=Path, help="Istanbul JSON files to merge")
    parser.add_argument("--output", type=Path, required=True)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Run configuration (YAML or JSON) whose spec patterns and excludes filter the result",
    )
    args = parser.parse_args(argv)
    _setup_logging(args.debug)

    exclusion = None
    if args.config is not None:
        exclusion = ExclusionConfig.from_settings(load_config(args.config))

    merger = CoverageMerger()
    for path in args.inputs:
        try:
            fragment = _read_coverage_map(path)
        except (OSError, CoverageError) as e:
            _l.error(f"Skipping {path}: {e}")
            continue
        if exclusion is not None:
            fragment = filter_files_from_coverage(fragment, exclusion)
        merger.merge(fragment)

    _l.info(f"Merged {len(args.inputs)} inputs into {len(merger.coverage_map)} files")
    _write_output(serialize(merger.coverage_map), args.output)
    return 0


def format_summary(summary: CoverageSummary) -> str:
    rows = ["{:<12} {:>8} {:>8} {:>8}".format("", "covered", "total", "pct")]
    for name, metric in summary.as_dict().items():
        rows.append("{:<12} {:>8} {:>8} {:>7.2f}%".format(name, metric["covered"], metric["total"], metric["pct"]))
    return "\n".join(rows)


def summary_cli(argv=None):
    parser = argparse.ArgumentParser(description="Print a coverage summary for an Istanbul JSON file")
    _common_arguments(parser)
    parser.add_argument("input", type=Path)
    args = parser.parse_args(argv)
    _setup_logging(args.debug)

    try:
        coverage_map = _read_coverage_map(args.input)
    except (OSError, CoverageError) as e:
        _l.error(f"Cannot read {args.input}: {e}")
        return 1

    print(format_summary(CoverageSummary.for_map(coverage_map)))
    return 0
