import os

from wcmatch import glob

from v8coveragelib.models import ExclusionConfig
from .base import FilterPass

# minimatch defaults: `*` stops at `/`, `**` spans directories, braces expand
GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.EXTGLOB


def glob_match(path: str, pattern: str) -> bool:
    return glob.globmatch(path, pattern, flags=GLOB_FLAGS)


def relative_to_working_dir(file_path: str, working_dir: str) -> str:
    if not working_dir:
        return file_path
    working_dir = working_dir.rstrip("/\\")
    if file_path.startswith(working_dir + "/") or file_path.startswith(working_dir + "\\"):
        return file_path[len(working_dir) + 1:]
    return file_path


class SkipSpecFilesFilter(FilterPass):
    """Remove the test files themselves, only application sources are reported."""

    name: str = "skip_spec_files"

    def excludes(self, file_path: str, config: ExclusionConfig) -> bool:
        filename = relative_to_working_dir(file_path, config.working_dir)
        if os.sep != "/":
            filename = filename.replace(os.sep, "/")

        for pattern in config.test_patterns:
            if not pattern:
                continue
            if glob_match(filename, pattern):
                return True
            # absolute patterns against relative keys, and the reverse
            if filename.endswith(pattern):
                return True
        return False
