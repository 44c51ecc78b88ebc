import re

from v8coveragelib.models import ExclusionConfig
from .base import FilterPass

# webpack names its synthetic modules like `external "react"` or `webpack/bootstrap`
EXTERNAL_MODULE = re.compile(r'/external\s(\w|-)+\s"')
FILE_NAME = re.compile(r"([^/\\]+)$")


class SkipInfrastructureFilter(FilterPass):
    """Remove bundler runtime modules that never correspond to a source file."""

    name: str = "skip_infrastructure"

    __SYNTHETIC_PREFIXES__ = ("webpack ",)
    __INTERNAL_SEGMENTS__ = ("/webpack/",)

    def excludes(self, file_path: str, config: ExclusionConfig) -> bool:
        match = FILE_NAME.search(file_path)
        file_name = match.group(1) if match else ""

        if file_name.startswith(self.__SYNTHETIC_PREFIXES__):
            return True
        if any(segment in file_path for segment in self.__INTERNAL_SEGMENTS__):
            return True
        if EXTERNAL_MODULE.search(file_path):
            return True
        return False
