import logging

LOG_FORMAT = (
    "%(asctime)s [%(levelname)-8s] "
    "%(name)s:%(lineno)d | %(message)s"
)

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
log = logging.getLogger("v8coveragelib")

__version__ = "0.1.0"

from .errors import (
    CoverageError,
    BackendCoverageMissingError,
    InvalidCoverageError,
    InvalidStateTransitionError,
    SourceResolutionError,
)
from .models import (
    CodeCoverageConfig,
    CollectionEvent,
    CoverageMap,
    ExclusionConfig,
    FileCoverage,
    RawEngineCoverage,
    RunSettings,
)
from .sources import SourceMapCache, SourceResolver
from .converter import CoverageConverter, convert_profile_coverage
from .filters import CoverageFilter, filter_files_from_coverage
from .merger import CoverageMerger, merge_coverage_maps
from .store import CoverageStore
from .collection import CollectionOrchestrator, CoverageSession, OrchestratorState
