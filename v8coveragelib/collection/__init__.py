from .backend import BackendCoverageClient, BackendCoverageResult
from .orchestrator import CollectionOrchestrator, OrchestratorState, create_orchestrator
from .session import CoverageSession, resolve_relative_paths
from .streams import (
    CoverageStream,
    EngineCoverageClient,
    LiveCounterStream,
    PreciseCoverageStream,
    counter_delta,
)

__all__ = [
    "BackendCoverageClient",
    "BackendCoverageResult",
    "CollectionOrchestrator",
    "CoverageSession",
    "CoverageStream",
    "EngineCoverageClient",
    "LiveCounterStream",
    "OrchestratorState",
    "PreciseCoverageStream",
    "counter_delta",
    "create_orchestrator",
    "resolve_relative_paths",
]
