import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlparse

from pydantic import Field

from v8coveragelib.converter import CoverageConverter, convert_profile_coverage
from v8coveragelib.errors import BackendCoverageMissingError, InvalidStateTransitionError
from v8coveragelib.models import (
    BaseObject,
    CollectionEvent,
    CoverageMap,
    CoverageSummary,
    EventKind,
    FileCoverage,
    HostConfig,
    RunSettings,
    coverage_map_from_json,
)
from .backend import BackendCoverageClient, BackendCoverageResult
from .session import CoverageSession
from .streams import LiveCounterStream, PreciseCoverageStream

l = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    MERGING = "merging"
    REPORTING = "reporting"


class CollectionOrchestrator(BaseObject):
    """
    Drives one test run's coverage collection from the host's lifecycle
    signals:

        run_start -> (save_host | test_end | collect_live_counters)* -> run_end

    Signals that arrive in the wrong state raise InvalidStateTransitionError.
    Every fragment collected during the run goes through the session's
    filter and merger and is persisted right away.
    """

    settings: RunSettings
    engine: Optional[Any] = Field(default=None, exclude=True, description="EngineCoverageClient for precise coverage")
    report: Optional[Callable[[CoverageMap], Any]] = Field(default=None, exclude=True)
    converter: CoverageConverter = Field(default_factory=CoverageConverter)
    backend: Optional[BackendCoverageClient] = None

    state: OrchestratorState = OrchestratorState.IDLE
    session: Optional[CoverageSession] = None
    precise_stream: Optional[PreciseCoverageStream] = None
    live_streams: List[LiveCounterStream] = Field(default_factory=list)

    def model_post_init(self, __context) -> None:
        if self.backend is None:
            self.backend = BackendCoverageClient(timeout=self.settings.backend_timeout)
        if self.engine is not None and self.precise_stream is None:
            self.precise_stream = PreciseCoverageStream(engine=self.engine)

    def _require(self, signal: str, *states: OrchestratorState) -> None:
        if self.state not in states:
            raise InvalidStateTransitionError(signal, self.state.value)

    @property
    def coverage_map(self) -> CoverageMap:
        if self.session is None:
            return {}
        return self.session.merger.snapshot()

    async def run_start(self, is_interactive: Optional[bool] = None) -> None:
        """
        Begin a run. An interactive (re-)run starts from nothing: accumulated
        coverage, cached source maps and the persisted snapshot are cleared.
        A headless run continues the persisted snapshot so coverage from
        earlier spec files is kept.
        """
        if is_interactive is None:
            is_interactive = self.settings.is_interactive

        if self.state == OrchestratorState.COLLECTING and is_interactive:
            self.info("Interactive re-run, discarding the current run")
            await self._stop_streams()
        else:
            self._require("run_start", OrchestratorState.IDLE)

        self.session = CoverageSession.create(self.settings)
        if is_interactive:
            self.session.reset()
            await self.session.store.reset()
        else:
            self.session.merger.load(await self.session.store.load())

        if self.settings.code_coverage.client:
            if self.precise_stream is None:
                self.warn("Client coverage is enabled but no engine was given, client coverage is skipped")
            else:
                await self.precise_stream.start()

        self.state = OrchestratorState.COLLECTING

    def save_host(self, location: str) -> Optional[HostConfig]:
        """Remember the origin of a server-side rendered page so run_end() can pull its coverage."""
        self._require("save_host", OrchestratorState.COLLECTING, OrchestratorState.MERGING)
        ssr_path = self.settings.code_coverage.ssr
        if not ssr_path:
            return None

        parsed = urlparse(location)
        if not parsed.scheme or not parsed.netloc:
            self.warn(f"Cannot derive a host from {location!r}")
            return None

        origin = f"{parsed.scheme}://{parsed.netloc}"
        host = HostConfig(
            url=origin + ssr_path,
            comment=f"ssr - {parsed.netloc}",
            project_root=self.settings.code_coverage.project_root_for(origin),
            kind=EventKind.SSR,
        )
        if not self.session.add_host(host):
            return None
        self.debug(f"Registered server-side coverage endpoint {host.url}")
        return host

    async def test_end(self, location: str) -> CoverageMap:
        """Take the engine's precise coverage for the test that just finished and merge it."""
        self._require("test_end", OrchestratorState.COLLECTING)
        if not self.settings.code_coverage.client or self.precise_stream is None:
            return {}

        self.state = OrchestratorState.MERGING
        try:
            raw = await self.precise_stream.take()
            if raw is None:
                self.warn(f"Could not load client coverage for {location}")
                return {}
            parsed = urlparse(location)
            event = CollectionEvent(
                label=f"client - {location}",
                kind=EventKind.CLIENT,
                project_root=self.settings.code_coverage.project_root_for(f"{parsed.scheme}://{parsed.netloc}"),
                payload=raw,
            )
            return await self._collect_engine_event(event)
        finally:
            self.state = OrchestratorState.COLLECTING

    async def _collect_engine_event(self, event: CollectionEvent) -> CoverageMap:
        fragment = await convert_profile_coverage(
            event.payload,
            comment=event.label,
            client_roots=self.settings.code_coverage.client_roots,
            cache=self.session.cache,
            converter=self.converter,
            debug_dir=self.settings.debug_dir,
        )
        return await self.session.ingest(fragment, event.project_root)

    async def collect_live_counters(self, coverage, label: str, project_root: Optional[str] = None) -> CoverageMap:
        """Merge one dump of in-process Istanbul counters (already in coverage map form)."""
        self._require("collect_live_counters", OrchestratorState.COLLECTING, OrchestratorState.MERGING)
        if any(not isinstance(value, FileCoverage) for value in coverage.values()):
            coverage = coverage_map_from_json(coverage)
        event = CollectionEvent(label=f"live - {label}", kind=EventKind.LIVE, project_root=project_root, payload=coverage)
        self.debug(f"Merging {len(coverage)} files from {event.label}")
        return await self.session.ingest(event.payload, event.project_root)

    async def start_live_counters(
        self,
        snapshot: Callable[[], Awaitable[Optional[dict]]],
        label: str,
        project_root: Optional[str] = None,
        interval: float = 5.0,
    ) -> LiveCounterStream:
        """Poll `snapshot` every `interval` seconds until run_end()."""
        self._require("start_live_counters", OrchestratorState.COLLECTING)

        async def on_coverage(delta: CoverageMap) -> None:
            await self.collect_live_counters(delta, label, project_root)

        stream = LiveCounterStream(snapshot=snapshot, on_coverage=on_coverage, interval=interval)
        await stream.start()
        self.live_streams.append(stream)
        return stream

    async def _stop_streams(self) -> None:
        for stream in self.live_streams:
            await stream.stop()
        self.live_streams.clear()
        if self.precise_stream is not None:
            await self.precise_stream.stop()

    def _backend_hosts(self) -> List[HostConfig]:
        hosts = [HostConfig(url=url, comment=f"backend - {url}") for url in self.settings.code_coverage.api]
        known = {host.url for host in hosts}
        hosts.extend(host for host in self.session.hosts if host.url not in known)
        return hosts

    async def _collect_backend_coverage(self) -> List[BackendCoverageResult]:
        hosts = self._backend_hosts()
        if not hosts:
            return []

        results = await self.backend.fetch_all(hosts)
        missing = []
        for result in results:
            if result.coverage is not None:
                await self.session.ingest(result.coverage, result.host.project_root)
                self.debug(f"Merged {len(result.coverage)} files from {result.host.comment}")
                continue
            if result.error:
                self.warn(f"Could not collect backend coverage from {result.host.url}: {result.error}")
            else:
                self.info(f"No backend coverage returned from {result.host.url}")
            missing.append(result)

        if missing and self.settings.code_coverage.expect_backend_coverage_only:
            first = missing[0]
            raise BackendCoverageMissingError(first.host.url, first.error or "no coverage field in response")
        return results

    async def run_end(self) -> CoverageMap:
        """
        Pull backend and server-side coverage, stop every stream and hand the
        final map to the report callable. Backend coverage that is missing in
        mandatory mode raises BackendCoverageMissingError once everything
        that could be fetched has been merged; no report is produced then.
        """
        self._require("run_end", OrchestratorState.COLLECTING)
        self.state = OrchestratorState.MERGING
        try:
            try:
                if self.settings.collects_backend_coverage:
                    await self._collect_backend_coverage()
            finally:
                await self._stop_streams()

            self.state = OrchestratorState.REPORTING
            coverage_map = self.session.merger.snapshot()
            summary = CoverageSummary.for_map(coverage_map)
            self.info(
                f"Coverage for {len(coverage_map)} files: "
                f"lines {summary.lines.pct}%, statements {summary.statements.pct}%, "
                f"functions {summary.functions.pct}%, branches {summary.branches.pct}%"
            )
            if self.report is not None:
                result = self.report(coverage_map)
                if inspect.isawaitable(result):
                    await result
            return coverage_map
        finally:
            self.state = OrchestratorState.IDLE


def create_orchestrator(settings: RunSettings, **kwargs) -> Optional[CollectionOrchestrator]:
    """Returns None when coverage is not enabled for this run."""
    if not settings.enabled:
        l.info("Skipping code coverage hooks")
        return None
    return CollectionOrchestrator(settings=settings, **kwargs)
