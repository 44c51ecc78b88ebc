import asyncio
import contextlib
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from pydantic import Field, PrivateAttr

from v8coveragelib.errors import InvalidCoverageError
from v8coveragelib.models import (
    BaseObject,
    CoverageMap,
    RawEngineCoverage,
    coverage_map_from_json,
)


class EngineCoverageClient(Protocol):
    """What the run needs from the browser/engine side (e.g. a DevTools session)."""

    async def start_precise_coverage(self) -> None: ...

    async def take_precise_coverage(self) -> Union[RawEngineCoverage, dict, None]: ...

    async def stop_precise_coverage(self) -> None: ...


class CoverageStream(BaseObject, ABC):
    """A coverage source that is switched on and off around a run. start() and stop() are idempotent."""

    started: bool = False

    async def start(self) -> None:
        if self.started:
            self.debug(f"{self.__class__.__name__} already started")
            return
        await self._start()
        self.started = True

    async def stop(self) -> None:
        if not self.started:
            self.debug(f"{self.__class__.__name__} already stopped")
            return
        self.started = False
        await self._stop()

    @abstractmethod
    async def _start(self) -> None:
        pass

    @abstractmethod
    async def _stop(self) -> None:
        pass


class PreciseCoverageStream(CoverageStream):
    engine: Any = Field(exclude=True)

    async def _start(self) -> None:
        await self.engine.start_precise_coverage()

    async def _stop(self) -> None:
        await self.engine.stop_precise_coverage()

    async def take(self) -> Optional[RawEngineCoverage]:
        if not self.started:
            self.warn("Precise coverage was requested but the stream is not started")
            return None
        data = await self.engine.take_precise_coverage()
        if data is None or isinstance(data, RawEngineCoverage):
            return data
        try:
            return RawEngineCoverage.model_validate(data)
        except Exception as e:
            raise InvalidCoverageError(f"Engine returned malformed coverage: {e}") from e


def counter_delta(previous: Optional[CoverageMap], current: CoverageMap) -> CoverageMap:
    """
    Live counters are cumulative: turn two consecutive dumps into the hits
    that happened in between. A counter that went down means the page was
    reloaded and started over, its current value is all new hits.
    """
    if not previous:
        return current

    delta = {}
    for path, file_coverage in current.items():
        before = previous.get(path)
        if before is None:
            delta[path] = file_coverage
            continue

        diff = file_coverage.model_copy(deep=True)
        for key, hits in file_coverage.s.items():
            old = before.s.get(key, 0)
            diff.s[key] = hits - old if hits >= old else hits
        for key, hits in file_coverage.f.items():
            old = before.f.get(key, 0)
            diff.f[key] = hits - old if hits >= old else hits
        for key, hits in file_coverage.b.items():
            old = before.b.get(key)
            if old is None or len(old) != len(hits):
                continue
            diff.b[key] = [h - o if h >= o else h for h, o in zip(hits, old)]
        delta[path] = diff
    return delta


class LiveCounterStream(CoverageStream):
    """
    Periodically snapshots in-process Istanbul counters (e.g. a page's
    `window.__coverage__`) and hands the new hits to `on_coverage`.
    """

    snapshot: Callable[[], Awaitable[Optional[dict]]] = Field(exclude=True)
    on_coverage: Callable[[CoverageMap], Awaitable[None]] = Field(exclude=True)
    interval: float = 5.0

    _task: Optional[asyncio.Task] = PrivateAttr(default=None)
    _previous: Optional[CoverageMap] = PrivateAttr(default=None)

    async def _start(self) -> None:
        self._previous = None
        self._task = asyncio.create_task(self._poll_forever())

    async def _stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        # counters that moved since the last tick
        await self.poll_once()

    async def _poll_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    async def poll_once(self) -> None:
        try:
            data = await self.snapshot()
            if not data:
                return
            current = coverage_map_from_json(data)
            delta = counter_delta(self._previous, current)
            self._previous = current
            await self.on_coverage(delta)
        except Exception as e:
            self.warn(f"Could not collect live coverage counters: {e!r}")
