import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx
from pydantic import Field

from v8coveragelib.errors import InvalidCoverageError
from v8coveragelib.models import BaseObject, CoverageMap, HostConfig, coverage_map_from_json


@dataclass
class BackendCoverageResult:
    host: HostConfig
    coverage: Optional[CoverageMap] = None
    # set for transport failures, non-2xx answers and malformed bodies;
    # a body without a `coverage` field is not an error
    error: Optional[str] = None


class BackendCoverageClient(BaseObject):
    """Fetches coverage exposed by backend processes (e.g. GET /__coverage__)."""

    timeout: float = 30.0
    transport: Optional[Any] = Field(default=None, exclude=True, description="httpx transport override")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self.transport)

    async def fetch(self, client: httpx.AsyncClient, host: HostConfig) -> BackendCoverageResult:
        try:
            response = await client.get(host.url)
        except httpx.TimeoutException:
            return BackendCoverageResult(host, error=f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            return BackendCoverageResult(host, error=f"request failed: {e!r}")

        if not response.is_success:
            return BackendCoverageResult(host, error=f"status {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            return BackendCoverageResult(host, error="response body is not JSON")

        coverage = body.get("coverage") if isinstance(body, dict) else None
        # an empty map is valid: the backend runs but has loaded no files yet
        if coverage is None:
            return BackendCoverageResult(host)

        try:
            return BackendCoverageResult(host, coverage=coverage_map_from_json(coverage))
        except InvalidCoverageError as e:
            return BackendCoverageResult(host, error=str(e))

    async def fetch_all(self, hosts: List[HostConfig]) -> List[BackendCoverageResult]:
        """Fetch every host concurrently. Results come back in the order of `hosts`."""
        if not hosts:
            return []
        async with self._client() as client:
            return list(await asyncio.gather(*(self.fetch(client, host) for host in hosts)))
