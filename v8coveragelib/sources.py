"""
Resolution of script origins reported by the engine to readable sources.

A script origin is either a local file (absolute path or ``file://`` URL)
or a URL served by an application under test. URLs are localized through
the ``clientRoots`` mapping (``{scheme}://{host}`` prefix -> project root).
When the generated script carries a ``sourceMappingURL`` the original
sources named by the map are resolved too, so coverage can be attributed
to pre-build files.
"""

import base64
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote, urljoin, urlparse

import httpx
import sourcemap
from pydantic import Field

from v8coveragelib.errors import SourceResolutionError
from v8coveragelib.models import BaseObject
from v8coveragelib.utils import read_text_file

SOURCE_MAPPING_URL = re.compile(r"^[ \t]*//[#@][ \t]*sourceMappingURL=([^\s'\"]+)[ \t]*$", re.MULTILINE)
REMOTE_SCHEMES = ("http", "https")


@dataclass
class OriginalSource:
    path: str
    text: str
    # the source map's `sources` entry this file came from; None when unmapped
    source_id: Optional[str] = None


@dataclass
class ResolvedScript:
    origin: str
    file_path: str
    text: str
    source_map: Optional[Any] = None
    sources: List[OriginalSource] = field(default_factory=list)


class SourceMapCache:
    """
    Resolved scripts keyed by origin, including negative (None) results.
    One instance lives for one test run and must be cleared on restart.
    """

    def __init__(self):
        self._entries: Dict[str, Optional[ResolvedScript]] = {}

    def __contains__(self, origin: str) -> bool:
        return origin in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, origin: str) -> Optional[ResolvedScript]:
        return self._entries.get(origin)

    def put(self, origin: str, resolved: Optional[ResolvedScript]) -> None:
        self._entries[origin] = resolved

    def clear(self) -> None:
        self._entries.clear()


def find_source_mapping_url(text: str) -> Optional[str]:
    matches = SOURCE_MAPPING_URL.findall(text)
    return matches[-1] if matches else None


def decode_data_url(url: str) -> str:
    header, _, payload = url[len("data:"):].partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload).decode("utf-8")
    return unquote(payload)


def longest_root_prefix(origin: str, root_mappings: Mapping[str, str]) -> Optional[str]:
    best = None
    for prefix in root_mappings:
        normalized = prefix.rstrip("/")
        if origin == normalized or origin.startswith(normalized + "/"):
            if best is None or len(normalized) > len(best.rstrip("/")):
                best = prefix
    return best


def localize_origin(origin: str, root_mappings: Mapping[str, str]) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Returns (local path, remote url, logical root) for a script origin.
    The remote url is only set for http(s) origins and is used as a fallback
    when the localized path is not on disk.
    """
    if origin.startswith("file://"):
        return os.path.normpath(unquote(urlparse(origin).path)), None, None

    if os.path.isabs(origin):
        return os.path.normpath(origin), None, None

    scheme = urlparse(origin).scheme
    if scheme not in REMOTE_SCHEMES:
        raise SourceResolutionError(f"Unsupported script origin {origin}")

    prefix = longest_root_prefix(origin, root_mappings)
    if prefix is None:
        raise SourceResolutionError(f"No client root matches {origin}")

    root = root_mappings[prefix]
    rest = origin[len(prefix.rstrip("/")):]
    rest = rest.split("#", 1)[0].split("?", 1)[0]
    local_path = os.path.normpath(os.path.join(root, unquote(rest).lstrip("/")))
    return local_path, origin, root


def localize_source(source: str, generated_path: str, logical_root: Optional[str]) -> str:
    """Map one entry of a source map's `sources` to a local file path."""
    if source.startswith("webpack://"):
        # webpack://<namespace>/./src/App.js
        _, _, rest = source[len("webpack://"):].partition("/")
        base = logical_root or os.path.dirname(generated_path)
        return os.path.normpath(os.path.join(base, rest))

    if source.startswith("file://"):
        return os.path.normpath(unquote(urlparse(source).path))

    parsed = urlparse(source)
    if parsed.scheme in REMOTE_SCHEMES:
        base = logical_root or os.path.dirname(generated_path)
        return os.path.normpath(os.path.join(base, unquote(parsed.path).lstrip("/")))

    if os.path.isabs(source):
        return os.path.normpath(source)

    return os.path.normpath(os.path.join(os.path.dirname(generated_path), source))


class SourceResolver(BaseObject):
    timeout: float = Field(default=30.0, description="Timeout in seconds for fetching scripts from dev servers")

    async def resolve(
        self,
        origin: str,
        root_mappings: Optional[Mapping[str, str]] = None,
        cache: Optional[SourceMapCache] = None,
    ) -> Optional[ResolvedScript]:
        """
        Resolve a script origin to its generated text and original sources.
        Returns None, never raises, when the origin cannot be resolved: the
        caller skips the script.
        """
        if cache is not None and origin in cache:
            return cache.get(origin)

        try:
            resolved = await self._resolve(origin, root_mappings or {})
        except SourceResolutionError as e:
            self.debug(f"Skipping {origin}: {e}")
            resolved = None
        except Exception as e:
            self.warn(f"Could not resolve sources for {origin}: {e!r}")
            resolved = None

        if cache is not None:
            cache.put(origin, resolved)
        return resolved

    async def _resolve(self, origin: str, root_mappings: Mapping[str, str]) -> ResolvedScript:
        local_path, remote_url, logical_root = localize_origin(origin, root_mappings)

        text = await read_text_file(local_path)
        if text is None and remote_url is not None:
            text = await self._fetch(remote_url)
        if text is None:
            raise SourceResolutionError(f"{local_path} does not exist")

        resolved = ResolvedScript(origin=origin, file_path=local_path, text=text)

        map_text = None
        map_ref = find_source_mapping_url(text)
        if map_ref:
            map_text = await self._load_source_map(map_ref, local_path, remote_url)

        if map_text is None:
            resolved.sources = [OriginalSource(path=local_path, text=text)]
            return resolved

        resolved.source_map = sourcemap.loads(map_text)
        resolved.sources = await self._original_sources(resolved.source_map, local_path, logical_root)
        return resolved

    async def _load_source_map(self, map_ref: str, local_path: str, remote_url: Optional[str]) -> Optional[str]:
        if map_ref.startswith("data:"):
            return decode_data_url(map_ref)

        if urlparse(map_ref).scheme in REMOTE_SCHEMES:
            return await self._fetch(map_ref)

        map_path = os.path.normpath(os.path.join(os.path.dirname(local_path), unquote(map_ref.split("?", 1)[0])))
        map_text = await read_text_file(map_path)
        if map_text is None and remote_url is not None:
            map_text = await self._fetch(urljoin(remote_url, map_ref))
        if map_text is None:
            self.warn(f"Source map {map_ref} referenced by {local_path} was not found, using the generated code")
        return map_text

    async def _original_sources(self, index, generated_path: str, logical_root: Optional[str]) -> List[OriginalSource]:
        raw = index.raw if isinstance(index.raw, dict) else {}
        source_ids = list(getattr(index, "sources", None) or [])
        contents = raw.get("sourcesContent") or []
        if not source_ids:
            source_ids = sorted({token.src for token in index if token.src})
            contents = []
        if len(contents) != len(source_ids):
            # sectioned maps do not line up with a single sourcesContent array
            contents = []

        sources = []
        for i, source_id in enumerate(source_ids):
            path = localize_source(source_id, generated_path, logical_root)
            text = contents[i] if i < len(contents) else None
            if text is None:
                text = await read_text_file(path)
            if text is None:
                self.debug(f"No content for original source {source_id} ({path}), skipping it")
                continue
            sources.append(OriginalSource(path=path, text=text, source_id=source_id))
        return sources

    async def _fetch(self, url: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            self.debug(f"Fetching {url} failed: {e!r}")
            return None
        if response.status_code >= 400:
            self.debug(f"Fetching {url} returned {response.status_code}")
            return None
        return response.text
