import asyncio
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import Field, PrivateAttr

from v8coveragelib.errors import InvalidCoverageError
from v8coveragelib.models import BaseObject, CoverageMap, deserialize, serialize


class CoverageStore(BaseObject):
    """
    The persisted coverage snapshot. It is rewritten after every merge so a
    later process (the next spec file, or an interactive re-run) can pick
    up where this one stopped.
    """

    path: Path = Field(default=Path(".nyc_output") / "out.json")

    _write_lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    async def load(self) -> CoverageMap:
        if not await aiofiles.os.path.isfile(self.path):
            return {}
        try:
            async with aiofiles.open(self.path, "r") as f:
                text = await f.read()
            if not text.strip():
                return {}
            return deserialize(text)
        except (OSError, UnicodeDecodeError, InvalidCoverageError) as e:
            self.warn(f"Ignoring unreadable coverage snapshot {self.path}: {e}")
            return {}

    async def save(self, coverage_map: CoverageMap) -> None:
        text = serialize(coverage_map)
        async with self._write_lock:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(text)
            await aiofiles.os.replace(tmp_path, self.path)

    async def reset(self) -> None:
        await self.save({})
