"""Durable storage for the offline order queue.

The queue is one JSON blob per theater, stored under `orderQueue:<tenantId>`.
Blobs are always rewritten whole.
"""

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol


class QueueStore(Protocol):
    async def load(self, key: str) -> dict[str, Any] | None: ...

    async def save(self, key: str, blob: dict[str, Any]) -> None: ...


class MemoryStore:
    """Keeps blobs as serialized JSON, so tests see what a disk would hold."""

    def __init__(self) -> None:
        self.blobs: dict[str, str] = {}

    async def load(self, key: str) -> dict[str, Any] | None:
        raw = self.blobs.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, blob: dict[str, Any]) -> None:
        self.blobs[key] = json.dumps(blob)


_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStore:
    """One file per key. Writes go to a temp file first and are renamed into place."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE.sub('_', key)}.json"

    def _read(self, key: str) -> dict[str, Any] | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, blob: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path_for(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def load(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read, key)

    async def save(self, key: str, blob: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, key, blob)
