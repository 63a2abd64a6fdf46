from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os

from docflow.domain.errors import ArtifactNotFoundError, StorageError
from docflow.ports.object_store_port import ObjectStorePort

logger = logging.getLogger(__name__)

METADATA_DIR = ".meta"


class LocalObjectStore(ObjectStorePort):
    """Object store on the local filesystem; object paths map to files under ``root``."""

    def __init__(self, root: str) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    async def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> str:
        target = self._resolve(path)
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(target, "wb") as handle:
                await handle.write(data)
            if metadata:
                meta_target = self._metadata_path(path)
                await aiofiles.os.makedirs(meta_target.parent, exist_ok=True)
                async with aiofiles.open(meta_target, "w", encoding="utf-8") as handle:
                    await handle.write(json.dumps(metadata))
        except OSError as exc:
            raise StorageError(f"Failed to store object: {path}") from exc
        return path

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            async with aiofiles.open(target, "rb") as handle:
                return await handle.read()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"Object not found: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read object: {path}") from exc

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.isfile(self._resolve(path))

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete object: {path}") from exc
        meta_target = self._metadata_path(path)
        if await aiofiles.os.path.isfile(meta_target):
            await aiofiles.os.remove(meta_target)
        return True

    async def list_by_prefix(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def generate_access_url(self, path: str, ttl_seconds: int) -> str:
        target = self._resolve(path)
        if not await aiofiles.os.path.isfile(target):
            raise ArtifactNotFoundError(f"Object not found: {path}")
        expires = int(time.time()) + ttl_seconds
        return f"{target.as_uri()}?expires={expires}"

    def _list_sync(self, prefix: str) -> list[str]:
        paths: list[str] = []
        for directory, dirnames, filenames in os.walk(self._root):
            if Path(directory) == self._root and METADATA_DIR in dirnames:
                dirnames.remove(METADATA_DIR)
            for filename in filenames:
                relative = Path(directory, filename).relative_to(self._root).as_posix()
                if relative.startswith(prefix):
                    paths.append(relative)
        return sorted(paths)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise StorageError(f"Invalid object path: {path}")
        if relative.parts[0] == METADATA_DIR:
            raise StorageError(f"Reserved object path: {path}")
        return self._root.joinpath(*relative.parts)

    def _metadata_path(self, path: str) -> Path:
        target = self._root.joinpath(METADATA_DIR, *PurePosixPath(path).parts)
        return target.with_name(f"{target.name}.json")
