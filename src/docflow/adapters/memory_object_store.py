from __future__ import annotations

import time

from docflow.domain.errors import ArtifactNotFoundError
from docflow.ports.object_store_port import ObjectStorePort


class InMemoryObjectStore(ObjectStorePort):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.deleted: list[str] = []

    async def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> str:
        self.objects[path] = bytes(data)
        if metadata:
            self.metadata[path] = dict(metadata)
        return path

    async def get(self, path: str) -> bytes:
        try:
            return self.objects[path]
        except KeyError as exc:
            raise ArtifactNotFoundError(f"Object not found: {path}") from exc

    async def exists(self, path: str) -> bool:
        return path in self.objects

    async def delete(self, path: str) -> bool:
        self.deleted.append(path)
        self.metadata.pop(path, None)
        return self.objects.pop(path, None) is not None

    async def list_by_prefix(self, prefix: str) -> list[str]:
        return sorted(path for path in self.objects if path.startswith(prefix))

    async def generate_access_url(self, path: str, ttl_seconds: int) -> str:
        if path not in self.objects:
            raise ArtifactNotFoundError(f"Object not found: {path}")
        return f"memory://{path}?expires={int(time.time()) + ttl_seconds}"
