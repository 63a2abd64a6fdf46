from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectStorePort(Protocol):
    async def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> str:
        """Store bytes at an exact path and return a reference to them."""

    async def get(self, path: str) -> bytes:
        """Return the bytes at path or raise ArtifactNotFoundError."""

    async def exists(self, path: str) -> bool:
        """Return True when an object is stored at path."""

    async def delete(self, path: str) -> bool:
        """Delete the object at the exact path; returns False if it was missing."""

    async def list_by_prefix(self, prefix: str) -> list[str]:
        """Return every stored path that starts with prefix."""

    async def generate_access_url(self, path: str, ttl_seconds: int) -> str:
        """Return a short-lived URL the extraction service can read path from."""
