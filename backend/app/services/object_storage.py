"""
Durable object storage for invoice artifacts.

The issuer only needs put/get/delete by key; LocalObjectStorage keeps
objects on disk under ``storage_root`` and the API serves that directory
at ``/files``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from backend.app.core.config import settings
from backend.app.core.exceptions import ExternalServiceError, ResourceNotFoundError

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        ...

    async def get(self, key: str) -> bytes:
        ...

    async def delete(self, key: str) -> None:
        ...


class LocalObjectStorage:

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls) -> "LocalObjectStorage":
        return cls(settings.storage_root, settings.storage_public_base_url)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Write bytes under ``key`` (overwriting) and return the public URL.

        Raises:
            ExternalServiceError: If the write fails
        """
        path = self._path(key)

        def write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(write)
        except OSError as exc:
            logger.error("Failed to store %s (%s): %s", key, content_type, exc)
            raise ExternalServiceError("storage", f"could not store {key}") from exc

        logger.info("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self.url_for(key)

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ResourceNotFoundError("Stored object", key)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
