"""
Blob store for photos, logos and rendered PDFs.

Files go to the Bunny CDN storage zone when it is configured. Outside
production a sandboxed local directory is used instead; production refuses
to write locally because deployed filesystems do not survive redeploys.
Every method takes a storage reference in any historical form and every
upload returns the canonical key.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os
import httpx

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import (
    BlobNotFoundError,
    StorageBackendError,
    StorageConfigurationError,
    UnsafeStoragePathError,
)
from sitelog.app.services import paths

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Interface for a byte store addressed by canonical keys."""

    name: str = "backend"

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class BunnyStorageBackend(StorageBackend):
    """Bunny CDN storage zone accessed over its HTTP storage API."""

    name = "bunny"

    def __init__(
        self,
        zone_name: str,
        api_key: str,
        hostname: str = "storage.bunnycdn.com",
        timeout: float = 30.0,
    ):
        self.zone_name = zone_name
        self.api_key = api_key
        self.base_url = f"https://{hostname}/{zone_name}"
        self.timeout = timeout

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.put(
                self._url(key),
                headers={"AccessKey": self.api_key, "Content-Type": content_type},
                content=data,
                timeout=self.timeout,
            )
        if response.status_code not in (200, 201):
            raise StorageBackendError("upload", key, response.status_code, response.text)

    async def get(self, key: str) -> bytes:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                self._url(key),
                headers={"AccessKey": self.api_key},
                timeout=self.timeout,
            )
        if response.status_code != 200:
            raise StorageBackendError("download", key, response.status_code)
        return response.content

    async def delete(self, key: str) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.delete(
                self._url(key),
                headers={"AccessKey": self.api_key},
                timeout=self.timeout,
            )
        if response.status_code not in (200, 204):
            raise StorageBackendError("delete", key, response.status_code, response.text)


class LocalFileStorage(StorageBackend):
    """Local filesystem storage confined to a root directory."""

    name = "filesystem"

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def path_for(self, key: str) -> Path:
        """
        Absolute path for ``key``, verified to stay inside the root.

        Raises:
            UnsafeStoragePathError: If the joined path escapes the root
        """
        full_path = (self.root / key).resolve()
        if not full_path.is_relative_to(self.root):
            raise UnsafeStoragePathError(key, "resolved outside storage root")
        return full_path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        full_path = self.path_for(key)
        await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
        async with aiofiles.open(full_path, "wb") as f:
            await f.write(data)

    async def get(self, key: str) -> bytes:
        async with aiofiles.open(self.path_for(key), "rb") as f:
            return await f.read()

    async def delete(self, key: str) -> None:
        await aiofiles.os.remove(self.path_for(key))


class BlobStore:
    """
    Backend-transparent file access.

    Examples:
        >>> store = BlobStore()
        >>> key = await store.upload("bunny/images/a.jpg", data, "image/jpeg")
        >>> key
        'images/a.jpg'
        >>> await store.download("storage/images/a.jpg") == data
        True
    """

    def __init__(
        self,
        settings: Settings | None = None,
        durable: StorageBackend | None = None,
        local: LocalFileStorage | None = None,
    ):
        """
        Initialize blob store.

        Args:
            settings: Configuration. If None, uses the global settings.
            durable: Durable backend. If None, built from the Bunny settings
                     when they are configured.
            local: Local fallback. If None, rooted at ``settings.storage_root``.
        """
        self.settings = settings or default_settings
        if durable is None and self.settings.bunny_configured:
            durable = BunnyStorageBackend(
                zone_name=self.settings.bunny_storage_zone_name,
                api_key=self.settings.bunny_storage_api_key,
                hostname=self.settings.bunny_storage_hostname,
                timeout=self.settings.storage_timeout,
            )
        self.durable = durable
        self.local = local or LocalFileStorage(self.settings.storage_root)

    @property
    def durable_configured(self) -> bool:
        return self.durable is not None

    def ensure_writable(self) -> None:
        """
        Fail fast when uploads cannot succeed.

        Raises:
            StorageConfigurationError: In production without a durable backend
        """
        if not self.durable_configured and self.settings.is_production:
            raise StorageConfigurationError(
                "Durable CDN storage is required in production; "
                "local filesystem storage does not survive redeploys"
            )

    async def upload(self, ref: str, data: bytes, content_type: str) -> str:
        """
        Store ``data`` and return its canonical key.

        Raises:
            UnsafeStoragePathError: For traversal attempts
            StorageConfigurationError: In production without a durable backend
            StorageBackendError: If the durable backend rejects the upload
        """
        key = paths.canonicalize(ref)
        self.ensure_writable()

        if self.durable is not None:
            await self.durable.put(key, data, content_type)
            logger.info(f"[STORAGE] Uploaded {key} to {self.durable.name} ({len(data)} bytes)")
            return key

        logger.warning(f"[STORAGE] Durable storage not configured, writing {key} to local filesystem (development only)")
        await self.local.put(key, data, content_type)
        logger.info(f"[STORAGE] Uploaded {key} to filesystem ({len(data)} bytes)")
        return key

    async def download(self, ref: str) -> bytes:
        """
        Read a stored file, durable backend first.

        Raises:
            UnsafeStoragePathError: For traversal attempts
            BlobNotFoundError: If no backend can provide the file
        """
        key = paths.canonicalize(ref)

        if self.durable is not None:
            try:
                return await self.durable.get(key)
            except (StorageBackendError, httpx.HTTPError) as e:
                logger.warning(f"[STORAGE] {self.durable.name} download failed for {key}, trying filesystem: {e}")

        try:
            return await self.local.get(key)
        except OSError as e:
            logger.error(f"[STORAGE] Failed to download {key}: {e}")
            raise BlobNotFoundError(key) from e

    async def delete(self, ref: str) -> None:
        """
        Delete a stored file from every backend that has it.

        Raises:
            UnsafeStoragePathError: For traversal attempts
            BlobNotFoundError: If no backend deleted the file
        """
        key = paths.canonicalize(ref)
        deleted = False

        if self.durable is not None:
            try:
                await self.durable.delete(key)
                deleted = True
                logger.info(f"[STORAGE] Deleted {key} from {self.durable.name}")
            except (StorageBackendError, httpx.HTTPError) as e:
                logger.warning(f"[STORAGE] {self.durable.name} delete failed for {key}: {e}")

        try:
            await self.local.delete(key)
            deleted = True
            logger.info(f"[STORAGE] Deleted {key} from filesystem")
        except OSError as e:
            if not deleted:
                logger.error(f"[STORAGE] Failed to delete {key}: {e}")
                raise BlobNotFoundError(key) from e

    async def exists(self, ref: str) -> bool:
        try:
            await self.download(ref)
        except BlobNotFoundError:
            return False
        return True

    def public_url(self, base_url: str, ref: str | None) -> str:
        """CDN URL when the durable backend is configured, else a /storage URL."""
        cdn_base = self.settings.bunny_cdn_pull_zone_url if self.durable_configured else None
        return paths.public_url(base_url, ref, cdn_base_url=cdn_base)

    def resolve(self, ref: str) -> paths.ResolvedPaths:
        cdn_base = self.settings.bunny_cdn_pull_zone_url if self.durable_configured else None
        return paths.resolve(ref, cdn_base_url=cdn_base, storage_root=os.fspath(self.local.root))


# Global store instance
_blob_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
    """Get or create the blob store instance."""
    global _blob_store
    if _blob_store is None:
        _blob_store = BlobStore()
    return _blob_store
