"""
Brand assets shipped with the package.

At startup each asset is uploaded to the blob store unless a copy is already
there, so documents and emails can reference it by storage key.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import StorageBackendError, StorageConfigurationError
from sitelog.app.services.blob_store import BlobStore, get_blob_store

logger = logging.getLogger(__name__)

ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"


@dataclass(frozen=True)
class BrandAsset:
    source: Path
    storage_key: str
    content_type: str


def brand_assets(settings: Settings) -> list[BrandAsset]:
    return [
        BrandAsset(ASSETS_DIR / "platform-logo.png", settings.platform_logo_path, "image/png"),
    ]


async def initialize_brand_assets(
    blob_store: BlobStore | None = None,
    settings: Settings | None = None,
) -> list[str]:
    """
    Upload every brand asset missing from storage.

    A failed asset is logged and skipped; startup continues without it.

    Args:
        blob_store: Target store. If None, uses the global blob store.
        settings: Configuration. If None, uses the global settings.

    Returns:
        Storage keys uploaded by this call

    Raises:
        UnsafeStoragePathError: If an asset's configured key is unsafe
    """
    settings = settings or default_settings
    blob_store = blob_store or get_blob_store()

    uploaded = []
    for asset in brand_assets(settings):
        if await blob_store.exists(asset.storage_key):
            logger.info(f"[ASSETS] {asset.storage_key} already in storage")
            continue
        try:
            async with aiofiles.open(asset.source, "rb") as f:
                data = await f.read()
            key = await blob_store.upload(asset.storage_key, data, asset.content_type)
        except (OSError, StorageBackendError, StorageConfigurationError) as e:
            logger.error(f"[ASSETS] Failed to initialize {asset.storage_key}: {e}")
            continue
        uploaded.append(key)
        logger.info(f"[ASSETS] Uploaded {key} ({len(data)} bytes)")

    return uploaded
