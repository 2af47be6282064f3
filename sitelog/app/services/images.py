"""Photo normalization and MIME sniffing."""

import io
import logging
from dataclasses import dataclass

from PIL import Image as PILImage, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

EXTENSIONS_BY_MIME = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}


@dataclass
class NormalizedPhoto:
    data: bytes
    mime_type: str
    extension: str


def _sniff_signature(data: bytes) -> str | None:
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def sniff_mime(data: bytes, default: str = "image/jpeg") -> str:
    """
    Detect the image MIME type.

    Pillow identifies the format from the header without decoding pixels.
    Truncated headers it rejects still match on their signature bytes.
    """
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            mime_type = img.get_format_mimetype()
    except (UnidentifiedImageError, OSError, PILImage.DecompressionBombError):
        mime_type = None
    return mime_type or _sniff_signature(data) or default


def extension_for(mime_type: str) -> str:
    return EXTENSIONS_BY_MIME.get(mime_type.lower(), "jpg")


def normalize_photo(data: bytes, content_type: str | None, max_dimension: int = 1920, quality: int = 85) -> NormalizedPhoto:
    """
    Resize a photo to fit inside ``max_dimension`` and re-encode it as JPEG.

    EXIF orientation is applied before resizing so portrait phone photos
    keep their orientation. Photos Pillow cannot decode are returned
    unchanged, typed from ``content_type``.

    Args:
        data: Raw uploaded bytes
        content_type: Declared MIME type of the upload
        max_dimension: Longest allowed side in pixels
        quality: JPEG quality

    Returns:
        NormalizedPhoto with the bytes to store
    """
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            img.thumbnail((max_dimension, max_dimension), PILImage.Resampling.LANCZOS)

            bio = io.BytesIO()
            img.save(bio, "JPEG", quality=quality, optimize=True)
            return NormalizedPhoto(data=bio.getvalue(), mime_type="image/jpeg", extension="jpg")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        mime_type = (content_type or sniff_mime(data)).lower()
        logger.warning(f"[IMAGES] Could not process photo ({mime_type}, {len(data)} bytes), storing original: {e}")
        return NormalizedPhoto(data=data, mime_type=mime_type, extension=extension_for(mime_type))
