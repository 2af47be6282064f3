"""
Storage reference resolution.

Stored references (``Report.pdf_path``, ``Image.file_path``,
``Client.logo_path``) were written under several storage integrations over
time. Every reference is reduced here to one canonical key, so the rest of the
code never looks at prefixes.
"""

import posixpath
import re
from dataclasses import dataclass
from typing import Callable

from sitelog.app.core.exceptions import UnsafeStoragePathError


def _strip_literal(prefix: str) -> Callable[[str], str | None]:
    def strip(path: str) -> str | None:
        if path.startswith(prefix):
            return path[len(prefix):]
        return None
    return strip


def _strip_pattern(pattern: str) -> Callable[[str], str | None]:
    compiled = re.compile(pattern)

    def strip(path: str) -> str | None:
        match = compiled.match(path)
        if match:
            return path[match.end():]
        return None
    return strip


# Ordered (name, stripper) rules; the first matching rule wins.
LEGACY_PREFIX_RULES: list[tuple[str, Callable[[str], str | None]]] = [
    # "/<bucket>/public/images/a.jpg" from the object-storage integration
    ("bucket-public", _strip_pattern(r"^/[^/]+/public/")),
    # "public/images/a.jpg", same integration without the bucket
    ("public", _strip_literal("public/")),
    # "storage/images/a.jpg", local filesystem era
    ("storage", _strip_literal("storage/")),
    # "bunny/images/a.jpg", first CDN migration
    ("bunny", _strip_literal("bunny/")),
]

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:/")


def _has_parent_segment(path: str) -> bool:
    return ".." in path.split("/")


def _is_absolute(path: str) -> bool:
    return path.startswith("/") or bool(_WINDOWS_DRIVE.match(path))


def strip_legacy_prefix(path: str) -> str:
    """Apply the first matching legacy prefix rule, if any."""
    for _name, strip in LEGACY_PREFIX_RULES:
        stripped = strip(path)
        if stripped is not None:
            return stripped
    return path


def canonicalize(ref: str) -> str:
    """
    Reduce a storage reference to its canonical key.

    Args:
        ref: Stored reference, bare or with any historical prefix

    Returns:
        Bare relative key, e.g. ``images/abc_0.jpg``

    Raises:
        UnsafeStoragePathError: For empty references, ``..`` segments or
            absolute paths, before or after normalization
    """
    if ref is None or not ref.strip():
        raise UnsafeStoragePathError(str(ref), "empty reference")
    if "\x00" in ref:
        raise UnsafeStoragePathError(ref, "NUL byte")

    path = ref.strip().replace("\\", "/")
    if _has_parent_segment(path):
        raise UnsafeStoragePathError(ref, "path traversal")

    path = strip_legacy_prefix(path)
    if _is_absolute(path):
        raise UnsafeStoragePathError(ref, "absolute path")

    normalized = posixpath.normpath(path)
    if normalized in ("", "."):
        raise UnsafeStoragePathError(ref, "empty key")
    if _has_parent_segment(normalized):
        raise UnsafeStoragePathError(ref, "path traversal")
    if _is_absolute(normalized):
        raise UnsafeStoragePathError(ref, "absolute path")

    return normalized


@dataclass(frozen=True)
class ResolvedPaths:
    """Where a canonical key lives on each backend."""

    key: str
    cdn_url: str | None
    filesystem_path: str


def cdn_url_for(pull_zone_url: str, key: str) -> str:
    return f"{pull_zone_url.rstrip('/')}/{key.lstrip('/')}"


def resolve(ref: str, cdn_base_url: str | None = None, storage_root: str = "storage") -> ResolvedPaths:
    """Resolve a reference to its CDN URL (when configured) and local path."""
    key = canonicalize(ref)
    return ResolvedPaths(
        key=key,
        cdn_url=cdn_url_for(cdn_base_url, key) if cdn_base_url else None,
        filesystem_path=posixpath.join(storage_root.replace("\\", "/"), key),
    )


def public_url(base_url: str, ref: str | None, cdn_base_url: str | None = None) -> str:
    """
    Public URL for a stored file.

    Returns the CDN URL when a pull zone is configured, otherwise an
    application-server URL under ``/storage``. Empty references yield ``""``.
    """
    if not ref:
        return ""
    key = canonicalize(ref)
    if cdn_base_url:
        return cdn_url_for(cdn_base_url, key)
    return f"{base_url.rstrip('/')}/storage/{key}"
