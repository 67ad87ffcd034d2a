"""File type mappings for uploads and downloads.

Upload MIME types are inferred from the file extension. Downloads without a
usable file name get an extension from the response Content-Type.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

__all__ = [
    'DEFAULT_MIME_TYPE',
    'EXTENSION_MAP',
    'MAX_FILE_SIZE_BYTES',
    'extension_for_mime_type',
    'mime_type_for',
]

# File Search accepts documents up to 100 MB
MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024

DEFAULT_MIME_TYPE = 'application/octet-stream'

# Extension to MIME type mapping
EXTENSION_MAP: Mapping[str, str] = {
    '.pdf': 'application/pdf',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.doc': 'application/msword',
    '.txt': 'text/plain',
    '.md': 'text/markdown',
    '.json': 'application/json',
}

# Reverse mapping for Content-Type driven names ('bin' when unknown)
_MIME_EXTENSIONS: Mapping[str, str] = {mime: ext.lstrip('.') for ext, mime in EXTENSION_MAP.items()}


def mime_type_for(file_name: str) -> str:
    """Infer MIME type from the file extension (case-insensitive)."""
    return EXTENSION_MAP.get(Path(file_name).suffix.lower(), DEFAULT_MIME_TYPE)


def extension_for_mime_type(content_type: str | None) -> str:
    """Map a Content-Type header to a file extension, ignoring parameters like charset."""
    if not content_type:
        return 'bin'
    mime_type = content_type.split(';', 1)[0].strip().lower()
    return _MIME_EXTENSIONS.get(mime_type, 'bin')
