"""Content-addressed fingerprints for uploaded documents.

content_hash identifies the bytes. dedupe_key identifies the logical
document: the bytes plus the canonical metadata subset (title, doi).
Re-tagging or re-attributing a document leaves its dedupe_key unchanged.

The key is advisory. The remote service does not enforce uniqueness on it;
callers decide what to do with a repeat.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

from gemini_filesearch.schemas.base import StrictModel
from gemini_filesearch.schemas.documents import DocumentMetadata

__all__ = [
    'DedupeFingerprint',
    'derive_fingerprint',
    'fingerprint_file',
    'hash_file',
]

# Metadata fields that define document identity, in serialization order
CANONICAL_FIELDS = ('title', 'doi')


class DedupeFingerprint(StrictModel):
    """SHA-256 content hash and dedupe key (64-char lowercase hex each)."""

    content_hash: str
    dedupe_key: str


def derive_fingerprint(content: bytes, metadata: DocumentMetadata | None = None) -> DedupeFingerprint:
    """Fingerprint raw file bytes plus optional metadata."""
    content_hash = hashlib.sha256(content).hexdigest()
    return DedupeFingerprint(content_hash=content_hash, dedupe_key=_dedupe_key(content_hash, metadata))


def hash_file(path: Path) -> str:
    """Compute SHA256 hash of file contents."""
    hasher = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            hasher.update(chunk)
    return hasher.hexdigest()


def fingerprint_file(path: Path, metadata: DocumentMetadata | None = None) -> DedupeFingerprint:
    """Fingerprint a file on disk without loading it into memory at once.

    Same result as ``derive_fingerprint(path.read_bytes(), metadata)``.
    """
    content_hash = hash_file(path)
    return DedupeFingerprint(content_hash=content_hash, dedupe_key=_dedupe_key(content_hash, metadata))


def _dedupe_key(content_hash: str, metadata: DocumentMetadata | None) -> str:
    return hashlib.sha256((content_hash + _canonical_metadata(metadata)).encode()).hexdigest()


def _canonical_metadata(metadata: DocumentMetadata | None) -> str:
    """Compact JSON of the identity fields; absent fields are omitted, no metadata is ''."""
    if metadata is None:
        return ''
    identity = {name: getattr(metadata, name) for name in CANONICAL_FIELDS if getattr(metadata, name) is not None}
    return json.dumps(identity, separators=(',', ':'), ensure_ascii=False)
