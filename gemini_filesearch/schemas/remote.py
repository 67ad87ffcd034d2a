"""Remote resource descriptors.

Typed views of what the document-index service returns. The client layer
translates SDK objects into these; nothing above the client sees SDK types.
"""

from __future__ import annotations

from gemini_filesearch.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'RemoteCollection',
    'RemoteFile',
]


class RemoteCollection(StrictModel):
    """A File Search Store: opaque id issued by the service plus the caller's display name."""

    id: str  # e.g. "fileSearchStores/abc123"
    display_name: str | None = None


class RemoteFile(StrictModel):
    """An uploaded file as reported by the Files API."""

    id: str  # e.g. "files/abc123"
    uri: str
    mime_type: str
    display_name: str | None = None
    size_bytes: int = 0
    create_time: JsonDatetime | None = None
