"""Protocol definition for the remote document-index service.

Defines the interface the service layer depends on. GeminiFileSearchClient
implements it against the real API; tests substitute an in-memory fake.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from gemini_filesearch.schemas.remote import RemoteCollection, RemoteFile

__all__ = [
    'DocumentIndexClient',
]


class DocumentIndexClient(Protocol):
    """Protocol for document-index clients.

    Implementations raise on failure; callers classify and retry.
    """

    async def upload_file(self, path: Path, *, display_name: str, mime_type: str) -> RemoteFile:
        """Upload a local file. Returns the remote descriptor (id, uri, mime type)."""
        ...

    async def list_files(self, page_size: int = 100) -> Sequence[RemoteFile]:
        """List uploaded files."""
        ...

    async def get_file(self, file_id: str) -> RemoteFile | None:
        """Fetch one file descriptor, or None if the service does not know the id."""
        ...

    async def delete_file(self, file_id: str) -> None:
        """Delete an uploaded file."""
        ...

    async def list_collections(self, page_size: int = 20) -> Sequence[RemoteCollection]:
        """List File Search Stores."""
        ...

    async def create_collection(self, display_name: str | None = None) -> RemoteCollection:
        """Create a File Search Store. The service does not enforce unique display names."""
        ...

    async def generate_content(self, files: Sequence[RemoteFile], prompt: str) -> str:
        """Run a prompt against the given files and return the response text."""
        ...
