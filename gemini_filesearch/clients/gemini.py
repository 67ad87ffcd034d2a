"""Low-level Gemini Files / File Search Store client.

Thin wrapper around google-genai. Handles API calls only - no business logic.
SDK objects are translated to RemoteFile / RemoteCollection here so nothing
above this layer depends on google-genai types.

Uses the native async API (client.aio). Every call runs through the retry
executor, so callers only ever see ClassifiedError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

import google.genai.errors
import httpx
from google import genai
from google.genai import types

from gemini_filesearch.errors import ClassifiedError, ErrorKind
from gemini_filesearch.retry import with_backoff
from gemini_filesearch.schemas.remote import RemoteCollection, RemoteFile

__all__ = [
    'GeminiFileSearchClient',
]

logger = logging.getLogger(__name__)


class GeminiFileSearchClient:
    """Async client for Gemini Files, File Search Stores and content generation.

    Concurrency is bounded by a semaphore; retries are applied per method.
    """

    DEFAULT_MODEL = 'gemini-2.5-flash'

    # Concurrency control - semaphore limits concurrent API calls
    DEFAULT_MAX_CONCURRENT = 16

    # HTTP client configuration
    DEFAULT_TIMEOUT_MS = 120_000  # uploads and generation over many files are slow
    DEFAULT_MAX_CONNECTIONS = 16
    DEFAULT_KEEPALIVE_EXPIRY = 30  # seconds before idle close

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        keepalive_expiry: float = DEFAULT_KEEPALIVE_EXPIRY,
    ) -> None:
        """Initialize client.

        Args:
            api_key: Gemini API key.
            model: Generation model used for search and passage extraction.
            max_concurrent: Max concurrent API requests (semaphore limit).
            timeout_ms: Request timeout in milliseconds.
            max_connections: Max simultaneous HTTP connections.
            keepalive_expiry: Seconds before idle connections close.
        """
        self._model = model

        limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
            keepalive_expiry=keepalive_expiry,
        )
        http_options = types.HttpOptions(
            timeout=timeout_ms,
            async_client_args={'limits': limits},
        )
        self._client = genai.Client(api_key=api_key, http_options=http_options)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def model(self) -> str:
        return self._model

    # Files

    @with_backoff()
    async def upload_file(self, path: Path, *, display_name: str, mime_type: str) -> RemoteFile:
        async with self._semaphore:
            file = await self._client.aio.files.upload(
                file=str(path),
                config=types.UploadFileConfig(mime_type=mime_type, display_name=display_name),
            )
        return _to_remote_file(file)

    @with_backoff()
    async def list_files(self, page_size: int = 100) -> Sequence[RemoteFile]:
        async with self._semaphore:
            pager = await self._client.aio.files.list(config=types.ListFilesConfig(page_size=page_size))
            return [_to_remote_file(file) async for file in pager]

    @with_backoff()
    async def get_file(self, file_id: str) -> RemoteFile | None:
        async with self._semaphore:
            try:
                file = await self._client.aio.files.get(name=file_id)
            except google.genai.errors.ClientError as e:
                if e.code == 404:
                    return None
                raise
        return _to_remote_file(file)

    @with_backoff()
    async def delete_file(self, file_id: str) -> None:
        async with self._semaphore:
            try:
                await self._client.aio.files.delete(name=file_id)
            except google.genai.errors.ClientError as e:
                if e.code == 404:
                    raise ClassifiedError(
                        ErrorKind.FILE_NOT_FOUND,
                        f'File not found: {file_id}',
                        retryable=False,
                        detail={'status_code': 404},
                    ) from e
                raise

    # File Search Stores

    @with_backoff()
    async def list_collections(self, page_size: int = 20) -> Sequence[RemoteCollection]:
        async with self._semaphore:
            pager = await self._client.aio.file_search_stores.list(
                config=types.ListFileSearchStoresConfig(page_size=page_size),
            )
            return [RemoteCollection(id=store.name or '', display_name=store.display_name) async for store in pager]

    @with_backoff()
    async def create_collection(self, display_name: str | None = None) -> RemoteCollection:
        config = types.CreateFileSearchStoreConfig(display_name=display_name) if display_name else None
        async with self._semaphore:
            store = await self._client.aio.file_search_stores.create(config=config)
        return RemoteCollection(id=store.name or '', display_name=store.display_name)

    # Generation

    @with_backoff()
    async def generate_content(self, files: Sequence[RemoteFile], prompt: str) -> str:
        contents: list[types.Part | str] = [
            types.Part.from_uri(file_uri=file.uri, mime_type=file.mime_type) for file in files
        ]
        contents.append(prompt)
        async with self._semaphore:
            response = await self._client.aio.models.generate_content(model=self._model, contents=contents)
        return response.text or ''

    async def close(self) -> None:
        """No-op: google-genai Client manages its own HTTP lifecycle."""


def _to_remote_file(file: types.File) -> RemoteFile:
    return RemoteFile(
        id=file.name or '',
        uri=file.uri or '',
        mime_type=file.mime_type or 'application/octet-stream',
        display_name=file.display_name,
        size_bytes=file.size_bytes or 0,
        create_time=file.create_time,
    )
