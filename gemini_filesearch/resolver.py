"""Collection resolution: display name -> File Search Store id.

Two entry points with different intent:

- ``resolve_collection_by_name``: implicit find-or-create. Returns the id of
  the first store whose display name matches exactly (case-sensitive), or
  creates one.
- ``create_collection``: explicit create. Refuses (non-retryable API_ERROR,
  existing id in detail) when the display name is already taken.

Both are list-then-create with no server-side uniqueness on display names.
Two processes resolving the same new name at the same moment can each create
a store. CollectionResolver serializes resolution within one process only.
"""

from __future__ import annotations

import asyncio
import logging

from gemini_filesearch.clients.protocols import DocumentIndexClient
from gemini_filesearch.errors import ClassifiedError, ErrorKind
from gemini_filesearch.schemas.remote import RemoteCollection

__all__ = [
    'COLLECTION_PAGE_SIZE',
    'CollectionResolver',
    'create_collection',
    'find_collection',
    'resolve_collection_by_name',
]

logger = logging.getLogger(__name__)

COLLECTION_PAGE_SIZE = 20


async def find_collection(client: DocumentIndexClient, display_name: str) -> RemoteCollection | None:
    """Return the first collection whose display name equals ``display_name`` exactly."""
    collections = await client.list_collections(COLLECTION_PAGE_SIZE)
    for collection in collections:
        if collection.display_name == display_name:
            return collection
    return None


async def resolve_collection_by_name(client: DocumentIndexClient, display_name: str) -> str:
    """Find a collection by display name, creating it if absent. Returns its id."""
    logger.info(f'Resolving File Store by display name: {display_name!r}')

    existing = await find_collection(client, display_name)
    if existing is not None:
        logger.info(f'Found existing File Store {existing.id} for {display_name!r}')
        return existing.id

    logger.info(f'No File Store named {display_name!r}; creating one')
    created = await client.create_collection(display_name)
    logger.info(f'Created File Store {created.id} for {display_name!r}')
    return created.id


async def create_collection(client: DocumentIndexClient, display_name: str | None = None) -> RemoteCollection:
    """Create a collection, refusing to duplicate an existing display name.

    Raises:
        ClassifiedError: API_ERROR (non-retryable) when a collection with the
            same display name exists. No creation call is made in that case.
    """
    if display_name:
        existing = await find_collection(client, display_name)
        if existing is not None:
            raise ClassifiedError(
                ErrorKind.API_ERROR,
                f'A File Store with display name "{display_name}" already exists (ID: {existing.id}). '
                'Use a different name or use the existing store.',
                retryable=False,
                detail={'collection_id': existing.id, 'display_name': display_name},
            )

    created = await client.create_collection(display_name)
    logger.info(f'File Search Store created: {created.id} (display_name={created.display_name!r})')
    return created


class CollectionResolver:
    """Memoized resolution of the configured collection.

    Owned by the server's composition root. The first ``resolve()`` runs the
    list/create sequence; later calls return the cached id without touching
    the network until ``invalidate()``. Concurrent first calls wait on one
    lock, so a single process never races itself into a duplicate store.
    """

    def __init__(self, client: DocumentIndexClient, display_name: str | None) -> None:
        self._client = client
        self._display_name = display_name
        self._collection_id: str | None = None
        self._lock = asyncio.Lock()

    @property
    def display_name(self) -> str | None:
        return self._display_name

    @property
    def collection_id(self) -> str | None:
        """Cached id, or None if not resolved yet."""
        return self._collection_id

    async def resolve(self) -> str:
        """Return the collection id, resolving (and possibly creating) it on first use.

        Raises:
            ClassifiedError: STORE_NOT_FOUND when no display name is configured.
        """
        if self._collection_id is not None:
            return self._collection_id

        if not self._display_name:
            raise ClassifiedError(
                ErrorKind.STORE_NOT_FOUND,
                'File Store name is not configured. Set GEMINI_FILESTORE_NAME environment variable.',
                retryable=False,
            )

        async with self._lock:
            # Another task may have resolved while we waited
            if self._collection_id is None:
                self._collection_id = await resolve_collection_by_name(self._client, self._display_name)
                logger.info(f'Store ID resolved from display name: {self._display_name!r} -> {self._collection_id}')
            return self._collection_id

    def prime(self, collection_id: str) -> None:
        """Set the cached id directly (e.g. right after an explicit create)."""
        self._collection_id = collection_id
        logger.info(f'Store ID set: {collection_id}')

    def invalidate(self) -> None:
        """Drop the cached id; the next resolve() hits the network again."""
        self._collection_id = None
