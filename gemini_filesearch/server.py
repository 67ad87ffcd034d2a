"""Gemini File Search MCP Server.

Document upload and retrieval over a Gemini File Search Store.

Tools:
- create_file_store: Create a new File Search Store
- add_document: Upload a local file or URL
- search: Answer a query from the uploaded documents
- get_passages: Extract text from page ranges of one document
- list_documents: List uploaded documents with pagination
- delete_document: Delete an uploaded document
"""

from __future__ import annotations

import contextlib
import logging
import sys
import typing
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import mcp.server.fastmcp
import mcp.types
import pydantic

from gemini_filesearch.clients.gemini import GeminiFileSearchClient
from gemini_filesearch.config import ServerConfig
from gemini_filesearch.errors import ClassifiedError, ErrorKind, ErrorResponse
from gemini_filesearch.resolver import CollectionResolver
from gemini_filesearch.schemas.base import StrictModel
from gemini_filesearch.schemas.documents import (
    AddDocumentRequest,
    AddDocumentResult,
    CreateCollectionRequest,
    CreateCollectionResult,
    DeleteDocumentRequest,
    DeleteDocumentResult,
    DocumentList,
    GetPassagesRequest,
    ListDocumentsRequest,
    PassagesResult,
    SearchRequest,
    SearchResult,
)
from gemini_filesearch.services.documents import DocumentService
from gemini_filesearch.utils import DualLogger

__all__ = [
    'ServerState',
    'SharedServerState',
    'dispatch',
    'register_tools',
    'server',
    'shared_state',
    'validation_error_response',
]

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s'
LOG_DATEFMT = '%H:%M:%S'


@dataclass
class ServerState:
    """Container for all server state - initialized once at startup."""

    config: ServerConfig
    client: GeminiFileSearchClient
    resolver: CollectionResolver
    documents: DocumentService
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, config: ServerConfig) -> typing.Self:
        """Build client, resolver and service from config.

        Must be called from async context so the client's semaphore and the
        resolver's lock bind to the running loop.
        """
        client = GeminiFileSearchClient(config.api_key, model=config.model)
        resolver = CollectionResolver(client, config.store_name)
        http_client = httpx.AsyncClient(follow_redirects=True, timeout=60.0)
        documents = DocumentService(client, resolver, http_client=http_client)
        return cls(
            config=config,
            client=client,
            resolver=resolver,
            documents=documents,
            http_client=http_client,
        )

    async def close(self) -> None:
        await self.http_client.aclose()
        await self.client.close()


Req = TypeVar('Req', bound=StrictModel)
Res = TypeVar('Res')


async def dispatch(
    request_type: type[Req],
    arguments: Mapping[str, Any],
    operation: Callable[[Req], Awaitable[Res]],
) -> Res | ErrorResponse:
    """Validate raw tool arguments, run the operation, render classified failures.

    Invalid arguments never reach the operation. Only ClassifiedError is turned
    into an ErrorResponse; anything else propagates to the MCP runtime.
    """
    try:
        request = request_type.model_validate(dict(arguments))
    except pydantic.ValidationError as e:
        return validation_error_response(e)

    try:
        return await operation(request)
    except ClassifiedError as e:
        return e.to_response()


def validation_error_response(error: pydantic.ValidationError) -> ErrorResponse:
    errors = error.errors(include_url=False, include_context=False, include_input=False)
    problems = '; '.join(f'{".".join(str(part) for part in e["loc"]) or "input"}: {e["msg"]}' for e in errors)
    return ErrorResponse(
        error_code=ErrorKind.VALIDATION_ERROR,
        message=f'Invalid input: {problems}',
        retryable=False,
        details={'errors': [{'loc': [str(part) for part in e['loc']], 'msg': e['msg']} for e in errors]},
    )


def register_tools(mcp_server: mcp.server.fastmcp.FastMCP, get_state: Callable[[], ServerState]) -> None:
    """Register MCP tools with closure over the current server state.

    Tools look the state up on every call, so they keep working after the
    state is rebuilt for a later session.
    """

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Create File Store',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def create_file_store(
        display_name: str | None = None,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> CreateCollectionResult | ErrorResponse:
        """Create a new File Search Store.

        Fails if a store with the same display name already exists; the
        existing store id is returned in the error details.

        Args:
            display_name: Human-readable store name (max 512 characters).

        Returns:
            CreateCollectionResult with the new store id and setup instructions.
        """
        if not ctx:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        await logger.info(f'Creating File Store: {display_name or "(unnamed)"}')

        return await dispatch(
            CreateCollectionRequest,
            {'display_name': display_name},
            get_state().documents.create_collection,
        )

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Add Document',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def add_document(
        source: str,
        metadata: dict[str, Any] | None = None,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> AddDocumentResult | ErrorResponse:
        """Upload a document to the configured File Search Store.

        Args:
            source: Local file path or http(s) URL. URLs are downloaded first.
            metadata: Optional metadata - title, authors, year, doi, tags,
                source_url. Title and doi contribute to the dedupe key.

        Returns:
            AddDocumentResult with doc_id, content hash and dedupe key.
        """
        if not ctx:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        await logger.info(f'Adding document: {source}')

        result = await dispatch(
            AddDocumentRequest,
            {'source': source, 'metadata': metadata},
            get_state().documents.add_document,
        )
        if isinstance(result, AddDocumentResult):
            await logger.info(f'Uploaded {result.file_name} as {result.doc_id}')
        return result

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Search Documents',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def search(
        query: str,
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> SearchResult | ErrorResponse:
        """Search uploaded documents with a natural language query.

        Args:
            query: Natural language search query.
            top_k: Maximum number of results to return (1-100).
            filters: Optional year_min, year_max, tags, authors. Accepted for
                forward compatibility; the Files API stores no metadata to
                filter on.

        Returns:
            SearchResult with cited excerpts.
        """
        if not ctx:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        await logger.debug(f'Searching: {query[:100]}')

        return await dispatch(
            SearchRequest,
            {'query': query, 'top_k': top_k, 'filters': filters},
            get_state().documents.search,
        )

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Get Passages',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def get_passages(
        doc_id: str,
        page_spans: Sequence[dict[str, int]],
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> PassagesResult | ErrorResponse:
        """Extract text from page ranges of one document.

        Args:
            doc_id: Document id as returned by add_document or list_documents.
            page_spans: Inclusive 1-indexed ranges, e.g. [{"start": 1, "end": 3}].

        Returns:
            PassagesResult with one passage per span, in request order.
        """
        if not ctx:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        await logger.debug(f'Extracting {len(page_spans)} passage(s) from {doc_id}')

        return await dispatch(
            GetPassagesRequest,
            {'doc_id': doc_id, 'page_spans': list(page_spans)},
            get_state().documents.get_passages,
        )

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Documents',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def list_documents(
        page: int = 1,
        page_size: int = 20,
        filters: dict[str, Any] | None = None,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> DocumentList | ErrorResponse:
        """List uploaded documents.

        Args:
            page: 1-indexed page number.
            page_size: Documents per page (1-100).
            filters: Optional year_min, year_max, tags, authors (not applied).

        Returns:
            DocumentList with the requested page and totals.
        """
        if not ctx:
            raise ValueError('MCP context required')

        return await dispatch(
            ListDocumentsRequest,
            {'page': page, 'page_size': page_size, 'filters': filters},
            get_state().documents.list_documents,
        )

    @mcp_server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Delete Document',
            destructiveHint=True,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def delete_document(
        doc_id: str,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> DeleteDocumentResult | ErrorResponse:
        """Delete an uploaded document.

        Args:
            doc_id: Document id to delete.

        Returns:
            DeleteDocumentResult on success.
        """
        if not ctx:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        result = await dispatch(DeleteDocumentRequest, {'doc_id': doc_id}, get_state().documents.delete_document)
        if isinstance(result, DeleteDocumentResult):
            await logger.info(f'Deleted document: {doc_id}')
        return result


def configure_logging(level: int) -> None:
    """Log to stderr; stdout carries the JSON-RPC stream."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, stream=sys.stderr)
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('google').setLevel(logging.WARNING)


class SharedServerState:
    """Process-wide ServerState shared by every session.

    The HTTP transports enter the lifespan once per client session. The first
    session builds the state, later ones reuse it, and the last one to leave
    closes it. Tools are registered once per FastMCP instance and read the
    current state on each call.
    """

    def __init__(self) -> None:
        self._state: ServerState | None = None
        self._sessions = 0
        self._registered: weakref.WeakSet[mcp.server.fastmcp.FastMCP] = weakref.WeakSet()

    @property
    def sessions(self) -> int:
        return self._sessions

    def get(self) -> ServerState:
        if self._state is None:
            raise RuntimeError('Server state accessed outside a session')
        return self._state

    @contextlib.asynccontextmanager
    async def session(self, mcp_server: mcp.server.fastmcp.FastMCP) -> AsyncIterator[ServerState]:
        if self._state is None:
            config = ServerConfig.from_env()
            configure_logging(config.logging_level)
            self._state = ServerState.create(config)

            logger.info('Gemini File Search MCP server initialized')
            logger.info(f'  Model: {config.model}')
            logger.info(f'  File Store: {config.store_name or "(not configured)"}')

        if mcp_server not in self._registered:
            register_tools(mcp_server, self.get)
            self._registered.add(mcp_server)

        state = self._state
        self._sessions += 1
        try:
            yield state
        finally:
            self._sessions -= 1
            if self._sessions == 0:
                self._state = None
                await state.close()
                logger.info('Gemini File Search MCP server shutdown')


shared_state = SharedServerState()


@contextlib.asynccontextmanager
async def lifespan(mcp_server: mcp.server.fastmcp.FastMCP) -> AsyncIterator[None]:
    """Manage server lifecycle - initialization before requests, cleanup after shutdown."""
    async with shared_state.session(mcp_server):
        # Server is ready - yield control back to FastMCP
        yield


server = mcp.server.fastmcp.FastMCP('gemini-filesearch', lifespan=lifespan)


def main() -> None:
    """Entry point for the MCP server."""
    server.run()


if __name__ == '__main__':
    main()
