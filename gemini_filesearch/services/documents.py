"""Document service - the six tool operations over a DocumentIndexClient.

Each operation takes a validated request model and returns a result model.
Failures leave as ClassifiedError, logged once here. Remote calls are
already retried by the client; this layer never retries on its own.
"""

from __future__ import annotations

import contextlib
import logging
import math
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

import httpx

from gemini_filesearch.classifier import classify
from gemini_filesearch.clients.downloads import cleanup_temp, download_to_temp, is_url
from gemini_filesearch.clients.protocols import DocumentIndexClient
from gemini_filesearch.errors import ClassifiedError, ErrorKind
from gemini_filesearch.fingerprint import fingerprint_file
from gemini_filesearch.resolver import CollectionResolver, create_collection
from gemini_filesearch.schemas.documents import (
    AddDocumentRequest,
    AddDocumentResult,
    CreateCollectionRequest,
    CreateCollectionResult,
    DeleteDocumentRequest,
    DeleteDocumentResult,
    Document,
    DocumentList,
    GetPassagesRequest,
    ListDocumentsRequest,
    PageSpan,
    Passage,
    PassagesResult,
    SearchHit,
    SearchRequest,
    SearchResult,
)
from gemini_filesearch.schemas.files import MAX_FILE_SIZE_BYTES, mime_type_for
from gemini_filesearch.schemas.remote import RemoteFile
from gemini_filesearch.utils import Timer

__all__ = [
    'DocumentService',
    'handle_errors',
]

logger = logging.getLogger(__name__)

SEARCH_PROMPT = (
    'Based on the provided documents, answer the following query and provide specific page numbers '
    'or sections for citations:\n\n{query}\n\n'
    'Please structure your response with relevant excerpts and their sources.'
)


@contextlib.contextmanager
def handle_errors(context: str) -> Iterator[None]:
    """Classify, log, and re-raise any failure escaping the block."""
    try:
        yield
    except Exception as e:
        error = classify(e)
        details = f' details={dict(error.detail)}' if error.detail else ''
        logger.error(
            f'Error in {context}: {error.kind.value}: {error.message} (retryable={error.retryable}){details}'
        )
        if error is e:
            raise
        raise error from e


class DocumentService:
    """Document operations against the configured File Search Store.

    The collection id comes from the resolver, so it is resolved at most
    once per process no matter how many operations need it.
    """

    SEARCH_FILE_LIMIT = 10  # Files passed to one generation call
    SNIPPET_LENGTH = 500
    LIST_PAGE_SIZE = 100

    def __init__(
        self,
        client: DocumentIndexClient,
        resolver: CollectionResolver,
        *,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize service.

        Args:
            client: Remote document-index client.
            resolver: Resolver for the configured collection.
            max_file_size: Upload size cap in bytes.
            http_client: Optional shared client for URL downloads.
        """
        self._client = client
        self._resolver = resolver
        self._max_file_size = max_file_size
        self._http_client = http_client

    async def create_collection(self, request: CreateCollectionRequest) -> CreateCollectionResult:
        timer = Timer()
        with handle_errors('create_collection'):
            logger.debug(f'create_file_store called: display_name={request.display_name!r}')

            created = await create_collection(self._client, request.display_name)

            # Creating the configured store explicitly makes resolution unnecessary
            if request.display_name and request.display_name == self._resolver.display_name:
                self._resolver.prime(created.id)

            logger.info(f'create_file_store completed: store_id={created.id} total_latency_ms={timer.elapsed_ms()}')

            return CreateCollectionResult(
                store_id=created.id,
                display_name=request.display_name,
                message=f'File Search Store created successfully: {created.id}',
                instructions=_store_instructions(request.display_name),
            )

    async def add_document(self, request: AddDocumentRequest) -> AddDocumentResult:
        timer = Timer()
        with handle_errors('add_document'):
            source = request.source
            metadata = request.metadata
            logger.debug(f'add_document called: source={source[:100]!r} has_metadata={metadata is not None}')

            downloaded = is_url(source)
            if not downloaded:
                local_path = Path(source).expanduser()
                if not local_path.is_file():
                    raise ClassifiedError(ErrorKind.FILE_NOT_FOUND, f'File not found: {source}', retryable=False)

            store_id = await self._resolver.resolve()

            if downloaded:
                local_path = await download_to_temp(
                    source, http_client=self._http_client, max_size_bytes=self._max_file_size
                )

            try:
                file_name = local_path.name
                size_bytes = local_path.stat().st_size
                if size_bytes > self._max_file_size:
                    raise ClassifiedError(
                        ErrorKind.FILE_TOO_LARGE,
                        f'File too large: {file_name} is {size_bytes} bytes (limit {self._max_file_size})',
                        retryable=False,
                        detail={'size_bytes': size_bytes, 'max_size_bytes': self._max_file_size},
                    )

                fingerprint = fingerprint_file(local_path, metadata)
                logger.debug(
                    f'File prepared for upload: {file_name} size_bytes={size_bytes} hash={fingerprint.content_hash}'
                )

                logger.info(f'Starting document upload: {file_name} ({"url" if downloaded else "local"})')
                uploaded = await self._client.upload_file(
                    local_path,
                    display_name=(metadata.title if metadata and metadata.title else file_name),
                    mime_type=mime_type_for(file_name),
                )
            finally:
                if downloaded:
                    cleanup_temp(local_path)

            logger.info(
                f'add_document completed: doc_id={uploaded.id} file_name={file_name} '
                f'bytes_uploaded={size_bytes} index_latency_ms={timer.elapsed_ms()}'
            )

            return AddDocumentResult(
                doc_id=uploaded.id,
                store_id=store_id,
                file_name=file_name,
                hash=fingerprint.content_hash,
                dedupe_key=fingerprint.dedupe_key,
                message=f'Document uploaded successfully: {file_name}',
            )

    async def search(self, request: SearchRequest) -> SearchResult:
        timer = Timer()
        with handle_errors('search'):
            query = request.query
            logger.debug(
                f'search called: query={query[:100]!r} top_k={request.top_k} '
                f'has_filters={request.filters is not None}'
            )
            if request.filters is not None:
                logger.debug('Metadata filters are not applied: the Files API stores no custom metadata')

            files = await self._client.list_files(self.LIST_PAGE_SIZE)
            if not files:
                logger.warning('No files found for search')
                return SearchResult(results=[], query=query, total_results=0)

            selected = files[: self.SEARCH_FILE_LIMIT]
            text = await self._client.generate_content(selected, SEARCH_PROMPT.format(query=query))
            if not text.strip():
                raise ClassifiedError(
                    ErrorKind.QUERY_FAILED,
                    'Search returned no content for the query',
                    retryable=False,
                    detail={'files_searched': len(selected)},
                )

            # Generation answers across all files at once; the top hit cites the first file
            hits = [
                SearchHit(
                    doc_id=selected[0].id,
                    file_name=selected[0].display_name or 'document',
                    snippet=text[: self.SNIPPET_LENGTH],
                    score=1.0,
                    page_start=1,
                    page_end=1,
                )
            ][: request.top_k]

            logger.info(
                f'search completed: query={query[:50]!r} results_count={len(hits)} '
                f'query_latency_ms={timer.elapsed_ms()}'
            )

            return SearchResult(results=hits, query=query, total_results=len(hits))

    async def get_passages(self, request: GetPassagesRequest) -> PassagesResult:
        timer = Timer()
        with handle_errors('get_passages'):
            doc_id = request.doc_id
            logger.debug(f'get_passages called: doc_id={doc_id} page_spans_count={len(request.page_spans)}')

            listed = await self._client.list_files(self.LIST_PAGE_SIZE)
            file_name = next((_file_name(f) for f in listed if f.id == doc_id), 'unknown')

            file = await self._client.get_file(doc_id)
            if file is None or not file.uri:
                raise ClassifiedError(ErrorKind.FILE_NOT_FOUND, f'File not found: {doc_id}', retryable=False)

            passages = []
            for span in request.page_spans:
                text = await self._client.generate_content([file], _passage_prompt(span))
                passages.append(Passage(page_start=span.start, page_end=span.end, text=text))

            logger.info(
                f'get_passages completed: doc_id={doc_id} file_name={file_name} '
                f'passages_count={len(passages)} total_latency_ms={timer.elapsed_ms()}'
            )

            return PassagesResult(doc_id=doc_id, file_name=file_name, passages=passages)

    async def list_documents(self, request: ListDocumentsRequest) -> DocumentList:
        timer = Timer()
        with handle_errors('list_documents'):
            logger.debug(
                f'list_documents called: page={request.page} page_size={request.page_size} '
                f'has_filters={request.filters is not None}'
            )

            files = await self._client.list_files(self.LIST_PAGE_SIZE)
            store_id = self._resolver.collection_id or 'unknown'
            documents = [_to_document(f, store_id) for f in files]

            total_count = len(documents)
            start = (request.page - 1) * request.page_size
            page = documents[start : start + request.page_size]

            logger.info(
                f'list_documents completed: page={request.page} documents_count={len(page)} '
                f'total_count={total_count} total_latency_ms={timer.elapsed_ms()}'
            )

            return DocumentList(
                documents=page,
                total_count=total_count,
                page=request.page,
                page_size=request.page_size,
                total_pages=math.ceil(total_count / request.page_size),
            )

    async def delete_document(self, request: DeleteDocumentRequest) -> DeleteDocumentResult:
        timer = Timer()
        with handle_errors('delete_document'):
            logger.debug(f'delete_document called: doc_id={request.doc_id}')

            await self._client.delete_file(request.doc_id)

            logger.info(f'delete_document completed: doc_id={request.doc_id} total_latency_ms={timer.elapsed_ms()}')

            return DeleteDocumentResult(
                doc_id=request.doc_id,
                message=f'Document deleted successfully: {request.doc_id}',
            )


def _file_name(file: RemoteFile) -> str:
    return file.display_name or PurePosixPath(file.uri).name


def _to_document(file: RemoteFile, store_id: str) -> Document:
    created = file.create_time or datetime.now(UTC)
    return Document(
        doc_id=file.id,
        store_id=store_id,
        file_name=_file_name(file),
        file_uri=file.uri,
        mime_type=file.mime_type,
        size_bytes=file.size_bytes,
        created_at=created.isoformat(),
    )


def _passage_prompt(span: PageSpan) -> str:
    pages = f'page {span.start}' if span.end == span.start else f'page {span.start} to page {span.end}'
    return (
        f'Extract the full text content from {pages} of this document. '
        'Return ONLY the text content from these pages without any additional commentary.'
    )


def _store_instructions(display_name: str | None) -> str:
    if display_name:
        return (
            f'To use this Store, set GEMINI_FILESTORE_NAME="{display_name}" in your MCP client configuration. '
            'The server will automatically find this Store by its display name.'
        )
    return (
        'To use this Store with the MCP server, restart with:\n\n'
        'gemini-filesearch \\\n'
        '  -e GEMINI_API_KEY=<your-key> \\\n'
        '  -e GEMINI_FILESTORE_NAME=<your-store-name>\n\n'
        'You can use any name you like, and the server will manage the actual Store ID automatically.'
    )
