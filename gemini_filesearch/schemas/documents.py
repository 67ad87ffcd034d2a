"""Tool request and result schemas.

Request models carry the declarative input constraints. Tools validate raw
arguments into these before anything touches the service layer, so service
operations only ever see validated input.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Self

import pydantic
from pydantic import Field

from gemini_filesearch.schemas.base import StrictModel

__all__ = [
    'AddDocumentRequest',
    'AddDocumentResult',
    'CreateCollectionRequest',
    'CreateCollectionResult',
    'DeleteDocumentRequest',
    'DeleteDocumentResult',
    'Document',
    'DocumentList',
    'DocumentMetadata',
    'GetPassagesRequest',
    'ListDocumentsRequest',
    'PageSpan',
    'Passage',
    'PassagesResult',
    'SearchFilters',
    'SearchHit',
    'SearchRequest',
    'SearchResult',
]

# Display names are capped by the File Search Store API
MAX_DISPLAY_NAME_LENGTH = 512

PublicationYear = Annotated[int, Field(ge=1900, le=2100)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class DocumentMetadata(StrictModel):
    """Descriptive metadata supplied with an upload.

    Only ``title`` and ``doi`` feed the dedupe key; the rest is informational.
    """

    title: str | None = None
    authors: Sequence[str] | None = None
    year: PublicationYear | None = None
    doi: str | None = None
    tags: Sequence[str] | None = None
    source_url: str | None = None

    @pydantic.field_validator('source_url')
    @classmethod
    def _check_source_url(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(('http://', 'https://')):
            raise ValueError('source_url must be an http(s) URL')
        return value


class SearchFilters(StrictModel):
    """Optional narrowing filters for search and listing."""

    year_min: Annotated[int, Field(ge=1900)] | None = None
    year_max: Annotated[int, Field(le=2100)] | None = None
    tags: Sequence[str] | None = None
    authors: Sequence[str] | None = None


class PageSpan(StrictModel):
    """Inclusive, 1-indexed page range."""

    start: Annotated[int, Field(ge=1)]
    end: Annotated[int, Field(ge=1)]

    @pydantic.model_validator(mode='after')
    def _check_order(self) -> Self:
        if self.end < self.start:
            raise ValueError(f'page span end ({self.end}) is before start ({self.start})')
        return self


class Document(StrictModel):
    """An indexed document as listed by list_documents."""

    doc_id: str
    store_id: str
    file_name: str
    file_uri: str
    mime_type: str
    size_bytes: int
    created_at: str  # ISO 8601
    metadata: DocumentMetadata = DocumentMetadata()
    hash: str = ''  # Not reported by the remote service
    dedupe_key: str = ''


# Requests


class CreateCollectionRequest(StrictModel):
    display_name: Annotated[str, Field(max_length=MAX_DISPLAY_NAME_LENGTH)] | None = None


class AddDocumentRequest(StrictModel):
    source: NonEmptyStr  # Local path or http(s) URL
    metadata: DocumentMetadata | None = None


class SearchRequest(StrictModel):
    query: NonEmptyStr
    top_k: Annotated[int, Field(ge=1, le=100)] = 10
    filters: SearchFilters | None = None


class GetPassagesRequest(StrictModel):
    doc_id: NonEmptyStr
    page_spans: Annotated[Sequence[PageSpan], Field(min_length=1)]


class ListDocumentsRequest(StrictModel):
    page: Annotated[int, Field(ge=1)] = 1
    page_size: Annotated[int, Field(ge=1, le=100)] = 20
    filters: SearchFilters | None = None


class DeleteDocumentRequest(StrictModel):
    doc_id: NonEmptyStr


# Results


class CreateCollectionResult(StrictModel):
    success: bool = True
    store_id: str
    display_name: str | None = None
    message: str
    instructions: str


class AddDocumentResult(StrictModel):
    success: bool = True
    doc_id: str
    store_id: str
    file_name: str
    hash: str
    dedupe_key: str
    message: str


class SearchHit(StrictModel):
    doc_id: str
    file_name: str
    snippet: str  # Text excerpt answering the query
    score: Annotated[float, Field(ge=0, le=1)]
    page_start: int | None = None
    page_end: int | None = None
    metadata: DocumentMetadata = DocumentMetadata()


class SearchResult(StrictModel):
    success: bool = True
    results: Sequence[SearchHit]
    query: str
    total_results: int


class Passage(StrictModel):
    page_start: int
    page_end: int
    text: str


class PassagesResult(StrictModel):
    success: bool = True
    doc_id: str
    file_name: str
    passages: Sequence[Passage]


class DocumentList(StrictModel):
    success: bool = True
    documents: Sequence[Document]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class DeleteDocumentResult(StrictModel):
    success: bool = True
    doc_id: str
    message: str
