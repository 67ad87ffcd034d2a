"""Pydantic schemas for file search operations."""

from __future__ import annotations

from gemini_filesearch.schemas.base import JsonDatetime, StrictModel
from gemini_filesearch.schemas.documents import (
    AddDocumentRequest,
    AddDocumentResult,
    CreateCollectionRequest,
    CreateCollectionResult,
    DeleteDocumentRequest,
    DeleteDocumentResult,
    Document,
    DocumentList,
    DocumentMetadata,
    GetPassagesRequest,
    ListDocumentsRequest,
    PageSpan,
    Passage,
    PassagesResult,
    SearchFilters,
    SearchHit,
    SearchRequest,
    SearchResult,
)
from gemini_filesearch.schemas.files import (
    DEFAULT_MIME_TYPE,
    EXTENSION_MAP,
    MAX_FILE_SIZE_BYTES,
    extension_for_mime_type,
    mime_type_for,
)
from gemini_filesearch.schemas.remote import RemoteCollection, RemoteFile

__all__ = [
    # base
    'JsonDatetime',
    'StrictModel',
    # documents
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
    # files
    'DEFAULT_MIME_TYPE',
    'EXTENSION_MAP',
    'MAX_FILE_SIZE_BYTES',
    'extension_for_mime_type',
    'mime_type_for',
    # remote
    'RemoteCollection',
    'RemoteFile',
]
