"""Error taxonomy for the file search server.

Every failure that leaves a remote call is turned into a ClassifiedError:
a typed kind, a human-readable message, a retryable flag, and optional
diagnostic detail. The dispatch layer renders it as an ErrorResponse.

Classification itself lives in ``gemini_filesearch.classifier``.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Literal

import pydantic

from gemini_filesearch.schemas.base import StrictModel

__all__ = [
    'DEFAULT_RETRYABLE',
    'ClassifiedError',
    'ErrorKind',
    'ErrorResponse',
]


class ErrorKind(enum.StrEnum):
    """Closed set of failure categories. Values are the wire error codes."""

    # File errors
    FILE_TOO_LARGE = 'FILE_TOO_LARGE'
    INVALID_FILE_TYPE = 'INVALID_FILE_TYPE'
    FILE_NOT_FOUND = 'FILE_NOT_FOUND'

    # Transfer errors
    UPLOAD_FAILED = 'UPLOAD_FAILED'
    DOWNLOAD_FAILED = 'DOWNLOAD_FAILED'

    # Indexing and query errors
    INDEXING_TIMEOUT = 'INDEXING_TIMEOUT'
    INDEXING_FAILED = 'INDEXING_FAILED'
    QUERY_FAILED = 'QUERY_FAILED'

    # Collection (File Search Store) errors
    STORE_NOT_FOUND = 'STORE_NOT_FOUND'
    STORE_ACCESS_DENIED = 'STORE_ACCESS_DENIED'

    # API errors
    RATE_LIMITED = 'RATE_LIMITED'
    API_ERROR = 'API_ERROR'
    AUTH_FAILED = 'AUTH_FAILED'

    # Input errors
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    INVALID_INPUT = 'INVALID_INPUT'

    # Everything else
    NETWORK_ERROR = 'NETWORK_ERROR'
    UNKNOWN_ERROR = 'UNKNOWN_ERROR'


# Kinds that are worth another attempt unless the raise site says otherwise
DEFAULT_RETRYABLE: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.RATE_LIMITED,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.INDEXING_TIMEOUT,
        ErrorKind.API_ERROR,
    }
)


class ErrorResponse(StrictModel):
    """Structured failure payload returned to the MCP client."""

    error: Literal[True] = True
    error_code: ErrorKind
    message: str
    retryable: bool
    details: Mapping[str, Any] | None = None

    @pydantic.model_serializer(mode='wrap')
    def omit_empty_details(self, handler: pydantic.SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        if data.get('details') is None:
            data.pop('details', None)
        return data


class ClassifiedError(Exception):
    """Failure with a kind, a message, and a retryable flag.

    Immutable after construction: all fields are read-only properties and
    ``detail`` is a read-only mapping. ``retryable`` defaults to the kind's
    default (see DEFAULT_RETRYABLE).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retryable: bool | None = None,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._retryable = kind in DEFAULT_RETRYABLE if retryable is None else retryable
        self._detail: Mapping[str, Any] | None = MappingProxyType(dict(detail)) if detail else None

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def detail(self) -> Mapping[str, Any] | None:
        return self._detail

    def to_response(self) -> ErrorResponse:
        """Render as the structured failure payload (details omitted when empty)."""
        return ErrorResponse(
            error_code=self._kind,
            message=self._message,
            retryable=self._retryable,
            details=dict(self._detail) if self._detail else None,
        )

    def __repr__(self) -> str:
        return f'ClassifiedError({self._kind.value}, {self._message!r}, retryable={self._retryable})'
