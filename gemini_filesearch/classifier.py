"""Failure classification.

Turns arbitrary failures (SDK errors, httpx transport errors, plain strings)
into ClassifiedError values. Classification is keyword-based on the failure
message and therefore sensitive to upstream wording changes; the keyword
table is CLASSIFICATION_RULES and can be swapped without touching callers.

Rule Priority
=============

First match wins, in this order::

    1. size exceeded       'too large', 'file size'            FILE_TOO_LARGE     no retry
    2. unsupported type    'invalid file', 'unsupported'       INVALID_FILE_TYPE  no retry
    3. rate limit / quota  'rate limit', 'quota', ...          RATE_LIMITED       retry
    4. authentication      'auth', 'unauthorized', 'api key'   AUTH_FAILED        no retry
    5. store not found     'store'|'collection' + 'not found'  STORE_NOT_FOUND    no retry
    6. network / timeout   'network', 'timeout', ... or a      NETWORK_ERROR      retry
                           transport exception type
    7. fallback                                                API_ERROR          retry

Status codes are handled separately by ``is_retryable``: 408/429/5xx are
retryable no matter what the message says.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import google.genai.errors
import httpx

from gemini_filesearch.errors import ClassifiedError, ErrorKind

__all__ = [
    'CLASSIFICATION_RULES',
    'RETRYABLE_STATUS_CODES',
    'ClassificationRule',
    'classify',
    'is_retryable',
    'is_transport_error',
    'status_code_of',
]

# 408: Request timeout
# 429: Rate limit exceeded (RESOURCE_EXHAUSTED)
# 500/502/503/504: Server errors
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

UNKNOWN_ERROR_MESSAGE = 'Unknown error occurred'


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the keyword table.

    ``matches`` receives the lowercased message and the original exception.
    """

    kind: ErrorKind
    retryable: bool
    matches: Callable[[str, BaseException], bool]


def _any_of(*keywords: str) -> Callable[[str, BaseException], bool]:
    def match(message: str, exc: BaseException) -> bool:
        return any(keyword in message for keyword in keywords)

    return match


def _store_not_found(message: str, exc: BaseException) -> bool:
    return ('store' in message or 'collection' in message) and 'not found' in message


def _network(message: str, exc: BaseException) -> bool:
    if any(keyword in message for keyword in ('network', 'timeout', 'econnrefused', 'enotfound')):
        return True
    return is_transport_error(exc)


CLASSIFICATION_RULES: Sequence[ClassificationRule] = (
    ClassificationRule(ErrorKind.FILE_TOO_LARGE, False, _any_of('too large', 'file size')),
    ClassificationRule(ErrorKind.INVALID_FILE_TYPE, False, _any_of('invalid file', 'unsupported')),
    ClassificationRule(ErrorKind.RATE_LIMITED, True, _any_of('rate limit', 'quota', 'resource_exhausted')),
    ClassificationRule(ErrorKind.AUTH_FAILED, False, _any_of('auth', 'unauthorized', 'api key')),
    ClassificationRule(ErrorKind.STORE_NOT_FOUND, False, _store_not_found),
    ClassificationRule(ErrorKind.NETWORK_ERROR, True, _network),
)


def classify(failure: object) -> ClassifiedError:
    """Map any failure value to a ClassifiedError.

    Already-classified errors come back unchanged (same object), so
    classifying twice never wraps twice.
    """
    if isinstance(failure, ClassifiedError):
        return failure

    if isinstance(failure, BaseException):
        return _classify_exception(failure)

    if isinstance(failure, str):
        return ClassifiedError(ErrorKind.UNKNOWN_ERROR, failure, retryable=False)

    return ClassifiedError(ErrorKind.UNKNOWN_ERROR, UNKNOWN_ERROR_MESSAGE, retryable=False)


def is_retryable(failure: object) -> bool:
    """Check whether a failure is worth another attempt, by kind or status code.

    Retries on:
    - ClassifiedError flagged retryable (explicitly or by its kind's default)
    - anything carrying HTTP status 408, 429, 500, 502, 503 or 504

    The status-code check ignores the message entirely.
    """
    if isinstance(failure, ClassifiedError):
        return failure.retryable

    status = status_code_of(failure)
    return status is not None and status in RETRYABLE_STATUS_CODES


def status_code_of(failure: object) -> int | None:
    """Extract an HTTP status code from SDK errors, httpx errors, or plain objects."""
    # google-genai: ClientError (4xx) / ServerError (5xx) expose .code
    if isinstance(failure, google.genai.errors.APIError):
        return failure.code

    if isinstance(failure, httpx.HTTPStatusError):
        return failure.response.status_code

    if isinstance(failure, Mapping):
        return _as_status(failure.get('status'))

    for attribute in ('status', 'status_code'):
        status = _as_status(getattr(failure, attribute, None))
        if status is not None:
            return status

    return None


def is_transport_error(exc: BaseException) -> bool:
    """Check if exception is a transient transport-level failure.

    - httpx.TimeoutException, httpx.NetworkError (all subclasses)
    - httpx.RemoteProtocolError (server sent invalid HTTP)
    - builtin ConnectionError / TimeoutError (asyncio.TimeoutError is an alias)

    httpx.LocalProtocolError, ProxyError and UnsupportedProtocol are our own
    configuration bugs and are not transport failures.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError))


def _classify_exception(exc: BaseException) -> ClassifiedError:
    text = str(exc) or type(exc).__name__
    lowered = text.lower()

    detail: dict[str, Any] = {
        'original_error': text,
        'name': type(exc).__name__,
    }
    status = status_code_of(exc)
    if status is not None:
        detail['status_code'] = status

    for rule in CLASSIFICATION_RULES:
        if rule.matches(lowered, exc):
            return ClassifiedError(rule.kind, text, retryable=rule.retryable, detail=detail)

    return ClassifiedError(ErrorKind.API_ERROR, text, retryable=True, detail=detail)


def _as_status(value: object) -> int | None:
    # bool is an int subclass; True is not a status code
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None
