"""URL downloads for add_document.

Fetches a remote document into a fresh temporary directory so it can be
fingerprinted and uploaded like a local file. Temporary files are removed
best-effort after the upload.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
import time
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import httpx

from gemini_filesearch.classifier import RETRYABLE_STATUS_CODES
from gemini_filesearch.errors import ClassifiedError, ErrorKind
from gemini_filesearch.retry import retry_with_backoff
from gemini_filesearch.schemas.files import MAX_FILE_SIZE_BYTES, extension_for_mime_type

__all__ = [
    'TEMP_DIR_PREFIX',
    'cleanup_temp',
    'download_to_temp',
    'is_url',
]

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = 'gemini-filesearch-'
DOWNLOAD_TIMEOUT_SECONDS = 60.0


def is_url(source: str) -> bool:
    return source.startswith(('http://', 'https://'))


async def download_to_temp(
    url: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    max_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> Path:
    """Stream ``url`` into a new temp directory and return the file path.

    The body is written chunk by chunk and abandoned as soon as it passes
    ``max_size_bytes``. The temp directory is removed on any failure.

    Raises:
        ClassifiedError: DOWNLOAD_FAILED on a non-2xx response (retryable for
            408/429/5xx), FILE_TOO_LARGE past the size cap, NETWORK_ERROR when
            the transport keeps failing.
    """
    logger.info(f'Downloading file from URL: {url}')

    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX))
    try:
        async with contextlib.AsyncExitStack() as stack:
            client = http_client or await stack.enter_async_context(
                httpx.AsyncClient(follow_redirects=True, timeout=DOWNLOAD_TIMEOUT_SECONDS)
            )
            temp_path = await retry_with_backoff(lambda: _fetch(client, url, temp_dir, max_size_bytes))
    except BaseException:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise

    logger.info(f'Downloaded {temp_path.stat().st_size} bytes to {temp_path}')
    return temp_path


def cleanup_temp(path: Path) -> None:
    """Remove a downloaded file and its temp directory. Failures are logged, never raised."""
    try:
        if path.parent.name.startswith(TEMP_DIR_PREFIX):
            shutil.rmtree(path.parent)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f'Failed to clean up temporary download {path}: {e}')


async def _fetch(client: httpx.AsyncClient, url: str, temp_dir: Path, max_size_bytes: int) -> Path:
    async with client.stream('GET', url) as response:
        if not response.is_success:
            status = response.status_code
            raise ClassifiedError(
                ErrorKind.DOWNLOAD_FAILED,
                f'Failed to download file: {status} {response.reason_phrase}',
                retryable=status in RETRYABLE_STATUS_CODES,
                detail={'url': url, 'status_code': status},
            )

        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_size_bytes:
            raise _too_large(url, max_size_bytes)

        temp_path = temp_dir / _file_name_for(url, response.headers.get('content-type'))
        received = 0
        with temp_path.open('wb') as f:
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_size_bytes:
                    raise _too_large(url, max_size_bytes)
                f.write(chunk)

    return temp_path


def _too_large(url: str, max_size_bytes: int) -> ClassifiedError:
    return ClassifiedError(
        ErrorKind.FILE_TOO_LARGE,
        f'File too large: {url} exceeds {max_size_bytes} bytes',
        retryable=False,
        detail={'url': url, 'max_size_bytes': max_size_bytes},
    )


def _file_name_for(url: str, content_type: str | None) -> str:
    """Use the last URL path segment, else ``download_<ms>.<ext>`` from Content-Type."""
    name = PurePosixPath(urlparse(url).path).name
    if name:
        return name
    return f'download_{int(time.time() * 1000)}.{extension_for_mime_type(content_type)}'
