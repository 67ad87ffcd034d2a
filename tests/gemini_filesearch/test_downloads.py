"""Tests for URL downloads, driven through httpx.MockTransport."""

from __future__ import annotations

import asyncio
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest

from gemini_filesearch.clients.downloads import TEMP_DIR_PREFIX, cleanup_temp, download_to_temp, is_url
from gemini_filesearch.errors import ClassifiedError, ErrorKind


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_sleep(seconds: float) -> None:
        pass

    monkeypatch.setattr(asyncio, 'sleep', fake_sleep)


def mock_client(*responses: httpx.Response | Exception) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    """Client answering each request with the next scripted response."""
    queue = list(responses)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


class TestIsUrl:
    @pytest.mark.parametrize(
        'source, expected',
        [
            ('https://arxiv.org/pdf/1706.03762', True),
            ('http://example.com/a.pdf', True),
            ('ftp://example.com/a.pdf', False),
            ('/home/user/a.pdf', False),
            ('papers/https.pdf', False),
        ],
    )
    def test_is_url(self, source: str, expected: bool) -> None:
        assert is_url(source) is expected


class TestDownload:
    def test_saves_under_url_file_name(self) -> None:
        client, _ = mock_client(httpx.Response(200, content=b'%PDF'))

        path = asyncio.run(download_to_temp('https://example.com/papers/attention.pdf', http_client=client))

        try:
            assert path.name == 'attention.pdf'
            assert path.read_bytes() == b'%PDF'
            assert path.parent.name.startswith(TEMP_DIR_PREFIX)
        finally:
            cleanup_temp(path)

    @pytest.mark.parametrize(
        'content_type, extension',
        [
            ('application/pdf', 'pdf'),
            ('text/plain; charset=utf-8', 'txt'),
            ('application/zip', 'bin'),
            (None, 'bin'),
        ],
    )
    def test_name_from_content_type_when_url_has_none(self, content_type: str | None, extension: str) -> None:
        headers = {'content-type': content_type} if content_type else {}
        client, _ = mock_client(httpx.Response(200, content=b'data', headers=headers))

        path = asyncio.run(download_to_temp('https://example.com/', http_client=client))

        try:
            assert path.name.startswith('download_')
            assert path.suffix == f'.{extension}'
        finally:
            cleanup_temp(path)

    def test_not_found_is_not_retried(self) -> None:
        client, seen = mock_client(httpx.Response(404), httpx.Response(200))

        with pytest.raises(ClassifiedError) as exc_info:
            asyncio.run(download_to_temp('https://example.com/missing.pdf', http_client=client))

        error = exc_info.value
        assert error.kind is ErrorKind.DOWNLOAD_FAILED
        assert error.retryable is False
        assert error.detail is not None
        assert error.detail['status_code'] == 404
        assert len(seen) == 1

    def test_server_error_retried(self) -> None:
        client, seen = mock_client(httpx.Response(503), httpx.Response(200, content=b'ok'))

        path = asyncio.run(download_to_temp('https://example.com/a.txt', http_client=client))

        try:
            assert path.read_bytes() == b'ok'
            assert len(seen) == 2
        finally:
            cleanup_temp(path)

    def test_persistent_server_error_gives_up(self) -> None:
        client, seen = mock_client(*(httpx.Response(502) for _ in range(3)))

        with pytest.raises(ClassifiedError) as exc_info:
            asyncio.run(download_to_temp('https://example.com/a.txt', http_client=client))

        assert exc_info.value.kind is ErrorKind.DOWNLOAD_FAILED
        assert exc_info.value.retryable is True
        assert len(seen) == 3

    def test_transport_failure_is_network_error(self) -> None:
        client, seen = mock_client(*(httpx.ConnectError('connection refused') for _ in range(3)))

        with pytest.raises(ClassifiedError) as exc_info:
            asyncio.run(download_to_temp('https://example.com/a.txt', http_client=client))

        assert exc_info.value.kind is ErrorKind.NETWORK_ERROR
        assert len(seen) == 3


class TestSizeCap:
    @pytest.fixture
    def temp_root(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
        """Point tempfile at an isolated directory so leaked downloads are visible."""
        monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path))
        return tmp_path

    def test_declared_length_over_cap_rejected(self, temp_root: Path) -> None:
        client, seen = mock_client(httpx.Response(200, content=b'x' * 20))

        with pytest.raises(ClassifiedError) as exc_info:
            asyncio.run(download_to_temp('https://example.com/big.pdf', http_client=client, max_size_bytes=10))

        assert exc_info.value.kind is ErrorKind.FILE_TOO_LARGE
        assert exc_info.value.retryable is False
        assert len(seen) == 1
        assert list(temp_root.iterdir()) == []

    def test_streamed_body_over_cap_abandoned(self, temp_root: Path) -> None:
        """Chunked responses carry no Content-Length; the cap applies while streaming."""

        async def chunks() -> AsyncIterator[bytes]:
            for _ in range(4):
                yield b'x' * 6

        client, seen = mock_client(httpx.Response(200, content=chunks()))

        with pytest.raises(ClassifiedError) as exc_info:
            asyncio.run(download_to_temp('https://example.com/big.pdf', http_client=client, max_size_bytes=10))

        assert exc_info.value.kind is ErrorKind.FILE_TOO_LARGE
        assert len(seen) == 1
        assert list(temp_root.iterdir()) == []

    def test_body_at_cap_accepted(self, temp_root: Path) -> None:
        client, _ = mock_client(httpx.Response(200, content=b'x' * 10))

        path = asyncio.run(download_to_temp('https://example.com/a.txt', http_client=client, max_size_bytes=10))

        try:
            assert path.stat().st_size == 10
        finally:
            cleanup_temp(path)
        assert list(temp_root.iterdir()) == []

    def test_failed_download_leaves_no_temp_dir(self, temp_root: Path) -> None:
        client, _ = mock_client(httpx.Response(404))

        with pytest.raises(ClassifiedError):
            asyncio.run(download_to_temp('https://example.com/missing.pdf', http_client=client))

        assert list(temp_root.iterdir()) == []


class TestCleanup:
    def test_removes_temp_directory(self, tmp_path: Path) -> None:
        temp_dir = tmp_path / f'{TEMP_DIR_PREFIX}abc'
        temp_dir.mkdir()
        path = temp_dir / 'a.pdf'
        path.write_bytes(b'x')

        cleanup_temp(path)

        assert not temp_dir.exists()

    def test_plain_file_unlinked(self, tmp_path: Path) -> None:
        path = tmp_path / 'a.pdf'
        path.write_bytes(b'x')

        cleanup_temp(path)

        assert not path.exists()
        assert tmp_path.exists()

    def test_missing_file_ignored(self, tmp_path: Path) -> None:
        cleanup_temp(tmp_path / 'gone.pdf')
