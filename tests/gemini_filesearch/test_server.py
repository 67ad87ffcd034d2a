"""Tests for the MCP dispatch boundary: validation, error rendering, tool registration."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from collections.abc import Mapping
from typing import Any

import httpx
import mcp.server.fastmcp
import pytest

from gemini_filesearch import config
from gemini_filesearch.config import ServerConfig
from gemini_filesearch.errors import ClassifiedError, ErrorKind, ErrorResponse
from gemini_filesearch.resolver import CollectionResolver
from gemini_filesearch.schemas.documents import (
    GetPassagesRequest,
    ListDocumentsRequest,
    SearchRequest,
    SearchResult,
)
from gemini_filesearch.server import ServerState, SharedServerState, dispatch, register_tools
from gemini_filesearch.services.documents import DocumentService
from tests.gemini_filesearch.fake_service import FakeIndexService


@pytest.fixture
def fake() -> FakeIndexService:
    return FakeIndexService()


@pytest.fixture
def service(fake: FakeIndexService) -> DocumentService:
    return DocumentService(fake, CollectionResolver(fake, 'research'))


class TestValidation:
    """Invalid arguments become VALIDATION_ERROR responses and never reach the service."""

    @pytest.mark.parametrize(
        'arguments',
        [
            {'query': ''},
            {'query': 'q', 'top_k': 0},
            {'query': 'q', 'top_k': 101},
            {'query': 'q', 'filters': {'year_min': 1800}},
            {'query': 'q', 'unexpected': True},
            {},
        ],
    )
    def test_invalid_search_rejected(
        self, fake: FakeIndexService, service: DocumentService, arguments: Mapping[str, Any]
    ) -> None:
        response = asyncio.run(dispatch(SearchRequest, arguments, service.search))

        assert isinstance(response, ErrorResponse)
        assert response.error_code is ErrorKind.VALIDATION_ERROR
        assert response.retryable is False
        assert fake.remote_calls == 0

    @pytest.mark.parametrize(
        'page_spans',
        [
            [],
            [{'start': 0, 'end': 1}],
            [{'start': 5, 'end': 3}],
        ],
    )
    def test_invalid_page_spans(self, fake: FakeIndexService, service: DocumentService, page_spans: list) -> None:
        arguments = {'doc_id': 'files/abc', 'page_spans': page_spans}

        response = asyncio.run(dispatch(GetPassagesRequest, arguments, service.get_passages))

        assert isinstance(response, ErrorResponse)
        assert response.error_code is ErrorKind.VALIDATION_ERROR
        assert fake.remote_calls == 0

    def test_error_details_name_the_field(self, service: DocumentService) -> None:
        response = asyncio.run(dispatch(ListDocumentsRequest, {'page': 0}, service.list_documents))

        assert isinstance(response, ErrorResponse)
        assert response.details is not None
        assert response.details['errors'][0]['loc'] == ['page']
        assert 'page' in response.message

    def test_valid_arguments_reach_service(self, fake: FakeIndexService, service: DocumentService) -> None:
        fake.add_file()

        response = asyncio.run(dispatch(SearchRequest, {'query': 'attention', 'top_k': 5}, service.search))

        assert isinstance(response, SearchResult)
        assert response.total_results == 1


class TestErrorRendering:
    def test_classified_error_rendered(self, fake: FakeIndexService, service: DocumentService) -> None:
        fake.fail('list_files', RuntimeError('Rate limit exceeded'))

        response = asyncio.run(dispatch(ListDocumentsRequest, {}, service.list_documents))

        assert isinstance(response, ErrorResponse)
        assert response.error is True
        assert response.error_code is ErrorKind.RATE_LIMITED
        assert response.retryable is True
        assert response.details is not None
        assert response.details['original_error'] == 'Rate limit exceeded'

    def test_wire_format(self) -> None:
        error = ClassifiedError(ErrorKind.FILE_NOT_FOUND, 'File not found: x.pdf', retryable=False)

        payload = error.to_response().model_dump(mode='json')

        assert payload == {
            'error': True,
            'error_code': 'FILE_NOT_FOUND',
            'message': 'File not found: x.pdf',
            'retryable': False,
        }

    def test_details_kept_when_present(self) -> None:
        error = ClassifiedError(ErrorKind.STORE_NOT_FOUND, 'missing', detail={'store_id': 'fileSearchStores/x'})

        payload = json.loads(error.to_response().model_dump_json())

        assert payload['details'] == {'store_id': 'fileSearchStores/x'}

    def test_empty_details_omitted_from_json(self) -> None:
        payload = json.loads(ClassifiedError(ErrorKind.UNKNOWN_ERROR, 'boom').to_response().model_dump_json())

        assert 'details' not in payload

    def test_unclassified_exception_propagates(self) -> None:
        async def broken(request: SearchRequest) -> SearchResult:
            raise KeyError('bug')

        with pytest.raises(KeyError):
            asyncio.run(dispatch(SearchRequest, {'query': 'q'}, broken))


class TestToolRegistration:
    def test_all_tools_registered(self, fake: FakeIndexService, service: DocumentService) -> None:
        mcp_server = mcp.server.fastmcp.FastMCP('test')
        state = ServerState(
            config=ServerConfig(api_key='test', store_name='research'),
            client=fake,  # type: ignore[arg-type]
            resolver=service._resolver,
            documents=service,
            http_client=httpx.AsyncClient(),
        )

        register_tools(mcp_server, lambda: state)
        tools = {tool.name: tool for tool in asyncio.run(mcp_server.list_tools())}

        assert set(tools) == {
            'create_file_store',
            'add_document',
            'search',
            'get_passages',
            'list_documents',
            'delete_document',
        }
        delete_annotations = tools['delete_document'].annotations
        assert delete_annotations is not None
        assert delete_annotations.destructiveHint is True
        search_annotations = tools['search'].annotations
        assert search_annotations is not None
        assert search_annotations.readOnlyHint is True


class TestSessions:
    """HTTP transports enter the lifespan once per client session."""

    @pytest.fixture(autouse=True)
    def environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        for key in ('GEMINI_FILESTORE_NAME', 'GEMINI_MODEL', 'LOG_LEVEL'):
            monkeypatch.delenv(key, raising=False)
        monkeypatch.setenv('GEMINI_API_KEY', 'test-key')
        monkeypatch.setattr(config, 'API_KEY_PATH', tmp_path / 'no_key')

    def test_concurrent_sessions_share_state(self) -> None:
        shared = SharedServerState()
        mcp_server = mcp.server.fastmcp.FastMCP('test')

        async def scenario() -> None:
            async with shared.session(mcp_server) as first:
                async with shared.session(mcp_server) as second:
                    assert second is first
                    assert shared.sessions == 2
                assert not first.http_client.is_closed
            assert first.http_client.is_closed
            assert shared.sessions == 0

        asyncio.run(scenario())

    def test_later_session_gets_fresh_state(self, caplog: pytest.LogCaptureFixture) -> None:
        shared = SharedServerState()
        mcp_server = mcp.server.fastmcp.FastMCP('test')

        async def scenario() -> tuple[ServerState, ServerState, int]:
            async with shared.session(mcp_server) as first:
                pass
            async with shared.session(mcp_server) as second:
                assert shared.get() is second
                assert not second.http_client.is_closed
                tools = await mcp_server.list_tools()
            return first, second, len(tools)

        with caplog.at_level(logging.WARNING):
            first, second, tool_count = asyncio.run(scenario())

        assert second is not first
        assert first.http_client.is_closed
        assert tool_count == 6
        assert not any('already exists' in r.getMessage() for r in caplog.records)

    def test_tools_use_current_session_state(self) -> None:
        shared = SharedServerState()
        mcp_server = mcp.server.fastmcp.FastMCP('test')
        registered: list[FakeIndexService] = []

        async def scenario() -> None:
            for _ in range(2):
                async with shared.session(mcp_server) as state:
                    fake = FakeIndexService()
                    fake.add_file()
                    registered.append(fake)
                    state.documents = DocumentService(fake, CollectionResolver(fake, 'research'))
                    await mcp_server.call_tool('list_documents', {})

        asyncio.run(scenario())

        assert [fake.calls['list_files'] for fake in registered] == [1, 1]

    def test_state_outside_session_rejected(self) -> None:
        with pytest.raises(RuntimeError):
            SharedServerState().get()
