"""Command-line entry point for the Gemini File Search MCP server.

Usage:
    gemini-filesearch \\
        -e GEMINI_API_KEY=AIza... \\
        -e GEMINI_FILESTORE_NAME=my-research-store

    gemini-filesearch -e ... --transport streamable-http --host 0.0.0.0 --port 8787

``-e`` entries are applied to the process environment before the server
reads its configuration, so they override variables already set.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Mapping, Sequence
from typing import NoReturn

import rich.console
import rich.panel
import typer

from gemini_filesearch.config import ServerConfig
from gemini_filesearch.server import server

__all__ = [
    'app',
    'main',
    'parse_env_entries',
]


class Transport(enum.StrEnum):
    STDIO = 'stdio'
    SSE = 'sse'
    STREAMABLE_HTTP = 'streamable-http'


DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 8765

app = typer.Typer(help='Gemini File Search MCP server.', add_completion=False)


def parse_env_entries(entries: Sequence[str]) -> Mapping[str, str]:
    """Parse ``KEY=VALUE`` entries. The value may itself contain ``=``.

    Raises:
        ValueError: If an entry has no key or no value.
    """
    parsed: dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition('=')
        if not key or not value:
            raise ValueError(f'Invalid environment variable format: {entry}\nExpected format: -e KEY=VALUE')
        parsed[key] = value
    return parsed


def _fail(message: str) -> NoReturn:
    console = rich.console.Console(stderr=True)
    console.print(rich.panel.Panel(message, border_style='red', title='Error', title_align='left'))
    raise SystemExit(1)


@app.command()
def run(
    env: list[str] = typer.Option([], '-e', '--env', help='Set an environment variable (KEY=VALUE), repeatable'),
    log_level: str | None = typer.Option(None, '--log-level', help='debug, info, warning or error'),
    transport: Transport = typer.Option(Transport.STDIO, '--transport', help='MCP transport'),
    host: str = typer.Option(DEFAULT_HOST, '--host', help='Bind address for HTTP transports'),
    port: int = typer.Option(DEFAULT_PORT, '--port', help='Port for HTTP transports'),
) -> None:
    """Start the MCP server."""
    try:
        os.environ.update(parse_env_entries(env))
    except ValueError as e:
        _fail(str(e))

    if log_level is not None:
        os.environ['LOG_LEVEL'] = log_level

    # Fail before the transport starts, with a message a human will see
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        _fail(f'{e}\n\nProvide it with: gemini-filesearch -e GEMINI_API_KEY=<your-key>')

    if not config.store_name:
        rich.console.Console(stderr=True).print(
            '[yellow]GEMINI_FILESTORE_NAME is not set; add_document will fail until it is configured.[/yellow]'
        )

    server.settings.host = host
    server.settings.port = port
    server.run(transport=transport.value)


def main() -> None:
    app()


if __name__ == '__main__':
    main()
