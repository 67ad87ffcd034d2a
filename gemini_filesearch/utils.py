"""Shared utilities for the MCP server."""

from __future__ import annotations

import logging
import time

from mcp.server.fastmcp import Context

__all__ = [
    'DualLogger',
    'Timer',
]

logger = logging.getLogger('gemini_filesearch.tools')


class DualLogger:
    """Logs messages to both the server log (stderr) and the MCP client context.

    stdout carries JSON-RPC on the stdio transport, so nothing here prints.
    """

    def __init__(self, ctx: Context):
        self.ctx = ctx

    async def info(self, msg: str):
        logger.info(msg)
        await self.ctx.info(msg)

    async def debug(self, msg: str):
        logger.debug(msg)
        await self.ctx.debug(msg)

    async def warning(self, msg: str):
        logger.warning(msg)
        await self.ctx.warning(msg)

    async def error(self, msg: str):
        logger.error(msg)
        await self.ctx.error(msg)


class Timer:
    """Simple stopwatch-style timer for measuring elapsed time."""

    def __init__(self):
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        """Return elapsed time in seconds."""
        return time.perf_counter() - self._start

    def elapsed_ms(self) -> int:
        """Return elapsed time in milliseconds."""
        return int(self.elapsed() * 1000)
