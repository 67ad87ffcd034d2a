"""API clients for external services."""

from __future__ import annotations

from gemini_filesearch.clients.gemini import GeminiFileSearchClient
from gemini_filesearch.clients.protocols import DocumentIndexClient

__all__ = [
    'DocumentIndexClient',
    'GeminiFileSearchClient',
]
