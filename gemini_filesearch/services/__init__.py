"""Domain services for file search."""

from __future__ import annotations

from gemini_filesearch.services.documents import DocumentService

__all__ = ['DocumentService']
