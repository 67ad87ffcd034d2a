"""Centralized file paths for gemini-filesearch.

All persistent file locations in one place for consistency.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'API_KEY_PATH',
    'WORKSPACE_DIR',
]

# Base directory
WORKSPACE_DIR = Path.home() / '.gemini-filesearch'

# API key fallback when GEMINI_API_KEY is not set
API_KEY_PATH = WORKSPACE_DIR / 'secrets' / 'api_key'
