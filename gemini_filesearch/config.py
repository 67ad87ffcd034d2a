"""Server configuration.

Read once at startup from the environment. The API key falls back to a
secrets file so it need not live in the MCP client configuration.

Environment variables:
    GEMINI_API_KEY         Gemini API key (or API_KEY_PATH)
    GEMINI_FILESTORE_NAME  Display name of the File Search Store to use
    GEMINI_MODEL           Generation model (default gemini-2.5-flash)
    LOG_LEVEL              debug | info | warning | error (default info)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Literal, TypeAlias

import pydantic
from pydantic import Field

from gemini_filesearch.paths import API_KEY_PATH
from gemini_filesearch.schemas.base import StrictModel

__all__ = [
    'LogLevel',
    'ServerConfig',
    'load_api_key',
]

logger = logging.getLogger(__name__)

LogLevel: TypeAlias = Literal['debug', 'info', 'warning', 'error']

DEFAULT_MODEL = 'gemini-2.5-flash'

# Accepted spellings beyond the canonical names
_LOG_LEVEL_ALIASES: Mapping[str, LogLevel] = {
    'warn': 'warning',
}


class ServerConfig(StrictModel):
    """Validated server configuration."""

    api_key: Annotated[str, Field(min_length=1)]
    store_name: str | None = None
    model: str = DEFAULT_MODEL
    log_level: LogLevel = 'info'

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, *, key_path: Path | None = None) -> ServerConfig:
        """Build config from environment variables.

        Raises:
            ValueError: If the API key is missing or a value is invalid.
        """
        env = os.environ if environ is None else environ
        key_path = key_path or API_KEY_PATH

        raw_level = env.get('LOG_LEVEL', 'info').strip().lower()
        log_level = _LOG_LEVEL_ALIASES.get(raw_level, raw_level)

        try:
            return cls.model_validate(
                {
                    'api_key': env.get('GEMINI_API_KEY') or load_api_key(key_path),
                    'store_name': env.get('GEMINI_FILESTORE_NAME') or None,
                    'model': env.get('GEMINI_MODEL') or DEFAULT_MODEL,
                    'log_level': log_level,
                }
            )
        except pydantic.ValidationError as e:
            raise ValueError(f'Invalid configuration: {e}') from e

    @property
    def logging_level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level.upper()]


def load_api_key(key_path: Path = API_KEY_PATH) -> str:
    """Load API key from the secrets file."""
    if not key_path.exists():
        raise ValueError(f'GEMINI_API_KEY is not set and no API key found at {key_path}')
    return key_path.read_text().strip()
