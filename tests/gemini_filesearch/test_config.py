"""Tests for environment-driven server configuration."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gemini_filesearch.config import DEFAULT_MODEL, ServerConfig


class TestFromEnv:
    def test_minimal(self, tmp_path: Path) -> None:
        config = ServerConfig.from_env({'GEMINI_API_KEY': 'AIza-test'}, key_path=tmp_path / 'none')

        assert config.api_key == 'AIza-test'
        assert config.store_name is None
        assert config.model == DEFAULT_MODEL
        assert config.log_level == 'info'

    def test_all_values(self, tmp_path: Path) -> None:
        env = {
            'GEMINI_API_KEY': 'AIza-test',
            'GEMINI_FILESTORE_NAME': 'research',
            'GEMINI_MODEL': 'gemini-2.5-pro',
            'LOG_LEVEL': 'DEBUG',
        }

        config = ServerConfig.from_env(env, key_path=tmp_path / 'none')

        assert config.store_name == 'research'
        assert config.model == 'gemini-2.5-pro'
        assert config.log_level == 'debug'
        assert config.logging_level == logging.DEBUG

    def test_warn_alias(self, tmp_path: Path) -> None:
        config = ServerConfig.from_env({'GEMINI_API_KEY': 'k', 'LOG_LEVEL': 'warn'}, key_path=tmp_path / 'none')
        assert config.logging_level == logging.WARNING

    def test_empty_store_name_is_unset(self, tmp_path: Path) -> None:
        env = {'GEMINI_API_KEY': 'k', 'GEMINI_FILESTORE_NAME': ''}
        config = ServerConfig.from_env(env, key_path=tmp_path / 'none')
        assert config.store_name is None

    def test_key_from_secrets_file(self, tmp_path: Path) -> None:
        key_path = tmp_path / 'api_key'
        key_path.write_text('AIza-from-file\n')

        config = ServerConfig.from_env({}, key_path=key_path)

        assert config.api_key == 'AIza-from-file'

    def test_missing_key(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match='GEMINI_API_KEY'):
            ServerConfig.from_env({}, key_path=tmp_path / 'none')

    def test_invalid_log_level(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match='Invalid configuration'):
            ServerConfig.from_env({'GEMINI_API_KEY': 'k', 'LOG_LEVEL': 'chatty'}, key_path=tmp_path / 'none')

    def test_blank_key_file_rejected(self, tmp_path: Path) -> None:
        key_path = tmp_path / 'api_key'
        key_path.write_text('  \n')

        with pytest.raises(ValueError):
            ServerConfig.from_env({}, key_path=key_path)
