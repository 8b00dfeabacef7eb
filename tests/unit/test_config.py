"""
Tests for settings loading and validation.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tubevault.config.settings import Environment, Settings


class TestSettings:

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Settings(_env_file=None)

        assert config.API_PORT == 5000
        assert config.API_PREFIX == "/api"
        assert config.MAX_CONCURRENT_ACQUISITIONS == 3
        assert config.DEFAULT_QUALITY == "720"
        assert config.SUBTITLE_LANGUAGES == ["en"]
        assert config.ENVIRONMENT == Environment.DEVELOPMENT
        assert not config.is_testing
        assert not config.is_production

    def test_environment_overrides(self):
        env = {
            "MAX_CONCURRENT_ACQUISITIONS": "5",
            "SUBTITLE_LANGUAGES": "en, de,fr",
            "ALLOWED_HOSTS": "http://localhost:3000,http://example.com",
            "DEFAULT_QUALITY": "1080p",
            "ENVIRONMENT": "production",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Settings(_env_file=None)

        assert config.MAX_CONCURRENT_ACQUISITIONS == 5
        assert config.SUBTITLE_LANGUAGES == ["en", "de", "fr"]
        assert config.ALLOWED_HOSTS == ["http://localhost:3000", "http://example.com"]
        assert config.DEFAULT_QUALITY == "1080"
        assert config.is_production

    def test_sync_database_url_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, DATABASE_URL="sqlite:///./data/tubevault.db")

    def test_unknown_default_quality_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, DEFAULT_QUALITY="8k")

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MAX_CONCURRENT_ACQUISITIONS=0)

    def test_storage_paths(self, tmp_path):
        config = Settings(_env_file=None, STORAGE_ROOT=tmp_path)

        assert config.media_dir == tmp_path / "videos"
        assert config.thumbnails_dir == tmp_path / "thumbnails"
        assert config.subtitles_dir == tmp_path / "subtitles"
        assert config.cookies_path == tmp_path / "cookies.txt"

    def test_explicit_cookies_file(self, tmp_path):
        config = Settings(_env_file=None, STORAGE_ROOT=tmp_path, COOKIES_FILE=tmp_path / "c.txt")
        assert config.cookies_path == Path(tmp_path / "c.txt")

    def test_fixture_settings_are_testing(self, test_settings):
        assert test_settings.is_testing
