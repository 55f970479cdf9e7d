"""Tests for settings loading and validation"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import Settings


def test_defaults(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)
    settings = Settings()

    assert settings.data_dir == Path("./data")
    assert settings.concurrent_downloads == 3
    assert settings.rate_limit_ms == 1000
    assert settings.max_retries == 3
    assert settings.page_size == 20
    assert settings.early_stop_threshold == 2
    assert settings.api_base_url == "https://studio-api.prod.suno.com"


def test_environment_overrides(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("SUNO_TOKEN", "env-token")
    monkeypatch.setenv("DATA_DIR", str(temp_dir / "archive"))
    monkeypatch.setenv("CONCURRENT_DOWNLOADS", "5")

    settings = Settings()

    assert settings.suno_token == "env-token"
    assert settings.data_dir == temp_dir / "archive"
    assert settings.concurrent_downloads == 5


def test_env_file(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)
    (temp_dir / ".env").write_text("RATE_LIMIT_MS=250\nDEFAULT_FORMAT=WAV\n", encoding="utf-8")

    settings = Settings()

    assert settings.rate_limit_ms == 250
    assert settings.default_format == "wav"


def test_log_level_normalized():
    assert Settings(log_level="debug").log_level == "DEBUG"


@pytest.mark.parametrize("field,value", [
    ("log_level", "VERBOSE"),
    ("default_format", "flac"),
    ("concurrent_downloads", 0),
    ("max_retries", 0),
])
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_backoff_range_checked():
    with pytest.raises(ValidationError):
        Settings(initial_backoff_seconds=5, max_backoff_seconds=1)


def test_base_url_trailing_slash_stripped():
    assert Settings(api_base_url="https://example.test/").api_base_url == "https://example.test"
