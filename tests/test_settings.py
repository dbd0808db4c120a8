"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from traktmanage.config import OOB_REDIRECT_URI, Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert str(settings.trakt_api_url).startswith("https://api.trakt.tv")
    assert settings.trakt_redirect_uri == OOB_REDIRECT_URI
    assert settings.trakt_page_size == 100
    assert settings.token_refresh_margin_seconds == 300


def test_db_file_name_builds_sqlite_url() -> None:
    settings = Settings(_env_file=None, DB_FILE_NAME="/tmp/history.db")

    assert settings.database_url == "sqlite+aiosqlite:////tmp/history.db"


def test_explicit_database_url_wins_over_db_file_name() -> None:
    settings = Settings(
        _env_file=None,
        DB_FILE_NAME="ignored.db",
        DATABASE_URL="sqlite+aiosqlite:///./custom.db",
    )

    assert settings.database_url == "sqlite+aiosqlite:///./custom.db"


def test_log_level_is_case_insensitive() -> None:
    settings = Settings(_env_file=None, LOG_LEVEL="debug")

    assert settings.log_level == "DEBUG"


def test_invalid_log_level_raises() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, LOG_LEVEL="chatty")


def test_page_size_is_bounded() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, TRAKT_PAGE_SIZE=0)
