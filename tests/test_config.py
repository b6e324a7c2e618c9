"""Tests for application configuration."""

from __future__ import annotations

import pytest

from davfinder.config import AppConfig, SearchConfig


class TestSearchConfig:
    """Test SearchConfig defaults."""

    def test_default_limits(self) -> None:
        """Should expose the documented defaults."""
        config = SearchConfig()

        assert config.index_ttl == 15 * 60
        assert config.content_ttl == 5 * 60
        assert config.result_ttl == 60
        assert config.max_index_size == 10_000
        assert config.max_content_size == 100 * 1024 * 1024
        assert config.max_file_size == 10 * 1024 * 1024
        assert config.max_depth == 10
        assert config.subdir_concurrency == 3
        assert config.content_batch_size == 10
        assert config.fallback_limit == 20
        assert config.quick_result_limit == 25

    def test_mode_budgets(self) -> None:
        """Quick, root and subdirectory budgets differ."""
        config = SearchConfig()

        assert (config.quick_depth, config.quick_timeout) == (2, 15.0)
        assert (config.root_depth, config.root_timeout) == (3, 20.0)
        assert config.subdir_timeout == 30.0
        assert config.listing_timeout == 10.0


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_default_config(self) -> None:
        """Should create config without credentials."""
        config = AppConfig()

        assert config.host is None
        assert config.username is None
        assert config.password is None
        assert isinstance(config.search, SearchConfig)

    def test_from_env(self) -> None:
        """Should read the NEXTCLOUD_* variables."""
        config = AppConfig.from_env(
            {
                "NEXTCLOUD_HOST": "https://cloud.example.com",
                "NEXTCLOUD_USERNAME": "alice",
                "NEXTCLOUD_PASSWORD": "secret",
            }
        )

        assert config.host == "https://cloud.example.com"
        assert config.username == "alice"
        assert config.password == "secret"
        assert config.missing_credentials() == []

    def test_from_env_blank_values(self) -> None:
        """Blank variables count as missing."""
        config = AppConfig.from_env({"NEXTCLOUD_HOST": "  ", "NEXTCLOUD_USERNAME": "bob"})

        assert config.host is None
        assert config.missing_credentials() == ["NEXTCLOUD_HOST", "NEXTCLOUD_PASSWORD"]

    def test_from_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Falls back to os.environ."""
        monkeypatch.setenv("NEXTCLOUD_HOST", "https://env.example.com")
        monkeypatch.delenv("NEXTCLOUD_USERNAME", raising=False)

        config = AppConfig.from_env()

        assert config.host == "https://env.example.com"
        assert config.username is None

    def test_require_credentials_raises(self) -> None:
        """Should name every missing variable."""
        config = AppConfig(host="https://cloud.example.com")

        with pytest.raises(ValueError, match="NEXTCLOUD_USERNAME, NEXTCLOUD_PASSWORD"):
            config.require_credentials()

    def test_require_credentials_ok(self) -> None:
        """Complete credentials pass."""
        AppConfig(host="h", username="u", password="p").require_credentials()
