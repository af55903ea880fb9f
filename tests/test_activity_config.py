"""Tests for activity configuration."""

import json
import pytest
import tempfile
import shutil
from pathlib import Path

from habitsync.activity.config import ActivityConfig, ConfigManager
from habitsync.activity.exceptions import ConfigurationError, ValidationError


@pytest.fixture
def temp_dir():
    """Create temporary directory for config files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


class TestActivityConfig:
    """Test configuration values and validation."""

    def test_defaults(self):
        """Test default configuration."""
        config = ActivityConfig()
        assert config.storage_key == "activities:v1"
        assert config.list_limit == 2000
        assert config.authority_url is None
        assert config.ledger_url.startswith("sqlite:///")

    @pytest.mark.parametrize("kwargs", [
        {"max_retries": 0},
        {"list_limit": 0},
        {"authority_url": "ftp://example.com"},
        {"progress_reporter": "fancy"},
        {"log_level": "LOUD"},
        {"retry_backoff": 0.5},
    ])
    def test_invalid_values(self, kwargs):
        """Test that invalid settings are rejected."""
        with pytest.raises(ValidationError):
            ActivityConfig(**kwargs)

    def test_update_returns_new_config(self):
        """Test that update validates and leaves the original unchanged."""
        config = ActivityConfig()
        updated = config.update(max_retries=5)
        assert updated.max_retries == 5
        assert config.max_retries == 2

    def test_file_round_trip(self, temp_dir):
        """Test saving and loading a configuration file."""
        path = temp_dir / "config.json"
        ActivityConfig(list_limit=50, authority_url="https://api.example.com").save_to_file(path)

        loaded = ActivityConfig.from_file(path)
        assert loaded.list_limit == 50
        assert loaded.authority_url == "https://api.example.com"

    def test_unknown_keys_ignored(self, temp_dir):
        """Test that unknown keys in the file are dropped."""
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"list_limit": 10, "colour": "blue"}))
        assert ActivityConfig.from_file(path).list_limit == 10

    def test_missing_file(self, temp_dir):
        """Test that an explicit missing file is an error."""
        with pytest.raises(ConfigurationError):
            ActivityConfig.from_file(temp_dir / "nope.json")

    def test_invalid_json(self, temp_dir):
        """Test that a broken file is an error."""
        path = temp_dir / "config.json"
        path.write_text("{broken")
        with pytest.raises(ConfigurationError):
            ActivityConfig.from_file(path)

    def test_environment_overrides(self, monkeypatch):
        """Test typed values from HABITSYNC_* variables."""
        monkeypatch.setenv("HABITSYNC_MAX_RETRIES", "4")
        monkeypatch.setenv("HABITSYNC_AUTHORITY_URL", "http://localhost:5000")
        monkeypatch.setenv("HABITSYNC_RETRY_DELAY", "not-a-number")
        monkeypatch.setenv("HABITSYNC_LIST_LIMIT", "50")
        monkeypatch.setenv("HABITSYNC_RETRY_BACKOFF", "3.0")
        monkeypatch.setenv("HABITSYNC_RATE_LIMIT_DELAY", "0.25")
        monkeypatch.setenv("HABITSYNC_STORE_TIMEOUT", "5")

        config = ActivityConfig.from_environment()
        assert config.max_retries == 4
        assert config.authority_url == "http://localhost:5000"
        assert config.retry_delay == 0.5
        assert config.list_limit == 50
        assert config.retry_backoff == 3.0
        assert config.rate_limit_delay == 0.25
        assert config.store_timeout == 5.0

    def test_summary(self):
        """Test the human-readable summary."""
        assert "local ledger" in ActivityConfig().get_summary()


class TestConfigManager:
    """Test configuration priority."""

    def test_environment_over_file(self, temp_dir, monkeypatch):
        """Test that environment variables override file values."""
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"list_limit": 10, "max_retries": 3}))
        monkeypatch.setenv("HABITSYNC_MAX_RETRIES", "6")

        config = ConfigManager().get_config(path)
        assert config.list_limit == 10
        assert config.max_retries == 6

    def test_invalid_file_falls_back_to_defaults(self, temp_dir):
        """Test that a broken file yields defaults."""
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"max_retries": 99}))
        assert ConfigManager().get_config(path, use_environment=False).max_retries == 2

    def test_config_is_cached(self, temp_dir):
        """Test that the manager caches until reloaded."""
        manager = ConfigManager()
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"list_limit": 10}))
        assert manager.get_config(path).list_limit == 10

        path.write_text(json.dumps({"list_limit": 20}))
        assert manager.get_config(path).list_limit == 10
        assert manager.reload_config(path).list_limit == 20
