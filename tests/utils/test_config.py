"""Tests for configuration loading."""

import pytest

from kvlog.utils.config import Config, ConfigError


class TestConfig:
    """Test Config."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Remove kvlog environment overrides."""
        for name in ("KVLOG_DATA_FILE", "KVLOG_FSYNC", "KVLOG_LOG_LEVEL", "KVLOG_LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        """Test built-in defaults."""
        config = Config()

        assert config.get("store.path") == "./kvlog.db"
        assert config.get("store.fsync_on_flush") is False
        assert config.get("logging.level") == "INFO"
        assert config.get("logging.format") == "json"

    def test_missing_key_default(self):
        """Test the default for unknown keys."""
        config = Config()

        assert config.get("store.missing") is None
        assert config.get("nope.nope", 7) == 7

    def test_yaml_file_merges(self, tmp_path):
        """Test that a YAML file overrides only the keys it sets."""
        config_file = tmp_path / "kvlog.yaml"
        config_file.write_text("store:\n  path: /data/kv.db\nlogging:\n  level: DEBUG\n")

        config = Config(config_file)

        assert config.get("store.path") == "/data/kv.db"
        assert config.get("store.fsync_on_flush") is False
        assert config.get("logging.level") == "DEBUG"
        assert config.get("logging.format") == "json"

    def test_empty_yaml_file(self, tmp_path):
        """Test that an empty file keeps the defaults."""
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert Config(config_file).get("store.path") == "./kvlog.db"

    def test_non_mapping_yaml_file(self, tmp_path):
        """Test that a file without a mapping raises ConfigError."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            Config(config_file)

    def test_env_overrides(self, monkeypatch, tmp_path):
        """Test that environment variables win over the file."""
        config_file = tmp_path / "kvlog.yaml"
        config_file.write_text("store:\n  path: /from/file.db\n")
        monkeypatch.setenv("KVLOG_DATA_FILE", "/from/env.db")
        monkeypatch.setenv("KVLOG_FSYNC", "true")
        monkeypatch.setenv("KVLOG_LOG_FORMAT", "console")

        config = Config(config_file)

        assert config.get("store.path") == "/from/env.db"
        assert config.get("store.fsync_on_flush") is True
        assert config.get("logging.format") == "console"

    def test_set_creates_nested_keys(self):
        """Test dot-notation set."""
        config = Config()
        config.set("extra.nested.value", 3)

        assert config.get("extra.nested.value") == 3
        assert config.to_dict()["extra"] == {"nested": {"value": 3}}

    def test_to_dict_is_a_copy(self):
        """Test that modifying the exported dict does not change the config."""
        config = Config()
        config.to_dict()["store"]["path"] = "changed"

        assert config.get("store.path") == "./kvlog.db"

    def test_defaults_not_shared(self):
        """Test that instances do not share default dictionaries."""
        first = Config()
        first.set("store.path", "/tmp/first.db")

        assert Config().get("store.path") == "./kvlog.db"

    def test_invalid_yaml_file(self, tmp_path):
        """Test that a YAML syntax error raises ConfigError."""
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("store: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            Config(config_file)

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises OSError."""
        with pytest.raises(OSError):
            Config(tmp_path / "missing.yaml")
