"""Tests for the config loader module."""

import pytest
import yaml

from grokproxy.config_loader import (
    DEFAULT_PORT,
    config_section,
    expand_placeholders,
    load_config,
    resolve_server_address,
)
from grokproxy.core.exceptions import ConfigurationError


def _write_config(tmp_path, data, name="config.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self, tmp_path):
        """Test loading a simple configuration."""
        path = _write_config(tmp_path, {"upstream": {"default_model": "grok-3"}})
        assert load_config(str(path))["upstream"]["default_model"] == "grok-3"

    def test_raises_error_for_missing_config(self, tmp_path):
        """Test that error is raised for missing config file."""
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config(str(tmp_path / "nope.yaml"))

    def test_rejects_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("upstream: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(path))

    def test_rejects_non_mapping_root(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(str(path))

    def test_empty_file_is_empty_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == {}

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, {"marker": "from-env"})
        monkeypatch.setenv("GROKPROXY_CONFIG", str(path))
        assert load_config()["marker"] == "from-env"

    def test_substitutes_environment_variables(self, tmp_path, monkeypatch):
        """Test that environment variables are substituted."""
        monkeypatch.setenv("GROK_TEST_URL", "http://grok.local")
        path = _write_config(tmp_path, {"upstream": {"url": "${GROK_TEST_URL}/add"}})
        assert load_config(str(path))["upstream"]["url"] == "http://grok.local/add"

    def test_env_file_values_take_precedence(self, tmp_path, monkeypatch):
        """Values from the sibling .env win over the process environment."""
        monkeypatch.setenv("GROK_TEST_TOKEN", "from-process")
        (tmp_path / ".env").write_text("GROK_TEST_TOKEN=from-dotenv\n", encoding="utf-8")
        path = _write_config(tmp_path, {"token": "$GROK_TEST_TOKEN"})
        assert load_config(str(path))["token"] == "from-dotenv"

    def test_substitution_can_be_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GROK_TEST_TOKEN", "value")
        path = _write_config(tmp_path, {"token": "${GROK_TEST_TOKEN}"})
        assert load_config(str(path), substitute_env=False)["token"] == "${GROK_TEST_TOKEN}"

    def test_default_config_ships_models(self):
        config = load_config("configs/config_default.yaml", substitute_env=False)
        assert "upstream" in config
        assert "models" in config


class TestExpandPlaceholders:
    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("GROK_A", "1")
        result = expand_placeholders({"list": ["$GROK_A", {"x": "${GROK_A}"}], "n": 5})
        assert result == {"list": ["1", {"x": "1"}], "n": 5}

    def test_unset_variable_keeps_placeholder(self, monkeypatch):
        monkeypatch.delenv("GROK_UNSET_VAR", raising=False)
        assert expand_placeholders("${GROK_UNSET_VAR}") == "${GROK_UNSET_VAR}"


class TestConfigSection:
    def test_nested_lookup(self):
        config = {"proxy_settings": {"logging": {"level": "DEBUG"}}}
        assert config_section(config, "proxy_settings", "logging") == {"level": "DEBUG"}

    def test_missing_or_null_sections_are_empty(self):
        config = {"proxy_settings": None, "upstream": "not-a-mapping"}
        assert config_section(config, "proxy_settings", "logging") == {}
        assert config_section(config, "upstream") == {}
        assert config_section(None, "anything") == {}


class TestResolveServerAddress:
    def test_from_config(self, monkeypatch):
        monkeypatch.delenv("GROKPROXY_HOST", raising=False)
        monkeypatch.delenv("GROKPROXY_PORT", raising=False)
        config = {"proxy_settings": {"server": {"host": "0.0.0.0", "port": 9000}}}
        assert resolve_server_address(config) == ("0.0.0.0", 9000)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GROKPROXY_HOST", "10.1.1.1")
        monkeypatch.setenv("GROKPROXY_PORT", "7777")
        config = {"proxy_settings": {"server": {"host": "0.0.0.0", "port": 9000}}}
        assert resolve_server_address(config) == ("10.1.1.1", 7777)

    def test_invalid_port_falls_back(self, monkeypatch):
        monkeypatch.delenv("GROKPROXY_HOST", raising=False)
        monkeypatch.setenv("GROKPROXY_PORT", "not-a-port")
        assert resolve_server_address({}) == ("127.0.0.1", DEFAULT_PORT)
