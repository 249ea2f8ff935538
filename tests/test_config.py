"""
Tests for FakeForge Configuration

Tests:
- Loading from YAML and dictionaries
- Command-line overrides and reload
- Fault profile presets
- Error handling for invalid files
"""

from pathlib import Path

import pytest

from fakeforge.config import DEFAULT_PORT, FakeforgeConfig, load_config
from fakeforge.errors import ConfigError


CONFIG_YAML = """
sources:
  - models/
server:
  port: 4000
  path_prefix: /v1/
faker:
  locale: de_DE
  seed: 42
network:
  preset: slow
  presets:
    slow:
      delay: [800, 1500]
      error_rate: 0.1
webhook:
  enabled: true
  hooks:
    - name: notify
      trigger:
        event: server:started
      url: http://localhost:9000/hook
    - name: broken
      trigger:
        event: server:started
database:
  enabled: true
"""


@pytest.fixture
def config_file(tmp_path):
    """Write a sample configuration file."""
    path = tmp_path / "fakeforge.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestFakeforgeConfig:
    """Test configuration loading."""

    def test_from_yaml(self, config_file):
        """Test every section is parsed."""
        config = FakeforgeConfig.from_yaml(str(config_file))

        assert config.sources == ['models/']
        assert config.server.port == 4000
        assert config.server.path_prefix == 'v1'
        assert config.faker.locale == 'de_DE'
        assert config.faker.seed == 42
        assert config.database.enabled is True
        assert config.path == config_file.resolve()
        assert config.base_dir == config_file.resolve().parent

    def test_invalid_hook_is_skipped(self, config_file):
        """Test a hook missing its URL does not fail the whole file."""
        config = FakeforgeConfig.from_yaml(str(config_file))

        assert config.webhook.enabled is True
        assert [hook.name for hook in config.webhook.hooks] == ['notify']

    def test_defaults(self):
        """Test an empty mapping gives the default server."""
        config = FakeforgeConfig.from_dict({})

        assert config.sources == []
        assert config.server.port == DEFAULT_PORT
        assert config.server.path_prefix == 'api'
        assert config.server.hot_reload is True
        assert config.webhook.enabled is False
        assert config.database.enabled is False
        assert config.base_dir == Path.cwd()

    def test_single_source_string(self):
        """Test a bare string source is wrapped in a list."""
        assert FakeforgeConfig.from_dict({'sources': 'models'}).sources == ['models']

    def test_overrides_take_precedence(self, config_file):
        """Test nested overrides merge over the file."""
        config = FakeforgeConfig.from_yaml(
            str(config_file),
            overrides={'server': {'port': 9999}, 'sources': ['other/']}
        )

        assert config.server.port == 9999
        assert config.server.path_prefix == 'v1'
        assert config.sources == ['other/']

    def test_reload_keeps_overrides(self, config_file):
        """Test reload() re-reads the file but keeps overrides."""
        config = FakeforgeConfig.from_yaml(str(config_file), overrides={'server': {'port': 9999}})
        config_file.write_text(CONFIG_YAML.replace("locale: de_DE", "locale: fr_FR"))

        reloaded = config.reload()

        assert reloaded.faker.locale == 'fr_FR'
        assert reloaded.server.port == 9999

    def test_fault_profile_from_preset(self, config_file):
        """Test the network section becomes a FaultProfile."""
        profile = FakeforgeConfig.from_yaml(str(config_file)).fault_profile()

        assert profile.delay == (800.0, 1500.0)
        assert profile.error_rate == 0.1


class TestConfigErrors:
    """Test invalid configuration."""

    def test_missing_file(self, tmp_path):
        """Test an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError, match="Could not read"):
            FakeforgeConfig.from_yaml(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        """Test a YAML syntax error raises ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text("server: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            FakeforgeConfig.from_yaml(str(path))

    def test_non_mapping(self, tmp_path):
        """Test a top-level list is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            FakeforgeConfig.from_yaml(str(path))

    def test_invalid_port(self):
        """Test a non-numeric port is rejected."""
        with pytest.raises(ConfigError):
            FakeforgeConfig.from_dict({'server': {'port': 'eighty'}})


class TestLoadConfig:
    """Test load_config() file discovery."""

    def test_uses_default_file_in_cwd(self, config_file, monkeypatch):
        """Test fakeforge.yaml in the working directory is picked up."""
        monkeypatch.chdir(config_file.parent)

        assert load_config().server.port == 4000

    def test_without_file_uses_overrides(self, tmp_path, monkeypatch):
        """Test defaults plus overrides when no file exists."""
        monkeypatch.chdir(tmp_path)

        config = load_config(overrides={'sources': ['models.py']})

        assert config.sources == ['models.py']
        assert config.path is None
