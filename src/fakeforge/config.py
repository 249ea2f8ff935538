"""
FakeForge Configuration

YAML configuration file loaded into dataclasses.

Example ``fakeforge.yaml``:

    sources:
      - models/
    server:
      port: 5200
      path_prefix: api
    faker:
      locale: en_US
    network:
      preset: slow
      error_rate: 0.05
      presets:
        slow:
          delay: [800, 1500]
    webhook:
      enabled: true
      hooks:
        - name: notify
          trigger:
            event: server:started
          url: http://localhost:9000/hook
"""

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .database import DEFAULT_DATABASE_DIR
from .errors import ConfigError
from .events.webhook import Hook
from .network.faults import FaultProfile

logger = logging.getLogger("fakeforge.config")

DEFAULT_CONFIG_FILE = "fakeforge.yaml"
DEFAULT_PORT = 5200
DEFAULT_PREFIX = "api"


@dataclass
class ServerConfig:
    """Server binding and routing options."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    path_prefix: str = DEFAULT_PREFIX
    hot_reload: bool = True
    log_level: str = "info"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerConfig':
        try:
            port = int(data.get('port', DEFAULT_PORT))
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid server port: {data.get('port')!r}")

        prefix = str(data.get('path_prefix') or DEFAULT_PREFIX).strip('/')
        return cls(
            host=data.get('host', "127.0.0.1"),
            port=port,
            path_prefix=prefix or DEFAULT_PREFIX,
            hot_reload=bool(data.get('hot_reload', True)),
            log_level=str(data.get('log_level', 'info')).lower(),
        )


@dataclass
class FakerConfig:
    """Generator library options."""

    locale: Optional[str] = None
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FakerConfig':
        seed = data.get('seed')
        return cls(
            locale=data.get('locale'),
            seed=int(seed) if seed is not None else None,
        )


@dataclass
class WebhookConfig:
    """Outbound webhook options."""

    enabled: bool = False
    hooks: List[Hook] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WebhookConfig':
        hooks = []
        for entry in data.get('hooks') or []:
            try:
                hooks.append(Hook.from_dict(entry))
            except ConfigError as e:
                logger.error(f"Skipping webhook: {e}")
        return cls(enabled=bool(data.get('enabled', False)), hooks=hooks)


@dataclass
class DatabaseConfig:
    """JSON persistence options."""

    enabled: bool = False
    directory: str = DEFAULT_DATABASE_DIR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DatabaseConfig':
        return cls(
            enabled=bool(data.get('enabled', False)),
            directory=str(data.get('directory') or DEFAULT_DATABASE_DIR),
        )


@dataclass
class GenerationConfig:
    """Generation engine options."""

    max_depth: int = 10

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GenerationConfig':
        return cls(max_depth=int(data.get('max_depth', 10)))


@dataclass
class FakeforgeConfig:
    """Complete server configuration."""

    sources: List[str] = field(default_factory=list)
    server: ServerConfig = field(default_factory=ServerConfig)
    faker: FakerConfig = field(default_factory=FakerConfig)
    network: Dict[str, Any] = field(default_factory=dict)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    # Where the configuration came from, used for reloads
    path: Optional[Path] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, yaml_path: str, overrides: Optional[Dict[str, Any]] = None) -> 'FakeforgeConfig':
        """
        Load configuration from a YAML file.

        Args:
            yaml_path: Path to the YAML file
            overrides: Nested values applied on top of the file contents

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        path = Path(yaml_path)
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Could not read config file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return cls.from_dict(data, path=path.resolve(), overrides=overrides)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None
    ) -> 'FakeforgeConfig':
        """Create configuration from dictionary."""
        overrides = overrides or {}
        data = _merge(data, overrides)

        sources = data.get('sources') or []
        if isinstance(sources, str):
            sources = [sources]

        return cls(
            sources=[str(source) for source in sources],
            server=ServerConfig.from_dict(data.get('server') or {}),
            faker=FakerConfig.from_dict(data.get('faker') or {}),
            network=dict(data.get('network') or {}),
            webhook=WebhookConfig.from_dict(data.get('webhook') or {}),
            database=DatabaseConfig.from_dict(data.get('database') or {}),
            generation=GenerationConfig.from_dict(data.get('generation') or {}),
            path=path,
            overrides=copy.deepcopy(overrides),
        )

    @property
    def base_dir(self) -> Path:
        """Directory relative source paths are resolved against."""
        return self.path.parent if self.path else Path.cwd()

    def fault_profile(self) -> FaultProfile:
        return FaultProfile.from_options(self.network)

    def reload(self) -> 'FakeforgeConfig':
        """Re-read the configuration file, keeping command-line overrides."""
        if self.path is None:
            return self
        return FakeforgeConfig.from_yaml(str(self.path), overrides=self.overrides)


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> FakeforgeConfig:
    """
    Load configuration for a server run.

    Without an explicit path, ``fakeforge.yaml`` in the working directory is
    used when present; otherwise defaults plus overrides apply.

    Args:
        path: Optional config file path
        overrides: Nested values taking precedence over the file

    Returns:
        FakeforgeConfig
    """
    if path:
        return FakeforgeConfig.from_yaml(path, overrides=overrides)

    default = Path.cwd() / DEFAULT_CONFIG_FILE
    if default.is_file():
        logger.info(f"Using config file {default}")
        return FakeforgeConfig.from_yaml(str(default), overrides=overrides)

    return FakeforgeConfig.from_dict({}, overrides=overrides)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
