"""
FakeForge - Mock Server for Declared Types

Serves synthetic data shaped like Python type declarations, with simulated
network faults, lifecycle webhooks and hot reload.
"""

__version__ = "1.0.0"

from .config import FakeforgeConfig, load_config
from .engine import GenerationEngine, GeneratorLibrary
from .errors import (
    ConfigError,
    ExpressionError,
    FakeforgeError,
    GeneratorCallError,
    GeneratorPathError,
    SchemaError,
)
from .events import EventBus, Hook, WebhookDispatcher
from .lifecycle import Lifecycle
from .markers import Faker, Intersection
from .network import FaultInjector, FaultProfile
from .reload import LiveUpdateChannel, ReloadCoordinator
from .schema import EntityRegistry, SchemaExtractor, TypeSchema, extract_registry

__all__ = [
    '__version__',
    'FakeforgeConfig',
    'load_config',
    'GenerationEngine',
    'GeneratorLibrary',
    'FakeforgeError',
    'ConfigError',
    'SchemaError',
    'GeneratorCallError',
    'GeneratorPathError',
    'ExpressionError',
    'EventBus',
    'Hook',
    'WebhookDispatcher',
    'Lifecycle',
    'Faker',
    'Intersection',
    'FaultInjector',
    'FaultProfile',
    'LiveUpdateChannel',
    'ReloadCoordinator',
    'EntityRegistry',
    'SchemaExtractor',
    'TypeSchema',
    'extract_registry',
]
