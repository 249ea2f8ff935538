"""
FakeForge Engine Module

Synthetic value generation for type schemas.

This module provides:
- Faker-backed generator library with dotted path resolution
- Recursive, concurrent generation engine
- Batch resolution with identifier injection
"""

from .library import GeneratorLibrary
from .engine import GenerationEngine, ID_STRATEGY_UUID, ID_STRATEGY_INDEX

__all__ = [
    'GeneratorLibrary',
    'GenerationEngine',
    'ID_STRATEGY_UUID',
    'ID_STRATEGY_INDEX',
]
