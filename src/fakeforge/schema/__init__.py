"""
FakeForge Schema Module

Type schemas and their extraction from Python declarations.

This module provides:
- TypeSchema tree and entity registry
- AST-based extraction of declared shapes
- ``@faker`` directive parsing with a restricted argument parser
"""

from .types import (
    SchemaKind,
    TypeSchema,
    FieldSpec,
    GenerationDirective,
    EntityDescriptor,
    EntityRegistry,
)
from .directives import parse_directive, directives_from_docstring
from .expression import parse_expression
from .extractor import SchemaExtractor, extract_registry

__all__ = [
    'SchemaKind',
    'TypeSchema',
    'FieldSpec',
    'GenerationDirective',
    'EntityDescriptor',
    'EntityRegistry',
    'parse_directive',
    'directives_from_docstring',
    'parse_expression',
    'SchemaExtractor',
    'extract_registry',
]
