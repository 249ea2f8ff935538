"""
FakeForge Schema Types

Language-agnostic description of declared shapes.

A TypeSchema is an immutable tree. Object nodes keep their fields in
declaration order, which is the order generated objects are emitted in.
Named references (``ref`` nodes) point at another entity by name and are
resolved through the EntityRegistry at generation time, so cyclic type
graphs can be described without building an infinite tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union


class SchemaKind:
    """Closed set of TypeSchema kinds."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    BIGINT = "bigint"
    LITERAL = "literal"
    UNDEFINED = "undefined"
    ARRAY = "array"
    OBJECT = "object"
    UNION = "union"
    INTERSECTION = "intersection"
    REF = "ref"

    PRIMITIVES = frozenset({STRING, NUMBER, BOOLEAN, BIGINT})
    ALL = frozenset({
        STRING, NUMBER, BOOLEAN, BIGINT, LITERAL, UNDEFINED,
        ARRAY, OBJECT, UNION, INTERSECTION, REF,
    })


@dataclass(frozen=True)
class GenerationDirective:
    """
    Per-field instruction naming the generator function to use.

    Attributes:
        function_path: Dotted path into the generator namespace (e.g. "name")
        args: Pre-evaluated argument value, or None to call without arguments
    """

    function_path: str
    args: Any = None

    def __str__(self) -> str:
        if self.args is None:
            return self.function_path
        return f"{self.function_path}({self.args!r})"


@dataclass(frozen=True)
class FieldSpec:
    """
    A single object field: its schema plus optional directives.

    Several directives may be declared for one field. The first applies to
    the field itself; when the field is a union, directive ``i`` applies to
    member ``i``.
    """

    schema: "TypeSchema"
    directives: Tuple[GenerationDirective, ...] = ()

    @property
    def directive(self) -> Optional[GenerationDirective]:
        return self.directives[0] if self.directives else None


@dataclass(frozen=True)
class TypeSchema:
    """
    Recursive description of a value's shape.

    Attributes:
        kind: One of the SchemaKind values
        children: Array element, or union/intersection members
        fields: Ordered field mapping (object kind only)
        value: The literal value (literal kind only)
        name: Target entity name (ref kind only)
        format: Optional hint for string defaults (e.g. "email", "uuid")
    """

    kind: str
    children: Tuple["TypeSchema", ...] = ()
    fields: Mapping[str, FieldSpec] = field(default_factory=dict)
    value: Any = None
    name: Optional[str] = None
    format: Optional[str] = None

    def __post_init__(self):
        if self.kind not in SchemaKind.ALL:
            raise ValueError(f"Unknown schema kind: {self.kind}")
        object.__setattr__(self, "children", tuple(self.children))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    # Constructors

    @classmethod
    def string(cls, format: Optional[str] = None) -> "TypeSchema":
        return cls(SchemaKind.STRING, format=format)

    @classmethod
    def number(cls) -> "TypeSchema":
        return cls(SchemaKind.NUMBER)

    @classmethod
    def boolean(cls) -> "TypeSchema":
        return cls(SchemaKind.BOOLEAN)

    @classmethod
    def bigint(cls) -> "TypeSchema":
        return cls(SchemaKind.BIGINT)

    @classmethod
    def literal(cls, value: Any) -> "TypeSchema":
        return cls(SchemaKind.LITERAL, value=value)

    @classmethod
    def undefined(cls) -> "TypeSchema":
        return cls(SchemaKind.UNDEFINED)

    @classmethod
    def array(cls, element: "TypeSchema") -> "TypeSchema":
        return cls(SchemaKind.ARRAY, children=(element,))

    @classmethod
    def union(cls, *members: "TypeSchema") -> "TypeSchema":
        return cls(SchemaKind.UNION, children=members)

    @classmethod
    def intersection(cls, *members: "TypeSchema") -> "TypeSchema":
        return cls(SchemaKind.INTERSECTION, children=members)

    @classmethod
    def ref(cls, name: str) -> "TypeSchema":
        return cls(SchemaKind.REF, name=name)

    @classmethod
    def object(
        cls,
        fields: Optional[Mapping[str, Union["TypeSchema", FieldSpec]]] = None
    ) -> "TypeSchema":
        """
        Build an object schema.

        Args:
            fields: Mapping of field name to TypeSchema or FieldSpec

        Returns:
            Object TypeSchema with fields in the given order
        """
        specs: Dict[str, FieldSpec] = {}
        for field_name, spec in (fields or {}).items():
            specs[field_name] = spec if isinstance(spec, FieldSpec) else FieldSpec(spec)
        return cls(SchemaKind.OBJECT, fields=specs)

    # Accessors

    @property
    def element(self) -> "TypeSchema":
        """Element schema of an array node."""
        if self.kind != SchemaKind.ARRAY:
            raise AttributeError(f"{self.kind} schema has no element")
        return self.children[0]

    @property
    def is_primitive(self) -> bool:
        return self.kind in SchemaKind.PRIMITIVES

    def describe(self) -> str:
        """Compact, type-like rendering used in logs and the admin API."""
        if self.kind == SchemaKind.LITERAL:
            return repr(self.value)
        if self.kind == SchemaKind.ARRAY:
            return f"{self.element.describe()}[]"
        if self.kind == SchemaKind.UNION:
            return " | ".join(child.describe() for child in self.children)
        if self.kind == SchemaKind.INTERSECTION:
            return " & ".join(child.describe() for child in self.children)
        if self.kind == SchemaKind.REF:
            return str(self.name)
        if self.kind == SchemaKind.OBJECT:
            inner = ", ".join(f"{k}: {v.schema.describe()}" for k, v in self.fields.items())
            return "{" + inner + "}"
        return self.kind


@dataclass
class EntityDescriptor:
    """
    A named, schema-backed data source served by the mock server.

    Attributes:
        name: Lower-cased unique entity name (used in URLs)
        schema: Root TypeSchema of the entity
        source_file_path: File the declaration was extracted from
        display_name: Name as declared in source
        id_strategy: Optional identifier strategy ("uuid" or "index")
        table: Optional persisted table handle
    """

    name: str
    schema: TypeSchema
    source_file_path: str
    display_name: str = ""
    id_strategy: Optional[str] = None
    table: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'name': self.name,
            'declared_as': self.display_name or self.name,
            'source': self.source_file_path,
            'kind': self.schema.kind,
            'shape': self.schema.describe(),
            'id_strategy': self.id_strategy,
            'persisted': self.table is not None,
        }


class EntityRegistry:
    """
    Read-only set of entities owned by one serving generation.

    A new registry is built on every reload; an existing one is never
    mutated after construction.
    """

    def __init__(self, entities: Optional[List[EntityDescriptor]] = None):
        self._entities: Dict[str, EntityDescriptor] = {}
        for entity in entities or []:
            self._entities.setdefault(entity.name, entity)

    def get(self, name: str) -> Optional[EntityDescriptor]:
        return self._entities.get(name.lower())

    def resolve(self, name: str) -> Optional[TypeSchema]:
        """Resolve a named reference to its schema."""
        entity = self.get(name)
        return entity.schema if entity else None

    def names(self) -> List[str]:
        return list(self._entities)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._entities

    def __iter__(self) -> Iterator[EntityDescriptor]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)
