"""
FakeForge Schema Extractor

Extracts TypeSchemas from Python type declarations.

Source files are parsed with ``ast`` and never imported, so declaration
modules may reference anything without side effects. Recognised
declarations:

- Classes with annotated attributes (plain classes, TypedDict, dataclasses,
  pydantic-style models). Fields of declared base classes come first.
- Enum subclasses, served as a union of their member values.
- Module-level type aliases (``X = Literal[...]``, ``X: TypeAlias = ...``,
  ``type X = ...``).

Generation directives are read from attribute docstrings (``@faker`` tags)
and from ``Annotated[..., Faker(...)]`` markers.
"""

import ast
import glob
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..errors import SchemaError
from .directives import directives_from_docstring, id_strategy_from_docstring
from .types import (
    EntityDescriptor,
    EntityRegistry,
    FieldSpec,
    GenerationDirective,
    SchemaKind,
    TypeSchema,
)

logger = logging.getLogger("fakeforge.schema")

_SCALARS = {
    'str': SchemaKind.STRING,
    'bytes': SchemaKind.STRING,
    'int': SchemaKind.NUMBER,
    'float': SchemaKind.NUMBER,
    'Decimal': SchemaKind.NUMBER,
    'bool': SchemaKind.BOOLEAN,
}

_STRING_FORMATS = {
    'datetime': 'datetime',
    'date': 'date',
    'time': 'time',
    'UUID': 'uuid',
    'EmailStr': 'email',
    'HttpUrl': 'url',
    'AnyUrl': 'url',
}

_ARRAY_FORMS = {
    'list', 'List', 'Sequence', 'MutableSequence', 'set', 'Set',
    'frozenset', 'FrozenSet', 'Iterable', 'Collection', 'tuple', 'Tuple',
}
_MAPPING_FORMS = {'dict', 'Dict', 'Mapping', 'MutableMapping'}
_PASSTHROUGH_FORMS = {'Annotated', 'Required', 'NotRequired', 'ReadOnly', 'Final'}
_ENUM_BASES = {'Enum', 'IntEnum', 'StrEnum', 'Flag', 'IntFlag'}
_OPAQUE_NAMES = {'Any', 'object', 'Callable', 'Type', 'type'}
_TYPE_FORMS = (
    _ARRAY_FORMS | _MAPPING_FORMS | _PASSTHROUGH_FORMS
    | {'Literal', 'Union', 'Optional', 'Intersection'}
)


def _name_of(node: ast.AST) -> Optional[str]:
    """Return the trailing identifier of a Name or Attribute node."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _subscript_args(node: ast.Subscript) -> List[ast.AST]:
    inner = node.slice
    # Python < 3.9 wraps the slice in ast.Index
    if hasattr(ast, 'Index') and isinstance(inner, getattr(ast, 'Index')):
        inner = inner.value  # pragma: no cover
    if isinstance(inner, ast.Tuple):
        return list(inner.elts)
    return [inner]


@dataclass
class _Declaration:
    """A named declaration found in a source file."""

    name: str
    kind: str  # "class", "enum" or "alias"
    node: ast.AST
    source: str


class SchemaExtractor:
    """
    Builds EntityDescriptors from Python declaration files.

    Example:
        files = SchemaExtractor.resolve_sources(['types/'])
        registry = SchemaExtractor(files).registry()
        user = registry.get('user')
    """

    def __init__(self, files: Iterable[str]):
        """
        Initialize extractor.

        Args:
            files: Python source files to read declarations from
        """
        self.files = [str(f) for f in files]
        self._declarations: Dict[str, _Declaration] = {}
        self._class_fields: Dict[str, Dict[str, FieldSpec]] = {}
        self._resolving: Set[str] = set()

    @staticmethod
    def resolve_sources(sources: Iterable[str], base_dir: Optional[str] = None) -> List[str]:
        """
        Expand source entries into a de-duplicated list of Python files.

        Entries may be files, directories (searched recursively) or glob
        patterns. Relative entries are resolved against ``base_dir``.

        Args:
            sources: Source entries from configuration
            base_dir: Directory relative entries are resolved against

        Returns:
            Absolute file paths in discovery order
        """
        base = Path(base_dir) if base_dir else Path.cwd()
        found: Dict[str, None] = {}

        for source in sources:
            candidate = Path(source)
            if not candidate.is_absolute():
                candidate = base / candidate

            if glob.has_magic(str(candidate)):
                matches = sorted(Path(p) for p in glob.glob(str(candidate), recursive=True))
            elif candidate.is_dir():
                matches = sorted(candidate.rglob('*.py'))
            elif candidate.is_file():
                matches = [candidate]
            elif candidate.with_suffix('.py').is_file():
                matches = [candidate.with_suffix('.py')]
            else:
                logger.warning(f"Invalid source: {source}")
                matches = []

            for match in matches:
                if '__pycache__' in match.parts or match.suffix != '.py':
                    continue
                found.setdefault(str(match.resolve()), None)

        return list(found)

    def extract(self) -> List[EntityDescriptor]:
        """
        Parse every file and build one EntityDescriptor per declaration.

        Returns:
            Entity descriptors in declaration order

        Raises:
            SchemaError: If a source file cannot be read or parsed
        """
        self._declarations.clear()
        self._class_fields.clear()

        seen: Set[str] = set()
        for path in self.files:
            for declaration in self._collect(path):
                key = declaration.name.lower()
                if key in seen:
                    logger.warning(
                        f"Duplicate declaration '{declaration.name}' in {path}; keeping the first one"
                    )
                    continue
                seen.add(key)
                self._declarations[declaration.name] = declaration

        # Field-less classes only count when they inherit from a declared class
        for name in [n for n, d in self._declarations.items() if d.kind == 'class']:
            node = self._declarations[name].node
            if not self._has_fields(node) and not any(
                self._base_declaration(base) is not None for base in node.bases
            ):
                del self._declarations[name]

        entities = []
        for declaration in self._declarations.values():
            schema = self._declaration_schema(declaration)
            id_strategy = None
            if declaration.kind == 'class':
                id_strategy = id_strategy_from_docstring(ast.get_docstring(declaration.node))
            entities.append(EntityDescriptor(
                name=declaration.name.lower(),
                schema=schema,
                source_file_path=declaration.source,
                display_name=declaration.name,
                id_strategy=id_strategy,
            ))
            logger.debug(f"Extracted {declaration.name}: {schema.describe()}")

        return entities

    def registry(self, table_factory: Optional[Callable[[str], Any]] = None) -> EntityRegistry:
        """
        Extract entities and wrap them in a new EntityRegistry.

        Args:
            table_factory: Optional callable returning a table handle per entity name

        Returns:
            Freshly built EntityRegistry
        """
        entities = self.extract()
        if table_factory:
            for entity in entities:
                entity.table = table_factory(entity.name)
        return EntityRegistry(entities)

    # Declaration discovery

    def _collect(self, path: str) -> List[_Declaration]:
        try:
            source = Path(path).read_text(encoding='utf-8')
            tree = ast.parse(source, filename=path)
        except (OSError, SyntaxError, ValueError) as e:
            raise SchemaError(f"Cannot read declarations from {path}: {e}") from e

        logger.debug(f"Loaded file {path}")
        declarations = []
        type_alias_node = getattr(ast, 'TypeAlias', None)

        for node in tree.body:
            if isinstance(node, ast.ClassDef):
                if node.name.startswith('_'):
                    continue
                if self._is_enum(node):
                    declarations.append(_Declaration(node.name, 'enum', node, path))
                elif self._has_fields(node) or node.bases:
                    # Pruned in extract() unless a base turns out to be declared
                    declarations.append(_Declaration(node.name, 'class', node, path))
            elif type_alias_node is not None and isinstance(node, type_alias_node):
                declarations.append(_Declaration(node.name.id, 'alias', node.value, path))
            elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                if node.value is not None and _name_of(node.annotation) == 'TypeAlias':
                    declarations.append(_Declaration(node.target.id, 'alias', node.value, path))
            elif isinstance(node, ast.Assign) and len(node.targets) == 1:
                target = node.targets[0]
                if isinstance(target, ast.Name) and self._looks_like_type(node.value):
                    declarations.append(_Declaration(target.id, 'alias', node.value, path))

        return declarations

    @staticmethod
    def _is_enum(node: ast.ClassDef) -> bool:
        return any(_name_of(base) in _ENUM_BASES for base in node.bases)

    @staticmethod
    def _has_fields(node: ast.ClassDef) -> bool:
        return any(
            isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name)
            for stmt in node.body
        )

    def _looks_like_type(self, node: ast.AST) -> bool:
        if isinstance(node, ast.Subscript):
            return _name_of(node.value) in _TYPE_FORMS
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._union_operand(node.left) and self._union_operand(node.right)
        return False

    def _union_operand(self, node: ast.AST) -> bool:
        if isinstance(node, ast.Constant):
            return node.value is None
        if isinstance(node, (ast.Subscript, ast.BinOp)):
            return self._looks_like_type(node)
        name = _name_of(node)
        if name is None:
            return False
        if name in _SCALARS or name in _STRING_FORMATS or name in _OPAQUE_NAMES:
            return True
        # CamelCase names are classes; ALL_CAPS names are constants
        return name[0].isupper() and not name.isupper()

    def _base_declaration(self, base: ast.AST) -> Optional[_Declaration]:
        base_name = _name_of(base.value if isinstance(base, ast.Subscript) else base)
        declaration = self._declarations.get(base_name or '')
        if declaration is not None and declaration.kind == 'class':
            return declaration
        return None

    # Schema construction

    def _declaration_schema(self, declaration: _Declaration) -> TypeSchema:
        if declaration.kind == 'enum':
            return self._enum_schema(declaration.node)
        if declaration.kind == 'alias':
            return self.convert(declaration.node)
        return TypeSchema.object(self._fields_of(declaration))

    def _enum_schema(self, node: ast.ClassDef) -> TypeSchema:
        members = []
        for index, stmt in enumerate(s for s in node.body if isinstance(s, ast.Assign)):
            value_node = stmt.value
            if isinstance(value_node, ast.Call) and _name_of(value_node.func) == 'auto':
                members.append(TypeSchema.literal(index + 1))
                continue
            try:
                members.append(TypeSchema.literal(ast.literal_eval(value_node)))
            except ValueError:
                logger.warning(f"Skipping non-literal member of enum {node.name}")
        if not members:
            return TypeSchema.undefined()
        if len(members) == 1:
            return members[0]
        return TypeSchema.union(*members)

    def _fields_of(self, declaration: _Declaration) -> Dict[str, FieldSpec]:
        name = declaration.name
        if name in self._class_fields:
            return self._class_fields[name]
        if name in self._resolving:
            logger.warning(f"Circular inheritance through {name}; ignoring inherited fields")
            return {}

        self._resolving.add(name)
        try:
            fields: Dict[str, FieldSpec] = {}
            node = declaration.node
            for base in node.bases:
                parent = self._base_declaration(base)
                if parent is not None:
                    fields.update(self._fields_of(parent))

            body = node.body
            for index, stmt in enumerate(body):
                if not (isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name)):
                    continue
                if self._is_class_var(stmt.annotation):
                    continue

                directives = self._annotated_directives(stmt.annotation)
                following = body[index + 1] if index + 1 < len(body) else None
                if (
                    isinstance(following, ast.Expr)
                    and isinstance(following.value, ast.Constant)
                    and isinstance(following.value.value, str)
                ):
                    directives.extend(directives_from_docstring(following.value.value))

                fields[stmt.target.id] = FieldSpec(self.convert(stmt.annotation), tuple(directives))
        finally:
            self._resolving.discard(name)

        self._class_fields[name] = fields
        return fields

    @staticmethod
    def _is_class_var(annotation: ast.AST) -> bool:
        target = annotation.value if isinstance(annotation, ast.Subscript) else annotation
        return _name_of(target) == 'ClassVar'

    def _annotated_directives(self, annotation: ast.AST) -> List[GenerationDirective]:
        """Read ``Faker(...)`` markers from an ``Annotated[...]`` annotation."""
        if not (isinstance(annotation, ast.Subscript) and _name_of(annotation.value) == 'Annotated'):
            return []

        directives = []
        for meta in _subscript_args(annotation)[1:]:
            if not (isinstance(meta, ast.Call) and _name_of(meta.func) == 'Faker'):
                continue
            if not meta.args or not isinstance(meta.args[0], ast.Constant):
                logger.warning("Faker marker without a function path; ignoring")
                continue
            path = str(meta.args[0].value)
            try:
                positional = [ast.literal_eval(arg) for arg in meta.args[1:]]
                keywords = {kw.arg: ast.literal_eval(kw.value) for kw in meta.keywords if kw.arg}
            except ValueError:
                logger.warning(f"Invalid arguments for '{path}'; using defaults")
                positional, keywords = [], {}

            if keywords:
                args: Any = keywords
            elif len(positional) == 1:
                args = positional[0]
            elif positional:
                args = positional
            else:
                args = None
            directives.append(GenerationDirective(function_path=path, args=args))
        return directives

    def convert(self, node: ast.AST) -> TypeSchema:
        """
        Convert an annotation expression to a TypeSchema.

        Args:
            node: Annotation AST node

        Returns:
            TypeSchema describing the annotation
        """
        if isinstance(node, ast.Constant):
            if node.value is None:
                return TypeSchema.undefined()
            if isinstance(node.value, str):
                try:
                    return self.convert(ast.parse(node.value, mode='eval').body)
                except SyntaxError:
                    logger.warning(f"Unparseable forward reference: {node.value!r}")
            return TypeSchema.undefined()

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return TypeSchema.union(*self._flatten_union(node))

        if isinstance(node, ast.Subscript):
            return self._convert_subscript(node)

        name = _name_of(node)
        if name is None:
            return TypeSchema.undefined()
        return self._convert_name(name)

    def _flatten_union(self, node: ast.AST) -> List[TypeSchema]:
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._flatten_union(node.left) + self._flatten_union(node.right)
        return [self.convert(node)]

    def _convert_name(self, name: str) -> TypeSchema:
        if name in self._declarations:
            return TypeSchema.ref(name)
        if name in _SCALARS:
            return TypeSchema(_SCALARS[name])
        if name in _STRING_FORMATS:
            return TypeSchema.string(format=_STRING_FORMATS[name])
        if name in _ARRAY_FORMS:
            return TypeSchema.array(TypeSchema.undefined())
        if name in _MAPPING_FORMS:
            return TypeSchema.object()
        if name not in _OPAQUE_NAMES:
            logger.debug(f"Unknown type '{name}'; generating null")
        return TypeSchema.undefined()

    def _convert_subscript(self, node: ast.Subscript) -> TypeSchema:
        form = _name_of(node.value)
        args = _subscript_args(node)

        if form == 'Literal':
            literals = []
            for arg in args:
                try:
                    literals.append(TypeSchema.literal(ast.literal_eval(arg)))
                except ValueError:
                    logger.warning("Skipping non-literal value inside Literal[...]")
            if len(literals) == 1:
                return literals[0]
            return TypeSchema.union(*literals) if literals else TypeSchema.undefined()

        if form == 'Optional':
            return TypeSchema.union(self.convert(args[0]), TypeSchema.undefined())
        if form == 'Union':
            return TypeSchema.union(*(self.convert(arg) for arg in args))
        if form == 'Intersection':
            return TypeSchema.intersection(*(self.convert(arg) for arg in args))
        if form in _PASSTHROUGH_FORMS:
            return self.convert(args[0])
        if form in _MAPPING_FORMS:
            return TypeSchema.object()

        if form in _ARRAY_FORMS:
            elements = [arg for arg in args if not (isinstance(arg, ast.Constant) and arg.value is Ellipsis)]
            if not elements:
                return TypeSchema.array(TypeSchema.undefined())
            if len(elements) == 1:
                return TypeSchema.array(self.convert(elements[0]))
            return TypeSchema.array(TypeSchema.union(*(self.convert(e) for e in elements)))

        # Generic declared class, e.g. Page[User]
        if form in self._declarations:
            return TypeSchema.ref(form)
        return TypeSchema.undefined()


def extract_registry(
    sources: Iterable[str],
    base_dir: Optional[str] = None,
    table_factory: Optional[Callable[[str], Any]] = None
) -> EntityRegistry:
    """
    Convenience function to resolve sources and build a registry in one call.

    Args:
        sources: Files, directories or glob patterns
        base_dir: Directory relative sources are resolved against
        table_factory: Optional callable returning a table handle per entity

    Returns:
        New EntityRegistry
    """
    files = SchemaExtractor.resolve_sources(sources, base_dir=base_dir)
    return SchemaExtractor(files).registry(table_factory=table_factory)
