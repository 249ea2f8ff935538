"""
FakeForge Generation Engine

Turns TypeSchemas into synthetic values.

Generation is a depth-first walk over the schema:

- primitives call a directive's generator or the kind default
- literals are returned verbatim
- unions and intersections generate every member, then pick one at random
- arrays hold exactly one generated element
- objects generate their fields concurrently and keep declaration order
- named references are resolved through the entity registry

Unions and intersections are generated eagerly: every branch is built
before one is chosen, so cost grows with the number of branches.
Intersections pick a member instead of merging members.
"""

import asyncio
import logging
import random
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from ..schema.types import EntityRegistry, GenerationDirective, SchemaKind, TypeSchema
from .library import GeneratorLibrary

logger = logging.getLogger("fakeforge.engine")

Directives = Tuple[GenerationDirective, ...]

ID_STRATEGY_UUID = "uuid"
ID_STRATEGY_INDEX = "index"


class GenerationEngine:
    """
    Generates values for TypeSchemas.

    Example:
        engine = GenerationEngine(GeneratorLibrary(seed=1), registry)
        user = await engine.forge(registry.get('user').schema)
        users = await engine.forge(schema, count=10, id_strategy='uuid')
    """

    def __init__(
        self,
        library: Optional[GeneratorLibrary] = None,
        registry: Optional[EntityRegistry] = None,
        max_depth: int = 10,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize generation engine.

        Args:
            library: Generator function library (defaults to a Faker-backed one)
            registry: Registry used to resolve named references
            max_depth: Nesting depth past which objects and arrays are cut off
            rng: Random source used for union/intersection selection
        """
        self.library = library or GeneratorLibrary()
        self.registry = registry or EntityRegistry()
        self.max_depth = max_depth
        self.rng = rng or random.Random()

    async def generate(self, schema: TypeSchema, directive: Optional[GenerationDirective] = None) -> Any:
        """
        Generate a single value.

        Args:
            schema: Schema to generate
            directive: Optional directive for a primitive root

        Returns:
            Generated value

        Raises:
            GeneratorPathError: If a directive names an unknown generator
        """
        directives: Directives = (directive,) if directive else ()
        return await self._generate(schema, directives, 0)

    async def generate_many(self, schema: TypeSchema, count: int) -> List[Any]:
        """
        Generate ``count`` independent values concurrently.

        Args:
            schema: Schema to generate
            count: Number of values; zero or negative gives an empty list

        Returns:
            List of generated values, in request order
        """
        if count <= 0:
            return []
        return list(await asyncio.gather(*(self._generate(schema, (), 0) for _ in range(count))))

    async def forge(
        self,
        schema: TypeSchema,
        count: Optional[int] = None,
        id_strategy: Optional[str] = None
    ) -> Any:
        """
        Resolve a generation request.

        ``count`` absent or ``0`` yields one unwrapped value, a positive
        count yields a list of that many values and a negative count yields
        an empty list.

        Args:
            schema: Schema to generate
            count: Optional batch size
            id_strategy: "uuid" for UUID identifiers, any other value for
                1-based batch indexes, None to inject nothing

        Returns:
            A single value or a list of values
        """
        if not count:
            value = await self._generate(schema, (), 0)
            return self._with_identifier(value, id_strategy, 1)

        if count < 0:
            return []

        values = await self.generate_many(schema, count)
        return [
            self._with_identifier(value, id_strategy, index)
            for index, value in enumerate(values, start=1)
        ]

    @staticmethod
    def _with_identifier(value: Any, id_strategy: Optional[str], index: int) -> Any:
        if not id_strategy or not isinstance(value, dict):
            return value
        identifier: Any = str(uuid.uuid4()) if id_strategy == ID_STRATEGY_UUID else index
        rest = {key: item for key, item in value.items() if key != 'id'}
        return {'id': identifier, **rest}

    async def _generate(self, schema: TypeSchema, directives: Directives, depth: int) -> Any:
        kind = schema.kind

        if depth > self.max_depth and kind in (SchemaKind.OBJECT, SchemaKind.ARRAY, SchemaKind.REF):
            logger.debug(f"Depth limit {self.max_depth} reached at {schema.describe()}")
            return [] if kind == SchemaKind.ARRAY else None

        if schema.is_primitive:
            directive = directives[0] if directives else None
            return self.library.primitive(kind, directive, schema.format)

        if kind == SchemaKind.LITERAL:
            return schema.value

        if kind == SchemaKind.UNDEFINED:
            return None

        if kind == SchemaKind.UNION:
            return await self._pick(
                self._generate(member, self._member_directives(directives, index), depth)
                for index, member in enumerate(schema.children)
            )

        if kind == SchemaKind.INTERSECTION:
            return await self._pick(
                self._generate(member, directives, depth) for member in schema.children
            )

        if kind == SchemaKind.ARRAY:
            return [await self._generate(schema.element, directives, depth + 1)]

        if kind == SchemaKind.OBJECT:
            names = list(schema.fields)
            values = await asyncio.gather(*(
                self._generate(spec.schema, spec.directives, depth + 1)
                for spec in schema.fields.values()
            ))
            return dict(zip(names, values))

        if kind == SchemaKind.REF:
            target = self.registry.resolve(schema.name or '')
            if target is None:
                logger.warning(f"Unresolved type reference '{schema.name}'; generating null")
                return None
            return await self._generate(target, directives, depth + 1)

        return None

    @staticmethod
    def _member_directives(directives: Directives, index: int) -> Directives:
        return (directives[index],) if index < len(directives) else ()

    async def _pick(self, branches) -> Any:
        results: Sequence[Any] = await asyncio.gather(*branches)
        if not results:
            return None
        return results[self.rng.randrange(len(results))]
