"""
FakeForge Generator Library

Named generator functions used by the generation engine.

The namespace is a ``faker.Faker`` instance. Directive paths are walked one
attribute at a time (``"name"``, ``"unique.email"``), and each primitive
kind has a default generator used when a field carries no directive.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from faker import Faker

from ..errors import GeneratorCallError, GeneratorPathError
from ..schema.types import GenerationDirective, SchemaKind

logger = logging.getLogger("fakeforge.engine")


class GeneratorLibrary:
    """
    Resolves and calls generator functions by dotted path.

    Example:
        library = GeneratorLibrary(locale='en_US', seed=42)
        email = library.call(GenerationDirective('email'))
        count = library.default(SchemaKind.NUMBER)
    """

    KIND_DEFAULTS: Dict[str, Tuple[str, Any]] = {
        SchemaKind.STRING: ('word', None),
        SchemaKind.NUMBER: ('pyint', None),
        SchemaKind.BOOLEAN: ('pybool', None),
        SchemaKind.BIGINT: ('random_number', {'digits': 18}),
    }

    FORMAT_DEFAULTS: Dict[str, str] = {
        'datetime': 'iso8601',
        'date': 'date',
        'time': 'time',
        'uuid': 'uuid4',
        'email': 'email',
        'url': 'url',
    }

    def __init__(
        self,
        namespace: Optional[Any] = None,
        locale: Optional[str] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize generator library.

        Args:
            namespace: Object whose attributes are generator functions (defaults to Faker)
            locale: Faker locale (e.g. "en_US", "de_DE")
            seed: Optional seed for reproducible output
        """
        if namespace is None:
            namespace = Faker(locale) if locale else Faker()
            if seed is not None:
                namespace.seed_instance(seed)
        self.namespace = namespace
        self.locale = locale
        self._cache: Dict[str, Callable[..., Any]] = {}

    def resolve(self, path: str) -> Callable[..., Any]:
        """
        Walk a dotted path through the namespace.

        Args:
            path: Dotted generator path

        Returns:
            The resolved callable

        Raises:
            GeneratorPathError: If a segment is missing or the target is not callable
        """
        if path in self._cache:
            return self._cache[path]

        target: Any = self.namespace
        for part in path.split('.'):
            if not part or part.startswith('_'):
                raise GeneratorPathError(path, "Invalid generator path")
            try:
                target = getattr(target, part)
            except (AttributeError, TypeError):
                target = None
            if target is None:
                raise GeneratorPathError(path, "Invalid generator path")

        if not callable(target):
            raise GeneratorPathError(path, "Unresolvable generator function")

        self._cache[path] = target
        return target

    def call(self, directive: GenerationDirective) -> Any:
        """
        Call the generator a directive names, applying its arguments.

        Dict arguments are passed as keywords, lists as positionals and any
        other value as a single positional argument. If the call rejects the
        arguments, the function is called again without them.

        Args:
            directive: Directive to execute

        Returns:
            Generated value

        Raises:
            GeneratorPathError: If the path does not resolve
            GeneratorCallError: If the generator itself fails
        """
        path = directive.function_path
        fn = self.resolve(path)
        args = directive.args
        if args is None:
            return self._invoke(path, fn)

        try:
            if isinstance(args, dict):
                return fn(**args)
            if isinstance(args, (list, tuple)):
                return fn(*args)
            return fn(args)
        except (TypeError, ValueError) as e:
            logger.error(f"Passed invalid arguments to '{path}': {e}")
            return self._invoke(path, fn)
        except Exception as e:
            raise GeneratorCallError(path, e) from e

    def default(self, kind: str, format: Optional[str] = None) -> Any:
        """
        Generate a value with the default generator for a primitive kind.

        Args:
            kind: Primitive SchemaKind
            format: Optional string format hint

        Returns:
            Generated value
        """
        if format and format in self.FORMAT_DEFAULTS:
            path = self.FORMAT_DEFAULTS[format]
            value = self._invoke(path, self.resolve(path))
            return value if isinstance(value, str) else str(value)

        path, args = self.KIND_DEFAULTS[kind]
        return self.call(GenerationDirective(path, args))

    @staticmethod
    def _invoke(path: str, fn: Callable[..., Any]) -> Any:
        try:
            return fn()
        except Exception as e:
            raise GeneratorCallError(path, e) from e

    def primitive(
        self,
        kind: str,
        directive: Optional[GenerationDirective] = None,
        format: Optional[str] = None
    ) -> Any:
        """Generate a primitive, honouring a directive when one is given."""
        if directive is not None:
            return self.call(directive)
        return self.default(kind, format)
