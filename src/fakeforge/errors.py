"""
FakeForge Errors

Exception hierarchy shared across FakeForge modules.
"""


class FakeforgeError(Exception):
    """Base class for all FakeForge errors."""


class ConfigError(FakeforgeError):
    """Raised when a configuration file cannot be loaded or is invalid."""


class SchemaError(FakeforgeError):
    """Raised when a schema cannot be turned into generated data."""


class GeneratorPathError(SchemaError):
    """
    Raised when a directive names a generator function that does not exist.

    Attributes:
        path: Dotted generator path from the directive
        reason: Short description of why resolution failed
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: ({path})")


class GeneratorCallError(SchemaError):
    """
    Raised when a resolved generator function fails while producing a value.

    Attributes:
        path: Dotted generator path from the directive
    """

    def __init__(self, path: str, cause: Exception):
        self.path = path
        super().__init__(f"Generator '{path}' failed: {type(cause).__name__}: {cause}")


class ExpressionError(FakeforgeError):
    """Raised when a directive argument expression cannot be parsed."""

    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} at position {position}"
        super().__init__(message)
