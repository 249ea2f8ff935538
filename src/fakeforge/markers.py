"""
FakeForge Markers

Objects that type declaration modules may import so they stay valid,
importable Python. FakeForge itself never imports those modules; it reads
the markers from the syntax tree.

Example:
    from typing import Annotated
    from fakeforge.markers import Faker, Intersection

    class User:
        email: Annotated[str, Faker("email")]
        age: Annotated[int, Faker("pyint", min_value=18, max_value=90)]
        profile: Intersection[Address, Contact]
"""

from typing import Any, Dict, Tuple


class Faker:
    """Annotation marker naming the generator function for a field."""

    def __init__(self, path: str, *args: Any, **kwargs: Any):
        self.path = path
        self.args: Tuple[Any, ...] = args
        self.kwargs: Dict[str, Any] = kwargs

    def __repr__(self) -> str:
        return f"Faker({self.path!r})"


class _IntersectionForm:
    """Subscriptable stand-in for a structural intersection of types."""

    def __getitem__(self, members: Any) -> Any:
        return self

    def __repr__(self) -> str:
        return "Intersection"


Intersection = _IntersectionForm()
