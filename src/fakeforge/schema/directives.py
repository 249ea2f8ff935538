"""
FakeForge Generation Directives

Parsing of ``@faker`` tags into GenerationDirective objects.

A tag looks like ``path.to.function`` or ``path.to.function(<args>)``.
Tags are read once, when schemas are extracted; argument expressions go
through the restricted literal parser in ``expression.py``.
"""

import logging
import re
from typing import List, Optional

from ..errors import ExpressionError
from .expression import parse_expression
from .types import GenerationDirective

logger = logging.getLogger("fakeforge.schema")

DIRECTIVE_TAG = "@faker"
ID_TAG = "@id"

_TAG_RE = re.compile(r'^([a-zA-Z0-9._]+)(?:\((.*)\))?$', re.DOTALL)


def parse_directive(text: str) -> Optional[GenerationDirective]:
    """
    Parse the body of a ``@faker`` tag.

    Args:
        text: Tag body, e.g. ``pyint({min_value: 1, max_value: 9})``

    Returns:
        GenerationDirective, or None if the tag is malformed
    """
    match = _TAG_RE.match(text.strip())
    if not match:
        logger.warning(f"Ignoring malformed generation directive: {text!r}")
        return None

    path, raw_args = match.groups()
    args = None
    if raw_args and raw_args.strip():
        try:
            args = parse_expression(raw_args)
        except ExpressionError as e:
            # Fall back to calling the function without arguments
            logger.warning(f"Invalid arguments for '{path}' ({e}); using defaults")

    return GenerationDirective(function_path=path, args=args)


def directives_from_docstring(docstring: Optional[str]) -> List[GenerationDirective]:
    """
    Collect every ``@faker`` tag from an attribute docstring.

    Args:
        docstring: Docstring text following a field declaration

    Returns:
        Directives in declaration order
    """
    directives = []
    for line in (docstring or "").splitlines():
        line = line.strip()
        if not line.startswith(DIRECTIVE_TAG + " "):
            continue
        directive = parse_directive(line[len(DIRECTIVE_TAG):])
        if directive:
            directives.append(directive)
    return directives


def id_strategy_from_docstring(docstring: Optional[str]) -> Optional[str]:
    """Read an ``@id <strategy>`` line from a class docstring."""
    for line in (docstring or "").splitlines():
        line = line.strip()
        if line.startswith(ID_TAG + " ") or line == ID_TAG:
            strategy = line[len(ID_TAG):].strip()
            return strategy or "index"
    return None
