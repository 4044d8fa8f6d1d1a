from .exceptions import TemplatesError
from .expressions import find_placeholders, has_placeholders
from .substitution import build_lookup, resolve, walk

__all__ = [
    "resolve",
    "walk",
    "build_lookup",
    "find_placeholders",
    "has_placeholders",
    "TemplatesError",
]
