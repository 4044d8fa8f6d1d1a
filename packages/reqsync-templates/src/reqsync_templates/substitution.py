"""Environment variable substitution.

Placeholders are resolved in a single pass: a substituted value that itself
looks like a placeholder is left as is. When an environment defines the same
key more than once, the first enabled definition wins.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from reqsync_templates.exceptions import TemplatesError
from reqsync_templates.expressions import PLACEHOLDER_REGEX, has_placeholders


def _variable_fields(variable: Any) -> tuple[str, Any, bool]:
    match variable:
        case Mapping():
            return variable.get("key", ""), variable.get("value", ""), bool(variable.get("enabled", True))
        case _ if hasattr(variable, "key"):
            return variable.key, getattr(variable, "value", ""), bool(getattr(variable, "enabled", True))
        case _:
            raise TemplatesError(f"Unsupported variable definition: {variable!r}")


def build_lookup(variables: Iterable[Any] | None) -> dict[str, str]:
    """Flatten an ordered variable list into a name -> value mapping."""
    lookup: dict[str, str] = {}
    for variable in variables or ():
        key, value, enabled = _variable_fields(variable)
        if not enabled or not key or key in lookup:
            continue
        lookup[key] = "" if value is None else str(value)
    return lookup


def _as_lookup(variables: Iterable[Any] | Mapping[str, str] | None) -> Mapping[str, str]:
    # an already flattened name -> value mapping is used as is
    if isinstance(variables, Mapping):
        return variables
    return build_lookup(variables)


def _sub_string(template: str, lookup: Mapping[str, str]) -> str:
    def _repl(match: re.Match[str]) -> str:
        name = match.group("name")
        if name in lookup:
            return lookup[name]
        return match.group(0)

    return PLACEHOLDER_REGEX.sub(_repl, template)


def resolve(template: str, variables: Iterable[Any] | Mapping[str, str] | None) -> str:
    """Replace every `{{name}}` in template with the matching variable value.

    Unknown names are left verbatim.
    """
    if not isinstance(template, str):
        raise TemplatesError(f"Template must be a string, got {type(template).__name__}")
    if not has_placeholders(template):
        return template
    return _sub_string(template, _as_lookup(variables))


def walk(obj: Any, variables: Iterable[Any] | Mapping[str, str] | None) -> Any:
    """Recursively resolve placeholders in every string of an arbitrary object."""
    return _walk(obj, _as_lookup(variables))


def _walk(obj: Any, lookup: Mapping[str, str]) -> Any:
    match obj:
        case str():
            return _sub_string(obj, lookup)
        case dict():
            return {_walk(key, lookup): _walk(value, lookup) for key, value in obj.items()}
        case list():
            return [_walk(item, lookup) for item in obj]
        case tuple():
            return tuple(_walk(item, lookup) for item in obj)
        case BaseModel():
            obj_dict = obj.model_dump(mode="python")
            return obj.__class__.model_validate(_walk(obj_dict, lookup))
        case _:
            return obj
