"""
Schema templates with symbolic inputs.

A condition can describe its JSON Schema before the literal values of its
parameters are known. Unknown values are written as ``Placeholder`` tokens,
either as an object key or as a value:

    schema = lambda inputs: {
        "type": "object",
        "properties": {"a": {"const": inputs.a}, inputs.field: {}},
    }

Rendering replaces every placeholder with a printable identifier and records
where it was found in a pointer map (JSON pointer -> is the placeholder a
key). Whoever later knows the real values uses that map to substitute them
(see ``instantiate_schema``).
"""

import copy
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple, Union

from jsonpointer import JsonPointer, resolve_pointer, set_pointer

from shared.errors import TemplateError

IDENTIFIER_PATTERN = re.compile(r"^Input\((?P<name>.+)\)$")


@dataclass(frozen=True)
class Placeholder:
    """Stand-in for a parameter value that is not known yet."""
    name: str

    @property
    def identifier(self) -> str:
        return f"Input({self.name})"


@dataclass(frozen=True)
class Literal:
    """Concrete template value, copied as-is."""
    value: Any


@dataclass(frozen=True)
class Nested:
    """Object (or array) node whose children may hold placeholders."""
    children: Tuple[Tuple[Union[str, int, Placeholder], Any], ...]
    array: bool = False


Node = Union[Literal, Placeholder, Nested]


class SchemaInputs:
    """Hands out a placeholder for any attribute or item looked up on it."""

    def __getattr__(self, name: str) -> Placeholder:
        if name.startswith("__"):
            raise AttributeError(name)
        return Placeholder(name)

    def __getitem__(self, name: str) -> Placeholder:
        return Placeholder(name)


@dataclass(frozen=True)
class RenderedSchema:
    """Concrete schema plus the read-only pointer map of its inputs."""
    schema: Dict[str, Any]
    pointers: Mapping[str, bool]


def parse_template(value: Any) -> Node:
    """Classify a plain template tree into Literal/Placeholder/Nested nodes."""
    if isinstance(value, (Literal, Placeholder, Nested)):
        return value

    if isinstance(value, Mapping):
        children = []
        for key, child in value.items():
            if not isinstance(key, (str, Placeholder)):
                raise TemplateError(
                    f"Template keys must be strings or placeholders, got {type(key).__name__}",
                    {"key": repr(key)}
                )
            children.append((key, parse_template(child)))
        return Nested(tuple(children))

    if isinstance(value, (list, tuple)):
        return Nested(
            tuple((index, parse_template(child)) for index, child in enumerate(value)),
            array=True
        )

    return Literal(value)


def render_schema(template: Any) -> RenderedSchema:
    """
    Render a schema template into a concrete schema and pointer map.

    Args:
        template: Mapping whose keys/values may contain ``Placeholder``s

    Returns:
        RenderedSchema with no placeholders left in ``schema``

    Raises:
        TemplateError: the template is not an object, has an invalid key,
            or renders two keys of one object to the same string
    """
    node = parse_template(template)
    if not isinstance(node, Nested) or node.array:
        raise TemplateError(
            "Schema template root must be an object",
            {"type": type(template).__name__}
        )

    pointers: Dict[str, bool] = {}
    schema = _render(node, [], pointers)
    return RenderedSchema(schema=schema, pointers=MappingProxyType(pointers))


def _render(node: Node, path: List[str], pointers: Dict[str, bool]) -> Any:
    if isinstance(node, Placeholder):
        pointer = _pointer(path)
        if pointers.get(pointer):
            raise TemplateError(
                "Placeholder used as both key and value",
                {"pointer": pointer}
            )
        pointers[pointer] = False
        return node.identifier

    if isinstance(node, Literal):
        return copy.deepcopy(node.value)

    if node.array:
        return [_render(child, path + [str(index)], pointers) for index, child in node.children]

    rendered: Dict[str, Any] = {}
    for key, child in node.children:
        is_key = isinstance(key, Placeholder)
        rendered_key = key.identifier if is_key else key
        if rendered_key in rendered:
            raise TemplateError(
                f"Key rendered twice in one object: {rendered_key}",
                {"pointer": _pointer(path), "key": rendered_key}
            )

        child_path = path + [rendered_key]
        if is_key:
            pointers[_pointer(child_path)] = True
        rendered[rendered_key] = _render(child, child_path, pointers)

    return rendered


def _pointer(path: List[str]) -> str:
    return JsonPointer.from_parts(path).path


def placeholder_name(identifier: Any) -> str:
    """Recover the placeholder name from its rendered identifier."""
    match = IDENTIFIER_PATTERN.match(identifier) if isinstance(identifier, str) else None
    if not match:
        raise TemplateError(
            "Value is not a rendered placeholder",
            {"value": repr(identifier)}
        )
    return match.group("name")


def instantiate_schema(
    schema: Dict[str, Any],
    pointers: Mapping[str, bool],
    values: Mapping[str, Any]
) -> Dict[str, Any]:
    """Substitute real parameter values into a rendered schema."""
    result = copy.deepcopy(schema)

    # Deepest first: renaming a key must not break pointers below it
    ordered = sorted(pointers, key=lambda p: len(JsonPointer(p).parts), reverse=True)
    for pointer in ordered:
        parts = JsonPointer(pointer).parts
        if pointers[pointer]:
            parent = resolve_pointer(result, JsonPointer.from_parts(parts[:-1]).path)
            value = _lookup(values, placeholder_name(parts[-1]))
            key = str(value)
            if key in parent and key != parts[-1]:
                raise TemplateError(
                    f"Schema input value collides with an existing key: {key}",
                    {"pointer": pointer, "key": key}
                )
            parent[key] = parent.pop(parts[-1])
        else:
            current = resolve_pointer(result, pointer)
            value = _lookup(values, placeholder_name(current))
            result = set_pointer(result, pointer, copy.deepcopy(value))

    return result


def _lookup(values: Mapping[str, Any], name: str) -> Any:
    if name not in values:
        raise TemplateError(f"No value for schema input: {name}", {"input": name})
    return values[name]
