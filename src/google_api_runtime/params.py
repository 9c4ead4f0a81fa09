"""Path and query parameter binding for API calls.

A parameter bag is a dataclass whose fields are declared as path or query
parameters. The declaration is checked once, when the class is defined: every
field must say where it goes, and every field type must have a serializer.

Example:
    >>> @parameters
    ... class GetBookParams(StandardParameters):
    ...     volume_id: str = path_param("volumeId")
    ...     projection: str | None = query_param()
    ...     max_results: int | None = query_param("maxResults")
    >>> bound = bind(GetBookParams(volume_id="abc", max_results=5), "volumes/{volumeId}")
    >>> bound.path, bound.query
    ('volumes/abc', {'maxResults': '5'})
"""

from __future__ import annotations

import dataclasses
import enum
import re
import types
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints
from urllib.parse import quote

from google_api_runtime.exceptions import MissingPathParameterError

Location = Literal["path", "query"]
Serializer = Callable[[Any], str]

_METADATA_KEY = "google_api_runtime.param"

# {name} is a simple expansion, {+name} a reserved one (RFC 6570)
_PLACEHOLDER = re.compile(r"\{(\+?)([^{}+]+)\}")
_RESERVED_SAFE = ":/?#[]@!$&'()*+,;="


def _serialize_bool(value: bool) -> str:
    return "true" if value else "false"


def _serialize_enum(value: enum.Enum) -> str:
    return str(value.value)


SERIALIZERS: dict[type, Serializer] = {
    str: str,
    int: str,
    float: str,
    bool: _serialize_bool,
}


@dataclass(frozen=True)
class ParameterSpec:
    """Descriptor for one declared parameter."""

    attr: str
    wire_name: str
    location: Location
    serializer: Serializer
    repeated: bool = False


@dataclass(frozen=True)
class BoundRequest:
    """A resolved path plus its query mapping."""

    path: str
    query: dict[str, str | list[str]]


@dataclass(frozen=True)
class _Declaration:
    location: Location
    wire_name: str | None
    serializer: Serializer | None


def path_param(
    name: str | None = None,
    *,
    default: Any = dataclasses.MISSING,
    serializer: Serializer | None = None,
) -> Any:
    """Declare a field that fills a ``{name}`` placeholder in the path template.

    Args:
        name: Placeholder name in the template. Defaults to the field name.
        default: Field default. Path parameters are required unless given one.
        serializer: Explicit value-to-string function.
    """
    return field(
        default=default,
        metadata={_METADATA_KEY: _Declaration("path", name, serializer)},
    )


def query_param(
    name: str | None = None,
    *,
    default: Any = None,
    serializer: Serializer | None = None,
) -> Any:
    """Declare a field sent in the query string.

    Args:
        name: Query parameter name on the wire. Defaults to the field name.
        default: Field default, ``None`` (omitted) unless given.
        serializer: Explicit value-to-string function.
    """
    return field(
        default=default,
        metadata={_METADATA_KEY: _Declaration("query", name, serializer)},
    )


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _serializer_for(annotation: Any) -> Serializer | None:
    if isinstance(annotation, type):
        if issubclass(annotation, enum.Enum):
            return _serialize_enum
        return SERIALIZERS.get(annotation)

    if get_origin(annotation) is Literal:
        kinds = {type(arg) for arg in get_args(annotation)}
        if len(kinds) == 1:
            return SERIALIZERS.get(kinds.pop())

    return None


def _element_type(annotation: Any) -> Any | None:
    """Return the item type of ``list[X]``-like annotations, else None."""
    origin = get_origin(annotation)
    if origin in (list, tuple, Sequence):
        args = get_args(annotation)
        if args:
            return args[0]
    return None


def _build_specs(cls: type) -> tuple[ParameterSpec, ...]:
    hints = get_type_hints(cls)
    specs = []

    for f in dataclasses.fields(cls):
        declaration = f.metadata.get(_METADATA_KEY)
        if declaration is None:
            raise TypeError(
                f"{cls.__name__}.{f.name} must be declared with path_param() or query_param()"
            )

        annotation = _unwrap_optional(hints[f.name])
        repeated = False
        item_type = _element_type(annotation)
        if item_type is not None:
            if declaration.location == "path":
                raise TypeError(f"{cls.__name__}.{f.name}: path parameters cannot be repeated")
            annotation = _unwrap_optional(item_type)
            repeated = True

        serializer = declaration.serializer or _serializer_for(annotation)
        if serializer is None:
            raise TypeError(
                f"{cls.__name__}.{f.name}: no serializer for type {annotation!r}; "
                "pass serializer= to the field declaration"
            )

        specs.append(
            ParameterSpec(
                attr=f.name,
                wire_name=declaration.wire_name or f.name,
                location=declaration.location,
                serializer=serializer,
                repeated=repeated,
            )
        )

    return tuple(specs)


def parameters(cls: type | None = None, /, **dataclass_kwargs: Any) -> Any:
    """Class decorator that makes a parameter bag.

    The class becomes a keyword-only dataclass and gets a ``__parameters__``
    descriptor table. Raises ``TypeError`` at definition time for undeclared
    fields or field types that have no serializer.
    """

    def wrap(cls: type) -> type:
        cls = dataclass(cls, kw_only=True, **dataclass_kwargs)
        cls.__parameters__ = _build_specs(cls)
        return cls

    if cls is None:
        return wrap
    return wrap(cls)


def parameter_specs(bag: Any) -> tuple[ParameterSpec, ...]:
    """Get the descriptor table of a parameter bag."""
    specs = getattr(bag, "__parameters__", None)
    if specs is None:
        raise TypeError(
            f"{type(bag).__name__} is not a parameter bag; decorate it with @parameters"
        )
    return specs


def query(bag: Any) -> dict[str, str | list[str]]:
    """Build the query mapping for a parameter bag.

    Fields set to ``None`` are left out; repeated fields map to a list of strings.
    """
    if bag is None:
        return {}

    result: dict[str, str | list[str]] = {}
    for spec in parameter_specs(bag):
        if spec.location != "query":
            continue
        value = getattr(bag, spec.attr)
        if value is None:
            continue
        if spec.repeated:
            items = [spec.serializer(item) for item in value if item is not None]
            if items:
                result[spec.wire_name] = items
        else:
            result[spec.wire_name] = spec.serializer(value)
    return result


def expand_path(bag: Any, template: str) -> str:
    """Substitute path parameters into a ``{name}`` / ``{+name}`` template.

    Raises:
        MissingPathParameterError: If a declared path field is ``None`` or a
            placeholder has no matching path field.
    """
    values: dict[str, str] = {}
    if bag is not None:
        for spec in parameter_specs(bag):
            if spec.location != "path":
                continue
            value = getattr(bag, spec.attr)
            if value is None:
                raise MissingPathParameterError(spec.wire_name)
            values[spec.wire_name] = spec.serializer(value)

    def substitute(match: re.Match) -> str:
        reserved, name = match.groups()
        if name not in values:
            raise MissingPathParameterError(name)
        return quote(values[name], safe=_RESERVED_SAFE if reserved else "")

    return _PLACEHOLDER.sub(substitute, template)


def bind(bag: Any, template: str) -> BoundRequest:
    """Resolve both the path and the query mapping for one call."""
    return BoundRequest(path=expand_path(bag, template), query=query(bag))


@parameters
class StandardParameters:
    """Query parameters accepted by every Google REST method."""

    fields: str | None = query_param()
    key: str | None = query_param()
    quota_user: str | None = query_param("quotaUser")
    pretty_print: bool | None = query_param("prettyPrint")
