"""
Shield - declarative argument validation for handlers.

Every handler is a public endpoint, so its arguments are untrusted input.
A shield schema is an ordered list of nodes, one per positional argument,
checked before the handler body runs:

    from telecall import shield
    from telecall.shield import BOOLEAN, STRING, shape, optional

    @shield([STRING, shape(title=STRING, done=optional(BOOLEAN))])
    async def update_todo(todo_id, patch):
        ...

Schema nodes are frozen dataclasses interpreted by one generic routine
(`matches`), so schemas can be tested without any handler.

A failing check yields Abort() with no payload. Which argument failed is
not reported back to the caller.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence, Union

from telecall.abort import Abort


# Attribute set on shielded handlers; read by CallRegistry.register
SCHEMA_ATTR = "__telecall_schema__"

_MISSING = object()


@dataclass(frozen=True)
class Primitive:
    """Primitive type predicate: string, number, integer, boolean, null, any."""
    kind: str

    def __post_init__(self):
        if self.kind not in _PRIMITIVE_CHECKS:
            raise ValueError(f"Unknown primitive kind: {self.kind}")


@dataclass(frozen=True)
class Shape:
    """
    Structural predicate over a mapping of named fields.

    The value must be a dict with exactly these keys. A key may be absent
    only when its node is Maybe(...).
    """
    fields: tuple[tuple[str, "SchemaNode"], ...]


@dataclass(frozen=True)
class ArrayOf:
    """List whose every element matches `item`."""
    item: "SchemaNode"


@dataclass(frozen=True)
class TupleOf:
    """Fixed-length list, element i matching items[i]."""
    items: tuple["SchemaNode", ...]


@dataclass(frozen=True)
class OneOf:
    """Matches when any option matches."""
    options: tuple["SchemaNode", ...]


@dataclass(frozen=True)
class Const:
    """Matches exactly one literal value."""
    value: Any


@dataclass(frozen=True)
class Maybe:
    """Matches None (or a missing field/argument), otherwise defers to inner."""
    inner: "SchemaNode"


SchemaNode = Union[Primitive, Shape, ArrayOf, TupleOf, OneOf, Const, Maybe]
Schema = tuple[SchemaNode, ...]


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON keeps them apart and has no NaN/Infinity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


_PRIMITIVE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "null": lambda v: v is None,
    "any": lambda v: True,
}

STRING = Primitive("string")
NUMBER = Primitive("number")
INTEGER = Primitive("integer")
BOOLEAN = Primitive("boolean")
NULL = Primitive("null")
ANY = Primitive("any")


def shape(**fields: SchemaNode) -> Shape:
    """Build a Shape node from keyword fields."""
    return Shape(tuple(fields.items()))


def array(item: SchemaNode) -> ArrayOf:
    return ArrayOf(item)


def tuple_of(*items: SchemaNode) -> TupleOf:
    return TupleOf(tuple(items))


def one_of(*options: SchemaNode) -> OneOf:
    if not options:
        raise ValueError("one_of() needs at least one option")
    return OneOf(tuple(options))


def const(value: Any) -> Const:
    return Const(value)


def optional(inner: SchemaNode) -> Maybe:
    return Maybe(inner)


def matches(node: SchemaNode, value: Any) -> bool:
    """
    Check one value against one schema node.

    Args:
        node: Schema node
        value: Untrusted value (decoded JSON)

    Returns:
        True if the value satisfies the node

    Raises:
        TypeError: If node is not a schema node (a schema authoring defect)
    """
    if isinstance(node, Maybe):
        return value is None or value is _MISSING or matches(node.inner, value)

    if value is _MISSING:
        return False

    if isinstance(node, Primitive):
        return _PRIMITIVE_CHECKS[node.kind](value)

    if isinstance(node, Const):
        # 1 == True in Python; compare types too
        return type(value) is type(node.value) and value == node.value

    if isinstance(node, OneOf):
        return any(matches(option, value) for option in node.options)

    if isinstance(node, ArrayOf):
        return isinstance(value, list) and all(matches(node.item, v) for v in value)

    if isinstance(node, TupleOf):
        return (
            isinstance(value, list)
            and len(value) == len(node.items)
            and all(matches(n, v) for n, v in zip(node.items, value))
        )

    if isinstance(node, Shape):
        if not isinstance(value, dict):
            return False
        expected = dict(node.fields)
        if any(key not in expected for key in value):
            return False
        return all(
            matches(field_node, value.get(name, _MISSING))
            for name, field_node in node.fields
        )

    raise TypeError(f"Not a schema node: {node!r}")


def normalize_schema(schema: Iterable[SchemaNode]) -> Schema:
    """
    Freeze a schema into a tuple and check every entry is a schema node.

    Raises:
        TypeError: If an entry is not a schema node
    """
    nodes = tuple(schema)
    for node in nodes:
        if not isinstance(node, (Primitive, Shape, ArrayOf, TupleOf, OneOf, Const, Maybe)):
            raise TypeError(f"Not a schema node: {node!r}")
    return nodes


def check(schema: Sequence[SchemaNode], args: Sequence[Any]) -> Abort | None:
    """
    Validate positional arguments against a schema.

    More arguments than schema entries fails. Missing trailing arguments
    are checked as absent, so only Maybe(...) entries accept them.

    Args:
        schema: One node per positional argument
        args: Arguments as received from the caller

    Returns:
        None when the arguments pass, otherwise an Abort with no payload
    """
    if len(args) > len(schema):
        return Abort()
    for i, node in enumerate(schema):
        value = args[i] if i < len(args) else _MISSING
        if not matches(node, value):
            return Abort()
    return None


def get_schema(handler: Callable) -> Schema | None:
    """Return the schema attached by shield(), if any."""
    return getattr(handler, SCHEMA_ATTR, None)


def shield(handler_or_schema: Any, schema: Sequence[SchemaNode] | None = None):
    """
    Attach an argument schema to a handler.

    Works both as a call and as a decorator factory:

        add = shield(add, [NUMBER, NUMBER])

        @shield([NUMBER, NUMBER])
        def add(a, b): ...

    The handler itself is returned unchanged apart from the attached schema.
    """
    if schema is None and not callable(handler_or_schema):
        frozen = normalize_schema(handler_or_schema)

        def decorator(handler: Callable) -> Callable:
            setattr(handler, SCHEMA_ATTR, frozen)
            return handler

        return decorator

    if schema is None:
        raise TypeError("shield(handler, schema) requires a schema")
    setattr(handler_or_schema, SCHEMA_ATTR, normalize_schema(schema))
    return handler_or_schema


def describe(node: SchemaNode) -> str:
    """Human-readable rendering of a node, for logs and the CLI."""
    if isinstance(node, Primitive):
        return node.kind
    if isinstance(node, Maybe):
        return f"{describe(node.inner)}?"
    if isinstance(node, Const):
        return repr(node.value)
    if isinstance(node, OneOf):
        return " | ".join(describe(o) for o in node.options)
    if isinstance(node, ArrayOf):
        return f"[{describe(node.item)}]"
    if isinstance(node, TupleOf):
        return "(" + ", ".join(describe(i) for i in node.items) + ")"
    if isinstance(node, Shape):
        inner = ", ".join(f"{k}: {describe(v)}" for k, v in node.fields)
        return "{" + inner + "}"
    return repr(node)
