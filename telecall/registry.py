"""
Call registry - maps call identifiers to handlers.

A call identifier is "<module ref>:<exported name>", e.g. "todos.api:add_todo".
The registry is built once at startup (or rebuilt wholesale in development
mode) and only read by the dispatcher.

Snapshot rule:
- The mapping is an immutable MappingProxyType behind one reference
- Every change builds a complete new mapping, then swaps the reference
- resolve() therefore never observes a half-built registry, and needs no lock
"""

import importlib
import inspect
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType, ModuleType
from typing import Any, Callable, Iterable, Mapping, Sequence

from telecall.errors import DuplicateIdentifierError, UnknownCallError
from telecall.shield import Schema, SchemaNode, get_schema, normalize_schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredCall:
    """
    One registered handler.

    Attributes:
        identifier: Call identifier
        handler: Plain or async function
        schema: Argument schema checked before the handler runs, if any
    """
    identifier: str
    handler: Callable[..., Any]
    schema: Schema | None = None


def make_identifier(module_ref: str, name: str) -> str:
    """
    Build a call identifier from a module reference and an exported name.

    Raises:
        ValueError: If either part is empty or the name contains ':'
    """
    if not module_ref or not name:
        raise ValueError("Call identifier needs a module ref and a name")
    if ":" in name:
        raise ValueError(f"Exported name must not contain ':': {name}")
    return f"{module_ref}:{name}"


def split_identifier(identifier: str) -> tuple[str, str]:
    """
    Split a call identifier into (module ref, exported name).

    Raises:
        ValueError: If the identifier is not "<module ref>:<name>"
    """
    module_ref, sep, name = identifier.rpartition(":")
    if not sep or not module_ref or not name:
        raise ValueError(f"Invalid call identifier: {identifier!r}")
    return module_ref, name


def _make_entry(
    identifier: str,
    handler: Callable[..., Any],
    schema: Iterable[SchemaNode] | None,
) -> RegisteredCall:
    split_identifier(identifier)
    if not callable(handler):
        raise TypeError(f"Handler for {identifier} is not callable: {handler!r}")
    frozen = normalize_schema(schema) if schema is not None else get_schema(handler)
    return RegisteredCall(identifier=identifier, handler=handler, schema=frozen)


def _module_exports(module: ModuleType) -> list[tuple[str, Callable[..., Any]]]:
    """
    Public functions a module exposes as handlers.

    Honors __all__ when present; otherwise every function defined in the
    module whose name does not start with "_". Classes and functions imported
    from elsewhere are skipped.
    """
    names = getattr(module, "__all__", None)
    if names is None:
        names = [n for n in vars(module) if not n.startswith("_")]

    exports = []
    for name in names:
        obj = getattr(module, name, None)
        if not inspect.isfunction(obj):
            continue
        if obj.__module__ != module.__name__:
            continue
        exports.append((name, obj))
    return exports


def _collect_module(module: ModuleType, module_ref: str | None) -> dict[str, RegisteredCall]:
    ref = module_ref or module.__name__
    entries: dict[str, RegisteredCall] = {}
    for name, fn in _module_exports(module):
        identifier = make_identifier(ref, name)
        entries[identifier] = _make_entry(identifier, fn, None)
    return entries


class CallRegistry:
    """
    Registry of handlers by call identifier.

    Usage:
        registry = CallRegistry()
        registry.register("math:add", add, [NUMBER, NUMBER])
        registry.register_module(todos_api)

        call = registry.resolve("math:add")   # RegisteredCall or None

        # Or build from dotted module names
        registry = CallRegistry.from_modules(["todos.api", "users.api"])
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._calls: Mapping[str, RegisteredCall] = MappingProxyType({})
        # Serializes writers only; readers go through the swapped reference
        self._write_lock = threading.Lock()

    def register(
        self,
        identifier: str,
        handler: Callable[..., Any],
        schema: Sequence[SchemaNode] | None = None,
    ) -> RegisteredCall:
        """
        Register a handler under a call identifier.

        Args:
            identifier: "<module ref>:<exported name>"
            handler: Plain or async function
            schema: Optional argument schema. Defaults to the schema attached
                    with shield(), if any.

        Returns:
            The RegisteredCall entry

        Raises:
            DuplicateIdentifierError: If the identifier is already registered
            ValueError: If the identifier is malformed
        """
        entry = _make_entry(identifier, handler, schema)
        self._merge({identifier: entry})
        return entry

    def register_module(self, module: ModuleType, module_ref: str | None = None) -> list[str]:
        """
        Register every public function of a module.

        Args:
            module: Imported module object
            module_ref: Module part of the identifiers (default: module.__name__)

        Returns:
            Sorted identifiers registered from this module

        Raises:
            DuplicateIdentifierError: If any identifier is already registered;
                nothing from the module is registered in that case
        """
        entries = _collect_module(module, module_ref)
        self._merge(entries)
        return sorted(entries)

    def _merge(self, entries: Mapping[str, RegisteredCall]) -> None:
        with self._write_lock:
            current = self._calls
            for identifier in entries:
                if identifier in current:
                    raise DuplicateIdentifierError(identifier)
            updated = dict(current)
            updated.update(entries)
            self._calls = MappingProxyType(updated)

    def resolve(self, identifier: Any) -> RegisteredCall | None:
        """
        Look up a call identifier.

        Pure lookup: no side effects, never raises.

        Returns:
            The RegisteredCall, or None if not registered (NotFound)
        """
        if not isinstance(identifier, str):
            return None
        return self._calls.get(identifier)

    def get(self, identifier: str) -> RegisteredCall:
        """
        Get the entry for a call identifier.

        Raises:
            UnknownCallError: If the identifier is not registered
        """
        entry = self.resolve(identifier)
        if entry is None:
            raise UnknownCallError(identifier)
        return entry

    def has(self, identifier: str) -> bool:
        """Check if an identifier is registered."""
        return self.resolve(identifier) is not None

    def list_identifiers(self) -> list[str]:
        """List registered identifiers, sorted."""
        return sorted(self._calls)

    def snapshot(self) -> Mapping[str, RegisteredCall]:
        """Current read-only mapping. Later changes swap in a new one."""
        return self._calls

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and identifier in self._calls

    def rebuild(self, module_names: Iterable[str], reload: bool = False) -> list[str]:
        """
        Replace the whole registry with handlers from the given modules.

        Development mode: with reload=True each module is re-executed with
        importlib.reload so source changes are picked up. The new mapping is
        built completely before being swapped in; if importing or collecting
        fails, the previous registry stays in place and the error propagates.

        Args:
            module_names: Dotted module names
            reload: Re-execute already imported modules

        Returns:
            Sorted identifiers of the new registry

        Raises:
            ImportError: If a module cannot be imported
            DuplicateIdentifierError: If two modules export the same identifier
        """
        built: dict[str, RegisteredCall] = {}
        for name in module_names:
            module = importlib.import_module(name)
            if reload:
                module = importlib.reload(module)
            for identifier, entry in _collect_module(module, None).items():
                if identifier in built:
                    raise DuplicateIdentifierError(identifier)
                built[identifier] = entry

        with self._write_lock:
            self._calls = MappingProxyType(built)
        logger.info("Registry rebuilt with %d calls", len(built))
        return sorted(built)

    @classmethod
    def from_modules(cls, module_names: Iterable[str]) -> "CallRegistry":
        """
        Create a registry from dotted module names.

        Raises:
            ImportError: If a module cannot be imported
            DuplicateIdentifierError: If two modules export the same identifier
        """
        registry = cls()
        registry.rebuild(module_names)
        return registry
