"""
Context carrier - request-scoped context for handlers.

The host supplies one context mapping per request (typically the
authenticated user). Handlers read it with get_context():

    async def list_todos():
        user = get_context()["user"]      # fine: synchronous prefix
        rows = await db.fetch(user.id)    # first suspension
        get_context()                     # ContextAccessError

Access window:
- The context is stored in a ContextSlot held by a ContextVar, so each
  asyncio task sees only its own binding (never a process-wide global).
- run_in_context() drives the handler's awaitable through a watcher that
  marks the slot expired the moment the handler first yields to the event
  loop. After that point other requests may have been interleaved, so every
  further read fails instead of returning a possibly stale binding.
- Values captured into locals before the first suspension stay usable.
"""

import inspect
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Iterator, Mapping, Sequence

from telecall.errors import ContextAccessError


class ContextSlot:
    """
    Holder for one request's context value plus a liveness flag.

    A slot is created per request and never reused; once expired it stays
    expired.
    """

    __slots__ = ("value", "expired")

    def __init__(self, value: Mapping[str, Any]):
        self.value = value
        self.expired = False

    def expire(self) -> None:
        self.expired = True

    def __repr__(self) -> str:
        state = "expired" if self.expired else "live"
        return f"ContextSlot({state})"


_CURRENT: ContextVar[ContextSlot | None] = ContextVar("telecall_context", default=None)


@contextmanager
def install(context: Mapping[str, Any] | None) -> Iterator[ContextSlot]:
    """
    Bind a context value to the current task for the duration of the block.

    Args:
        context: Caller-supplied mapping. None installs an empty mapping.

    Yields:
        The live ContextSlot. It is expired and unbound when the block exits.
    """
    slot = ContextSlot({} if context is None else context)
    token = _CURRENT.set(slot)
    try:
        yield slot
    finally:
        slot.expire()
        _CURRENT.reset(token)


def get_context() -> Mapping[str, Any]:
    """
    Read the context installed for the current call.

    Returns:
        The installed mapping, unchanged (same object)

    Raises:
        ContextAccessError: If no context is installed for this task, or the
            handler already passed its first suspension point
    """
    slot = _CURRENT.get()
    if slot is None:
        raise ContextAccessError(
            "No context installed; get_context() is only available inside a "
            "dispatched call"
        )
    if slot.expired:
        raise ContextAccessError(
            "Context object not accessible after a suspension point; read "
            "get_context() before the first await and keep the values you need"
        )
    return slot.value


class _FirstSuspensionWatcher:
    """
    Awaitable proxy that expires a slot at the wrapped awaitable's first yield.

    The first step of the wrapped iterator is the handler's synchronous
    prefix. Whether it yields (suspends) or finishes, the slot is expired
    right after it; the remaining steps are forwarded unchanged, including
    values sent in and exceptions (cancellation) thrown in by the task.
    """

    def __init__(self, awaitable: Awaitable[Any], slot: ContextSlot):
        self._awaitable = awaitable
        self._slot = slot

    def __await__(self):
        iterator = self._awaitable.__await__()
        try:
            yielded = iterator.send(None)
        except StopIteration as stop:
            return stop.value
        finally:
            self._slot.expire()

        while True:
            try:
                sent = yield yielded
            except GeneratorExit:
                iterator.close()
                raise
            except BaseException as exc:
                try:
                    yielded = iterator.throw(exc)
                except StopIteration as stop:
                    return stop.value
            else:
                try:
                    yielded = iterator.send(sent)
                except StopIteration as stop:
                    return stop.value


async def call_in_slot(handler: Callable[..., Any], args: Sequence[Any], slot: ContextSlot) -> Any:
    """
    Call a handler whose context slot is already installed.

    Plain functions keep context access for their whole body. For awaitable
    results (async def handlers, or functions returning a coroutine) access
    ends at the first suspension.

    Returns:
        The handler's return value

    Raises:
        Whatever the handler raises, unchanged
    """
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await _FirstSuspensionWatcher(result, slot)
    return result


async def run_in_context(
    handler: Callable[..., Any],
    args: Sequence[Any],
    context: Mapping[str, Any] | None,
) -> Any:
    """
    Install a context, then call the handler with it (see call_in_slot).

    Args:
        handler: Plain or async function
        args: Positional arguments
        context: Context mapping for this call
    """
    with install(context) as slot:
        return await call_in_slot(handler, args, slot)
