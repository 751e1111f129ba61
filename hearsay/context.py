"""Cancellation and request-scoped values for handler invocations.

A Context is threaded through the dispatch loop into every handler
call. Cancelling a context cancels its scope (the nearest
background() or with_cancel() context) and every scope opened below
it; values are looked up along the parent chain.

Key classes:
    Context: Cancellation flag plus immutable key/value chain.

Key functions:
    wait_or_cancel: Race an awaitable against a context's cancellation.
"""

import asyncio
import weakref
from typing import Any, Awaitable, Optional

_MISSING = object()


class Context:
    """Cancellation token with inherited values.

    Contexts are cheap: with_value() shares the parent's cancellation
    scope and is not tracked by it; with_cancel() opens a new scope
    below it. A parent holds its child scopes weakly and forgets them
    once they are cancelled, so deriving contexts per message does not
    grow the governing context.
    """

    def __init__(self, parent: Optional["Context"] = None, scoped: bool = True):
        self._parent = parent
        self._key: Any = _MISSING
        self._value: Any = None
        if parent is not None and not scoped:
            self._scope = parent._scope
            self._done = parent._done
            return
        self._scope = self
        self._done = asyncio.Event()
        self._children: "weakref.WeakSet[Context]" = weakref.WeakSet()
        if parent is not None:
            if parent.cancelled:
                self._done.set()
            else:
                parent._scope._children.add(self)

    @classmethod
    def background(cls) -> "Context":
        """A root context that is never cancelled unless cancel() is called."""
        return cls()

    def with_cancel(self) -> "Context":
        """Derive a child with its own cancel(); parent cancellation still applies."""
        return Context(self)

    def with_value(self, key: Any, value: Any) -> "Context":
        """Derive a child carrying key=value, in the same cancellation scope."""
        child = Context(self, scoped=False)
        child._key = key
        child._value = value
        return child

    def value(self, key: Any, default: Any = None) -> Any:
        ctx: Optional[Context] = self
        while ctx is not None:
            if ctx._key is not _MISSING and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return default

    def cancel(self) -> None:
        """Cancel this context's scope and every scope derived from it."""
        scope = self._scope
        if scope._done.is_set():
            return
        scope._done.set()
        for child in list(scope._children):
            child.cancel()
        scope._children.clear()
        if scope._parent is not None:
            scope._parent._scope._children.discard(scope)

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> None:
        """Block until this context is cancelled."""
        await self._done.wait()


async def wait_or_cancel(ctx: Context, aw: Awaitable[Any]) -> Any:
    """Await `aw` unless `ctx` is cancelled first.

    Returns the result of `aw`, or None if the context was cancelled
    before it completed (the pending operation is then cancelled).
    """
    op = asyncio.ensure_future(aw)
    if ctx.cancelled:
        op.cancel()
        return None
    done_waiter = asyncio.ensure_future(ctx.wait())
    try:
        await asyncio.wait({op, done_waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        op.cancel()
        done_waiter.cancel()
        raise
    if op.done():
        done_waiter.cancel()
        return op.result()
    op.cancel()
    return None
