"""The dispatch loop: adapters in, handler capabilities out.

One forwarding task per adapter reads that adapter's inbound queue and
republishes each message, with a ResponseWriter bound to the same
adapter, onto a single merged queue. The main loop takes messages off
the merged queue and, for each, starts one task per capability the
handler supports (raw, hears, command). Those tasks are never awaited
by the loop; a handler that ignores cancellation keeps running after
the loop has stopped.

Key classes:
    Dispatcher: Owns the merge queue and the forwarding tasks.
    LoopState: starting -> running -> draining.

Key functions:
    loop: Run a Dispatcher until its context is cancelled.
    log_task_exception: Done-callback for fire-and-forget tasks.
"""

import asyncio
from enum import Enum
from typing import Coroutine, List, Set, Tuple

import structlog

from .commands import CommandHandler, run_command_handler
from .context import Context, wait_or_cancel
from .handler import (
    BackgroundHandler,
    Handler,
    HearsHandler,
    RawHandler,
    handler_name,
    run_background_handler,
    run_hears_handler,
    run_raw_handler,
)
from .message import Message
from .metrics import MESSAGES_RX
from .response import Adapter, ResponseWriter, adapter_name
from .web import WebHookHandler

logger = structlog.get_logger("hearsay.dispatch")


def log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("handler_task_failed", error=str(exc), exc_type=type(exc).__name__)


class LoopState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"


class Dispatcher:
    """Routes messages from one or more adapters to a handler.

    The primary adapter is the one background handlers write to and
    web hooks are bound to. Messages from all adapters are handled
    alike.

    Args:
        ctx: Governing context; cancelling it stops the loop.
        handler: Top-level handler (usually a Mux).
        adapter: Primary adapter.
        adapters: Additional adapters.
    """

    def __init__(self, ctx: Context, handler: Handler, adapter: Adapter, *adapters: Adapter):
        self.ctx = ctx
        self.handler = handler
        self.adapter = adapter
        self.adapters: Tuple[Adapter, ...] = (adapter,) + adapters
        self.state = LoopState.STARTING
        self._merged: "asyncio.Queue[Tuple[ResponseWriter, Message]]" = asyncio.Queue(maxsize=1)
        self._forwarders: List[asyncio.Task] = []
        # Strong references only; these are never joined.
        self._handler_tasks: Set[asyncio.Task] = set()

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    async def _forward(self, adapter: Adapter) -> None:
        name = adapter_name(adapter)
        inbound = adapter.receive()
        while not self.ctx.cancelled:
            message = await wait_or_cancel(self.ctx, inbound.get())
            if message is None:
                return
            item = (ResponseWriter(adapter, message, name), message)
            if self.ctx.cancelled:
                return
            await wait_or_cancel(self.ctx, self._merged.put(item))

    def _start(self) -> None:
        name = adapter_name(self.adapter)
        if isinstance(self.handler, BackgroundHandler):
            self._spawn(run_background_handler(
                self.ctx, self.handler, ResponseWriter(self.adapter, None, name)
            ))
        if isinstance(self.handler, WebHookHandler):
            self.handler.set_adapter(self.adapter)

        for adapter in self.adapters:
            task = asyncio.create_task(self._forward(adapter))
            task.add_done_callback(log_task_exception)
            self._forwarders.append(task)

    def dispatch(self, w: ResponseWriter, m: Message) -> List[asyncio.Task]:
        """Start one task per capability of the handler for message `m`.

        Each task gets its own copy of the message and of the writer,
        so concurrent capabilities never share mutable state.
        """
        MESSAGES_RX.inc(w.name, m.channel, m.sender)
        logger.debug("message_received", adapter=w.name, channel=m.channel, sender=m.sender)

        tasks = []
        h = self.handler
        if isinstance(h, RawHandler):
            tasks.append(self._spawn(run_raw_handler(self.ctx, h, *_fork(w, m))))
        if isinstance(h, HearsHandler):
            tasks.append(self._spawn(run_hears_handler(self.ctx, h, *_fork(w, m))))
        if isinstance(h, CommandHandler):
            tasks.append(self._spawn(run_command_handler(self.ctx, h, *_fork(w, m))))
        return tasks

    async def run(self) -> None:
        """Process messages until the context is cancelled."""
        logger.info(
            "dispatch_loop_starting",
            handler=handler_name(self.handler),
            adapters=[adapter_name(a) for a in self.adapters],
        )
        self._start()
        self.state = LoopState.RUNNING
        try:
            while True:
                item = await wait_or_cancel(self.ctx, self._merged.get())
                if item is None:
                    break
                self.dispatch(*item)
        finally:
            self.state = LoopState.DRAINING
            for task in self._forwarders:
                task.cancel()
            logger.info("dispatch_loop_stopped", in_flight=len(self._handler_tasks))

    @property
    def in_flight(self) -> int:
        """Handler tasks started and not yet finished."""
        return len(self._handler_tasks)


def _fork(w: ResponseWriter, m: Message) -> Tuple[ResponseWriter, Message]:
    message = m.model_copy()
    return ResponseWriter(w.sender, message, w.name), message


async def loop(ctx: Context, handler: Handler, adapter: Adapter, *adapters: Adapter) -> Dispatcher:
    """Run the dispatch loop for `handler` until `ctx` is cancelled."""
    dispatcher = Dispatcher(ctx, handler, adapter, *adapters)
    await dispatcher.run()
    return dispatcher
