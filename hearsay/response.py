"""Sending replies without knowing which adapter they go to.

Key classes:
    Sender: Anything with an async send(ctx, message).
    Adapter: A Sender that also exposes an inbound message queue.
    ResponseWriter: Per-message writer bound to a Sender and an
        outbound Message template.

Key functions:
    new_null_response_writer: Writer that discards everything.
    response_writer_from_context: Writer for the adapter carried by a
        Context (used by web hooks).
"""

import asyncio
from typing import Optional, Protocol, Union, runtime_checkable

import structlog

from .context import Context
from .message import Message
from .metrics import MESSAGES_TX

logger = structlog.get_logger("hearsay.adapters")

ADAPTER_KEY = "hearsay.adapter"


@runtime_checkable
class Sender(Protocol):
    async def send(self, ctx: Context, message: Message) -> None:
        ...


@runtime_checkable
class Adapter(Protocol):
    """A chat network bridge.

    receive() returns the queue the adapter publishes inbound messages
    on; the same queue must be returned on every call.
    """

    async def send(self, ctx: Context, message: Message) -> None:
        ...

    def receive(self) -> "asyncio.Queue[Message]":
        ...


def adapter_name(sender: object) -> str:
    """Label used for metrics and logs: the sender's type name."""
    return type(sender).__name__


class NullSender:
    """Sender that discards anything sent to it."""

    async def send(self, ctx: Context, message: Message) -> None:
        pass


class ResponseWriter:
    """Sends messages through a bound Sender.

    The writer keeps an outbound Message template; set_channel() and
    set_to() change where every later message goes. write() turns each
    call into one complete message, sent immediately.

    A writer belongs to the task that received it. Use copy() to hand
    an independent writer to another task.

    Args:
        sender: Adapter (or other Sender) to deliver through.
        template: Outbound message template; copied, never aliased.
        name: Adapter label for metrics.
    """

    def __init__(self, sender: Sender, template: Optional[Message] = None, name: str = ""):
        self._sender = sender
        self._template = template.model_copy() if template is not None else Message()
        self.name = name or adapter_name(sender)

    @property
    def sender(self) -> Sender:
        return self._sender

    @property
    def template(self) -> Message:
        return self._template

    async def send(self, ctx: Context, message: Message) -> None:
        MESSAGES_TX.inc(self.name, message.channel, message.sender)
        await self._sender.send(ctx, message)

    async def write(self, data: Union[str, bytes], ctx: Optional[Context] = None) -> int:
        """Send `data` as the text of a new message built from the template."""
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        message = self._template.model_copy(update={"text": text})
        await self.send(ctx or Context.background(), message)
        return len(data)

    def set_channel(self, channel: str) -> None:
        self._template.channel = channel

    def set_to(self, to: str) -> None:
        self._template.to = to

    def set_sender(self, sender: Sender) -> None:
        self._sender = sender

    def copy(self) -> "ResponseWriter":
        """New writer: same sender and label, blank template."""
        return ResponseWriter(self._sender, None, self.name)

    def __repr__(self) -> str:
        return f"ResponseWriter(name={self.name!r}, channel={self._template.channel!r})"


def new_null_response_writer(template: Optional[Message] = None) -> ResponseWriter:
    """A ResponseWriter that discards every message sent to it."""
    return ResponseWriter(NullSender(), template, "null")


def response_writer_from_context(ctx: Context) -> Optional[ResponseWriter]:
    """Writer bound to the adapter stored in `ctx`, or None.

    The writer has a blank template: set a channel (or recipient)
    before sending.
    """
    adapter = ctx.value(ADAPTER_KEY)
    if adapter is None:
        return None
    return ResponseWriter(adapter, None, adapter_name(adapter))


def with_adapter(ctx: Context, adapter: Sender) -> Context:
    return ctx.with_value(ADAPTER_KEY, adapter)
