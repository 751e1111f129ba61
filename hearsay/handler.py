"""Handler capabilities and the wrappers that invoke them.

Every handler describes itself with a (name, description) pair. On top
of that a handler may support any subset of five capabilities, each
an optional protocol checked with isinstance() at dispatch time:

    RawHandler         every inbound message
    HearsHandler       messages whose text matches a pattern
    CommandHandler     command-line style messages (see hearsay.commands)
    BackgroundHandler  started once when the loop starts
    WebHookHandler     HTTP requests (see hearsay.web)

The run_* functions invoke one capability and contain any exception
the handler raises: it is logged with its traceback and never reaches
the dispatch loop or sibling invocations.
"""

import re
from typing import Awaitable, Callable, List, Optional, Pattern, Protocol, Tuple, Union, runtime_checkable

import structlog

from .context import Context
from .exceptions import HelpRequested
from .message import Message
from .response import ResponseWriter

logger = structlog.get_logger("hearsay.dispatch")

RawFunc = Callable[[Context, ResponseWriter, Message], Awaitable[None]]
HeardFunc = Callable[[Context, ResponseWriter, Message, List[List[str]]], Awaitable[None]]
BackgroundFunc = Callable[[Context, ResponseWriter], Awaitable[None]]


@runtime_checkable
class Handler(Protocol):
    def describe(self) -> Tuple[str, str]:
        """Return (name, description)."""
        ...


@runtime_checkable
class RawHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    async def process_message(self, ctx: Context, w: ResponseWriter, m: Message) -> None:
        ...


@runtime_checkable
class HearsHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    def hears(self) -> Pattern[str]:
        ...

    async def heard(self, ctx: Context, w: ResponseWriter, m: Message, submatches: List[List[str]]) -> None:
        ...


@runtime_checkable
class BackgroundHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    async def start_background(self, ctx: Context, w: ResponseWriter) -> None:
        ...


class BaseHandler:
    """Name and description shared by every handler."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description

    def describe(self) -> Tuple[str, str]:
        return self.name, self.description

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class BaseRawHandler(BaseHandler):
    def __init__(self, name: str, description: str, func: RawFunc):
        super().__init__(name, description)
        self._func = func

    async def process_message(self, ctx: Context, w: ResponseWriter, m: Message) -> None:
        await self._func(ctx, w, m)


class BaseHearsHandler(BaseHandler):
    def __init__(self, name: str, description: str, pattern: Union[str, Pattern[str]], func: HeardFunc):
        super().__init__(name, description)
        self._pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._func = func

    def hears(self) -> Pattern[str]:
        return self._pattern

    async def heard(self, ctx: Context, w: ResponseWriter, m: Message, submatches: List[List[str]]) -> None:
        await self._func(ctx, w, m, submatches)


class BaseBackgroundHandler(BaseHandler):
    def __init__(self, name: str, description: str, func: BackgroundFunc):
        super().__init__(name, description)
        self._func = func

    async def start_background(self, ctx: Context, w: ResponseWriter) -> None:
        await self._func(ctx, w)


def new_raw_handler(name: str, description: str, func: RawFunc) -> BaseRawHandler:
    """Wrap `func` as a RawHandler."""
    return BaseRawHandler(name, description, func)


def new_hears_handler(
    name: str, description: str, pattern: Union[str, Pattern[str]], func: HeardFunc
) -> BaseHearsHandler:
    """Wrap `func` as a HearsHandler responding to `pattern`."""
    return BaseHearsHandler(name, description, pattern, func)


def new_background_handler(name: str, description: str, func: BackgroundFunc) -> BaseBackgroundHandler:
    """Wrap `func` as a BackgroundHandler."""
    return BaseBackgroundHandler(name, description, func)


def handler_name(h: object) -> str:
    if isinstance(h, Handler):
        return h.describe()[0]
    return type(h).__name__


def find_submatches(pattern: Pattern[str], text: str) -> Optional[List[List[str]]]:
    """All non-overlapping matches as [whole, group1, ...], or None."""
    matches = [
        [m.group(0)] + [g if g is not None else "" for g in m.groups()]
        for m in pattern.finditer(text)
    ]
    return matches or None


def log_handler_panic(h: object, capability: str, **extra) -> None:
    """Log the exception currently being handled, with traceback."""
    logger.error(
        "handler_panic",
        handler=handler_name(h),
        capability=capability,
        exc_info=True,
        **extra,
    )


async def run_raw_handler(ctx: Context, h: RawHandler, w: ResponseWriter, m: Message) -> None:
    try:
        await h.process_message(ctx, w, m)
    except HelpRequested:
        pass
    except Exception:
        log_handler_panic(h, "raw", channel=m.channel)


async def run_hears_handler(ctx: Context, h: HearsHandler, w: ResponseWriter, m: Message) -> bool:
    """Invoke `h` if its pattern matches the message text.

    Returns True if the pattern matched (even if the handler then
    failed), False if the handler was skipped.
    """
    submatches = find_submatches(h.hears(), m.text)
    if submatches is None:
        return False
    try:
        await h.heard(ctx, w, m, submatches)
    except HelpRequested:
        pass
    except Exception:
        log_handler_panic(h, "hears", channel=m.channel)
    return True


async def run_background_handler(ctx: Context, h: BackgroundHandler, w: ResponseWriter) -> None:
    logger.info("background_handler_starting", handler=handler_name(h))
    try:
        await h.start_background(ctx, w)
    except Exception:
        log_handler_panic(h, "background")
    else:
        logger.info("background_handler_stopped", handler=handler_name(h))
