"""Mux: one handler that fans out to many.

Applications register their handlers on a Mux and hand the Mux to the
dispatch loop. The Mux is itself a raw, background and web hook
handler: for each message it runs the registered raw handlers, then
(for messages addressed to the bot) its command set, then all of
its hears handlers concurrently.

Key classes:
    Mux: Handler registry and router.

Key functions:
    listen_and_serve: Run the dispatch loop for a handler.
"""

import asyncio
from typing import Dict, List, Optional, Set, Union

import structlog
from aiohttp import web
from yarl import URL

from .commands import (
    CommandHandler,
    CommandResult,
    CommandSet,
    Outcome,
    command_usage,
    new_command_handler,
)
from .context import Context
from .dispatch import Dispatcher, log_task_exception, loop
from .exceptions import DuplicateHandlerError, ErrorKind, FlagError
from .handler import (
    BackgroundHandler,
    BaseHandler,
    Handler,
    HearsHandler,
    RawHandler,
    handler_name,
    run_background_handler,
    run_hears_handler,
    run_raw_handler,
)
from .message import Message
from .response import Adapter, ResponseWriter, Sender
from .web import WebHookHandler

logger = structlog.get_logger("hearsay.dispatch")


class Mux(BaseHandler):
    """Routes messages to registered handlers by capability.

    Args:
        name: Name of the bot, used in help text.
        description: Description for help text.
        url: Optional external base URL for web hooks.
    """

    def __init__(self, name: str = "mux", description: str = "", url: Optional[Union[URL, str]] = None):
        super().__init__(name, description)
        self.commands = CommandSet()
        self._raw: List[RawHandler] = []
        self._hears: List[HearsHandler] = []
        self._background: List[BackgroundHandler] = []
        self._web_hooks: Dict[str, WebHookHandler] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._url = URL(str(url)) if url is not None else URL()
        self.commands.add_command_handler(
            new_command_handler("help", "list commands, or describe one", self._help)
        )

    # --- Registration ---

    def handle(self, h: Handler) -> None:
        """Register `h` for every capability it supports."""
        registered = False
        if isinstance(h, RawHandler):
            self.handle_raw(h)
            registered = True
        if isinstance(h, HearsHandler):
            self.handle_hears(h)
            registered = True
        if isinstance(h, CommandHandler):
            self.handle_command(h)
            registered = True
        if isinstance(h, BackgroundHandler):
            self.handle_background(h)
            registered = True
        if isinstance(h, WebHookHandler):
            self.handle_http(h)
            registered = True
        if not registered:
            logger.warning("handler_has_no_capabilities", handler=handler_name(h))

    def handle_raw(self, h: RawHandler) -> None:
        self._raw.append(h)

    def handle_hears(self, h: HearsHandler) -> None:
        self._hears.append(h)

    def handle_command(self, h: CommandHandler) -> None:
        self.commands.add_command_handler(h)

    def handle_background(self, h: BackgroundHandler) -> None:
        self._background.append(h)

    def handle_http(self, h: WebHookHandler) -> None:
        """Register a web hook under /<name>/.

        Raises:
            DuplicateHandlerError: If a web hook of that name exists.
        """
        name, _ = h.describe()
        if name in self._web_hooks:
            raise DuplicateHandlerError(name)
        self._web_hooks[name] = h
        if self._url:
            h.set_url(self._hook_url(name))

    @property
    def web_hooks(self) -> Dict[str, WebHookHandler]:
        return dict(self._web_hooks)

    # --- Raw capability ---

    async def process_message(self, ctx: Context, w: ResponseWriter, m: Message) -> None:
        for rh in self._raw:
            self._spawn(run_raw_handler(ctx, rh, _writer_for(w, m), m.model_copy()))

        result: Optional[CommandResult] = None
        if m.to_bot:
            result = await self.commands.next_command(ctx, w, m)
            if result.outcome is Outcome.SKIP_REMAINING:
                return
            if result.failed and result.kind is not ErrorKind.UNKNOWN_COMMAND:
                await w.write(_describe_failure(result), ctx)
                return

        # Hears handlers run concurrently; the unknown-command reply waits on all of them.
        heard = await asyncio.gather(*(
            run_hears_handler(ctx, hh, _writer_for(w, m), m.model_copy())
            for hh in self._hears
        ))

        if result is not None and result.kind is ErrorKind.UNKNOWN_COMMAND and not any(heard):
            await w.write(f"{result.error}, try help\n", ctx)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)

    # --- Background capability ---

    async def start_background(self, ctx: Context, w: ResponseWriter) -> None:
        """Start every registered background handler, each with its own writer."""
        for bh in self._background:
            self._spawn(run_background_handler(ctx, bh, w.copy()))

    # --- Web hook capability ---

    @property
    def url(self) -> URL:
        return self._url

    def set_url(self, url: Union[URL, str]) -> None:
        """Set the external base URL; every web hook lives at <url>/<name>/."""
        self._url = URL(str(url))
        for name, h in self._web_hooks.items():
            h.set_url(self._hook_url(name))

    def _hook_url(self, name: str) -> URL:
        base = self._url if self._url.path.endswith("/") else self._url.with_path(self._url.path + "/")
        return base.join(URL(f"{name}/"))

    def set_adapter(self, adapter: Sender) -> None:
        for h in self._web_hooks.values():
            h.set_adapter(adapter)

    async def serve_http(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info.get("hook", "")
        h = self._web_hooks.get(name)
        if h is None:
            raise web.HTTPNotFound(text=f"no web hook named {name!r}\n")
        return await h.serve_http(request)

    def web_app(self) -> web.Application:
        """aiohttp application routing /<name>/... to the named web hook."""
        app = web.Application()
        app.router.add_route("*", "/{hook}", self.serve_http)
        app.router.add_route("*", "/{hook}/{tail:.*}", self.serve_http)
        return app

    # --- Built-in help ---

    async def _help(self, ctx: Context, w: ResponseWriter, m: Message) -> None:
        m.flags.description = "List commands, or show usage for one."
        m.parse()
        if m.args:
            await self._help_command(ctx, w, m.args[0])
            return

        lines = []
        if self.description:
            lines.append(f"{self.name} - {self.description}")
        lines.append("commands:")
        width = max(len(name) for name in self.commands.names())
        for name, desc, _ in self.commands.list():
            lines.append(f"  {name.ljust(width)}  {desc}".rstrip())
        if self._hears:
            lines.append("")
            lines.append("listening for:")
            for hh in self._hears:
                hname, hdesc = hh.describe()
                lines.append(f"  {hname}: /{hh.hears().pattern}/ {hdesc}".rstrip())
        if self._web_hooks:
            lines.append("")
            lines.append("web hooks:")
            for name, wh in sorted(self._web_hooks.items()):
                lines.append(f"  {name}: {wh.url}")
        await w.write("\n".join(lines) + "\n", ctx)

    async def _help_command(self, ctx: Context, w: ResponseWriter, name: str) -> None:
        h = self.commands.get(name)
        if h is None:
            matches = [n for n in self.commands.names() if n.startswith(name)]
            if len(matches) != 1:
                await w.write(f"no such command: {name}\n", ctx)
                return
            name = matches[0]
            h = self.commands.get(name)
        await w.write(await command_usage(h, name), ctx)


def _writer_for(w: ResponseWriter, m: Message) -> ResponseWriter:
    return ResponseWriter(w.sender, m, w.name)


def _describe_failure(result: CommandResult) -> str:
    text = f"error: {result.error}\n"
    if isinstance(result.error, FlagError) and result.error.usage:
        text += result.error.usage
    return text


async def listen_and_serve(ctx: Context, handler: Handler, adapter: Adapter, *adapters: Adapter) -> Dispatcher:
    """Run the dispatch loop for `handler` until `ctx` is cancelled."""
    return await loop(ctx, handler, adapter, *adapters)
