"""Main entry point for hearsay.

Initializes logging in two phases (defaults then config-driven),
builds a Mux with a couple of example handlers, serves web hooks over
aiohttp and runs the dispatch loop against the shell adapter, with
graceful shutdown on SIGTERM/SIGINT or end of input.

Key functions:
    build_mux: The Mux the bot runs with.
    main: Async entry point.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import signal
import sys

import structlog
from aiohttp import web

from . import __version__
from .commands import new_command_handler
from .context import Context
from .logging_config import setup_logging
from .message import Message
from .mux import Mux, listen_and_serve
from .response import ResponseWriter, response_writer_from_context
from .web import context_from_request, new_web_hook_handler


async def _ping(ctx: Context, w: ResponseWriter, m: Message) -> None:
    m.flags.add_argument("-n", type=int, default=1, help="number of pongs")
    opts = m.parse()
    for _ in range(max(opts.n, 1)):
        await w.write("PONG", ctx)


async def _announce(request: web.Request) -> web.StreamResponse:
    ctx = context_from_request(request)
    w = response_writer_from_context(ctx)
    if w is None:
        raise web.HTTPServiceUnavailable(text="no adapter bound\n")
    w.set_channel(request.query.get("channel", "shell"))
    await w.write(await request.text() or "ping!", ctx)
    return web.Response(text="sent\n")


def build_mux(config) -> Mux:
    """The bot's handlers."""
    mux = Mux(config.nick, "a hearsay chat bot", url=config.base_url)
    mux.handle(new_command_handler("ping", "reply with PONG", _ping))
    mux.handle(new_web_hook_handler("announce", "post the request body to a channel", _announce))
    return mux


async def main():
    """Main async entry point."""
    setup_logging()
    logger = structlog.get_logger("hearsay")

    logger.info("hearsay_starting", version=__version__)

    from .adapters import ShellAdapter
    from .config import get_config

    config = get_config()
    config.validate()

    setup_logging(config)

    ctx = Context.background()
    mux = build_mux(config)
    adapter = ShellAdapter(config.nick)

    loop = asyncio.get_running_loop()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        ctx.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    runner = None
    if config.http_enabled:
        runner = web.AppRunner(mux.web_app())
        await runner.setup()
        site = web.TCPSite(runner, config.http_host, config.http_port)
        await site.start()
        logger.info("web_hooks_listening", url=str(mux.url))

    input_task = asyncio.create_task(adapter.run(ctx))
    try:
        await listen_and_serve(ctx, mux, adapter)
    except Exception as e:
        logger.error("bot_error", error=str(e))
        raise
    finally:
        ctx.cancel()
        input_task.cancel()
        if runner is not None:
            await runner.cleanup()
        logger.info("hearsay_stopped")


def run():
    """Synchronous entry point for the ``hearsay`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except SystemExit as e:
        sys.exit(e.code)


if __name__ == "__main__":
    run()
