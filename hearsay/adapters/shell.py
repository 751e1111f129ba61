"""Adapter that talks to the local terminal.

Every line typed on stdin becomes a message addressed to the bot;
every outbound message is printed to stdout.
"""

import asyncio
import getpass
import sys
from typing import Optional, TextIO

import structlog

from ..context import Context
from ..message import Message

logger = structlog.get_logger("hearsay.adapters")


class ShellAdapter:
    """Reads stdin, writes stdout.

    Args:
        nick: Name the bot prints its messages under.
        stdin: Input stream (default sys.stdin).
        stdout: Output stream (default sys.stdout).
    """

    def __init__(self, nick: str, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.nick = nick
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._user = getpass.getuser()
        self._inbound: "asyncio.Queue[Message]" = asyncio.Queue()

    def receive(self) -> "asyncio.Queue[Message]":
        return self._inbound

    async def send(self, ctx: Context, message: Message) -> None:
        text = message.text.rstrip("\n")
        for line in text.splitlines() or [""]:
            self._stdout.write(f"{self.nick}: {line}\n")
        self._stdout.flush()

    async def run(self, ctx: Context) -> None:
        """Read lines until EOF or cancellation; EOF cancels `ctx`."""
        loop = asyncio.get_running_loop()
        while not ctx.cancelled:
            line = await loop.run_in_executor(None, self._stdin.readline)
            if not line:
                logger.info("shell_input_closed")
                ctx.cancel()
                return
            text = line.strip()
            if not text:
                continue
            await self._inbound.put(Message(
                channel="shell",
                sender=self._user,
                user_id=self._user,
                private=True,
                to_bot=True,
                text=text,
            ))
