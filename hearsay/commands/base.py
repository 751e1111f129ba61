"""Command handlers, command sets and sub-command resolution.

A command handler receives a message whose text has been split into
an argument vector (shell quoting honoured), with args[0] being the
name the command was invoked as. A handler that owns a CommandSet of
sub-commands parses its own flags and then returns
next_command(ctx); the remaining args are resolved against the set,
and so on recursively.

Key classes:
    CommandHandler: Protocol for the command capability.
    CommandSet: Named command handlers with prefix/exact resolution.
    BaseCommandHandler: Wraps a plain async function (plus optional
        sub-commands) as a CommandHandler.

Key functions:
    run_command_handler: Per-invocation wrapper (flag scope, usage
        synthesis, exception containment).
    command_usage: Render the usage message for a handler.
"""

from __future__ import annotations

import shlex
from typing import (
    Awaitable, Callable, Dict, Iterator, List, Optional, Protocol, Tuple,
    runtime_checkable,
)

import structlog

from ..context import Context
from ..exceptions import (
    AmbiguousCommandError,
    AmbiguousExactError,
    BadCLIError,
    FlagError,
    HearsayError,
    HelpRequested,
    MissingSubCommandError,
    NoArgumentsError,
    UnknownCommandError,
)
from ..handler import BaseHandler, log_handler_panic
from ..message import Message
from ..response import ResponseWriter, new_null_response_writer
from .result import CommandResult, Outcome, next_command

logger = structlog.get_logger("hearsay.commands")

CommandFunc = Callable[[Context, ResponseWriter, Message], Awaitable[Optional[CommandResult]]]


@runtime_checkable
class CommandHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    async def command(self, ctx: Context, w: ResponseWriter, m: Message) -> Optional[CommandResult]:
        ...


@runtime_checkable
class CommandWithSubsHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    async def command(self, ctx: Context, w: ResponseWriter, m: Message) -> Optional[CommandResult]:
        ...

    def sub_commands(self) -> Optional["CommandSet"]:
        ...


class CommandSet:
    """Maps command names to CommandHandlers.

    Built before the dispatch loop starts and only read afterwards.
    """

    def __init__(self, *handlers: CommandHandler):
        self._handlers: Dict[str, CommandHandler] = {}
        for h in handlers:
            self.add_command_handler(h)

    def add_command_handler(self, h: CommandHandler) -> None:
        """Register `h` under its described name, replacing any previous one."""
        name, _ = h.describe()
        if name in self._handlers:
            logger.warning("command_handler_conflict", command=name, handler=type(h).__name__)
        self._handlers[name] = h

    def get(self, name: str) -> Optional[CommandHandler]:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def list(self) -> List[Tuple[str, str, CommandHandler]]:
        """(name, description, handler) for every command.

        Sorted alphabetically, except that "help" always comes first.
        """
        entries = sorted(
            (name, h.describe()[1], h)
            for name, h in self._handlers.items()
            if name != "help"
        )
        if "help" in self._handlers:
            help_handler = self._handlers["help"]
            entries.insert(0, ("help", help_handler.describe()[1], help_handler))
        return entries

    def names(self) -> List[str]:
        return [name for name, _, _ in self.list()]

    async def next_command(self, ctx: Context, w: ResponseWriter, m: Message) -> CommandResult:
        """Pick the command named by args[0] and run it.

        An exact name match always wins. Otherwise args[0] must be a
        prefix of exactly one command name.
        """
        try:
            args = m.ensure_args()
        except BadCLIError as e:
            return CommandResult.failure(e)
        if not args:
            return CommandResult.failure(MissingSubCommandError(self.names()))

        token = args[0]
        prefix = [name for name in self._handlers if name.startswith(token)]
        exact = [name for name in self._handlers if name == token]

        if not prefix and not exact:
            return CommandResult.failure(UnknownCommandError(token))
        if len(exact) > 1:
            return CommandResult.failure(AmbiguousExactError(token))
        if len(exact) == 1:
            return await run_command_handler(ctx, self._handlers[exact[0]], w, m)
        if len(prefix) == 1:
            return await run_command_handler(ctx, self._handlers[prefix[0]], w, m)
        return CommandResult.failure(AmbiguousCommandError(token, prefix))


async def default_command(ctx: Context, w: ResponseWriter, m: Message) -> CommandResult:
    """Parse flags, then defer to the sub-commands."""
    m.parse()
    return next_command(ctx)


class BaseCommandHandler(BaseHandler):
    """A CommandHandler built from a function and optional sub-commands.

    If the function returns a DEFER result, run_command_handler
    resolves the message's remaining args against `subs` with the
    context it carried.

    Args:
        name: Command name (what users type).
        description: One-line description for help text.
        func: Async (ctx, w, m) -> Optional[CommandResult]. Defaults to
            parsing flags then deferring to the sub-commands.
        subs: Optional sub-command set.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        func: Optional[CommandFunc] = None,
        subs: Optional[CommandSet] = None,
    ):
        super().__init__(name, description)
        self._func = func or default_command
        self._subs = subs

    async def command(self, ctx: Context, w: ResponseWriter, m: Message) -> Optional[CommandResult]:
        return await self._func(ctx, w, m)

    def sub_commands(self) -> Optional[CommandSet]:
        return self._subs


def new_command_handler(
    name: str,
    description: str = "",
    func: Optional[CommandFunc] = None,
    subs: Optional[CommandSet] = None,
) -> BaseCommandHandler:
    """Wrap `func` as a CommandHandler with optional sub-commands."""
    return BaseCommandHandler(name, description, func, subs)


async def run_command_handler(
    ctx: Context, h: CommandHandler, w: ResponseWriter, m: Message
) -> CommandResult:
    """Invoke `h` as a command for message `m`.

    Attaches a fresh flag parser named after args[0], runs the handler
    and normalises what it did into a CommandResult. Help requests are
    answered with a usage message and reported as SKIP_REMAINING. A
    DEFER result is resolved against the handler's sub-commands.
    Exceptions other than HearsayError are logged and swallowed.
    """
    try:
        args = m.ensure_args()
    except BadCLIError as e:
        return CommandResult.failure(e)
    if not args:
        return CommandResult.failure(NoArgumentsError())

    name = args[0]
    m.attach_flags(name)
    logger.debug("running_command", handler=h.describe()[0], args=list(args))

    try:
        result = await h.command(ctx, w, m)
    except HelpRequested:
        result = CommandResult.usage()
    except HearsayError as e:
        return CommandResult.failure(e)
    except Exception:
        log_handler_panic(h, "command", command=name)
        return CommandResult.success()

    if result is None:
        return CommandResult.success()
    if result.outcome is Outcome.USAGE_REQUESTED:
        await w.write(await command_usage(h, name, m), ctx)
        return CommandResult.skip_remaining()
    if result.outcome is Outcome.DEFER:
        subs = h.sub_commands() if isinstance(h, CommandWithSubsHandler) else None
        if subs is None:
            return CommandResult.failure(MissingSubCommandError([]))
        return await subs.next_command(result.context or ctx, w, m)
    return result


async def command_usage(h: CommandHandler, name: str, m: Optional[Message] = None) -> str:
    """Render usage text for `h` invoked as `name`.

    Flag help is taken from `m`'s flag parser output when present,
    otherwise by running the handler with -help against a writer that
    discards everything.
    """
    _, description = h.describe()
    flag_help = m.flag_output if m is not None else ""
    if not flag_help:
        flag_help = await _probe_flag_help(h, name)

    lines = []
    if description:
        lines.append(f"{name} - {description}")
    if flag_help:
        lines.append(flag_help.rstrip())
    else:
        lines.append(f"usage: {name}")

    subs = h.sub_commands() if isinstance(h, CommandWithSubsHandler) else None
    if subs is not None and len(subs):
        lines.append("")
        lines.append("sub-commands:")
        width = max(len(sub_name) for sub_name in subs.names())
        for sub_name, sub_desc, _ in subs.list():
            lines.append(f"  {sub_name.ljust(width)}  {sub_desc}".rstrip())
    return "\n".join(lines) + "\n"


async def _probe_flag_help(h: CommandHandler, name: str) -> str:
    probe = Message(text=shlex.join([name, "-help"]))
    probe.ensure_args()
    probe.attach_flags(name)
    try:
        await h.command(Context.background(), new_null_response_writer(), probe)
    except (HelpRequested, FlagError):
        pass
    except Exception:
        logger.debug("usage_probe_failed", handler=h.describe()[0], exc_info=True)
    return probe.flag_output
