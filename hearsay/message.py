"""Normalized chat message and command-line parsing.

Adapters build a Message for every inbound utterance; handlers build
one to send. When a message is processed as a command its Text is
tokenized (shell quoting rules) at most once, and a per-command flag
parser is attached so the handler can declare and parse flags.

Key classes:
    Message: Pydantic model for one chat utterance.
    FlagParser: argparse parser that writes into a buffer and raises
        instead of exiting.
"""

import argparse
import io
import shlex
from typing import IO, List, NoReturn, Optional

from pydantic import BaseModel, PrivateAttr

from .exceptions import BadCLIError, FlagError, HelpRequested, NoArgumentsError

_REST = "_hearsay_rest"


class FlagParser(argparse.ArgumentParser):
    """Argument parser scoped to a single command invocation.

    Help and error output go to `output` rather than the process's
    stdout/stderr, and parse failures raise rather than calling
    sys.exit(). `-h`, `-help` and `--help` all request help.
    """

    def __init__(self, prog: str, output: Optional[io.StringIO] = None, **kwargs):
        kwargs.setdefault("add_help", False)
        super().__init__(prog=prog, **kwargs)
        self.output = output if output is not None else io.StringIO()
        self._collects_rest = False
        self.add_argument(
            "-h", "-help", "--help",
            action="help",
            default=argparse.SUPPRESS,
            help="show this help message",
        )

    def collect_rest(self) -> None:
        """Stop flag parsing at the first positional, keeping the rest.

        Safe to call more than once.
        """
        if not self._collects_rest:
            self.add_argument(_REST, nargs=argparse.REMAINDER, help=argparse.SUPPRESS)
            self._collects_rest = True

    def _print_message(self, message: str, file: Optional[IO[str]] = None) -> None:
        if message:
            self.output.write(message)

    def exit(self, status: int = 0, message: Optional[str] = None) -> NoReturn:
        if message:
            self.output.write(message)
        if status == 0:
            raise HelpRequested(self.prog)
        raise FlagError(message or f"{self.prog}: bad flags", usage=self.format_usage())

    def error(self, message: str) -> NoReturn:
        usage = self.format_usage()
        self.output.write(usage)
        self.output.write(f"{self.prog}: error: {message}\n")
        raise FlagError(f"{self.prog}: {message}", usage=usage)


def tokenize(text: str) -> List[str]:
    """Split text into an argument vector using POSIX shell rules.

    Raises:
        BadCLIError: On mismatched quoting or a trailing escape.
    """
    try:
        return shlex.split(text)
    except ValueError as e:
        raise BadCLIError(detail=str(e)) from e


class Message(BaseModel):
    """One chat utterance, inbound or outbound.

    Attributes:
        channel: Destination/origin room id.
        sender: Sender id ("From").
        to: Optional direct-recipient override.
        user_id: Network user id of the sender.
        private: True for direct messages.
        to_bot: True when the utterance was addressed to the bot.
        text: Raw utterance.
    """

    channel: str = ""
    sender: str = ""
    to: str = ""
    user_id: str = ""
    private: bool = False
    to_bot: bool = False
    text: str = ""

    _args: Optional[List[str]] = PrivateAttr(default=None)
    _flags: Optional[FlagParser] = PrivateAttr(default=None)
    _flag_output: Optional[io.StringIO] = PrivateAttr(default=None)
    _options: Optional[argparse.Namespace] = PrivateAttr(default=None)

    @property
    def args(self) -> Optional[List[str]]:
        """The argument vector, or None if the text has not been parsed yet."""
        return self._args

    def set_args(self, args: Optional[List[str]]) -> None:
        self._args = None if args is None else list(args)

    def ensure_args(self) -> List[str]:
        """Tokenize `text` into the argument vector unless already done.

        Raises:
            BadCLIError: If the text cannot be tokenized.
        """
        if self._args is None:
            self._args = tokenize(self.text)
        return self._args

    @property
    def flags(self) -> FlagParser:
        """The flag parser attached for the current command invocation.

        Outside the command wrapper a parser named after args[0] is
        attached on first use.
        """
        if self._flags is None:
            args = self.ensure_args()
            if not args:
                raise NoArgumentsError(module="message")
            self.attach_flags(args[0])
        return self._flags

    @property
    def flag_output(self) -> str:
        """Help/error text the flag parser has produced so far."""
        return self._flag_output.getvalue() if self._flag_output is not None else ""

    @property
    def options(self) -> Optional[argparse.Namespace]:
        """Parsed flag values from the last parse(), if any."""
        return self._options

    def attach_flags(self, name: str) -> FlagParser:
        """Start a fresh flag-parsing scope for command `name`."""
        self._flag_output = io.StringIO()
        self._flags = FlagParser(name, output=self._flag_output)
        self._options = None
        return self._flags

    def parse(self) -> argparse.Namespace:
        """Parse flags from args[1:] and advance args to the remainder.

        Flag parsing stops at the first positional argument; that
        argument and everything after it become the new argument
        vector, so args[0] names the next sub-command.

        Raises:
            HelpRequested: If -h/-help/--help was given.
            FlagError: If the flags were invalid.
        """
        args = self.ensure_args()
        parser = self.flags
        parser.collect_rest()
        namespace = parser.parse_args(args[1:])
        rest = getattr(namespace, _REST, [])
        delattr(namespace, _REST)
        self._args = list(rest)
        self._options = namespace
        return namespace

    def reply(self, text: str) -> "Message":
        """A new outbound message addressed back to where this one came from."""
        return Message(channel=self.channel, to=self.sender, private=self.private, text=text)
