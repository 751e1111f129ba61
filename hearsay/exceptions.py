"""Exception hierarchy for hearsay.

Every error raised by the command machinery inherits from HearsayError,
which carries an ErrorKind so callers can react to the class of failure
(and so a CommandResult can report it) without string matching.

HelpRequested is the one exception that is not a failure: the flag
parser raises it when a user passes -h/-help/--help, and the command
wrapper turns it into a usage message.
"""

from enum import Enum
from typing import Any, Iterable, Optional


class ErrorKind(str, Enum):
    """Classification of command-path failures."""
    BAD_CLI = "bad_cli"                    # Text could not be tokenized
    UNKNOWN_COMMAND = "unknown_command"
    AMBIGUOUS_COMMAND = "ambiguous_command"
    AMBIGUOUS_EXACT = "ambiguous_exact"
    MISSING_SUB_COMMAND = "missing_sub_command"
    NO_ARGUMENTS = "no_arguments"
    FLAGS = "flags"                        # Flag parsing rejected the args
    REGISTRATION = "registration"
    HANDLER = "handler"                    # Raised by handler code itself


class HearsayError(Exception):
    """Base exception for all hearsay errors.

    Attributes:
        message: Human-readable error description.
        kind: ErrorKind classification.
        module: Originating module name (e.g. "commands").
        context: Arbitrary key-value pairs for structured logging.
    """

    default_kind = ErrorKind.HANDLER

    def __init__(
        self,
        message: str = "",
        *,
        kind: Optional[ErrorKind] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.kind = kind or self.default_kind
        self.module = module
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        return self.message or self.__class__.__name__

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return f"{cls}({self.message!r}, kind={self.kind.value!r}, module={self.module!r})"


class BadCLIError(HearsayError):
    """Message text could not be processed as a command line.

    E.g. mismatched quoting or a dangling escape.
    """

    default_kind = ErrorKind.BAD_CLI

    def __init__(self, message: str = "could not process as command line", **kwargs: Any) -> None:
        super().__init__(message, module=kwargs.pop("module", "message"), **kwargs)


class UnknownCommandError(HearsayError):
    """No registered command matched the first token."""

    default_kind = ErrorKind.UNKNOWN_COMMAND

    def __init__(self, command: str = "", **kwargs: Any) -> None:
        self.command = command
        message = f"unknown command: {command}" if command else "unknown command"
        super().__init__(message, module=kwargs.pop("module", "commands"), **kwargs)


class AmbiguousCommandError(HearsayError):
    """More than one command name has the token as a prefix."""

    default_kind = ErrorKind.AMBIGUOUS_COMMAND

    def __init__(self, command: str, candidates: Iterable[str], **kwargs: Any) -> None:
        self.command = command
        self.candidates = sorted(candidates)
        super().__init__(
            f"ambiguous command, {command}: {', '.join(self.candidates)}",
            module=kwargs.pop("module", "commands"),
            **kwargs,
        )


class AmbiguousExactError(HearsayError):
    """More than one command is registered under exactly the same name."""

    default_kind = ErrorKind.AMBIGUOUS_EXACT

    def __init__(self, command: str, **kwargs: Any) -> None:
        self.command = command
        super().__init__(
            f"multiple exact matches for {command}",
            module=kwargs.pop("module", "commands"),
            **kwargs,
        )


class MissingSubCommandError(HearsayError):
    """The argument vector ran out before a sub-command was named."""

    default_kind = ErrorKind.MISSING_SUB_COMMAND

    def __init__(self, required: Iterable[str], **kwargs: Any) -> None:
        self.required = list(required)
        super().__init__(
            f"required sub-command missing: {', '.join(self.required)}",
            module=kwargs.pop("module", "commands"),
            **kwargs,
        )


class NoArgumentsError(HearsayError):
    """A command handler was invoked with an empty argument vector."""

    default_kind = ErrorKind.NO_ARGUMENTS

    def __init__(self, message: str = "command handler called with no possible arguments", **kwargs: Any) -> None:
        super().__init__(message, module=kwargs.pop("module", "commands"), **kwargs)


class FlagError(HearsayError):
    """Flag parsing failed. `usage` holds the parser's rendered usage line."""

    default_kind = ErrorKind.FLAGS

    def __init__(self, message: str, usage: str = "", **kwargs: Any) -> None:
        self.usage = usage
        super().__init__(message, module=kwargs.pop("module", "message"), **kwargs)


class DuplicateHandlerError(HearsayError):
    """A handler name is already taken in a registry that needs unique names."""

    default_kind = ErrorKind.REGISTRATION

    def __init__(self, name: str, **kwargs: Any) -> None:
        self.name = name
        super().__init__(
            f"handler {name!r} already registered",
            module=kwargs.pop("module", "mux"),
            **kwargs,
        )


class HelpRequested(Exception):
    """Raised by a command's flag parser when help was asked for."""
