"""Outcome of a command invocation."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..exceptions import ErrorKind, HearsayError

if TYPE_CHECKING:
    from ..context import Context


class Outcome(str, Enum):
    SUCCESS = "success"
    USAGE_REQUESTED = "usage_requested"  # Handler wants its usage shown
    DEFER = "defer"                      # Resolve args[0] against the sub-commands
    SKIP_REMAINING = "skip_remaining"    # Handled; skip any later hears handlers
    FAILURE = "failure"


@dataclass(frozen=True)
class CommandResult:
    """What happened when a command ran.

    Command functions return one of these (or None, meaning success)
    instead of raising to transfer control. DEFER carries the context
    the sub-command should run with; FAILURE carries the error.
    """

    outcome: Outcome = Outcome.SUCCESS
    context: Optional["Context"] = None
    error: Optional[HearsayError] = None

    @classmethod
    def success(cls) -> "CommandResult":
        return cls(Outcome.SUCCESS)

    @classmethod
    def usage(cls) -> "CommandResult":
        return cls(Outcome.USAGE_REQUESTED)

    @classmethod
    def defer(cls, ctx: "Context") -> "CommandResult":
        return cls(Outcome.DEFER, context=ctx)

    @classmethod
    def skip_remaining(cls) -> "CommandResult":
        return cls(Outcome.SKIP_REMAINING)

    @classmethod
    def failure(cls, error: HearsayError) -> "CommandResult":
        return cls(Outcome.FAILURE, error=error)

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILURE

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None


def next_command(ctx: "Context") -> CommandResult:
    """Ask the caller to hand the remaining args to a sub-command."""
    return CommandResult.defer(ctx)
