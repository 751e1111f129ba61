"""Command handler framework for hearsay.

Provides CommandSet resolution, the BaseCommandHandler wrapper, the
per-invocation run_command_handler wrapper and the CommandResult
outcome type.
"""

from .base import (
    BaseCommandHandler,
    CommandFunc,
    CommandHandler,
    CommandSet,
    CommandWithSubsHandler,
    command_usage,
    default_command,
    new_command_handler,
    run_command_handler,
)
from .result import CommandResult, Outcome, next_command

__all__ = [
    "BaseCommandHandler",
    "CommandFunc",
    "CommandHandler",
    "CommandResult",
    "CommandSet",
    "CommandWithSubsHandler",
    "Outcome",
    "command_usage",
    "default_command",
    "new_command_handler",
    "next_command",
    "run_command_handler",
]
