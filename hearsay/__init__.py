"""hearsay: message dispatch and command routing for chat bots.

Adapters bridge chat networks to Message objects; the dispatch loop
merges their streams and fans every message out to the capabilities
(raw, hears, command) of a top-level handler, usually a Mux.
"""

__version__ = "0.3.0"

from .commands import (
    BaseCommandHandler,
    CommandHandler,
    CommandResult,
    CommandSet,
    CommandWithSubsHandler,
    Outcome,
    command_usage,
    new_command_handler,
    next_command,
    run_command_handler,
)
from .context import Context
from .dispatch import Dispatcher, LoopState, loop
from .exceptions import (
    AmbiguousCommandError,
    AmbiguousExactError,
    BadCLIError,
    DuplicateHandlerError,
    ErrorKind,
    FlagError,
    HearsayError,
    HelpRequested,
    MissingSubCommandError,
    NoArgumentsError,
    UnknownCommandError,
)
from .handler import (
    BackgroundHandler,
    Handler,
    HearsHandler,
    RawHandler,
    new_background_handler,
    new_hears_handler,
    new_raw_handler,
)
from .message import Message
from .mux import Mux, listen_and_serve
from .response import (
    Adapter,
    ResponseWriter,
    Sender,
    new_null_response_writer,
    response_writer_from_context,
)
from .web import WebHookHandler, context_from_request, new_web_hook_handler

__all__ = [
    "Adapter",
    "AmbiguousCommandError",
    "AmbiguousExactError",
    "BackgroundHandler",
    "BadCLIError",
    "BaseCommandHandler",
    "CommandHandler",
    "CommandResult",
    "CommandSet",
    "CommandWithSubsHandler",
    "Context",
    "Dispatcher",
    "DuplicateHandlerError",
    "ErrorKind",
    "FlagError",
    "Handler",
    "HearsHandler",
    "HearsayError",
    "HelpRequested",
    "LoopState",
    "Message",
    "MissingSubCommandError",
    "Mux",
    "NoArgumentsError",
    "Outcome",
    "RawHandler",
    "ResponseWriter",
    "Sender",
    "UnknownCommandError",
    "WebHookHandler",
    "command_usage",
    "context_from_request",
    "listen_and_serve",
    "loop",
    "new_background_handler",
    "new_command_handler",
    "new_hears_handler",
    "new_null_response_writer",
    "new_raw_handler",
    "new_web_hook_handler",
    "next_command",
    "response_writer_from_context",
    "run_command_handler",
]
