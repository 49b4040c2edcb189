"""Exception hierarchy for dothooks.

All exceptions inherit from :class:`DotHooksError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`dothooks.exit_codes`.

Only :class:`UnknownEventKind` and :class:`ConfigError` abort an invocation.
The remaining types describe per-unit or per-handler conditions that the
loader, instantiator, dispatcher and runtime catch, log, and recover from so
that one misbehaving handler never stops the others.

Subclass hierarchy::

    DotHooksError (exit 1)
    +-- UnknownEventKind        (exit 1)
    +-- ConfigError             (exit 1)
    +-- CompileFailure          (recovered: unit dropped)
    +-- InstantiationFailure    (recovered: capability dropped)
    +-- HandlerFault            (recovered: output ignored)
    +-- DeserializationFailure  (recovered: default input)
    +-- InvocationTimeout       (exit 124)
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from dothooks.exit_codes import EXIT_GENERIC_FAILURE, EXIT_TIMEOUT


class DotHooksError(Exception):
    """Base exception for all dothooks errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class UnknownEventKind(DotHooksError):
    """Raised when an event name is not one of the recognised lifecycle events."""

    def __init__(self, event_name: str):
        super().__init__(f"Unknown hook event '{event_name}'")
        self.event_name = event_name


class ConfigError(DotHooksError):
    """Raised for configuration problems (invalid JSON, values failing validation)."""


class CompileFailure(DotHooksError):
    """A source unit could not be compiled or its module body raised.

    Attributes:
        path: The offending source file.
        errors: One message per diagnostic, in the order they were found.
    """

    def __init__(self, path: Path, errors: Sequence[str]):
        self.path = Path(path)
        self.errors = list(errors)
        super().__init__(f"Failed to compile {self.path.name}: {'; '.join(self.errors)}")


class InstantiationFailure(DotHooksError):
    """No usable constructor shape could be satisfied for a handler class."""


class HandlerFault(DotHooksError):
    """A handler raised, or returned something other than an output model."""

    def __init__(self, handler_name: str, detail: str):
        super().__init__(f"Handler '{handler_name}' failed: {detail}")
        self.handler_name = handler_name
        self.detail = detail


class DeserializationFailure(DotHooksError):
    """The raw input document could not be parsed into the event's input model."""


class InvocationTimeout(DotHooksError):
    """The invocation did not finish within its time budget."""

    exit_code = EXIT_TIMEOUT
