"""Abstract base class for hook handlers.

Every handler subclasses :class:`HookHandler` parameterised with the input
and output models of the events it processes. The parameterisation *is* the
capability declaration: the loader reads it from the class, so matching a
handler to an event never requires running handler code or comparing event
names.

Handlers live in plain ``.py`` files under the global or project handler
directory and are compiled by :mod:`dothooks.plugins.loader` at the start of
every invocation. The SDK names (``HookHandler``, the input/output models,
``Decision`` and :mod:`logging`) are available in a handler module without
importing them, although explicit imports from :mod:`dothooks` work too.

Example:
    A handler that blocks edits to ``.env`` files::

        class EnvGuard(HookHandler[ToolEventInput, ToolEventOutput]):
            name = "EnvGuard"

            def __init__(self, logger: logging.Logger) -> None:
                self._logger = logger

            def handle(self, event: ToolEventInput) -> ToolEventOutput:
                path = event.tool_input.get("file_path", "")
                if path.endswith(".env"):
                    self._logger.info("Blocked write to %s", path)
                    return ToolEventOutput.block("Writes to .env are not allowed")
                return ToolEventOutput.success()

    A module that should react to several event families defines one class
    per family.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, ClassVar, Generic, Optional, TypeVar, Union, get_args, get_origin

from dothooks.models import HookInputBase, HookOutputBase

InputT = TypeVar("InputT", bound=HookInputBase)
OutputT = TypeVar("OutputT", bound=HookOutputBase)


class HookHandler(ABC, Generic[InputT, OutputT]):
    """Base class for all hook handlers.

    Subclasses must provide :attr:`name` and :meth:`handle`. ``name`` may be
    a class attribute or a property; handlers are ordered by the name the
    instance reports (see :func:`handler_name`).

    The handler lifecycle for one invocation is:

    1. Instantiation -- the constructor receives the services it asks for
       (see :mod:`dothooks.plugins.services`).
    2. :meth:`handle` -- called once with the event input.
    3. The instance is discarded when the process exits.
    """

    description: ClassVar[str] = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the display name used for ordering and logging."""
        ...

    @abstractmethod
    def handle(self, event: InputT) -> Union[OutputT, Awaitable[OutputT]]:
        """Process *event* and return an output.

        May be a plain method or a coroutine function. Raising an exception
        is logged and treated as "no output" from this handler.

        Args:
            event: The deserialised input for the current event.

        Returns:
            An instance of the declared output model. Return
            ``OutputModel.block(reason)`` to stop later handlers and report
            a blocking decision to the host.
        """
        ...

    @classmethod
    def capability(cls) -> Optional[tuple[type[HookInputBase], type[HookOutputBase]]]:
        """Return the ``(input_model, output_model)`` pair this class declares.

        Walks the class hierarchy for a ``HookHandler[In, Out]`` base with
        concrete model arguments. Returns ``None`` when the class is still
        generic (e.g. an intermediate base class parameterised by type
        variables).
        """
        for klass in cls.__mro__:
            for base in klass.__dict__.get("__orig_bases__", ()):
                if get_origin(base) is not HookHandler:
                    continue
                args = get_args(base)
                if (
                    len(args) == 2
                    and isinstance(args[0], type)
                    and isinstance(args[1], type)
                    and issubclass(args[0], HookInputBase)
                    and issubclass(args[1], HookOutputBase)
                ):
                    return args[0], args[1]
                return None
        return None

    @classmethod
    def declared_name(cls) -> Optional[str]:
        """Return the class-level ``name`` string, or ``None`` for a property."""
        value = getattr(cls, "name", None)
        if isinstance(value, str) and value:
            return value
        return None

    @classmethod
    def display_name(cls) -> str:
        """Return the class-level ``name`` if it is a string, else the class name.

        Used where no instance exists yet (discovery listings, log file
        names). Dispatch order uses :func:`handler_name` on the instance.
        """
        return cls.declared_name() or cls.__name__


def handler_name(handler: HookHandler) -> str:
    """Return the display name *handler* reports, falling back to its class name."""
    try:
        name = handler.name
    except Exception:
        name = None
    return name if isinstance(name, str) and name else type(handler).__name__
