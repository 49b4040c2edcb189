"""Event contract registry.

Maps each of the nine lifecycle event names to the input and output models
that govern it. The registry is built once at import time and never
mutated; :func:`resolve` is consulted once per invocation to learn which
``(input_model, output_model)`` pair the whole request is matched against.

Event families::

    pre-tool-use, post-tool-use           -> ToolEventInput / ToolEventOutput
    session-start, session-end            -> SessionEventInput / SessionEventOutput
    user-prompt-submit, notification,
    stop, subagent-stop, pre-compact      -> GenericEventInput / GenericEventOutput
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from dothooks.exceptions import UnknownEventKind
from dothooks.models import (
    EventName,
    GenericEventInput,
    GenericEventOutput,
    HookInputBase,
    HookOutputBase,
    SessionEventInput,
    SessionEventOutput,
    ToolEventInput,
    ToolEventOutput,
)


@dataclass(frozen=True)
class EventContract:
    """The input and output models associated with one event name."""

    event_name: EventName
    input_model: type[HookInputBase]
    output_model: type[HookOutputBase]

    @property
    def pair(self) -> tuple[type[HookInputBase], type[HookOutputBase]]:
        return (self.input_model, self.output_model)


_TOOL = (ToolEventInput, ToolEventOutput)
_SESSION = (SessionEventInput, SessionEventOutput)
_GENERIC = (GenericEventInput, GenericEventOutput)

_FAMILIES = {
    EventName.PRE_TOOL_USE: _TOOL,
    EventName.POST_TOOL_USE: _TOOL,
    EventName.USER_PROMPT_SUBMIT: _GENERIC,
    EventName.NOTIFICATION: _GENERIC,
    EventName.STOP: _GENERIC,
    EventName.SUBAGENT_STOP: _GENERIC,
    EventName.SESSION_START: _SESSION,
    EventName.SESSION_END: _SESSION,
    EventName.PRE_COMPACT: _GENERIC,
}

CONTRACTS = MappingProxyType(
    {
        name.value: EventContract(name, input_model, output_model)
        for name, (input_model, output_model) in _FAMILIES.items()
    }
)
"""Read-only mapping of event name string to :class:`EventContract`."""


def resolve(event_name: str | EventName) -> EventContract:
    """Return the contract for *event_name*.

    Raises:
        UnknownEventKind: If *event_name* is not a recognised event.
    """
    key = event_name.value if isinstance(event_name, EventName) else event_name
    try:
        return CONTRACTS[key]
    except KeyError:
        raise UnknownEventKind(str(key)) from None


def event_names() -> list[str]:
    """Return every event name in canonical order."""
    return [name.value for name in EventName]


def known_pairs() -> frozenset[tuple[type[HookInputBase], type[HookOutputBase]]]:
    """Return every ``(input_model, output_model)`` pair used by some event."""
    return frozenset(contract.pair for contract in CONTRACTS.values())


def events_for_pair(
    input_model: type[HookInputBase], output_model: type[HookOutputBase]
) -> list[str]:
    """Return the event names whose contract is exactly this pair."""
    return [
        name
        for name, contract in CONTRACTS.items()
        if contract.input_model is input_model and contract.output_model is output_model
    ]
