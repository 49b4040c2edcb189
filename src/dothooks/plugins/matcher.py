"""Capability matching and deterministic handler ordering.

:func:`match` selects the capability descriptors that declare exactly the
target ``(input_model, output_model)`` pair and orders them:

1. descriptors from the global root before descriptors from the user root;
2. within each root, lexicographically by display name;
3. ties (identical names) in discovery order, then definition order
   within the unit.

Handlers whose ``name`` is a property are placed by :func:`order_handlers`
once instantiated, using the name the instance reports.

Given the same directory contents the resulting order is always identical.
"""

from __future__ import annotations

import logging
from typing import Collection, Iterable, Sequence

from dothooks.models import HookInputBase, HookOutputBase
from dothooks.plugins.base import HookHandler, handler_name
from dothooks.plugins.loader import CapabilityDescriptor, LoadableUnit, Origin

logger = logging.getLogger(__name__)


def match(
    units: Iterable[LoadableUnit],
    input_model: type[HookInputBase],
    output_model: type[HookOutputBase],
) -> list[CapabilityDescriptor]:
    """Return the ordered descriptors implementing exactly the target pair.

    Subclasses of the target models do not match; the declared pair must be
    identical.
    """
    matched = [
        descriptor
        for unit in units
        for descriptor in unit.capabilities
        if descriptor.input_model is input_model and descriptor.output_model is output_model
    ]
    return order(matched)


def order(descriptors: Iterable[CapabilityDescriptor]) -> list[CapabilityDescriptor]:
    """Sort descriptors by root group, display name, then discovery order."""
    return sorted(
        descriptors,
        key=lambda d: (d.origin is not Origin.GLOBAL, d.name, d.index, d.position),
    )


def order_handlers(
    instances: Iterable[tuple[CapabilityDescriptor, HookHandler]],
) -> list[HookHandler]:
    """Re-sort instantiated handlers by the display name each instance reports.

    A handler whose ``name`` is a property is only known after construction,
    so the final dispatch order is taken here with the same tie-breaks as
    :func:`order`.
    """
    ranked = sorted(
        instances,
        key=lambda pair: (
            pair[0].origin is not Origin.GLOBAL,
            handler_name(pair[1]),
            pair[0].index,
            pair[0].position,
        ),
    )
    return [handler for _, handler in ranked]


def is_selected(name: str, enabled: Collection[str] = (), disabled: Collection[str] = ()) -> bool:
    """Whether the allow/deny lists let the handler called *name* run."""
    if enabled and name not in enabled:
        logger.debug("Handler '%s' not in enabled list, skipping", name)
        return False
    if name in disabled:
        logger.debug("Handler '%s' is disabled, skipping", name)
        return False
    return True


def filter_by_name(
    descriptors: Sequence[CapabilityDescriptor],
    enabled: Sequence[str] = (),
    disabled: Sequence[str] = (),
) -> list[CapabilityDescriptor]:
    """Apply the configured handler allow/deny lists, preserving order.

    When *enabled* is non-empty only those display names are kept.
    Names in *disabled* are always dropped.
    """
    enabled_set = set(enabled)
    disabled_set = set(disabled)
    return [d for d in descriptors if is_selected(d.name, enabled_set, disabled_set)]
