"""Handler system for dothooks -- discovery, compilation, matching and dispatch.

Handlers are plain source files compiled at runtime. The pipeline for one
event is:

* :func:`discover` -- list source units in the global and user roots.
* :func:`compile_units` -- compile them into :class:`LoadableUnit` objects
  carrying :class:`CapabilityDescriptor` entries.
* :func:`match` -- select and order the descriptors for the event's
  ``(input, output)`` pair.
* :func:`instantiate` -- build handlers with services from a
  :class:`ServiceRegistry`.
* :func:`order_handlers` -- final order by the name each instance reports.
* :class:`Dispatcher` -- run them in order, stopping at the first block.

Example:
    Typical usage from the runtime::

        from dothooks.plugins import Dispatcher, compile_units, discover, match, order_handlers

        units = compile_units(discover(global_root, user_root))
        descriptors = match(units, ToolEventInput, ToolEventOutput)
        handlers = order_handlers((d, instantiate(d, default_services())) for d in descriptors)
        result = asyncio.run(Dispatcher(ToolEventOutput).dispatch(handlers, event))
"""

from dothooks.plugins.base import HookHandler, handler_name
from dothooks.plugins.loader import (
    CapabilityDescriptor,
    LoadableUnit,
    Origin,
    SourceUnit,
    compile_unit,
    compile_units,
    discover,
)
from dothooks.plugins.matcher import filter_by_name, is_selected, match, order_handlers
from dothooks.plugins.services import ServiceRegistry, default_services, instantiate
from dothooks.plugins.dispatcher import DispatchResult, Dispatcher, HandlerRun, HandlerState

__all__ = [
    "HookHandler",
    "handler_name",
    "CapabilityDescriptor",
    "LoadableUnit",
    "Origin",
    "SourceUnit",
    "compile_unit",
    "compile_units",
    "discover",
    "filter_by_name",
    "is_selected",
    "match",
    "order_handlers",
    "ServiceRegistry",
    "default_services",
    "instantiate",
    "DispatchResult",
    "Dispatcher",
    "HandlerRun",
    "HandlerState",
]
