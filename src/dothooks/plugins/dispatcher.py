"""Ordered, short-circuiting execution of handler instances.

The :class:`Dispatcher` runs handlers strictly one after another in the
order produced by :func:`~dothooks.plugins.matcher.order_handlers`:

* a handler that raises (or returns something other than an output model)
  is logged and contributes nothing; the next handler runs;
* a handler whose output blocks (``continue`` false or decision
  ``block``) stops dispatch immediately and its raw output becomes the
  response;
* when every handler has run, the collected outputs are merged by
  :func:`~dothooks.aggregator.aggregate`.

Per-handler states are ``pending -> running -> completed | blocked |
faulted``; handlers not started because cancellation was requested are
recorded as ``skipped``.
"""

from __future__ import annotations

import enum
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from dothooks.aggregator import aggregate
from dothooks.exceptions import HandlerFault
from dothooks.exit_codes import EXIT_BLOCKED, EXIT_SUCCESS
from dothooks.models import GenericEventOutput, HookInputBase, HookOutputBase
from dothooks.plugins.base import HookHandler, handler_name
from dothooks.session_log import SessionLog, handler_logger_name

logger = logging.getLogger(__name__)


class HandlerState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAULTED = "faulted"
    SKIPPED = "skipped"


@dataclass
class HandlerRun:
    """Execution record of one handler."""

    name: str
    state: HandlerState = HandlerState.PENDING
    elapsed_ms: float = 0.0
    decision: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Outcome of dispatching one event.

    Attributes:
        output: The response: the raw blocking output, or the aggregate.
        runs: One record per handler, in execution order.
        blocked_by: Name of the handler that blocked, if any.
    """

    output: HookOutputBase
    runs: list[HandlerRun] = field(default_factory=list)
    blocked_by: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.blocked_by is not None

    @property
    def exit_code(self) -> int:
        return EXIT_BLOCKED if self.blocked else EXIT_SUCCESS


class Dispatcher:
    """Runs handlers for one event with short-circuit-on-block semantics.

    Args:
        output_model: Output model of the event contract, used for the
            aggregated response.
        session_log: When given, each handler's start and result are also
            written to that handler's own log file.
        cancel_event: Checked before each handler; once set no further
            handlers start.
        clock: Monotonic clock returning seconds, injectable for tests.
    """

    def __init__(
        self,
        output_model: type[HookOutputBase] = GenericEventOutput,
        session_log: Optional[SessionLog] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._output_model = output_model
        self._session_log = session_log
        self._cancel = cancel_event or threading.Event()
        self._clock = clock

    async def dispatch(
        self, handlers: Sequence[HookHandler], event: HookInputBase
    ) -> DispatchResult:
        """Invoke *handlers* in order with *event* and build the response."""
        outputs: list[HookOutputBase] = []
        runs: list[HandlerRun] = []

        for handler in handlers:
            name = handler_name(handler)
            if self._cancel.is_set():
                runs.append(HandlerRun(name=name, state=HandlerState.SKIPPED))
                logger.warning("Cancellation requested, skipping handler %s", name)
                continue

            run = HandlerRun(name=name, state=HandlerState.RUNNING)
            runs.append(run)
            handler_log = self._handler_log(handler, name)
            logger.info("Executing handler: %s", name)
            handler_log.debug("Handling %s", event.event_type or "event")

            started = self._clock()
            try:
                output = await self._invoke(handler, name, event)
            except (Exception, SystemExit) as exc:
                run.elapsed_ms = (self._clock() - started) * 1000
                run.state = HandlerState.FAULTED
                run.error = exc.detail if isinstance(exc, HandlerFault) else f"{type(exc).__name__}: {exc}"
                logger.error(
                    "Handler %s threw an exception: %s",
                    name,
                    run.error,
                    exc_info=not isinstance(exc, HandlerFault),
                )
                handler_log.error("Failed after %.1f ms: %s", run.elapsed_ms, run.error)
                continue

            run.elapsed_ms = (self._clock() - started) * 1000
            run.decision = output.decision.value
            logger.info(
                "Handler %s completed: decision=%s continue=%s elapsed=%.1fms",
                name,
                run.decision,
                output.continue_,
                run.elapsed_ms,
            )
            handler_log.debug(
                "Completed in %.1f ms: decision=%s continue=%s",
                run.elapsed_ms,
                run.decision,
                output.continue_,
            )

            if output.is_blocking:
                run.state = HandlerState.BLOCKED
                logger.warning("Handler %s blocked execution: %s", name, output.stop_reason)
                return DispatchResult(output=output, runs=runs, blocked_by=name)

            run.state = HandlerState.COMPLETED
            outputs.append(output)

        return DispatchResult(output=aggregate(outputs, self._output_model), runs=runs)

    async def _invoke(
        self, handler: HookHandler, name: str, event: HookInputBase
    ) -> HookOutputBase:
        result: Any = handler.handle(event)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, HookOutputBase):
            raise HandlerFault(name, f"returned {type(result).__name__} instead of a hook output")
        return result

    def _handler_log(self, handler: HookHandler, name: str) -> logging.Logger:
        if self._session_log is not None:
            return self._session_log.for_handler(type(handler), name)
        return logging.getLogger(handler_logger_name(type(handler)))

