"""Invocation runtime: one event in, one response out.

:func:`run_event` wires the whole pipeline for a single host invocation::

    resolve contract -> read input -> discover -> compile -> match
        -> instantiate -> dispatch -> InvocationResult

The pipeline (everything from discovery onwards) runs on a daemon worker
thread joined with the invocation's time budget. When the budget runs out
the cancellation event is set so that no further handler starts, and a
well-formed default response is returned with :data:`EXIT_TIMEOUT`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from dothooks import config
from dothooks.events import EventContract, resolve
from dothooks.exceptions import DeserializationFailure, InvocationTimeout
from dothooks.exit_codes import EXIT_SUCCESS
from dothooks.models import DotHooksSettings, EventName, HookInputBase, HookOutputBase
from dothooks.plugins.base import handler_name
from dothooks.plugins.dispatcher import DispatchResult, Dispatcher
from dothooks.plugins.loader import CapabilityDescriptor, compile_units, discover
from dothooks.plugins.matcher import is_selected, match, order, order_handlers
from dothooks.plugins.services import default_services, instantiate
from dothooks.session_log import SessionLog

logger = logging.getLogger(__name__)


@dataclass
class InvocationResult:
    """What the CLI writes and returns for one invocation.

    Attributes:
        output: The response document.
        exit_code: Process exit status.
        dispatch: Dispatcher outcome, ``None`` when dispatch did not finish.
        timed_out: Whether the time budget ran out.
    """

    output: HookOutputBase
    exit_code: int
    dispatch: Optional[DispatchResult] = None
    timed_out: bool = False

    def to_json(self) -> str:
        return self.output.to_json()


# --- Input ---


def read_input(raw: Union[str, bytes, None], contract: EventContract) -> HookInputBase:
    """Deserialise *raw* into the contract's input model.

    Malformed JSON or a shape mismatch never aborts the invocation: the
    failure is logged and a default-valued input is used instead. The
    returned input always carries the invoked event name in ``event_type``.
    """
    event, failure = _parse_input(raw, contract)
    if failure is not None:
        logger.warning("%s; using default input", failure)
    return event


def _parse_input(
    raw: Union[str, bytes, None], contract: EventContract
) -> tuple[HookInputBase, Optional[DeserializationFailure]]:
    model = contract.input_model
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else (raw or "")
    failure: Optional[DeserializationFailure] = None

    if not text.strip():
        logger.debug("Empty input document for %s, using defaults", contract.event_name.value)
        event = model()
    else:
        try:
            event = model.model_validate_json(text)
        except ValidationError as exc:
            failure = DeserializationFailure(
                f"Cannot parse {contract.event_name.value} input as "
                f"{model.__name__}: {exc.error_count()} error(s), first: "
                f"{exc.errors()[0]['msg']}"
            )
            event = model()

    return event.model_copy(update={"event_type": contract.event_name.value}), failure


# --- Pipeline ---


def _handler_roots(
    settings: DotHooksSettings, plugin_root: Optional[Path], project_dir: Optional[str]
) -> tuple[Optional[Path], Optional[Path]]:
    plugins = settings.plugins
    global_root = (
        config.global_handler_dir(settings.paths, plugin_root)
        if plugins.enable_global_plugins
        else None
    )
    user_root = (
        config.user_handler_dir(settings.paths, project_dir)
        if plugins.enable_user_plugins
        else None
    )
    return global_root, user_root


def _load(
    settings: DotHooksSettings, plugin_root: Optional[Path], project_dir: Optional[str]
):
    global_root, user_root = _handler_roots(settings, plugin_root, project_dir)
    units = discover(global_root, user_root)
    return compile_units(
        units,
        parallel=settings.compilation.parallel,
        max_workers=settings.compilation.max_workers,
    )


def collect_handlers(
    settings: Optional[DotHooksSettings] = None,
    plugin_root: Optional[Path] = None,
    project_dir: Optional[str] = None,
    event_name: Union[str, EventName, None] = None,
) -> list[CapabilityDescriptor]:
    """Discover and compile handler units without running anything.

    Args:
        settings: Effective settings; defaults when omitted.
        plugin_root: Installation root holding the global handlers.
        project_dir: Project directory holding the user handlers.
        event_name: When given, only handlers for that event are returned,
            in dispatch order.

    Raises:
        UnknownEventKind: If *event_name* is not a recognised event.
    """
    settings = settings or DotHooksSettings()
    loaded = _load(settings, plugin_root, project_dir)
    if event_name is not None:
        contract = resolve(event_name)
        return match(loaded, contract.input_model, contract.output_model)
    return order(descriptor for unit in loaded for descriptor in unit.capabilities)


class _PipelineThread(threading.Thread):
    """Runs discovery through dispatch, keeping the result or the error."""

    def __init__(
        self,
        contract: EventContract,
        event: HookInputBase,
        settings: DotHooksSettings,
        session_log: Optional[SessionLog],
        cancel: threading.Event,
        plugin_root: Optional[Path],
    ) -> None:
        super().__init__(name="dothooks-pipeline", daemon=True)
        self.contract = contract
        self.event = event
        self.settings = settings
        self.session_log = session_log
        self.cancel = cancel
        self.plugin_root = plugin_root
        self.result: Optional[DispatchResult] = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.result = self._run()
        except BaseException as exc:  # re-raised on the calling thread
            self.error = exc

    def _run(self) -> DispatchResult:
        contract = self.contract
        plugins = self.settings.plugins
        enabled, disabled = set(plugins.enabled), set(plugins.disabled)
        loaded = _load(self.settings, self.plugin_root, self.event.cwd or None)

        services = default_services(self.settings, self.session_log)
        instances = []
        for descriptor in match(loaded, contract.input_model, contract.output_model):
            if self.cancel.is_set():
                break
            # Handlers with a static name are filtered before construction.
            declared = descriptor.handler_class.declared_name()
            if declared is not None and not is_selected(declared, enabled, disabled):
                continue
            handler = instantiate(descriptor, services)
            if handler is not None and is_selected(handler_name(handler), enabled, disabled):
                instances.append((descriptor, handler))
        handlers = order_handlers(instances)

        logger.info(
            "Dispatching %s to %d handler(s)", contract.event_name.value, len(handlers)
        )
        dispatcher = Dispatcher(
            output_model=contract.output_model,
            session_log=self.session_log,
            cancel_event=self.cancel,
        )
        return asyncio.run(dispatcher.dispatch(handlers, self.event))


# --- Entry point ---


def run_event(
    event_name: Union[str, EventName],
    raw_input: Union[str, bytes, None] = "",
    settings: Optional[DotHooksSettings] = None,
    *,
    plugin_root: Optional[Path] = None,
    timeout_ms: Optional[int] = None,
) -> InvocationResult:
    """Handle one host invocation of *event_name*.

    Args:
        event_name: The lifecycle event being invoked.
        raw_input: The JSON document the host wrote to stdin.
        settings: Effective settings; defaults when omitted.
        plugin_root: Installation root; ``$CLAUDE_PLUGIN_ROOT`` or the
            working directory when omitted.
        timeout_ms: Time budget overriding ``hooks.default_timeout_ms``.

    Returns:
        The response and exit code. Handler faults, compile failures and
        malformed input are logged and absorbed; they never raise.

    Raises:
        UnknownEventKind: If *event_name* is not a recognised event.
    """
    contract = resolve(event_name)
    settings = settings or DotHooksSettings()
    name = contract.event_name.value

    event, failure = _parse_input(raw_input, contract)
    default_output = contract.output_model.success()

    if not settings.is_hook_enabled(name):
        logger.info("Hook %s is disabled by configuration", name)
        return InvocationResult(output=default_output, exit_code=EXIT_SUCCESS)

    budget_ms = timeout_ms if timeout_ms is not None else settings.hooks.default_timeout_ms

    session_log: Optional[SessionLog] = SessionLog(
        config.state_dir(settings.paths, event.cwd),
        event.session_id,
        settings.logging,
        settings.paths,
    )
    try:
        session_log.open()
    except OSError as exc:
        logger.warning("Cannot open session log in %s: %s", session_log.state_dir, exc)
        session_log = None

    pipeline: Optional[_PipelineThread] = None
    try:
        logger.info("Session start: event=%s session=%s", name, event.session_id or "unknown")
        if failure is not None:
            logger.warning("%s; using default input", failure)

        cancel = threading.Event()
        pipeline = _PipelineThread(contract, event, settings, session_log, cancel, plugin_root)
        started = time.perf_counter()
        pipeline.start()
        pipeline.join(budget_ms / 1000)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if pipeline.is_alive():
            cancel.set()
            timeout = InvocationTimeout(f"Hook {name} timed out after {budget_ms} ms")
            logger.error("%s", timeout)
            result = InvocationResult(
                output=default_output, exit_code=timeout.exit_code, timed_out=True
            )
        elif pipeline.error is not None:
            raise pipeline.error
        else:
            dispatch = pipeline.result
            result = InvocationResult(
                output=dispatch.output, exit_code=dispatch.exit_code, dispatch=dispatch
            )

        logger.info(
            "Session end: event=%s exit=%d elapsed=%.1fms", name, result.exit_code, elapsed_ms
        )
        return result
    finally:
        if session_log is not None:
            if pipeline is not None and pipeline.is_alive():
                # The abandoned handler may still log; its files close at exit.
                session_log.detach()
            else:
                session_log.close()
