"""Global handler that records every hook event in the session log.

One class per event family; all three share the display name
``HookLogger`` and write to the same per-handler log file.
"""

import logging

from dothooks.models import (
    GenericEventInput,
    GenericEventOutput,
    HookInputBase,
    SessionEventInput,
    SessionEventOutput,
    ToolEventInput,
    ToolEventOutput,
)
from dothooks.plugins.base import HookHandler


class _EventLogging:
    name = "HookLogger"
    description = "Logs the event type, session and working directory of every hook."

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log_event(self, event: HookInputBase) -> None:
        self._logger.info("Hook event triggered: %s", event.event_type)
        self._logger.info("Session ID: %s", event.session_id)
        self._logger.info("Working Directory: %s", event.cwd)


class ToolHookLogger(_EventLogging, HookHandler[ToolEventInput, ToolEventOutput]):
    def handle(self, event: ToolEventInput) -> ToolEventOutput:
        self._log_event(event)
        if event.tool_name:
            self._logger.info("Tool: %s", event.tool_name)
        return ToolEventOutput.success()


class SessionHookLogger(_EventLogging, HookHandler[SessionEventInput, SessionEventOutput]):
    def handle(self, event: SessionEventInput) -> SessionEventOutput:
        self._log_event(event)
        if event.source or event.reason:
            self._logger.info("Source/reason: %s", event.source or event.reason)
        return SessionEventOutput.success()


class GenericHookLogger(_EventLogging, HookHandler[GenericEventInput, GenericEventOutput]):
    def handle(self, event: GenericEventInput) -> GenericEventOutput:
        self._log_event(event)
        return GenericEventOutput.success()
