"""Canonical Pydantic models shared across all dothooks modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Hook inputs** -- deserialised from the JSON document the host writes to
stdin: :class:`HookInputBase` and its event families
:class:`ToolEventInput`, :class:`SessionEventInput` and
:class:`GenericEventInput`.

**Hook outputs** -- serialised to stdout as the response:
:class:`HookOutputBase` and its families :class:`ToolEventOutput`,
:class:`SessionEventOutput` and :class:`GenericEventOutput`. The families
carry the same fields but are distinct types, so a handler's declared
``(input, output)`` pair identifies exactly one event family.

**Configuration models** -- layered from JSON files and environment
variables by :mod:`dothooks.config`: :class:`LoggingSettings`,
:class:`PathSettings`, :class:`HookSettings`, :class:`PluginSettings`,
:class:`CompilationSettings` and the root :class:`DotHooksSettings`.

Input models use ``extra="allow"`` so that fields the host adds in newer
releases are preserved in ``model_extra`` instead of failing validation.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class EventName(str, enum.Enum):
    """The closed set of lifecycle events the host can invoke."""

    PRE_TOOL_USE = "pre-tool-use"
    POST_TOOL_USE = "post-tool-use"
    USER_PROMPT_SUBMIT = "user-prompt-submit"
    NOTIFICATION = "notification"
    STOP = "stop"
    SUBAGENT_STOP = "subagent-stop"
    SESSION_START = "session-start"
    SESSION_END = "session-end"
    PRE_COMPACT = "pre-compact"


class Decision(str, enum.Enum):
    """Decision values a handler may return."""

    APPROVE = "approve"
    BLOCK = "block"
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


# --- Hook inputs ---


class HookInputBase(BaseModel):
    """Fields shared by every hook event.

    The runtime overwrites :attr:`event_type` with the name of the invoked
    event after deserialisation, so handlers can always rely on it.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    session_id: str = ""
    transcript_path: str = ""
    cwd: str = ""
    permission_mode: str = ""
    event_type: str = ""
    hook_event_name: Optional[str] = None

    @field_validator(
        "session_id", "transcript_path", "cwd", "permission_mode", "event_type",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ToolEventInput(HookInputBase):
    """Input for ``pre-tool-use`` and ``post-tool-use``.

    ``tool_response`` is only present after the tool has run.
    """

    tool_name: Optional[str] = None
    tool_input: dict[str, Any] = Field(default_factory=dict)
    tool_response: Optional[dict[str, Any]] = None

    @field_validator("tool_input", mode="before")
    @classmethod
    def _none_as_empty_dict(cls, value: Any) -> Any:
        return {} if value is None else value


class SessionEventInput(HookInputBase):
    """Input for ``session-start`` (``source``) and ``session-end`` (``reason``)."""

    source: Optional[str] = None
    reason: Optional[str] = None


class GenericEventInput(HookInputBase):
    """Input for every event that is neither tool- nor session-related."""

    prompt: Optional[str] = None
    message: Optional[str] = None
    stop_hook_active: bool = False
    trigger: Optional[str] = None
    custom_instructions: Optional[str] = None


# --- Hook outputs ---


class HookOutputBase(BaseModel):
    """Response returned by a handler and written to stdout by the runtime.

    Serialised with camelCase aliases (``continue``, ``stopReason``,
    ``systemMessage``, ``additionalContext``) and without ``None`` fields.
    A ``block`` decision always carries ``continue = false`` and a non-empty
    ``stop_reason``; when ``continue`` is omitted for a block it defaults to
    ``false``.

    Example::

        ToolEventOutput.block("Writes to .env are not allowed")
        SessionEventOutput.with_context("Branch: main, 3 uncommitted files")
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    decision: Decision = Decision.APPROVE
    continue_: bool = Field(default=True, alias="continue")
    stop_reason: Optional[str] = Field(default=None, alias="stopReason")
    system_message: Optional[str] = Field(default=None, alias="systemMessage")
    additional_context: Optional[str] = Field(default=None, alias="additionalContext")

    @model_validator(mode="before")
    @classmethod
    def _block_stops_by_default(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("decision") in (Decision.BLOCK, "block"):
            if "continue" not in data and "continue_" not in data:
                data = {**data, "continue": False}
        return data

    @model_validator(mode="after")
    def _check_block_invariant(self) -> "HookOutputBase":
        if self.decision == Decision.BLOCK:
            if self.continue_:
                raise ValueError("a block decision cannot continue")
            if not self.stop_reason:
                raise ValueError("a block decision requires a stop reason")
        return self

    @property
    def is_blocking(self) -> bool:
        """Whether this output stops further handler execution."""
        return not self.continue_ or self.decision == Decision.BLOCK

    @classmethod
    def success(cls):
        """Return an approving, continuing output with no message or context."""
        return cls(decision=Decision.APPROVE, continue_=True)

    @classmethod
    def block(cls, reason: str):
        """Return a blocking output with *reason* as the stop reason."""
        return cls(decision=Decision.BLOCK, continue_=False, stop_reason=reason)

    @classmethod
    def with_context(cls, context: str):
        """Return an approving output that adds *context* for the agent."""
        return cls(decision=Decision.APPROVE, continue_=True, additional_context=context)

    def to_json(self) -> str:
        """Serialise to the compact JSON document the host expects."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ToolEventOutput(HookOutputBase):
    """Output for tool events."""


class SessionEventOutput(HookOutputBase):
    """Output for session lifecycle events."""


class GenericEventOutput(HookOutputBase):
    """Output for all other events."""


# --- Configuration ---


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_enabled_hooks() -> dict[str, bool]:
    return {name.value: True for name in EventName}


class LoggingSettings(BaseModel):
    """Log levels for the session log file and the stderr console."""

    minimum_level: str = Field(default="INFO", description="Level for the session log files")
    console_threshold: str = Field(
        default="WARNING", description="Level for diagnostics written to stderr"
    )

    @field_validator("minimum_level", "console_threshold", mode="before")
    @classmethod
    def _normalise_level(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        level = value.strip().upper()
        # Accept the names used by other logging frameworks.
        level = {"INFORMATION": "INFO", "WARN": "WARNING", "TRACE": "DEBUG"}.get(level, level)
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level '{value}'")
        return level

    def level_number(self, name: str) -> int:
        """Return the numeric :mod:`logging` level for field *name*."""
        return logging.getLevelName(getattr(self, name))


class PathSettings(BaseModel):
    """Directory and file names used to locate handlers and logs."""

    hooks_directory: str = "hooks"
    plugins_directory: str = "plugins"
    claude_directory: str = ".claude"
    dot_hooks_directory: str = "dot-hooks"
    state_directory: str = "state"
    session_log_file_name: str = "dot-hooks.log"


class HookSettings(BaseModel):
    """Per-event switches and the invocation time budget."""

    default_timeout_ms: int = Field(default=30000, gt=0)
    enabled_hooks: dict[str, bool] = Field(default_factory=_default_enabled_hooks)

    @field_validator("enabled_hooks", mode="after")
    @classmethod
    def _merge_with_defaults(cls, value: dict[str, bool]) -> dict[str, bool]:
        # Environment variables cannot contain '-', so accept pre_tool_use too.
        merged = _default_enabled_hooks()
        merged.update({key.lower().replace("_", "-"): enabled for key, enabled in value.items()})
        return merged


class PluginSettings(BaseModel):
    """Handler root switches and explicit handler allow/deny lists.

    When ``enabled`` is non-empty only handlers with those display names
    run. Handlers listed in ``disabled`` never run.
    """

    enable_global_plugins: bool = True
    enable_user_plugins: bool = True
    enabled: list[str] = Field(default_factory=list)
    disabled: list[str] = Field(default_factory=list)


class CompilationSettings(BaseModel):
    """Source unit compilation options."""

    parallel: bool = Field(default=False, description="Compile source units on a thread pool")
    max_workers: Optional[int] = Field(default=None, gt=0)


class DotHooksSettings(BaseModel):
    """Effective configuration for one invocation.

    Built by :func:`~dothooks.config.resolve_settings` from defaults, the
    global and project ``dot-hooks.json`` files, ``DOTHOOKS_*`` environment
    variables and CLI flags.
    """

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    hooks: HookSettings = Field(default_factory=HookSettings)
    plugins: PluginSettings = Field(default_factory=PluginSettings)
    compilation: CompilationSettings = Field(default_factory=CompilationSettings)

    def is_hook_enabled(self, event_name: str) -> bool:
        """Return whether handlers should run for *event_name*."""
        key = event_name.value if isinstance(event_name, EventName) else event_name
        return self.hooks.enabled_hooks.get(key, True)
