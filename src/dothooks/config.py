"""Layered configuration with precedence resolution.

This module builds the effective :class:`~dothooks.models.DotHooksSettings`
for one invocation and resolves the directories dothooks reads from and
writes to:

* **Layers** -- defaults, the global ``dot-hooks.json`` next to the
  installed handlers (:func:`load_global_config`), the project file
  ``.claude/dot-hooks/dot-hooks.json`` (:func:`load_project_config`),
  ``DOTHOOKS_*`` environment variables (:func:`load_env_overrides`) and CLI
  flags, merged by :func:`resolve_settings`.
* **Handler roots** -- :func:`get_plugin_root`, :func:`global_handler_dir`
  and :func:`user_handler_dir`.
* **State** -- :func:`state_dir` for session logs and
  :func:`get_data_dir` (XDG aware) for crash logs.
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from dothooks.exceptions import ConfigError
from dothooks.models import DotHooksSettings, PathSettings

_APP_NAME = "dothooks"
CONFIG_FILENAME = "dot-hooks.json"
ENV_PREFIX = "DOTHOOKS_"
PLUGIN_ROOT_ENV = "CLAUDE_PLUGIN_ROOT"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/dothooks/`` (default ``~/.local/share/dothooks/``).
    On macOS/Windows: ``~/.dothooks/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Handler roots and state ---


def get_plugin_root() -> Path:
    """Return the installation root: ``$CLAUDE_PLUGIN_ROOT`` or the working directory."""
    env_value = os.environ.get(PLUGIN_ROOT_ENV, "")
    return Path(env_value) if env_value else Path.cwd()


def global_handler_dir(paths: PathSettings, plugin_root: Optional[Path] = None) -> Path:
    """Return ``<plugin_root>/hooks/plugins``."""
    root = plugin_root if plugin_root is not None else get_plugin_root()
    return Path(root) / paths.hooks_directory / paths.plugins_directory


def user_handler_dir(paths: PathSettings, project_dir: str | Path | None) -> Optional[Path]:
    """Return ``<project_dir>/.claude/hooks/dot-hooks``, or ``None`` without a project."""
    if not project_dir:
        return None
    return (
        Path(project_dir)
        / paths.claude_directory
        / paths.hooks_directory
        / paths.dot_hooks_directory
    )


def state_dir(paths: PathSettings, project_dir: str | Path | None) -> Path:
    """Return ``<project_dir>/.claude/state``, falling back to the working directory."""
    base = Path(project_dir) if project_dir else Path.cwd()
    return base / paths.claude_directory / paths.state_directory


# --- Layers ---


def _read_json_file(path: Path, label: str) -> Optional[dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} config at {path}: expected a JSON object")
    return data


def load_global_config(plugin_root: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load ``<plugin_root>/dot-hooks.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a valid JSON object.
    """
    root = plugin_root if plugin_root is not None else get_plugin_root()
    return _read_json_file(Path(root) / CONFIG_FILENAME, "global")


def load_project_config(project_dir: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load the project-local ``.claude/dot-hooks/dot-hooks.json``.

    Project config sits between the global file and environment variables
    in the precedence chain, letting a repository switch events or
    handlers on and off for everyone working in it.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a valid JSON object.
    """
    base = project_dir if project_dir is not None else Path.cwd()
    paths = PathSettings()
    path = Path(base) / paths.claude_directory / paths.dot_hooks_directory / CONFIG_FILENAME
    return _read_json_file(path, "project")


def load_env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """Translate ``DOTHOOKS_<SECTION>__<KEY>`` variables into a nested dict.

    ``DOTHOOKS_HOOKS__DEFAULT_TIMEOUT_MS=60000`` becomes
    ``{"hooks": {"default_timeout_ms": "60000"}}``. Values starting with
    ``[`` or ``{`` are parsed as JSON so that lists can be set; everything
    else is left as a string for Pydantic to coerce.

    Raises:
        ConfigError: If a JSON-looking value is not valid JSON.
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        segments = [seg.lower() for seg in name[len(ENV_PREFIX):].split("__") if seg]
        if not segments:
            continue
        value: Any = raw
        if raw.strip().startswith(("[", "{")):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in environment variable {name}: {exc}") from exc
        target = overrides
        for seg in segments[:-1]:
            target = target.setdefault(seg, {})
            if not isinstance(target, dict):
                raise ConfigError(f"Conflicting environment variable {name}")
        target[segments[-1]] = value
    return overrides


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return *base* updated with *override*, merging nested dicts key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_settings(
    plugin_root: Optional[Path] = None,
    project_dir: Optional[Path] = None,
    cli_log_level: Optional[str] = None,
    cli_timeout_ms: Optional[int] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DotHooksSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_log_level``, ``cli_timeout_ms``)
        2. Environment variables (``DOTHOOKS_<SECTION>__<KEY>``)
        3. Project config (``./.claude/dot-hooks/dot-hooks.json``)
        4. Global config (``<plugin_root>/dot-hooks.json``)
        5. Defaults

    Raises:
        ConfigError: If a layer is invalid or the merged values fail
            validation.
    """
    merged: dict[str, Any] = {}
    for layer in (
        load_global_config(plugin_root),
        load_project_config(project_dir),
        load_env_overrides(environ),
    ):
        if layer:
            merged = _deep_merge(merged, layer)

    if cli_log_level is not None:
        merged = _deep_merge(merged, {"logging": {"minimum_level": cli_log_level}})
    if cli_timeout_ms is not None:
        merged = _deep_merge(merged, {"hooks": {"default_timeout_ms": cli_timeout_ms}})

    try:
        return DotHooksSettings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
