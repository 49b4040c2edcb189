"""Shared test fixtures for dothooks.

Provides reusable fixtures for creating isolated environments, handler
roots and handler source files, managing output state, and running CLI
commands. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
import os
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from dothooks.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_dothooks_loggers() -> None:
    """Detach any handler left on the ``dothooks`` logger tree by a test."""
    yield
    for name in list(logging.Logger.manager.loggerDict):
        if name == "dothooks" or name.startswith("dothooks."):
            log = logging.getLogger(name)
            for handler in list(log.handlers):
                log.removeHandler(handler)
                handler.close()
            log.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and state to a temporary directory.

    Points XDG_DATA_HOME into tmp_path, clears CLAUDE_PLUGIN_ROOT and all
    DOTHOOKS_* environment variables, and changes the working directory to
    tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("CLAUDE_PLUGIN_ROOT", raising=False)
    for var in list(os.environ):
        if var.startswith("DOTHOOKS_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def plugin_root(isolated_env: Path) -> Path:
    """Installation root; global handlers go in ``hooks/plugins`` below it."""
    root = isolated_env / "plugin"
    root.mkdir()
    return root


@pytest.fixture
def global_dir(plugin_root: Path) -> Path:
    path = plugin_root / "hooks" / "plugins"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def project_dir(isolated_env: Path) -> Path:
    """Project directory passed to handlers as the event's ``cwd``."""
    root = isolated_env / "project"
    root.mkdir()
    return root


@pytest.fixture
def user_dir(project_dir: Path) -> Path:
    path = project_dir / ".claude" / "hooks" / "dot-hooks"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def write_unit() -> Callable[[Path, str, str], Path]:
    """Return a helper that writes a dedented handler source file.

    Usage::

        write_unit(global_dir, "guard.py", '''
            class Guard(HookHandler[ToolEventInput, ToolEventOutput]):
                ...
        ''')
    """

    def _write(directory: Path, filename: str, source: str) -> Path:
        path = directory / filename
        path.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
        return path

    return _write


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner capturing stdout and stderr separately."""
    from typer.testing import CliRunner

    try:
        return CliRunner(mix_stderr=False)
    except TypeError:
        # Click 8.2 removed mix_stderr; stderr is always separate there.
        return CliRunner()
