"""Typer application and CLI entry point for dothooks.

The host invokes one command per lifecycle event, writing the event's JSON
document to stdin and reading exactly one JSON response from stdout::

    echo '{"tool_name": "Write", ...}' | dothooks pre-tool-use

Besides the nine event commands the app offers two inspection commands:
``list`` (which handlers would run) and ``config`` (effective settings).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. Unhandled exceptions outside the event commands are
written to a crash log under the data directory.

See Also:
    :mod:`dothooks.runtime`: The pipeline each event command runs.
    :mod:`dothooks.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from dothooks import __version__
from dothooks.events import event_names, events_for_pair, resolve
from dothooks.exceptions import ConfigError, DotHooksError
from dothooks.exit_codes import EXIT_BLOCKED, EXIT_GENERIC_FAILURE
from dothooks.models import DotHooksSettings, LoggingSettings
from dothooks.session_log import ROOT_LOGGER

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dothooks",
    help="Run project and plugin hook handlers for agent lifecycle events.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"dothooks {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output for inspection commands."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug diagnostics on stderr."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~dothooks.output.OutputManager` from
    CLI flags and stores ``verbose`` in the Typer context.
    """
    from dothooks.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.JSON if json_output else OutputFormat.AUTO
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ------------------------------------------------------------------ #
# Console logging
# ------------------------------------------------------------------ #


def _attach_console_logging(
    logging_settings: LoggingSettings, verbose: bool = False
) -> Callable[[], None]:
    """Send ``dothooks`` records at the console threshold to stderr.

    Returns:
        A callable that detaches the handler and restores the logger level.
    """
    from dothooks.output import OutputLogHandler

    level = logging.DEBUG if verbose else logging_settings.level_number("console_threshold")
    handler = OutputLogHandler(level=level)
    root = logging.getLogger(ROOT_LOGGER)
    previous_level = root.level
    if root.getEffectiveLevel() > level:
        root.setLevel(level)
    root.addHandler(handler)

    def _detach() -> None:
        root.removeHandler(handler)
        root.setLevel(previous_level)

    return _detach


def _is_verbose(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("verbose"))


# ------------------------------------------------------------------ #
# Event commands
# ------------------------------------------------------------------ #


def _run_hook_command(
    event_name: str,
    timeout_ms: Optional[int],
    log_level: Optional[str],
    verbose: bool,
) -> None:
    """Read stdin, run *event_name* and write the response.

    Exactly one JSON document is written to stdout on every path. A
    configuration error answers with the default output and exit 1; an
    unexpected failure answers with a blocking output and exit 2.
    """
    from dothooks.config import resolve_settings
    from dothooks.output import emit_response, error
    from dothooks.runtime import run_event

    contract = resolve(event_name)
    raw_input = sys.stdin.read()

    try:
        settings = resolve_settings(cli_log_level=log_level, cli_timeout_ms=timeout_ms)
    except ConfigError as exc:
        error(str(exc))
        emit_response(contract.output_model.success())
        raise typer.Exit(exc.exit_code)

    response_stream = sys.stdout
    with contextlib.ExitStack() as stack:
        # Anything handler code prints goes to stderr; stdout carries only the response.
        stack.enter_context(contextlib.redirect_stdout(sys.stderr))
        detach = _attach_console_logging(settings.logging, verbose)
        timed_out = False
        try:
            result = run_event(event_name, raw_input, settings)
            output, exit_code, timed_out = result.output, result.exit_code, result.timed_out
        except Exception as exc:
            logger.error("Unhandled error while running %s: %s", event_name, exc, exc_info=True)
            output = contract.output_model.block(f"dothooks failed: {exc}")
            exit_code = EXIT_BLOCKED
        finally:
            detach()

        emit_response(output, file=response_stream)
        if timed_out:
            # The abandoned pipeline thread may still print until the process exits.
            stack.pop_all()
    raise typer.Exit(exit_code)


def _make_event_command(event_name: str) -> Callable[..., None]:
    contract = resolve(event_name)

    def command(
        ctx: typer.Context,
        timeout_ms: Optional[int] = typer.Option(
            None, "--timeout-ms", min=1, help="Time budget for the whole invocation."
        ),
        log_level: Optional[str] = typer.Option(
            None, "--log-level", help="Minimum level written to the session log."
        ),
    ) -> None:
        _run_hook_command(event_name, timeout_ms, log_level, _is_verbose(ctx))

    command.__name__ = event_name.replace("-", "_")
    command.__doc__ = (
        f"Handle the {event_name} event "
        f"({contract.input_model.__name__} -> {contract.output_model.__name__})."
    )
    return command


for _event_name in event_names():
    app.command(_event_name)(_make_event_command(_event_name))


# ------------------------------------------------------------------ #
# Inspection commands
# ------------------------------------------------------------------ #


def _load_settings() -> DotHooksSettings:
    from dothooks.config import resolve_settings
    from dothooks.output import error

    try:
        return resolve_settings()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(exc.exit_code)


@app.command("list")
def list_command(
    ctx: typer.Context,
    event: Optional[str] = typer.Argument(
        None, help="Only show handlers that run for this event, in dispatch order."
    ),
    project_dir: Optional[Path] = typer.Option(
        None, "--project-dir", help="Project whose handlers to include (default: cwd)."
    ),
) -> None:
    """List the handlers discovered in the global and project roots."""
    from dothooks.output import error, info, print_table
    from dothooks.runtime import collect_handlers

    settings = _load_settings()
    detach = _attach_console_logging(settings.logging, _is_verbose(ctx))
    try:
        # Unit module bodies may print while compiling.
        with contextlib.redirect_stdout(sys.stderr):
            descriptors = collect_handlers(
                settings,
                project_dir=str(project_dir or Path.cwd()),
                event_name=event,
            )
    except DotHooksError as exc:
        error(str(exc))
        raise typer.Exit(exc.exit_code)
    finally:
        detach()

    if not descriptors:
        info("No handlers found.")
        return

    rows = [
        [
            d.name,
            ", ".join(events_for_pair(d.input_model, d.output_model)),
            d.origin.value,
            str(d.source),
        ]
        for d in descriptors
    ]
    print_table(["Handler", "Events", "Origin", "Source"], rows, title="Hook handlers")


@app.command("config")
def config_command() -> None:
    """Show the effective settings after all configuration layers are merged."""
    from dothooks.output import print_json

    print_json(_load_settings().model_dump(mode="json"))


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from dothooks.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``dothooks`` console script.

    Unhandled :class:`~dothooks.exceptions.DotHooksError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from dothooks.output import error

        if isinstance(exc, DotHooksError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
