"""dothooks -- run project and plugin hook handlers for agent lifecycle events.

The host invokes ``dothooks <event-name>`` for each lifecycle event, passing
the event as JSON on stdin. dothooks discovers handler source files in the
plugin's ``hooks/plugins`` directory and the project's
``.claude/hooks/dot-hooks`` directory, compiles them, runs every handler
declared for that event in a deterministic order and writes a single JSON
response to stdout.

A handler is a class in a ``.py`` file::

    class BranchInfo(HookHandler[SessionEventInput, SessionEventOutput]):
        name = "BranchInfo"

        def handle(self, event):
            return SessionEventOutput.with_context("Branch: main")

Modules:
    app: Typer application and CLI entry point.
    runtime: Wires one invocation from input to response.
    events: Event name to input/output model registry.
    models: Pydantic models shared across the entire package.
    config: Layered configuration and path resolution.
    session_log: Session and per-handler log files.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
