"""Numeric process exit codes returned to the invoking host.

The host inspects the exit status of every ``dothooks <event>`` invocation
together with the JSON document on stdout. ``0`` means the response is a
normal (possibly aggregated) result; ``2`` tells the host that a handler
blocked, or that the runtime itself failed and the host should treat the
event as blocked.

Example::

    $ echo '{"cwd": "/repo"}' | dothooks pre-tool-use
    {"decision":"block","continue":false,"stopReason":"Writes to .env are not allowed"}
    $ echo $?
    2   # EXIT_BLOCKED
"""

EXIT_SUCCESS = 0
"""All matching handlers ran (or none matched) and nothing blocked."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred outside the event pipeline."""

EXIT_BLOCKED = 2
"""A handler returned a blocking decision, or an unhandled fault occurred."""

EXIT_TIMEOUT = 124
"""The invocation exceeded its time budget; a default response was emitted."""
