"""On-disk session and per-handler logs.

Every invocation appends to two kinds of log file under the project's state
directory (``<cwd>/.claude/state`` by default):

* the consolidated session log (``dot-hooks.log``) receives every record
  emitted under the ``dothooks`` logger tree: session start, discovery and
  compilation diagnostics, each handler's start/finish/decision, blocks,
  faults and timeouts;
* one file per handler, ``session/<session-id>/<handler-name>.log``,
  receives only the records of that handler's own logger.

Both use the same timestamped line format. Handlers are attached for the
lifetime of one :class:`SessionLog` and detached by :meth:`SessionLog.close`,
or by :meth:`SessionLog.detach` when a timed-out handler may still log.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from dothooks.models import LoggingSettings, PathSettings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

ROOT_LOGGER = "dothooks"
HANDLER_LOGGER_PREFIX = "dothooks.handlers"

_UNKNOWN_SESSION = "unknown"


def handler_logger_name(handler_class: type) -> str:
    """Return the logger name scoped to *handler_class*."""
    return f"{HANDLER_LOGGER_PREFIX}.{handler_class.__name__}"


def _safe_file_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", name) or "handler"


class SessionLog:
    """File logging for one invocation.

    Args:
        state_dir: Directory holding the consolidated log and the
            ``session/`` sub-directory.
        session_id: The host's session id; ``"unknown"`` when empty.
        logging_settings: Supplies the minimum level written to files.
        path_settings: Supplies the consolidated log file name.

    Example::

        with SessionLog(state_dir, event.session_id) as session_log:
            log = session_log.for_handler(EnvGuard, "EnvGuard")
            log.info("checked %s", path)
    """

    def __init__(
        self,
        state_dir: Path,
        session_id: str = "",
        logging_settings: Optional[LoggingSettings] = None,
        path_settings: Optional[PathSettings] = None,
    ) -> None:
        logging_settings = logging_settings or LoggingSettings()
        path_settings = path_settings or PathSettings()
        self.state_dir = Path(state_dir)
        self.session_id = session_id or _UNKNOWN_SESSION
        self.level = logging_settings.level_number("minimum_level")
        self.session_log_path = self.state_dir / path_settings.session_log_file_name
        self.handler_log_dir = self.state_dir / "session" / _safe_file_name(self.session_id)
        self._attached: list[tuple[logging.Logger, logging.Handler]] = []
        self._detached: list[logging.Handler] = []
        self._handler_loggers: dict[str, logging.Logger] = {}
        self._previous_level: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return bool(self._attached)

    def open(self) -> "SessionLog":
        """Create the state directories and attach the consolidated log file."""
        if self.is_open:
            return self
        self.handler_log_dir.mkdir(parents=True, exist_ok=True)
        root = logging.getLogger(ROOT_LOGGER)
        self._attach(root, self.session_log_path)
        self._previous_level = root.level
        if root.level == logging.NOTSET or root.level > self.level:
            root.setLevel(self.level)
        return self

    def for_handler(self, handler_class: type, handler_name: str) -> logging.Logger:
        """Return the logger for *handler_class*, writing to its own file.

        Records also propagate to the consolidated session log.
        """
        logger_name = handler_logger_name(handler_class)
        cached = self._handler_loggers.get(logger_name)
        if cached is not None:
            return cached
        logger = logging.getLogger(logger_name)
        if self.is_open:
            self._attach(logger, self.handler_log_dir / f"{_safe_file_name(handler_name)}.log")
        self._handler_loggers[logger_name] = logger
        return logger

    def close(self) -> None:
        """Detach and close every file handler this session attached."""
        for _, handler in self._release():
            handler.close()

    def detach(self) -> None:
        """Detach the file handlers without closing them.

        Used when a handler thread may still be writing; the files are
        flushed now and closed by :func:`logging.shutdown` at exit.
        """
        for _, handler in self._release():
            handler.flush()
            self._detached.append(handler)

    def _release(self) -> list[tuple[logging.Logger, logging.Handler]]:
        released = list(reversed(self._attached))
        for logger, handler in released:
            logger.removeHandler(handler)
        self._attached.clear()
        self._handler_loggers.clear()
        if self._previous_level is not None:
            logging.getLogger(ROOT_LOGGER).setLevel(self._previous_level)
            self._previous_level = None
        return released

    def _attach(self, logger: logging.Logger, path: Path) -> None:
        handler = logging.FileHandler(str(path), mode="a", encoding="utf-8")
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        self._attached.append((logger, handler))

    def __enter__(self) -> "SessionLog":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
