"""Service registry and handler instantiation.

A :class:`ServiceRegistry` is an explicit, per-invocation map of service
keys to factories. It is built once at the top of an invocation by
:func:`default_services` and passed to :func:`instantiate`; nothing is held
in module-level state.

Handlers ask for services through their constructor. Each parameter is
resolved first by its annotation (``logging.Logger`` is an alias for the
``"logger"`` key) and then by its name::

    class Audit(HookHandler[ToolEventInput, ToolEventOutput]):
        name = "Audit"

        def __init__(self, logger: logging.Logger, settings=None) -> None:
            ...

Required parameters must resolve to a non-``None`` service or the handler
is skipped; optional parameters are passed when they resolve and left at
their default otherwise.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from typing import Any, Callable, Optional

from dothooks.exceptions import InstantiationFailure
from dothooks.models import DotHooksSettings
from dothooks.plugins.base import HookHandler
from dothooks.plugins.loader import CapabilityDescriptor
from dothooks.session_log import SessionLog, handler_logger_name

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[type], Any]
"""Called with the handler class being built; returns the service or ``None``."""


class ServiceRegistry:
    """Type- and name-keyed map of service factories.

    Example::

        services = ServiceRegistry()
        services.register("clock", lambda handler_cls: time.monotonic)
        services.register_instance("settings", settings, provides=DotHooksSettings)
        services.resolve("settings", MyHandler)
    """

    def __init__(self) -> None:
        self._factories: dict[str, ServiceFactory] = {}
        self._aliases: dict[type, str] = {}

    def register(
        self, key: str, factory: ServiceFactory, provides: Optional[type] = None
    ) -> None:
        """Register *factory* under *key*, optionally aliased to type *provides*."""
        self._factories[key] = factory
        if provides is not None:
            self._aliases[provides] = key

    def register_instance(
        self, key: str, value: Any, provides: Optional[type] = None
    ) -> None:
        """Register a ready-made service shared by every handler."""
        self.register(key, lambda handler_class: value, provides)

    def key_for(self, annotation: Any) -> Optional[str]:
        """Return the service key aliased to *annotation*, if any.

        ``Optional[X]`` resolves like ``X``.
        """
        if typing.get_origin(annotation) in (typing.Union, types.UnionType):
            for arg in typing.get_args(annotation):
                key = self.key_for(arg)
                if key is not None:
                    return key
            return None
        if not isinstance(annotation, type):
            return None
        for klass in annotation.__mro__:
            key = self._aliases.get(klass)
            if key is not None:
                return key
        return None

    def resolve(self, key: str, handler_class: type) -> Any:
        """Build the service *key* for *handler_class*; ``None`` if unknown."""
        factory = self._factories.get(key)
        if factory is None:
            return None
        return factory(handler_class)

    def __contains__(self, key: object) -> bool:
        return key in self._factories


def default_services(
    settings: Optional[DotHooksSettings] = None,
    session_log: Optional[SessionLog] = None,
) -> ServiceRegistry:
    """Build the registry every invocation starts with.

    Provides ``logger`` (a :class:`logging.Logger` scoped to the handler
    class, writing to the handler's own log file when *session_log* is
    open), ``settings`` and, when given, ``session_log``.
    """
    services = ServiceRegistry()

    def _logger_factory(handler_class: type) -> logging.Logger:
        if session_log is not None:
            return session_log.for_handler(handler_class, _display_name(handler_class))
        return logging.getLogger(handler_logger_name(handler_class))

    services.register("logger", _logger_factory, provides=logging.Logger)
    services.register_instance("settings", settings or DotHooksSettings(), provides=DotHooksSettings)
    if session_log is not None:
        services.register_instance("session_log", session_log, provides=SessionLog)
    return services


def instantiate(
    descriptor: CapabilityDescriptor, services: ServiceRegistry
) -> Optional[HookHandler]:
    """Build one handler instance for *descriptor*.

    Returns:
        The handler, or ``None`` if its constructor could not be satisfied
        or raised. The failure is logged as a warning.
    """
    try:
        return construct(descriptor.handler_class, services)
    except InstantiationFailure as exc:
        logger.warning(
            "Cannot instantiate handler %s from %s: %s",
            descriptor.name,
            descriptor.source.name,
            exc,
        )
        return None


def construct(handler_class: type, services: ServiceRegistry) -> Any:
    """Call *handler_class* with the services its constructor asks for.

    Every resolvable parameter is passed; required parameters that do not
    resolve make the class unusable.

    Raises:
        InstantiationFailure: If a required parameter cannot be resolved or
            the constructor raises.
    """
    positional: list[Any] = []
    keywords: dict[str, Any] = {}
    missing: list[str] = []

    for param, annotation in _injectable_parameters(handler_class):
        value = _resolve_parameter(param, annotation, handler_class, services)
        required = param.default is inspect.Parameter.empty
        if value is None:
            if required:
                missing.append(param.name)
            continue
        if param.kind is inspect.Parameter.POSITIONAL_ONLY:
            positional.append(value)
        else:
            keywords[param.name] = value

    if missing:
        raise InstantiationFailure(
            f"no usable constructor (unresolved parameters: {', '.join(missing)})"
        )

    try:
        return handler_class(*positional, **keywords)
    except (Exception, SystemExit) as exc:
        raise InstantiationFailure(
            f"constructor raised {type(exc).__name__}: {exc}"
        ) from exc


def _injectable_parameters(
    handler_class: type,
) -> list[tuple[inspect.Parameter, Any]]:
    init = handler_class.__init__
    if init is object.__init__:
        return []
    try:
        signature = inspect.signature(init)
    except (TypeError, ValueError):
        return []
    try:
        hints = typing.get_type_hints(init)
    except Exception:
        # Unresolvable forward references: fall back to raw annotations.
        hints = {}

    params = list(signature.parameters.values())[1:]  # drop self
    return [
        (param, hints.get(param.name, param.annotation))
        for param in params
        if param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


def _resolve_parameter(
    param: inspect.Parameter,
    annotation: Any,
    handler_class: type,
    services: ServiceRegistry,
) -> Any:
    key = services.key_for(annotation)
    if key is None and param.name in services:
        key = param.name
    if key is None:
        return None
    return services.resolve(key, handler_class)


def _display_name(handler_class: type) -> str:
    if isinstance(handler_class, type) and issubclass(handler_class, HookHandler):
        return handler_class.display_name()
    return handler_class.__name__
