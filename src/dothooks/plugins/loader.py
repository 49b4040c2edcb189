"""Source discovery and runtime compilation of handler units.

Handlers are not installed packages: they are plain ``.py`` files dropped
into one of two directories, discovered and compiled fresh on every
invocation.

* :func:`discover` lists the source units of the global root, then the
  user (project) root, each sorted by file name. That order is the basis of
  every ordering guarantee downstream.
* :func:`compile_unit` turns one source unit into a :class:`LoadableUnit`:
  an in-memory module plus the capability descriptors of the handler
  classes it defines. Failures are logged with the file name and each error
  message and yield ``None``; they never propagate.
* :func:`compile_units` compiles a batch, optionally on a thread pool, and
  always returns results in discovery order.
"""

from __future__ import annotations

import enum
import inspect
import logging
import re
import sys
import types
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from dothooks import models
from dothooks.events import known_pairs
from dothooks.exceptions import CompileFailure
from dothooks.models import HookInputBase, HookOutputBase
from dothooks.plugins.base import HookHandler

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"
"""File suffix of handler source units."""

_MODULE_PREFIX = "_dothooks_unit"


class Origin(str, enum.Enum):
    """Which handler root a source unit was discovered in."""

    GLOBAL = "global"
    USER = "user"


@dataclass(frozen=True)
class SourceUnit:
    """One discovered, not-yet-compiled handler source file."""

    origin: Origin
    path: Path
    text: str

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class CapabilityDescriptor:
    """A handler class together with the capability it declares.

    Attributes:
        handler_class: The concrete :class:`HookHandler` subclass.
        input_model: Declared input model.
        output_model: Declared output model.
        name: Display name used for ordering.
        origin: Root the defining unit came from.
        index: Position of the defining unit in discovery order.
        position: Position of the class within its unit.
        source: Path of the defining unit.
    """

    handler_class: type[HookHandler]
    input_model: type[HookInputBase]
    output_model: type[HookOutputBase]
    name: str
    origin: Origin
    index: int
    position: int
    source: Path


@dataclass(frozen=True)
class LoadableUnit:
    """The compiled, in-memory result of one source unit."""

    source: SourceUnit
    module: types.ModuleType
    capabilities: tuple[CapabilityDescriptor, ...]


# ------------------------------------------------------------------
# Discovery
# ------------------------------------------------------------------


def discover(
    global_root: Optional[Path], user_root: Optional[Path] = None
) -> list[SourceUnit]:
    """List handler source units, global root first, then user root.

    Each root is scanned non-recursively for ``*.py`` files; names starting
    with ``_`` or ``.`` are skipped. Files are ordered lexicographically by
    file name within each root. A missing root contributes nothing.

    Args:
        global_root: Directory of handlers shipped with the installation,
            or ``None`` when global handlers are disabled.
        user_root: Project-local handler directory, if any.

    Returns:
        The source units in discovery order.
    """
    units: list[SourceUnit] = []
    if global_root is not None:
        units.extend(_discover_root(Path(global_root), Origin.GLOBAL))
    if user_root is not None:
        units.extend(_discover_root(Path(user_root), Origin.USER))
    return units


def _discover_root(root: Path, origin: Origin) -> list[SourceUnit]:
    if not root.is_dir():
        logger.debug("Handler directory %s does not exist, skipping", root)
        return []

    logger.debug("Loading %s handlers from: %s", origin.value, root)
    units: list[SourceUnit] = []
    for path in sorted(root.glob(f"*{SOURCE_SUFFIX}"), key=lambda p: p.name):
        if path.name.startswith(("_", ".")) or not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Cannot read handler source %s: %s", path, exc)
            continue
        units.append(SourceUnit(origin=origin, path=path, text=text))
    return units


# ------------------------------------------------------------------
# Compilation
# ------------------------------------------------------------------


def sdk_namespace() -> dict[str, Any]:
    """Return the names pre-seeded into every handler module."""
    return {
        "logging": logging,
        "HookHandler": HookHandler,
        "Decision": models.Decision,
        "HookInputBase": models.HookInputBase,
        "ToolEventInput": models.ToolEventInput,
        "SessionEventInput": models.SessionEventInput,
        "GenericEventInput": models.GenericEventInput,
        "HookOutputBase": models.HookOutputBase,
        "ToolEventOutput": models.ToolEventOutput,
        "SessionEventOutput": models.SessionEventOutput,
        "GenericEventOutput": models.GenericEventOutput,
    }


def compile_unit(unit: SourceUnit, index: int = 0) -> Optional[LoadableUnit]:
    """Compile one source unit in isolation.

    Args:
        unit: The source unit to compile.
        index: The unit's position in discovery order, recorded on its
            capability descriptors for tie-breaking.

    Returns:
        The loadable unit, or ``None`` if the source failed to compile or
        defines no usable handler class. Failures are logged, never raised.
    """
    logger.debug("Compiling handler unit: %s", unit.name)
    try:
        loaded = _compile(unit, index)
    except CompileFailure as exc:
        for message in exc.errors:
            logger.error("Compilation error in %s: %s", unit.name, message)
        return None

    if not loaded.capabilities:
        logger.warning("No HookHandler implementation found in %s", unit.name)
        return None

    for descriptor in loaded.capabilities:
        logger.info("Loaded handler: %s (%s)", descriptor.name, unit.name)
    return loaded


def compile_units(
    units: Sequence[SourceUnit],
    parallel: bool = False,
    max_workers: Optional[int] = None,
) -> list[LoadableUnit]:
    """Compile a batch of source units, preserving discovery order.

    Args:
        units: Source units in discovery order.
        parallel: Compile on a thread pool. The result order is unaffected.
        max_workers: Thread pool size when *parallel* is set.

    Returns:
        The successfully compiled units, in the order of *units*.
    """
    indexed = list(enumerate(units))
    if parallel and len(indexed) > 1:
        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="dothooks-compile"
        ) as pool:
            results = list(pool.map(lambda item: compile_unit(item[1], item[0]), indexed))
    else:
        results = [compile_unit(unit, index) for index, unit in indexed]

    loaded = [result for result in results if result is not None]
    logger.info("Loaded %d of %d handler unit(s)", len(loaded), len(indexed))
    return loaded


def _compile(unit: SourceUnit, index: int) -> LoadableUnit:
    try:
        code = compile(unit.text, str(unit.path), "exec", dont_inherit=True)
    except SyntaxError as exc:
        raise CompileFailure(unit.path, [_format_syntax_error(exc)]) from exc
    except ValueError as exc:
        # e.g. source containing null bytes
        raise CompileFailure(unit.path, [str(exc)]) from exc

    module_name = f"{_MODULE_PREFIX}_{index}_{unit.origin.value}_{_identifier(unit.path.stem)}"
    module = types.ModuleType(module_name)
    module.__file__ = str(unit.path)
    module.__dict__.update(sdk_namespace())

    # Registered so that dataclasses, pydantic and typing.get_type_hints can
    # resolve the module's globals while and after it executes.
    sys.modules[module_name] = module
    try:
        exec(code, module.__dict__)
    except (Exception, SystemExit) as exc:
        del sys.modules[module_name]
        raise CompileFailure(unit.path, [f"{type(exc).__name__}: {exc}"]) from exc

    capabilities = tuple(_collect_capabilities(module, unit, index))
    return LoadableUnit(source=unit, module=module, capabilities=capabilities)


def _collect_capabilities(
    module: types.ModuleType, unit: SourceUnit, index: int
) -> Iterator[CapabilityDescriptor]:
    pairs = known_pairs()
    seen: set[type] = set()
    position = 0
    for value in list(vars(module).values()):
        if not isinstance(value, type) or value in seen:
            continue
        seen.add(value)
        if not issubclass(value, HookHandler) or value.__module__ != module.__name__:
            continue
        if inspect.isabstract(value):
            continue

        pair = value.capability()
        if pair is None:
            logger.warning(
                "Handler %s in %s does not declare HookHandler[Input, Output], skipping",
                value.__name__,
                unit.name,
            )
            continue
        if pair not in pairs:
            logger.warning(
                "Handler %s in %s declares unsupported capability %s -> %s, skipping",
                value.__name__,
                unit.name,
                pair[0].__name__,
                pair[1].__name__,
            )
            continue

        yield CapabilityDescriptor(
            handler_class=value,
            input_model=pair[0],
            output_model=pair[1],
            name=value.display_name(),
            origin=unit.origin,
            index=index,
            position=position,
            source=unit.path,
        )
        position += 1


def _format_syntax_error(exc: SyntaxError) -> str:
    location = f"line {exc.lineno}" if exc.lineno else "unknown line"
    if exc.offset:
        location += f", column {exc.offset}"
    return f"{exc.msg} ({location})"


def _identifier(stem: str) -> str:
    return re.sub(r"\W", "_", stem)
