"""Tests for handler source discovery and runtime compilation."""

from __future__ import annotations

import logging
import sys
import textwrap
from pathlib import Path

import pytest

from dothooks.models import ToolEventInput, ToolEventOutput
from dothooks.plugins.loader import (
    Origin,
    SourceUnit,
    compile_unit,
    compile_units,
    discover,
    sdk_namespace,
)


GUARD_SOURCE = textwrap.dedent(
    """
    class Guard(HookHandler[ToolEventInput, ToolEventOutput]):
        name = "Guard"

        def handle(self, event):
            return ToolEventOutput.success()
"""
)


def _unit(tmp_path: Path, name: str, source: str, origin: Origin = Origin.GLOBAL) -> SourceUnit:
    path = tmp_path / name
    text = textwrap.dedent(source).lstrip()
    path.write_text(text, encoding="utf-8")
    return SourceUnit(origin=origin, path=path, text=text)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscover:
    def test_sorted_by_file_name(self, global_dir, write_unit):
        for name in ("zeta.py", "alpha.py", "Mid.py"):
            write_unit(global_dir, name, GUARD_SOURCE)
        units = discover(global_dir)
        assert [u.name for u in units] == ["Mid.py", "alpha.py", "zeta.py"]
        assert all(u.origin is Origin.GLOBAL for u in units)

    def test_global_before_user(self, global_dir, user_dir, write_unit):
        write_unit(user_dir, "a_user.py", GUARD_SOURCE)
        write_unit(global_dir, "z_global.py", GUARD_SOURCE)
        units = discover(global_dir, user_dir)
        assert [(u.origin, u.name) for u in units] == [
            (Origin.GLOBAL, "z_global.py"),
            (Origin.USER, "a_user.py"),
        ]

    def test_skips_private_hidden_and_other_files(self, global_dir, write_unit):
        write_unit(global_dir, "_helpers.py", GUARD_SOURCE)
        write_unit(global_dir, ".hidden.py", GUARD_SOURCE)
        write_unit(global_dir, "notes.txt", "not python")
        nested = global_dir / "nested"
        nested.mkdir()
        write_unit(nested, "deep.py", GUARD_SOURCE)
        write_unit(global_dir, "guard.py", GUARD_SOURCE)
        assert [u.name for u in discover(global_dir)] == ["guard.py"]

    def test_missing_roots_yield_nothing(self, tmp_path):
        assert discover(tmp_path / "missing", tmp_path / "also-missing") == []
        assert discover(None, None) == []

    def test_stable_across_calls(self, global_dir, write_unit):
        for name in ("b.py", "a.py", "c.py"):
            write_unit(global_dir, name, GUARD_SOURCE)
        assert discover(global_dir) == discover(global_dir)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


class TestCompileUnit:
    def test_sdk_names_are_preseeded(self, tmp_path):
        loaded = compile_unit(_unit(tmp_path, "guard.py", GUARD_SOURCE), index=3)
        assert loaded is not None
        (descriptor,) = loaded.capabilities
        assert descriptor.name == "Guard"
        assert descriptor.input_model is ToolEventInput
        assert descriptor.output_model is ToolEventOutput
        assert descriptor.index == 3
        assert descriptor.position == 0
        assert descriptor.origin is Origin.GLOBAL
        assert loaded.module.__file__ == str(tmp_path / "guard.py")

    def test_explicit_imports_work(self, tmp_path):
        source = """
            from dothooks.models import SessionEventInput, SessionEventOutput
            from dothooks.plugins.base import HookHandler as Base

            class Greeter(Base[SessionEventInput, SessionEventOutput]):
                name = "Greeter"

                def handle(self, event):
                    return SessionEventOutput.with_context("hello")
        """
        loaded = compile_unit(_unit(tmp_path, "greeter.py", source))
        assert loaded is not None
        assert [d.name for d in loaded.capabilities] == ["Greeter"]

    def test_several_handlers_in_definition_order(self, tmp_path):
        source = GUARD_SOURCE + textwrap.dedent(
            """
            class Audit(HookHandler[GenericEventInput, GenericEventOutput]):
                name = "Audit"

                def handle(self, event):
                    return GenericEventOutput.success()
        """
        )
        loaded = compile_unit(_unit(tmp_path, "multi.py", source))
        assert [(d.name, d.position) for d in loaded.capabilities] == [("Guard", 0), ("Audit", 1)]

    def test_syntax_error_is_logged_with_line(self, tmp_path, caplog):
        caplog.set_level(logging.ERROR, logger="dothooks")
        unit = _unit(tmp_path, "broken.py", "class Broken(:\n    pass\n")
        assert compile_unit(unit) is None
        messages = [r.getMessage() for r in caplog.records]
        assert any("broken.py" in m and "line 1" in m for m in messages)

    def test_module_body_exception_is_a_compile_failure(self, tmp_path, caplog):
        caplog.set_level(logging.ERROR, logger="dothooks")
        unit = _unit(tmp_path, "raises.py", "raise RuntimeError('boom')\n")
        assert compile_unit(unit, index=7) is None
        assert any("RuntimeError: boom" in r.getMessage() for r in caplog.records)
        assert not any(name.startswith("_dothooks_unit_7_") for name in sys.modules)

    def test_system_exit_in_module_body_is_contained(self, tmp_path):
        unit = _unit(tmp_path, "exits.py", "import sys\nsys.exit(3)\n")
        assert compile_unit(unit) is None

    def test_unit_without_handler_is_dropped(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING, logger="dothooks")
        unit = _unit(tmp_path, "helpers.py", "VALUE = 1\n")
        assert compile_unit(unit) is None
        assert any("No HookHandler implementation found in helpers.py" in r.getMessage() for r in caplog.records)

    def test_abstract_and_imported_classes_are_ignored(self, tmp_path):
        source = """
            from abc import abstractmethod

            class Base(HookHandler[ToolEventInput, ToolEventOutput]):
                @abstractmethod
                def extra(self): ...
        """
        assert compile_unit(_unit(tmp_path, "abstract.py", source)) is None

    def test_unsupported_pair_is_rejected(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING, logger="dothooks")
        source = """
            class Mixed(HookHandler[ToolEventInput, GenericEventOutput]):
                name = "Mixed"

                def handle(self, event):
                    return GenericEventOutput.success()
        """
        assert compile_unit(_unit(tmp_path, "mixed.py", source)) is None
        assert any("unsupported capability" in r.getMessage() for r in caplog.records)

    def test_module_level_dataclass(self, tmp_path):
        source = GUARD_SOURCE + textwrap.dedent(
            """
            from dataclasses import dataclass

            @dataclass
            class Rule:
                pattern: str
        """
        )
        loaded = compile_unit(_unit(tmp_path, "rules.py", source))
        assert loaded is not None
        assert loaded.module.Rule("x").pattern == "x"

    def test_sdk_namespace_contents(self):
        names = sdk_namespace()
        for expected in ("HookHandler", "Decision", "ToolEventInput", "GenericEventOutput", "logging"):
            assert expected in names


class TestCompileUnits:
    def test_failure_does_not_abort_batch(self, tmp_path):
        units = [
            _unit(tmp_path, "a.py", GUARD_SOURCE),
            _unit(tmp_path, "b.py", "this is not python\n"),
            _unit(tmp_path, "c.py", GUARD_SOURCE.replace('"Guard"', '"Other"')),
        ]
        loaded = compile_units(units)
        assert [u.source.name for u in loaded] == ["a.py", "c.py"]
        assert [u.capabilities[0].index for u in loaded] == [0, 2]

    @pytest.mark.parametrize("parallel", [False, True])
    def test_order_preserved(self, tmp_path, parallel):
        units = [
            _unit(tmp_path, f"unit_{i:02d}.py", GUARD_SOURCE.replace('"Guard"', f'"H{i:02d}"'))
            for i in range(12)
        ]
        loaded = compile_units(units, parallel=parallel, max_workers=4)
        assert [u.capabilities[0].name for u in loaded] == [f"H{i:02d}" for i in range(12)]

    def test_empty_batch(self):
        assert compile_units([]) == []
