"""Integration tests for the dothooks command line.

Each test drives the real Typer app through CliRunner with an isolated
plugin root, project directory and environment, and checks the exact
stdout document and exit code the host would see.
"""

from __future__ import annotations

import json
import textwrap
import threading
from pathlib import Path

import pytest

from dothooks import __version__
from dothooks.app import app
from dothooks.exit_codes import EXIT_BLOCKED, EXIT_GENERIC_FAILURE, EXIT_SUCCESS, EXIT_TIMEOUT


ENV_GUARD = """
    class EnvGuard(HookHandler[ToolEventInput, ToolEventOutput]):
        name = "EnvGuard"

        def handle(self, event):
            if event.tool_input.get("file_path", "").endswith(".env"):
                return ToolEventOutput.block("Writes to .env are not allowed")
            return ToolEventOutput.success()
"""

BRANCH_INFO = """
    class BranchInfo(HookHandler[SessionEventInput, SessionEventOutput]):
        name = "BranchInfo"

        def handle(self, event):
            return SessionEventOutput.with_context("Branch: main")
"""


@pytest.fixture
def env(plugin_root: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(plugin_root))
    monkeypatch.setenv("NO_COLOR", "1")
    return plugin_root


def _tool_input(project_dir: Path, file_path: str = "/repo/.env") -> str:
    return json.dumps(
        {
            "session_id": "cli",
            "cwd": str(project_dir),
            "tool_name": "Write",
            "tool_input": {"file_path": file_path},
        }
    )


class TestGlobalOptions:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == f"dothooks {__version__}"

    def test_help_lists_event_commands(self, cli_runner):
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("pre-tool-use", "session-start", "pre-compact", "list", "config"):
            assert name in result.stdout


class TestEventCommands:
    def test_no_handlers(self, cli_runner, env, project_dir):
        result = cli_runner.invoke(app, ["pre-tool-use"], input=_tool_input(project_dir))
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout) == {"decision": "approve", "continue": True}

    def test_blocking_handler(self, cli_runner, env, global_dir, write_unit, project_dir):
        write_unit(global_dir, "env_guard.py", ENV_GUARD)
        result = cli_runner.invoke(app, ["pre-tool-use"], input=_tool_input(project_dir))
        assert result.exit_code == EXIT_BLOCKED
        assert json.loads(result.stdout) == {
            "decision": "block",
            "continue": False,
            "stopReason": "Writes to .env are not allowed",
        }

    def test_stdout_is_a_single_document(self, cli_runner, env, global_dir, write_unit, project_dir):
        write_unit(global_dir, "broken.py", "class Broken(:\n")
        write_unit(global_dir, "env_guard.py", ENV_GUARD)
        result = cli_runner.invoke(
            app, ["pre-tool-use"], input=_tool_input(project_dir, "/repo/main.py")
        )
        assert result.exit_code == EXIT_SUCCESS
        assert len(result.stdout.strip().splitlines()) == 1
        assert json.loads(result.stdout)["decision"] == "approve"

    def test_handler_prints_go_to_stderr(self, cli_runner, env, global_dir, write_unit, project_dir):
        write_unit(
            global_dir,
            "chatty.py",
            """
            print("loading chatty")

            class Chatty(HookHandler[ToolEventInput, ToolEventOutput]):
                name = "Chatty"

                def handle(self, event):
                    print("debug from handler")
                    return ToolEventOutput.with_context("checked")
            """,
        )
        result = cli_runner.invoke(app, ["pre-tool-use"], input=_tool_input(project_dir))
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout) == {
            "decision": "approve",
            "continue": True,
            "additionalContext": "checked",
        }
        assert "loading chatty" in result.stderr
        assert "debug from handler" in result.stderr

    def test_user_handler_context(self, cli_runner, env, user_dir, write_unit, project_dir):
        write_unit(user_dir, "branch_info.py", BRANCH_INFO)
        raw = json.dumps({"session_id": "cli", "cwd": str(project_dir), "source": "startup"})
        result = cli_runner.invoke(app, ["session-start"], input=raw)
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout)["additionalContext"] == "Branch: main"

    def test_empty_stdin(self, cli_runner, env):
        result = cli_runner.invoke(app, ["notification"], input="")
        assert result.exit_code == EXIT_SUCCESS
        assert json.loads(result.stdout)["continue"] is True

    def test_timeout_option(self, cli_runner, env, global_dir, write_unit, project_dir):
        write_unit(
            global_dir,
            "slow.py",
            """
            import time

            class Slow(HookHandler[ToolEventInput, ToolEventOutput]):
                name = "Slow"

                def handle(self, event):
                    time.sleep(1)
                    return ToolEventOutput.success()
            """,
        )
        result = cli_runner.invoke(
            app, ["pre-tool-use", "--timeout-ms", "100"], input=_tool_input(project_dir)
        )
        assert result.exit_code == EXIT_TIMEOUT
        assert json.loads(result.stdout) == {"decision": "approve", "continue": True}
        for thread in threading.enumerate():
            if thread.name == "dothooks-pipeline":
                thread.join(5)

    def test_disabled_event_from_environment(self, cli_runner, env, global_dir, write_unit, project_dir, monkeypatch):
        write_unit(global_dir, "env_guard.py", ENV_GUARD)
        monkeypatch.setenv("DOTHOOKS_HOOKS__ENABLED_HOOKS", '{"pre-tool-use": false}')
        result = cli_runner.invoke(app, ["pre-tool-use"], input=_tool_input(project_dir))
        assert result.exit_code == EXIT_SUCCESS

    def test_invalid_project_config(self, cli_runner, env, isolated_env, project_dir):
        config_path = isolated_env / ".claude" / "dot-hooks" / "dot-hooks.json"
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{broken", encoding="utf-8")
        result = cli_runner.invoke(app, ["pre-tool-use"], input=_tool_input(project_dir))
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert json.loads(result.stdout) == {"decision": "approve", "continue": True}
        assert "Invalid project config" in result.stderr

    def test_invalid_log_level(self, cli_runner, env, project_dir):
        result = cli_runner.invoke(
            app, ["pre-tool-use", "--log-level", "chatty"], input=_tool_input(project_dir)
        )
        assert result.exit_code == EXIT_GENERIC_FAILURE

    def test_unexpected_failure_blocks(self, cli_runner, env, project_dir, monkeypatch):
        def _explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr("dothooks.runtime.run_event", _explode)
        result = cli_runner.invoke(app, ["stop"], input="{}")
        assert result.exit_code == EXIT_BLOCKED
        document = json.loads(result.stdout)
        assert document["decision"] == "block"
        assert document["stopReason"] == "dothooks failed: disk on fire"


class TestListCommand:
    def test_plain_table(self, cli_runner, env, global_dir, user_dir, write_unit, project_dir):
        write_unit(global_dir, "env_guard.py", ENV_GUARD)
        write_unit(user_dir, "branch_info.py", BRANCH_INFO)
        result = cli_runner.invoke(app, ["list", "--project-dir", str(project_dir)])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == "Handler\tEvents\tOrigin\tSource"
        assert lines[1].startswith("EnvGuard\tpre-tool-use, post-tool-use\tglobal\t")
        assert lines[2].startswith("BranchInfo\tsession-start, session-end\tuser\t")

    def test_json_for_one_event(self, cli_runner, env, global_dir, user_dir, write_unit, project_dir):
        write_unit(global_dir, "env_guard.py", ENV_GUARD)
        write_unit(user_dir, "branch_info.py", BRANCH_INFO)
        result = cli_runner.invoke(
            app, ["--json", "list", "session-end", "--project-dir", str(project_dir)]
        )
        assert result.exit_code == 0
        records = json.loads(result.stdout)
        assert [r["Handler"] for r in records] == ["BranchInfo"]
        assert records[0]["Origin"] == "user"

    def test_module_prints_stay_off_the_table(self, cli_runner, env, global_dir, write_unit, project_dir):
        write_unit(global_dir, "env_guard.py", 'print("loading env guard")\n' + textwrap.dedent(ENV_GUARD))
        result = cli_runner.invoke(
            app, ["--json", "list", "pre-tool-use", "--project-dir", str(project_dir)]
        )
        assert result.exit_code == 0
        assert [r["Handler"] for r in json.loads(result.stdout)] == ["EnvGuard"]
        assert "loading env guard" in result.stderr

    def test_nothing_found(self, cli_runner, env):
        result = cli_runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert result.stdout == ""

    def test_unknown_event(self, cli_runner, env):
        result = cli_runner.invoke(app, ["list", "PreToolUse"])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "Unknown hook event" in result.stderr


class TestConfigCommand:
    def test_shows_effective_settings(self, cli_runner, env, monkeypatch):
        monkeypatch.setenv("DOTHOOKS_HOOKS__DEFAULT_TIMEOUT_MS", "1234")
        result = cli_runner.invoke(app, ["--json", "config"])
        assert result.exit_code == 0
        settings = json.loads(result.stdout)
        assert settings["hooks"]["default_timeout_ms"] == 1234
        assert settings["paths"]["session_log_file_name"] == "dot-hooks.log"
