"""Tests for the tool registry and the built-in tools."""
from __future__ import annotations

import sys
import time

import pytest

from pymakasero.errors import OperationCancelled
from pymakasero.tools import registry as registry_mod
from pymakasero.tools.base import ToolContext, ToolDeclaration
from pymakasero.tools.builtin import register_builtin_tools
from pymakasero.tools.builtin_tools import gh_tools, git_tools
from pymakasero.tools.builtin_tools.terminal_tools import AskQuestionTool, CompleteTool
from pymakasero.tools.registry import ToolRegistry, qualified_name
from pymakasero.util.cancel import CancelToken
from pymakasero.util.subprocess import CmdResult, run_cmd


@pytest.fixture
def ctx(tmp_path) -> ToolContext:
    return ToolContext(cwd=str(tmp_path), session_id="s")


@pytest.fixture
def commands(monkeypatch):
    """Record commands instead of running them."""
    seen: list[list[str]] = []
    box = {"result": CmdResult(0, "out\n", "")}

    def fake(cmd, cwd=None, timeout=120, cancel=None):
        seen.append(list(cmd))
        box["cancel"] = cancel
        return box["result"]

    monkeypatch.setattr(git_tools, "run_cmd", fake)
    monkeypatch.setattr(gh_tools, "run_cmd", fake)
    box["seen"] = seen
    return box


class TestRegistry:
    def test_builtins_are_declared(self):
        reg = ToolRegistry()
        register_builtin_tools(reg)
        assert reg.names() == [
            "git_add",
            "git_commit",
            "git_status",
            "git_diff",
            "gh_issue_view",
            "gh_issue_create",
            "gh_pr_diff",
            "complete",
            "askQuestion",
        ]

    def test_remote_tools_get_prefixed(self):
        reg = ToolRegistry()
        reg.register_remote([ToolDeclaration(name="docs_search", description="d")])
        assert reg.has("mcp_docs_search")
        assert not reg.has("docs_search")
        assert reg.get_local("mcp_docs_search") is None
        assert qualified_name("mcp_docs_search") == "docs_search"

    def test_duplicates_rejected(self):
        reg = ToolRegistry()
        register_builtin_tools(reg)
        with pytest.raises(ValueError):
            reg.register(CompleteTool())
        reg.register_remote([ToolDeclaration(name="a_b", description="")])
        with pytest.raises(ValueError):
            reg.register_remote([ToolDeclaration(name="a_b", description="")])

    def test_local_names_may_not_use_remote_prefix(self):
        class Sneaky:
            declaration = ToolDeclaration(name=registry_mod.REMOTE_PREFIX + "x", description="")

        with pytest.raises(ValueError):
            ToolRegistry().register(Sneaky())

    def test_parameterless_declaration_has_no_parameters(self):
        assert "parameters" not in ToolDeclaration(name="n", description="d").to_dict()


class TestGitTools:
    def test_status(self, ctx, commands):
        res = git_tools.GitStatusTool().execute(ctx, {"path_to_status": "src"})
        assert commands["seen"] == [["git", "status", "--short", "--", "src"]]
        assert res.output == "out\n"
        assert not res.is_error

    def test_cancel_token_is_passed_on(self, commands, tmp_path):
        token = CancelToken()
        ctx = ToolContext(cwd=str(tmp_path), cancel=token)
        git_tools.GitStatusTool().execute(ctx, {"path_to_status": "."})
        assert commands["cancel"] is token

    def test_diff_staged(self, ctx, commands):
        git_tools.GitDiffTool().execute(ctx, {"path_to_diff": "a.py", "staged": True})
        assert commands["seen"] == [["git", "diff", "--staged", "--", "a.py"]]

    def test_commit(self, ctx, commands):
        git_tools.GitCommitTool().execute(ctx, {"commit_message": "fix"})
        assert commands["seen"] == [["git", "commit", "-m", "fix"]]

    def test_missing_argument_is_reported(self, ctx, commands):
        res = git_tools.GitAddTool().execute(ctx, {})
        assert res.is_error
        assert commands["seen"] == []

    def test_command_failure_is_data(self, ctx, commands):
        commands["result"] = CmdResult(1, "", "fatal: not a git repository\n")
        res = git_tools.GitAddTool().execute(ctx, {"path_to_add": "."})
        assert res.is_error
        assert "not a git repository" in res.output


class TestGhTools:
    def test_issue_view_formats_number(self, ctx, commands):
        gh_tools.GhIssueViewTool().execute(ctx, {"issue_number": 42.0, "repo": "o/r"})
        assert commands["seen"] == [["gh", "issue", "view", "42", "--repo", "o/r"]]

    def test_issue_view_rejects_non_number(self, ctx, commands):
        assert gh_tools.GhIssueViewTool().execute(ctx, {"issue_number": "42"}).is_error
        assert gh_tools.GhIssueViewTool().execute(ctx, {"issue_number": True}).is_error

    def test_pr_diff(self, ctx, commands):
        gh_tools.GhPrDiffTool().execute(ctx, {"pr_number": 7, "repo": "o/r"})
        assert commands["seen"] == [["gh", "pr", "diff", "7", "--repo", "o/r"]]

    def test_pr_diff_requires_number(self, ctx, commands):
        assert gh_tools.GhPrDiffTool().execute(ctx, {}).is_error
        assert commands["seen"] == []

    def test_issue_create(self, ctx, commands):
        gh_tools.GhIssueCreateTool().execute(ctx, {"title": "Bug", "body": "details"})
        assert commands["seen"] == [["gh", "issue", "create", "--title", "Bug", "--body", "details"]]


class TestTerminalTools:
    def test_complete(self, ctx):
        assert CompleteTool().execute(ctx, {"message": "  done "}).to_response() == {"is_error": False, "output": "done"}

    def test_ask_question_with_options(self, ctx):
        res = AskQuestionTool().execute(ctx, {"question": "Which DB?", "options": ["sqlite", "postgres"]})
        assert res.output == "Which DB?\n  1. sqlite\n  2. postgres"


def test_run_cmd_missing_executable(tmp_path):
    res = run_cmd(["definitely-not-a-real-binary-xyz"], cwd=str(tmp_path))
    assert res.returncode == 127
    assert not res.ok


def test_run_cmd_success(tmp_path):
    res = run_cmd([sys.executable, "-c", "print('hi')"], cwd=str(tmp_path))
    assert res.ok
    assert res.stdout.strip() == "hi"


def test_run_cmd_with_cancelled_token(tmp_path):
    """A token that already fired stops the command before it starts."""
    token = CancelToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        run_cmd([sys.executable, "-c", "print('never')"], cwd=str(tmp_path), cancel=token)


def test_run_cmd_deadline_kills_long_command(tmp_path):
    """An expiring deadline ends a running command well before its own timeout."""
    token = CancelToken.with_timeout(0.3)
    t0 = time.monotonic()
    with pytest.raises(OperationCancelled):
        run_cmd([sys.executable, "-c", "import time; time.sleep(30)"], cwd=str(tmp_path), cancel=token)
    assert time.monotonic() - t0 < 10


def test_run_cmd_timeout(tmp_path):
    res = run_cmd([sys.executable, "-c", "import time; time.sleep(30)"], cwd=str(tmp_path), timeout=0.3)
    assert res.returncode == 124
