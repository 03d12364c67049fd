from __future__ import annotations
from dataclasses import dataclass
from typing import Any

from ..base import ToolDeclaration, ToolResult, ToolContext
from ..schema import obj, string, boolean
from ...util.subprocess import run_cmd


def _required_str(args: dict[str, Any], key: str) -> str | None:
    v = args.get(key)
    return v if isinstance(v, str) and v else None


def _git(ctx: ToolContext, what: str, *argv: str) -> ToolResult:
    res = run_cmd(["git", *argv], cwd=ctx.cwd, cancel=ctx.cancel)
    if not res.ok:
        return ToolResult(f"git {what} failed (exit {res.returncode}): {res.stderr.strip()}", is_error=True)
    return ToolResult(res.stdout)


@dataclass
class GitAddTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="git_add",
        description="Run git add on a file or directory.",
        parameters=obj({"path_to_add": string("Path of the file or directory to add.")}, ["path_to_add"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        path = _required_str(args, "path_to_add")
        if path is None:
            return ToolResult("path_to_add is required", is_error=True)
        return _git(ctx, "add", "add", path)


@dataclass
class GitCommitTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="git_commit",
        description="Run git commit with the given message.",
        parameters=obj({"commit_message": string("Commit message.")}, ["commit_message"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        message = _required_str(args, "commit_message")
        if message is None:
            return ToolResult("commit_message is required", is_error=True)
        return _git(ctx, "commit", "commit", "-m", message)


@dataclass
class GitStatusTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="git_status",
        description="Run git status --short for a path.",
        parameters=obj({"path_to_status": string("Path to report status for.")}, ["path_to_status"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        path = _required_str(args, "path_to_status")
        if path is None:
            return ToolResult("path_to_status is required", is_error=True)
        return _git(ctx, "status", "status", "--short", "--", path)


@dataclass
class GitDiffTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="git_diff",
        description="Run git diff for a path, optionally for staged changes.",
        parameters=obj(
            {
                "path_to_diff": string("Path to diff."),
                "staged": boolean("Show staged changes instead of the working tree."),
            },
            ["path_to_diff"],
        ),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        path = _required_str(args, "path_to_diff")
        if path is None:
            return ToolResult("path_to_diff is required", is_error=True)
        if args.get("staged") is True:
            return _git(ctx, "diff", "diff", "--staged", "--", path)
        return _git(ctx, "diff", "diff", "--", path)
