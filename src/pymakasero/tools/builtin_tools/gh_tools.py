from __future__ import annotations
from dataclasses import dataclass
from typing import Any

from ..base import ToolDeclaration, ToolResult, ToolContext
from ..schema import obj, string, number
from ...util.subprocess import run_cmd

_REPO = string("Repository as owner/repo. Defaults to the current repository.")


def _gh(ctx: ToolContext, what: str, argv: list[str], repo: Any) -> ToolResult:
    if isinstance(repo, str) and repo:
        argv = [*argv, "--repo", repo]
    res = run_cmd(["gh", *argv], cwd=ctx.cwd, cancel=ctx.cancel)
    if not res.ok:
        return ToolResult(f"gh {what} failed (exit {res.returncode})\nOutput: {res.combined}", is_error=True)
    return ToolResult(res.combined)


@dataclass
class GhIssueViewTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="gh_issue_view",
        description="Show a GitHub issue by number using gh issue view.",
        parameters=obj({"issue_number": number("Issue number."), "repo": _REPO}, ["issue_number"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        number_ = args.get("issue_number")
        # numbers arrive as floats from the model
        if isinstance(number_, bool) or not isinstance(number_, (int, float)):
            return ToolResult("issue_number is required and must be a number", is_error=True)
        return _gh(ctx, "issue view", ["issue", "view", f"{number_:.0f}"], args.get("repo"))


@dataclass
class GhIssueCreateTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="gh_issue_create",
        description="Create a GitHub issue using gh issue create.",
        parameters=obj(
            {
                "title": string("The title of the issue."),
                "body": string("The body content of the issue."),
                "repo": _REPO,
            },
            ["title"],
        ),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        title = args.get("title")
        if not isinstance(title, str) or not title:
            return ToolResult("title is required and cannot be empty", is_error=True)
        argv = ["issue", "create", "--title", title]
        body = args.get("body")
        if isinstance(body, str) and body:
            argv += ["--body", body]
        return _gh(ctx, "issue create", argv, args.get("repo"))


@dataclass
class GhPrDiffTool:
    declaration: ToolDeclaration = ToolDeclaration(
        name="gh_pr_diff",
        description="Show the diff of a GitHub pull request using gh pr diff.",
        parameters=obj({"pr_number": number("Pull request number."), "repo": _REPO}, ["pr_number"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        number_ = args.get("pr_number")
        if isinstance(number_, bool) or not isinstance(number_, (int, float)):
            return ToolResult("pr_number is required and must be a number", is_error=True)
        return _gh(ctx, "pr diff", ["pr", "diff", f"{number_:.0f}"], args.get("repo"))
