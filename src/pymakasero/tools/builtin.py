from __future__ import annotations

from .registry import ToolRegistry

from .builtin_tools.git_tools import GitAddTool, GitCommitTool, GitStatusTool, GitDiffTool
from .builtin_tools.gh_tools import GhIssueViewTool, GhIssueCreateTool, GhPrDiffTool
from .builtin_tools.terminal_tools import CompleteTool, AskQuestionTool

def register_builtin_tools(registry: ToolRegistry) -> None:
    registry.register(GitAddTool())
    registry.register(GitCommitTool())
    registry.register(GitStatusTool())
    registry.register(GitDiffTool())
    registry.register(GhIssueViewTool())
    registry.register(GhIssueCreateTool())
    registry.register(GhPrDiffTool())
    registry.register(CompleteTool())
    registry.register(AskQuestionTool())
