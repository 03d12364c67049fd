from __future__ import annotations
from typing import Any

from ..base import ToolContext, ToolDeclaration, ToolResult
from ..schema import array_of, obj, string

COMPLETE = "complete"
ASK_QUESTION = "askQuestion"
TERMINAL_TOOLS = frozenset({COMPLETE, ASK_QUESTION})


class CompleteTool:
    declaration = ToolDeclaration(
        name=COMPLETE,
        description="Report that the task is finished.",
        parameters=obj({"message": string("Completion message for the user.")}, ["message"]),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        return ToolResult(str(args.get("message") or "").strip())


class AskQuestionTool:
    declaration = ToolDeclaration(
        name=ASK_QUESTION,
        description=(
            "Ask the user a question. Call this when more information is needed to carry on with the task."
        ),
        parameters=obj(
            {
                "question": string("Question for the user."),
                "options": array_of(string(), "Optional answer choices."),
            },
            ["question"],
        ),
    )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
        question = str(args.get("question") or "").strip()
        options = args.get("options")
        lines = [question]
        if isinstance(options, list):
            lines += [f"  {i}. {o}" for i, o in enumerate(options, start=1)]
        return ToolResult("\n".join(lines))
