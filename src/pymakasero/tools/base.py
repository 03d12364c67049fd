from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Protocol

from .schema import Schema
from ..util.cancel import CancelToken

@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    parameters: Schema | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name, "description": self.description}
        # parameterless tools are declared without a parameters object
        if self.parameters is not None and self.parameters.properties:
            d["parameters"] = self.parameters.to_dict()
        return d

class Tool(Protocol):
    declaration: ToolDeclaration
    def execute(self, ctx: "ToolContext", args: dict[str, Any]) -> "ToolResult": ...

@dataclass
class ToolResult:
    output: str
    is_error: bool = False

    def to_response(self) -> dict[str, Any]:
        return {"is_error": self.is_error, "output": self.output}

@dataclass
class ToolContext:
    cwd: str
    session_id: str | None = None
    cancel: CancelToken | None = None
