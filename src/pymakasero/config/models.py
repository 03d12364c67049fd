from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..mcp.models import ToolServerConfig

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant.\n"
    "Execute tasks from users and always call the 'complete' function when a task is finished.\n"
    "When calling functions, do not write the function name as text, but actually call the function."
)


@dataclass
class AppConfig:
    """Settings loaded from JSON config files (global < project < explicit)."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str | None = None
    # None keeps nudging the model forever
    max_continues: int | None = None
    tool_servers: dict[str, ToolServerConfig] = field(default_factory=dict)

    loaded_from: list[Path] = field(default_factory=list)
