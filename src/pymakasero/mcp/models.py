from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

@dataclass
class ToolServerConfig:
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None

    @staticmethod
    def from_obj(name: str, obj: Any) -> "ToolServerConfig | None":
        if not isinstance(obj, dict):
            return None
        cmd = obj.get("command")
        args = obj.get("args", [])
        # accept ["prog", "arg", ...] as well as "prog" + args
        if isinstance(cmd, list) and cmd and all(isinstance(x, str) for x in cmd):
            args = cmd[1:] + (args if isinstance(args, list) else [])
            cmd = cmd[0]
        if not isinstance(cmd, str) or not cmd.strip():
            return None
        if not isinstance(args, list):
            args = []
        env = obj.get("env", {})
        if not isinstance(env, dict):
            env = {}
        cwd = obj.get("cwd")
        if cwd is not None and not isinstance(cwd, str):
            cwd = None
        return ToolServerConfig(
            name=name,
            command=cmd,
            args=[str(x) for x in args],
            env={str(k): str(v) for k, v in env.items()},
            cwd=cwd,
        )

    def argv(self) -> list[str]:
        return [self.command, *self.args]

    def launch_env(self) -> dict[str, str] | None:
        """Parent environment overlaid with the configured values ($VAR expanded)."""
        if not self.env:
            return None
        merged = dict(os.environ)
        for k, v in self.env.items():
            merged[k] = os.path.expandvars(v)
        return merged

@dataclass
class RemoteTool:
    name: str
    description: str
    input_schema: dict[str, Any]

@dataclass
class Notification:
    method: str
    params: dict[str, Any] = field(default_factory=dict)
