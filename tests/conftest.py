"""Shared fixtures: fake model backend, fake tool-server clients, echo server config."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest

from pymakasero.mcp.models import RemoteTool, ToolServerConfig
from pymakasero.session.models import Content, FunctionCall, Text
from pymakasero.session.store import SessionStore

ECHO_SERVER = Path(__file__).parent / "servers" / "echo_server.py"


@pytest.fixture
def echo_config() -> Callable[..., ToolServerConfig]:
    def make(name: str = "echo", mode: str | None = None) -> ToolServerConfig:
        args = [str(ECHO_SERVER)]
        if mode:
            args.append(mode)
        return ToolServerConfig(name=name, command=sys.executable, args=args)

    return make


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(directory=tmp_path / "sessions")


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep every test away from the real home and config dirs."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


def text_reply(s: str) -> Content:
    return Content(role="model", parts=[Text(s)])


def call_reply(*calls: tuple[str, dict[str, Any]]) -> Content:
    return Content(role="model", parts=[FunctionCall(name=n, args=a) for n, a in calls])


class FakeBackend:
    """Returns scripted replies and records every request it gets."""

    model = "fake-model"

    def __init__(self, replies: list[Content | Exception]):
        self.replies = list(replies)
        self.requests: list[dict[str, Any]] = []

    def generate(self, history, *, tools, system_instruction=None, cancel=None) -> Content:
        self.requests.append(
            {"history": list(history), "tools": [t.name for t in tools], "system_instruction": system_instruction}
        )
        if not self.replies:
            raise AssertionError("backend called more often than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClient:
    """Stands in for ToolServerClient without a subprocess."""

    def __init__(
        self,
        config: ToolServerConfig,
        tools: list[RemoteTool] | None = None,
        init_error: Exception | None = None,
        list_error: Exception | None = None,
        close_error: Exception | None = None,
        results: dict[str, Any] | None = None,
    ):
        self.config = config
        self.name = config.name
        self.tools = tools or []
        self.init_error = init_error
        self.list_error = list_error
        self.close_error = close_error
        self.results = results or {}
        self.initialized = False
        self.closed = False
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.handler = None
        self.stderr = None

    def initialize(self, cancel=None):
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True
        return {"protocolVersion": "2024-11-05"}

    def list_tools(self, cancel=None):
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    def call_tool(self, name, arguments, cancel=None):
        self.calls.append((name, arguments))
        result = self.results.get(name, {"content": [{"type": "text", "text": f"{name} ok"}]})
        if isinstance(result, Exception):
            raise result
        return result

    def on_notification(self, handler):
        self.handler = handler

    def close(self, timeout: float = 5.0):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error
