"""Tests for wiring config, tool servers and the engine together."""
from __future__ import annotations

import json
import sys

import pytest

from conftest import ECHO_SERVER
from pymakasero.app_context import AppContext
from pymakasero.errors import ProtocolError, SessionNotFoundError


def _project_config(tmp_path, servers):
    (tmp_path / ".pymakasero.json").write_text(json.dumps({"mcpServers": servers}), encoding="utf-8")


def test_from_env_registers_remote_tools(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    _project_config(tmp_path, {"echo": {"command": sys.executable, "args": [str(ECHO_SERVER)]}})

    ctx = AppContext.from_env(cwd=tmp_path, sessions_dir=tmp_path / "sessions")
    try:
        names = ctx.engine.available_functions()
        assert "complete" in names
        assert "mcp_echo_echo" in names
        assert ctx.manager.server_names() == ["echo"]
        assert ctx.backend.api_key == "k"
    finally:
        ctx.close()
    assert ctx.manager.server_names() == []


def test_failing_server_aborts_startup(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    _project_config(
        tmp_path,
        {
            "good": {"command": sys.executable, "args": [str(ECHO_SERVER)]},
            "bad": {"command": sys.executable, "args": [str(ECHO_SERVER), "bad-handshake"]},
        },
    )

    with pytest.raises(ProtocolError):
        AppContext.from_env(cwd=tmp_path, sessions_dir=tmp_path / "sessions")


def test_unknown_session_is_reported_before_servers_start(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    with pytest.raises(SessionNotFoundError):
        AppContext.from_env(cwd=tmp_path, session_id="missing", sessions_dir=tmp_path / "sessions")
