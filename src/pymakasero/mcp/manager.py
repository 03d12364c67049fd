from __future__ import annotations

import json
import logging
from typing import IO, Any, Callable, Mapping

from .client import ToolServerClient
from .models import Notification, ToolServerConfig
from .schema import convert_input_schema
from ..errors import (
    AgentError,
    CombinedError,
    RemoteToolError,
    ToolCatalogError,
    ToolServerError,
    UnknownToolError,
)
from ..tools.base import ToolDeclaration
from ..util.cancel import CancelToken
from ..util.rwlock import RWLock

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ToolServerConfig], ToolServerClient]
NotificationDispatcher = Callable[[str, Notification], None]


def qualify(server: str, tool: str) -> str:
    return f"{server}_{tool}"


class ToolServerManager:
    """Owns the tool-server clients, keyed by server name.

    Clients are registered once, sequentially, by ``initialize_from_config``;
    afterwards lookups and dispatches may run concurrently from any thread.
    The manager closes every client it owns.
    """

    def __init__(self, client_factory: ClientFactory = ToolServerClient):
        self._client_factory = client_factory
        self._clients: dict[str, ToolServerClient] = {}
        self._lock = RWLock()

    def initialize_from_config(
        self,
        servers: Mapping[str, ToolServerConfig],
        cancel: CancelToken | None = None,
    ) -> None:
        """Launch and handshake every server; all or nothing.

        If any server fails, the ones already started are closed again and no
        client is registered.
        """
        started: dict[str, ToolServerClient] = {}
        try:
            for name, cfg in servers.items():
                client = self._client_factory(cfg)
                started[name] = client
                result = client.initialize(cancel)
                logger.debug("%s tool server initialize result: %s", name, json.dumps(result, ensure_ascii=False))
                logger.info("tool server %s ready", name)
        except AgentError:
            for name, client in started.items():
                try:
                    client.close()
                except (OSError, AgentError) as e:
                    logger.warning("cleanup of tool server %s failed: %s", name, e)
            raise
        with self._lock.write():
            self._clients.update(started)

    def server_names(self) -> list[str]:
        with self._lock.read():
            return list(self._clients)

    def _snapshot(self) -> list[tuple[str, ToolServerClient]]:
        with self._lock.read():
            return list(self._clients.items())

    def generate_all_tool_declarations(self, cancel: CancelToken | None = None) -> list[ToolDeclaration]:
        """Every server's tools, named ``<server>_<tool>``.

        Servers that fail to list are collected; if any failed a
        ``ToolCatalogError`` is raised that still carries the declarations of
        the servers that succeeded.
        """
        declarations: list[ToolDeclaration] = []
        errors: list[BaseException] = []
        for server, client in self._snapshot():
            try:
                tools = client.list_tools(cancel)
            except ToolServerError as e:
                errors.append(e)
                continue
            for t in tools:
                declarations.append(
                    ToolDeclaration(
                        name=qualify(server, t.name),
                        description=t.description,
                        parameters=convert_input_schema(t.input_schema),
                    )
                )
        if errors:
            raise ToolCatalogError(errors, declarations)
        return declarations

    def resolve(self, qualified_name: str) -> tuple[str, str, ToolServerClient]:
        """Split ``<server>_<tool>``, preferring the longest matching server name."""
        with self._lock.read():
            candidates = [s for s in self._clients if qualified_name.startswith(s + "_")]
            if not candidates:
                raise UnknownToolError(f"no tool server for tool: {qualified_name}")
            server = max(candidates, key=len)
            tool = qualified_name[len(server) + 1:]
            if not tool:
                raise UnknownToolError(f"invalid remote tool name: {qualified_name}")
            return server, tool, self._clients[server]

    def dispatch(
        self,
        qualified_name: str,
        args: dict[str, Any],
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        server, tool, client = self.resolve(qualified_name)
        logger.debug("dispatching %s to server %s as %s", qualified_name, server, tool)
        try:
            raw = client.call_tool(tool, args, cancel)
        except ToolServerError as e:
            raise RemoteToolError(f"remote tool {qualified_name} failed: {e}") from e
        return normalize_result(raw)

    def setup_notification_handlers(self, dispatcher: NotificationDispatcher) -> None:
        for server, client in self._snapshot():
            client.on_notification(lambda n, server=server: dispatcher(server, n))

    def stderr_streams(self) -> dict[str, IO[str]]:
        out: dict[str, IO[str]] = {}
        for server, client in self._snapshot():
            stream = client.stderr
            if stream is not None:
                out[server] = stream
        return out

    def close(self) -> None:
        with self._lock.write():
            clients = list(self._clients.items())
            self._clients.clear()
        errors: list[BaseException] = []
        for server, client in clients:
            try:
                client.close()
            except (OSError, AgentError) as e:
                errors.append(ToolServerError(f"failed to close tool server {server}: {e}"))
        if errors:
            raise CombinedError("errors while closing tool servers", errors)


def _join_content(items: list[Any]) -> str:
    texts = []
    for part in items:
        if isinstance(part, dict):
            if part.get("type") == "text":
                texts.append(str(part.get("text", "")))
            else:
                texts.append(json.dumps(part, ensure_ascii=False))
        else:
            texts.append(str(part))
    return "\n".join(texts)


def normalize_result(res: Any) -> dict[str, Any]:
    """Bring any tools/call result into ``{"is_error": bool, "content": str}``.

    ``meta`` is carried over when the server sent one.
    """
    if isinstance(res, dict):
        is_error = bool(res.get("isError", res.get("is_error", False)))
        if "content" in res:
            c = res["content"]
            if isinstance(c, list):
                content = _join_content(c)
            elif isinstance(c, str):
                content = c
            else:
                content = json.dumps(c, ensure_ascii=False)
        elif isinstance(res.get("output"), str):
            content = res["output"]
        else:
            content = json.dumps(res, ensure_ascii=False, indent=2)
        out: dict[str, Any] = {"is_error": is_error, "content": content}
        meta = res.get("_meta", res.get("meta"))
        if meta is not None:
            out["meta"] = meta
        return out
    if isinstance(res, str):
        return {"is_error": False, "content": res}
    return {"is_error": False, "content": json.dumps(res, ensure_ascii=False, indent=2)}
