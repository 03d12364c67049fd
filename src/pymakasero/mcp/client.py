from __future__ import annotations

import itertools
import json
import logging
import queue
import subprocess
import threading
from typing import IO, Any, Callable

from .models import Notification, RemoteTool, ToolServerConfig
from ..errors import ProtocolError, ServerConnectionError
from ..util.cancel import CancelToken, ensure_token

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "pymakasero", "version": "0.1.0"}

NotificationHandler = Callable[[Notification], None]

_STOP = object()
_LOST = {"__lost__": True}


class ToolServerClient:
    """JSON-RPC client for one tool server speaking over its stdio.

    Messages are newline-delimited JSON objects. A reader thread owns stdout:
    responses are matched to pending requests by id, notifications go onto a
    bounded queue drained by a dispatcher thread so a slow handler never
    stalls response delivery. Requests may be issued from several threads at
    once.
    """

    def __init__(
        self,
        config: ToolServerConfig,
        *,
        request_timeout: float = 30.0,
        call_timeout: float | None = 300.0,
        notification_queue_size: int = 256,
    ):
        self.config = config
        self.name = config.name
        self.request_timeout = request_timeout
        self.call_timeout = call_timeout
        self._proc: subprocess.Popen[str] | None = None
        self._id_iter = itertools.count(1)
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: dict[int, tuple[threading.Event, dict[str, Any]]] = {}
        self._handler: NotificationHandler | None = None
        self._notifications: queue.Queue[Any] = queue.Queue(maxsize=notification_queue_size)
        self._reader: threading.Thread | None = None
        self._dispatcher: threading.Thread | None = None
        self._closed = False
        self._eof = threading.Event()
        self.server_info: dict[str, Any] = {}

    # -- lifecycle -------------------------------------------------------

    def _start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self.config.argv(),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                bufsize=1,
                cwd=self.config.cwd,
                env=self.config.launch_env(),
            )
        except OSError as e:
            raise ServerConnectionError(f"tool server {self.name}: cannot start {self.config.command!r}: {e}") from e
        if self._proc.stdin is None or self._proc.stdout is None:
            raise ServerConnectionError(f"tool server {self.name}: process started without pipes")
        self._reader = threading.Thread(target=self._read_loop, name=f"toolserver-{self.name}-reader", daemon=True)
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name=f"toolserver-{self.name}-notify", daemon=True
        )
        self._reader.start()
        self._dispatcher.start()

    def initialize(self, cancel: CancelToken | None = None) -> dict[str, Any]:
        """Start the process and perform the handshake."""
        if self._proc is None:
            self._start()
        result = self._request(
            "initialize",
            {"protocolVersion": PROTOCOL_VERSION, "capabilities": {}, "clientInfo": CLIENT_INFO},
            cancel=cancel,
            timeout=self.request_timeout,
        )
        if not isinstance(result, dict) or not isinstance(result.get("protocolVersion"), str):
            raise ProtocolError(f"tool server {self.name}: malformed initialize result: {result!r}")
        info = result.get("serverInfo")
        self.server_info = info if isinstance(info, dict) else {}
        self._notify("notifications/initialized", {})
        return result

    def close(self, timeout: float = 5.0) -> None:
        """Terminate the process and join the background threads."""
        if self._closed:
            return
        self._closed = True
        proc = self._proc
        if proc is not None:
            try:
                if proc.stdin:
                    proc.stdin.close()
            except OSError:
                pass
            if proc.poll() is None:
                proc.terminate()
                try:
                    proc.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    logger.warning("tool server %s did not exit, killing it", self.name)
                    proc.kill()
                    proc.wait(timeout=timeout)
        if self._reader is not None:
            self._reader.join(timeout)
        self._put_notification(_STOP, block=True)
        if self._dispatcher is not None:
            self._dispatcher.join(timeout)
        if proc is not None and proc.stdout:
            proc.stdout.close()

    @property
    def stderr(self) -> IO[str] | None:
        """The server's diagnostic stream. Callers must keep it drained."""
        return self._proc.stderr if self._proc is not None else None

    def on_notification(self, handler: NotificationHandler) -> None:
        self._handler = handler

    # -- wire ------------------------------------------------------------

    def _send(self, msg: dict[str, Any]) -> None:
        proc = self._proc
        if proc is None or proc.stdin is None or self._closed:
            raise ServerConnectionError(f"tool server {self.name} is not running")
        line = json.dumps(msg, ensure_ascii=False) + "\n"
        try:
            with self._write_lock:
                proc.stdin.write(line)
                proc.stdin.flush()
        except (OSError, ValueError) as e:
            raise ServerConnectionError(f"tool server {self.name}: write failed: {e}") from e

    def _notify(self, method: str, params: dict[str, Any]) -> None:
        self._send({"jsonrpc": "2.0", "method": method, "params": params})

    def _read_loop(self) -> None:
        stdout = self._proc.stdout if self._proc is not None else None
        if stdout is None:
            self._eof.set()
            return
        try:
            for line in stdout:
                line = line.strip()
                if not line:
                    continue
                try:
                    msg = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("tool server %s: ignoring non-JSON line: %.200s", self.name, line)
                    continue
                if isinstance(msg, dict):
                    self._handle_message(msg)
        except (OSError, ValueError):
            pass
        finally:
            self._eof.set()
            self._fail_pending()

    def _handle_message(self, msg: dict[str, Any]) -> None:
        method = msg.get("method")
        if isinstance(method, str):
            if "id" in msg and msg["id"] is not None:
                self._answer_server_request(msg["id"], method)
            else:
                params = msg.get("params")
                self._put_notification(Notification(method, params if isinstance(params, dict) else {}))
            return
        try:
            mid = int(msg["id"])
        except (KeyError, TypeError, ValueError):
            return
        with self._lock:
            waiter = self._pending.get(mid)
        if waiter is not None:
            ev, holder = waiter
            holder["msg"] = msg
            ev.set()

    def _answer_server_request(self, rid: Any, method: str) -> None:
        if method == "ping":
            reply: dict[str, Any] = {"jsonrpc": "2.0", "id": rid, "result": {}}
        else:
            reply = {"jsonrpc": "2.0", "id": rid, "error": {"code": -32601, "message": f"Method not found: {method}"}}
        try:
            self._send(reply)
        except ServerConnectionError as e:
            logger.debug("tool server %s: cannot answer %s: %s", self.name, method, e)

    def _fail_pending(self) -> None:
        with self._lock:
            waiters = list(self._pending.values())
        for ev, holder in waiters:
            holder.setdefault("msg", _LOST)
            ev.set()

    def _put_notification(self, item: Any, block: bool = False) -> None:
        try:
            self._notifications.put(item, block=block, timeout=1.0 if block else None)
        except queue.Full:
            logger.warning("tool server %s: notification queue full, dropping %s", self.name, getattr(item, "method", item))

    def _dispatch_loop(self) -> None:
        while True:
            item = self._notifications.get()
            if item is _STOP:
                return
            handler = self._handler
            if handler is None:
                continue
            try:
                handler(item)
            except Exception:
                logger.exception("tool server %s: notification handler failed", self.name)

    def _request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
        timeout: float | None = 30.0,
    ) -> Any:
        token = ensure_token(cancel)
        token.raise_if_cancelled(f"{self.name} {method}")
        rid = next(self._id_iter)
        ev = threading.Event()
        holder: dict[str, Any] = {}
        with self._lock:
            self._pending[rid] = (ev, holder)
        try:
            if self._proc is not None and self._proc.poll() is not None:
                raise ServerConnectionError(
                    f"tool server {self.name} exited with code {self._proc.returncode}"
                )
            logger.debug("-> %s %s #%d", self.name, method, rid)
            self._send({"jsonrpc": "2.0", "id": rid, "method": method, "params": params or {}})
            waited = 0.0
            while not ev.wait(0.1):
                if self._eof.is_set():
                    break
                token.raise_if_cancelled(f"{self.name} {method}")
                waited += 0.1
                if timeout is not None and waited >= timeout:
                    raise ProtocolError(f"tool server {self.name}: {method} timed out after {timeout}s")
        finally:
            with self._lock:
                self._pending.pop(rid, None)
        msg = holder.get("msg", _LOST)
        if msg is _LOST:
            raise ServerConnectionError(f"tool server {self.name} closed the connection during {method}")
        if "error" in msg:
            err = msg["error"]
            text = err.get("message", err) if isinstance(err, dict) else err
            raise ProtocolError(f"tool server {self.name}: {method} failed: {text}")
        if "result" not in msg:
            raise ProtocolError(f"tool server {self.name}: {method} response has no result")
        return msg["result"]

    # -- operations ------------------------------------------------------

    def list_tools(self, cancel: CancelToken | None = None) -> list[RemoteTool]:
        try:
            res = self._request("tools/list", {}, cancel=cancel, timeout=self.request_timeout)
        except ServerConnectionError as e:
            raise ProtocolError(str(e)) from e
        arr = res.get("tools") if isinstance(res, dict) else None
        if not isinstance(arr, list):
            raise ProtocolError(f"tool server {self.name}: tools/list result has no tools list")
        tools: list[RemoteTool] = []
        for t in arr:
            if not isinstance(t, dict) or not isinstance(t.get("name"), str):
                raise ProtocolError(f"tool server {self.name}: malformed tool entry: {t!r}")
            schema = t.get("inputSchema", {})
            if schema is None:
                schema = {}
            if not isinstance(schema, dict) or not isinstance(schema.get("properties", {}), dict):
                raise ProtocolError(f"tool server {self.name}: tool {t['name']} has a malformed input schema")
            desc = t.get("description") or ""
            tools.append(RemoteTool(name=t["name"], description=str(desc), input_schema=schema))
        return tools

    def call_tool(self, name: str, arguments: dict[str, Any], cancel: CancelToken | None = None) -> Any:
        """Invoke a tool and return the raw result.

        A result whose ``isError`` flag is set is returned normally; only
        transport and protocol failures raise.
        """
        try:
            return self._request(
                "tools/call",
                {"name": name, "arguments": arguments or {}},
                cancel=cancel,
                timeout=self.call_timeout,
            )
        except ServerConnectionError as e:
            raise ProtocolError(str(e)) from e
