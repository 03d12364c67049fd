from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

from .config.loader import load_app_config
from .config.models import AppConfig
from .engine import ConversationEngine
from .errors import AgentError
from .events.store import EventStore
from .llm.factory import make_provider, resolve_backend_config
from .llm.gemini import GeminiProvider
from .mcp.manager import ToolServerManager
from .session.models import Session
from .session.store import SessionStore
from .tools.builtin import register_builtin_tools
from .tools.registry import ToolRegistry
from .util.cancel import CancelToken

logger = logging.getLogger(__name__)


def _drain_stderr(server: str, stream: IO[str]) -> None:
    log = logging.getLogger(f"pymakasero.toolserver.{server}")
    for line in stream:
        line = line.rstrip()
        if line:
            log.debug("%s", line)


@dataclass
class AppContext:
    cwd: Path
    config: AppConfig
    backend: GeminiProvider
    registry: ToolRegistry
    manager: ToolServerManager
    store: SessionStore
    engine: ConversationEngine
    _drainers: list[threading.Thread] = field(default_factory=list)

    @property
    def session(self) -> Session:
        return self.engine.session

    def close(self) -> None:
        """Shut down every tool server this context started."""
        try:
            self.manager.close()
        except AgentError as e:
            logger.warning("%s", e)
        for t in self._drainers:
            t.join(timeout=1.0)

    def start_stderr_drainers(self) -> None:
        for server, stream in self.manager.stderr_streams().items():
            t = threading.Thread(target=_drain_stderr, args=(server, stream), name=f"stderr-{server}", daemon=True)
            t.start()
            self._drainers.append(t)

    @staticmethod
    def from_env(
        cwd: Path,
        session_id: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        config_path: Optional[Path] = None,
        backend_config_path: Optional[Path] = None,
        sessions_dir: Optional[Path] = None,
        startup_timeout: float | None = 60.0,
    ) -> "AppContext":
        config = load_app_config(cwd=cwd, explicit_path=config_path)
        backend_cfg = resolve_backend_config(
            model=model,
            api_key=api_key,
            yaml_path=backend_config_path or cwd / "pymakasero.yaml",
            config_model=config.model,
        )
        backend = make_provider(backend_cfg)

        store = SessionStore(directory=sessions_dir) if sessions_dir else SessionStore.default()
        # resolve the session before launching any subprocess
        session = store.load(session_id) if session_id else Session()

        manager = ToolServerManager()
        manager.initialize_from_config(config.tool_servers, CancelToken.with_timeout(startup_timeout))
        try:
            registry = ToolRegistry()
            register_builtin_tools(registry)
            registry.register_remote(manager.generate_all_tool_declarations(CancelToken.with_timeout(startup_timeout)))

            engine = ConversationEngine(
                backend=backend,
                registry=registry,
                manager=manager,
                store=store,
                session=session,
                system_prompt=config.system_prompt,
                max_continues=config.max_continues,
                cwd=cwd,
                events=EventStore.open(session.id),
            )
            manager.setup_notification_handlers(engine.handle_notification)
        except (AgentError, ValueError):
            manager.close()
            raise

        ctx = AppContext(
            cwd=cwd,
            config=config,
            backend=backend,
            registry=registry,
            manager=manager,
            store=store,
            engine=engine,
        )
        ctx.start_stderr_drainers()
        return ctx
