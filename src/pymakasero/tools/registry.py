from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .base import Tool, ToolDeclaration
from ..util.rwlock import RWLock

REMOTE_PREFIX = "mcp_"

def is_remote(name: str) -> bool:
    return name.startswith(REMOTE_PREFIX)

def remote_name(qualified: str) -> str:
    return REMOTE_PREFIX + qualified

def qualified_name(name: str) -> str:
    """``mcp_<server>_<tool>`` -> ``<server>_<tool>``."""
    if not is_remote(name):
        raise ValueError(f"not a remote tool name: {name}")
    return name[len(REMOTE_PREFIX):]

@dataclass
class ToolRegistry:
    """One namespace for local tools and tool-server tools.

    Remote tools are exposed to the model under ``mcp_<server>_<tool>``;
    only their declarations live here, calls are routed to the tool-server
    manager. Safe to read from several threads while tools are registered.
    """
    _tools: Dict[str, Tool] = field(default_factory=dict)
    _remote: Dict[str, ToolDeclaration] = field(default_factory=dict)
    _lock: RWLock = field(default_factory=RWLock, repr=False)

    def register(self, tool: Tool) -> None:
        name = tool.declaration.name
        if is_remote(name):
            raise ValueError(f"Local tool name may not start with {REMOTE_PREFIX!r}: {name}")
        with self._lock.write():
            if name in self._tools:
                raise ValueError(f"Tool already registered: {name}")
            self._tools[name] = tool

    def register_remote(self, declarations: Iterable[ToolDeclaration]) -> None:
        renamed = [ToolDeclaration(name=remote_name(d.name), description=d.description, parameters=d.parameters) for d in declarations]
        with self._lock.write():
            for decl in renamed:
                if decl.name in self._remote:
                    raise ValueError(f"Tool already registered: {decl.name}")
                self._remote[decl.name] = decl

    def get_local(self, name: str) -> Optional[Tool]:
        with self._lock.read():
            return self._tools.get(name)

    def has(self, name: str) -> bool:
        with self._lock.read():
            return name in self._tools or name in self._remote

    def declarations(self) -> List[ToolDeclaration]:
        with self._lock.read():
            return [t.declaration for t in self._tools.values()] + list(self._remote.values())

    def names(self) -> List[str]:
        return [d.name for d in self.declarations()]
