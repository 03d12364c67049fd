from __future__ import annotations

from typing import Any, Sequence


class AgentError(RuntimeError):
    """Base class for every failure raised by the agent core."""


class ToolServerError(AgentError):
    pass


class ServerConnectionError(ToolServerError):
    """The tool-server process could not be started or went away."""


class ProtocolError(ToolServerError):
    """The tool server answered with something we cannot use."""


class UnknownToolError(AgentError):
    pass


class ToolExecutionError(AgentError):
    """A local tool handler raised."""


class RemoteToolError(AgentError):
    """Transport-level failure while calling a remote tool.

    A remote tool that reports its own failure through the result's error flag
    is not an error: that result is forwarded to the model as data.
    """


class BackendError(AgentError):
    pass


class OperationCancelled(AgentError):
    pass


class ContinueLimitExceeded(AgentError):
    pass


class PersistenceError(AgentError):
    pass


class SessionNotFoundError(PersistenceError):
    pass


class SessionDecodeError(PersistenceError):
    pass


class CombinedError(AgentError):
    """Several independent failures reported as one."""

    def __init__(self, prefix: str, errors: Sequence[BaseException]):
        self.errors = list(errors)
        joined = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{prefix}: {joined}" if prefix else joined)


class ToolCatalogError(CombinedError):
    def __init__(self, errors: Sequence[BaseException], declarations: list[Any]):
        super().__init__("failed to list tools for some servers", errors)
        self.declarations = declarations
