from __future__ import annotations

from typing import Protocol, Sequence

from ..session.models import Content
from ..tools.base import ToolDeclaration
from ..util.cancel import CancelToken


class ModelBackend(Protocol):
    model: str

    def generate(
        self,
        history: Sequence[Content],
        *,
        tools: Sequence[ToolDeclaration],
        system_instruction: str | None = None,
        cancel: CancelToken | None = None,
    ) -> Content:
        """Return the model's next turn (role ``model``) for ``history``."""
        ...
