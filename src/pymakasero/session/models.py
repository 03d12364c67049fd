from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union

Role = Literal["user", "model"]


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionResponse:
    name: str
    response: dict[str, Any] = field(default_factory=dict)


Part = Union[Text, FunctionCall, FunctionResponse]


@dataclass
class Content:
    role: Role
    parts: list[Part] = field(default_factory=list)

    def function_calls(self) -> list[FunctionCall]:
        return [p for p in self.parts if isinstance(p, FunctionCall)]

    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, Text))

    def has_text(self) -> bool:
        return any(isinstance(p, Text) and p.text.strip() for p in self.parts)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return f"{_now():%Y%m%d%H%M%S}_{uuid.uuid4().hex[:8]}"


@dataclass
class Session:
    id: str = field(default_factory=new_session_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    history: list[Content] = field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        # the id is fixed once assigned
        if name == "id" and "id" in self.__dict__:
            raise AttributeError("session id is immutable")
        super().__setattr__(name, value)

    def touch(self, when: datetime | None = None) -> None:
        when = when or _now()
        if when > self.updated_at:
            self.updated_at = when

    def first_user_prompt(self) -> str | None:
        for content in self.history:
            if content.role != "user":
                continue
            for part in content.parts:
                if isinstance(part, Text):
                    return part.text
            return None
        return None
