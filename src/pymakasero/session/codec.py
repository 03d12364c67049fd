"""Encoding of sessions to and from their on-disk JSON shape.

Each part is stored as a discriminated record ``{"type": ..., "content": ...}``
so that an ordered, mixed list of text, function calls and function responses
decodes back into exactly the same variants.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from ..errors import SessionDecodeError
from .models import Content, FunctionCall, FunctionResponse, Part, Session, Text

TEXT = "text"
FUNCTION_CALL = "function_call"
FUNCTION_RESPONSE = "function_response"

# Go writes 1-9 fraction digits; fromisoformat wants microseconds
_FRACTION = re.compile(r"\.(\d+)")


def encode_part(part: Part) -> dict[str, Any]:
    if isinstance(part, Text):
        return {"type": TEXT, "content": part.text}
    if isinstance(part, FunctionCall):
        return {"type": FUNCTION_CALL, "content": {"name": part.name, "args": part.args}}
    if isinstance(part, FunctionResponse):
        return {"type": FUNCTION_RESPONSE, "content": {"name": part.name, "response": part.response}}
    raise TypeError(f"unsupported part type: {type(part).__name__}")


def decode_part(obj: Any) -> Part:
    if not isinstance(obj, dict):
        raise SessionDecodeError(f"part must be an object, got {type(obj).__name__}")
    kind = obj.get("type")
    content = obj.get("content")
    if kind == TEXT:
        if not isinstance(content, str):
            raise SessionDecodeError("text part content must be a string")
        return Text(content)
    if kind == FUNCTION_CALL:
        name = _name_of(content, kind)
        args = _field(content, "args")
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise SessionDecodeError(f"function_call {name!r} args must be an object")
        return FunctionCall(name=name, args=args)
    if kind == FUNCTION_RESPONSE:
        name = _name_of(content, kind)
        response = _field(content, "response")
        # a null response is stored for handlers that returned nothing
        if response is None:
            response = {}
        if not isinstance(response, dict):
            raise SessionDecodeError(f"function_response {name!r} response must be an object")
        return FunctionResponse(name=name, response=response)
    raise SessionDecodeError(f"unknown part type: {kind!r}")


def _field(content: dict[str, Any], key: str) -> Any:
    # older files carry capitalised keys (Name, Args, Response)
    if key in content:
        return content[key]
    return content.get(key.capitalize())


def _name_of(content: Any, kind: str) -> str:
    name = _field(content, "name") if isinstance(content, dict) else None
    if not isinstance(name, str):
        raise SessionDecodeError(f"{kind} part needs an object content with a string name")
    return name


def encode_content(content: Content) -> dict[str, Any]:
    return {"role": content.role, "parts": [encode_part(p) for p in content.parts]}


def decode_content(obj: Any) -> Content:
    if not isinstance(obj, dict):
        raise SessionDecodeError("history entry must be an object")
    role = obj.get("role")
    if role not in ("user", "model"):
        raise SessionDecodeError(f"invalid role: {role!r}")
    parts = obj.get("parts") or []
    if not isinstance(parts, list):
        raise SessionDecodeError("parts must be a list")
    return Content(role=role, parts=[decode_part(p) for p in parts])


def encode_session(session: Session) -> dict[str, Any]:
    return {
        "id": session.id,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "history": [encode_content(c) for c in session.history],
    }


def decode_session(obj: Any) -> Session:
    if not isinstance(obj, dict):
        raise SessionDecodeError("session document must be an object")
    sid = obj.get("id")
    if not isinstance(sid, str) or not sid:
        raise SessionDecodeError("session id missing")
    history = obj.get("history") or []
    if not isinstance(history, list):
        raise SessionDecodeError("history must be a list")
    # hand-written files may omit the timestamps
    created_at = _parse_time(obj.get("created_at"), "created_at") or _now()
    updated_at = _parse_time(obj.get("updated_at"), "updated_at") or created_at
    return Session(
        id=sid,
        created_at=created_at,
        updated_at=max(created_at, updated_at),
        history=[decode_content(c) for c in history],
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Any, field_name: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SessionDecodeError(f"{field_name} must be an ISO timestamp")
    try:
        dt = datetime.fromisoformat(_FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], value.replace("Z", "+00:00")))
    except ValueError as e:
        raise SessionDecodeError(f"{field_name}: {e}") from e
    # naive timestamps are UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
