from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Sequence

from ..errors import BackendError
from ..session.models import Content, FunctionCall, FunctionResponse, Part, Text
from ..tools.base import ToolDeclaration
from ..util.cancel import CancelToken, ensure_token

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash-lite"


def part_to_wire(part: Part) -> dict[str, Any]:
    if isinstance(part, Text):
        return {"text": part.text}
    if isinstance(part, FunctionCall):
        return {"functionCall": {"name": part.name, "args": part.args}}
    if isinstance(part, FunctionResponse):
        return {"functionResponse": {"name": part.name, "response": part.response}}
    raise TypeError(f"unsupported part type: {type(part).__name__}")


def content_to_wire(content: Content) -> dict[str, Any]:
    return {"role": content.role, "parts": [part_to_wire(p) for p in content.parts]}


def content_from_wire(obj: dict[str, Any] | None) -> Content:
    """Parse a candidate's content; unknown part kinds are dropped."""
    parts: list[Part] = []
    for p in (obj or {}).get("parts") or []:
        if not isinstance(p, dict):
            continue
        if "functionCall" in p:
            fc = p["functionCall"] or {}
            args = fc.get("args") or {}
            parts.append(FunctionCall(name=str(fc.get("name") or ""), args=args if isinstance(args, dict) else {}))
        elif "functionResponse" in p:
            fr = p["functionResponse"] or {}
            resp = fr.get("response") or {}
            parts.append(FunctionResponse(name=str(fr.get("name") or ""), response=resp if isinstance(resp, dict) else {}))
        elif "text" in p:
            if p.get("thought"):
                continue
            parts.append(Text(str(p["text"])))
        else:
            logger.warning("Unknown response part: %s", sorted(p.keys()))
    return Content(role="model", parts=parts)


@dataclass
class GeminiProvider:
    """
    Minimal Gemini ``generateContent`` client over plain HTTP.
    Function calling is left in AUTO mode.
    """
    model: str
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0
    temperature: float | None = None

    def build_payload(
        self,
        history: Sequence[Content],
        tools: Sequence[ToolDeclaration],
        system_instruction: str | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"contents": [content_to_wire(c) for c in history]}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            payload["tools"] = [{"functionDeclarations": [t.to_dict() for t in tools]}]
            payload["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
        if self.temperature is not None:
            payload["generationConfig"] = {"temperature": self.temperature}
        return payload

    def generate(
        self,
        history: Sequence[Content],
        *,
        tools: Sequence[ToolDeclaration] = (),
        system_instruction: str | None = None,
        cancel: CancelToken | None = None,
    ) -> Content:
        if not self.api_key:
            raise BackendError("Missing API key. Set GEMINI_API_KEY or configure backend.api_key.")
        token = ensure_token(cancel)
        token.raise_if_cancelled("model request")

        model = urllib.parse.quote(self.model, safe="-._")
        url = f"{self.base_url.rstrip('/')}/models/{model}:generateContent"
        payload = self.build_payload(history, tools, system_instruction)
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        logger.debug("model request: %d contents, %d tools", len(history), len(tools))
        try:
            with urllib.request.urlopen(req, timeout=token.remaining(self.timeout)) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise BackendError(f"Gemini HTTPError {e.code}: {e.reason}\n{body}") from e
        except urllib.error.URLError as e:
            raise BackendError(f"Gemini URLError: {e}") from e
        except TimeoutError as e:
            raise BackendError(f"Gemini request timed out: {e}") from e
        except (http.client.HTTPException, OSError) as e:
            raise BackendError(f"Gemini connection failed: {e!r}") from e
        token.raise_if_cancelled("model request")

        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BackendError(f"Gemini returned invalid JSON: {e}") from e
        if not isinstance(obj, dict):
            raise BackendError(f"Gemini returned a {type(obj).__name__}, expected an object")
        logger.debug("model response: %s", raw[:4000])
        candidates = obj.get("candidates") or []
        if not candidates:
            feedback = obj.get("promptFeedback")
            if feedback:
                logger.warning("Gemini returned no candidates: %s", feedback)
            return Content(role="model", parts=[])
        return content_from_wire(candidates[0].get("content"))
