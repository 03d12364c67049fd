from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .gemini import DEFAULT_BASE_URL, DEFAULT_MODEL, GeminiProvider


_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")
API_KEY_ENV = "GEMINI_API_KEY"


@dataclass(frozen=True)
class BackendConfig:
    model: str
    api_key: str
    base_url: str = DEFAULT_BASE_URL


def _expand_env_placeholders(s: str) -> str:
    def repl(m: re.Match) -> str:
        var = m.group(1)
        val = os.getenv(var)
        if not val:
            raise ValueError(f"API key placeholder '${{{var}}}' not found in environment or is empty.")
        return val

    return _ENV_PATTERN.sub(repl, s)


def load_backend_yaml(yaml_path: str | Path) -> dict[str, Any]:
    """Read the ``backend:`` mapping of a YAML file; a missing file yields {}."""
    p = Path(yaml_path).expanduser().resolve()
    if not p.exists():
        return {}

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{p}: top level must be a mapping.")
    backend = data.get("backend") or {}
    if not isinstance(backend, dict):
        raise ValueError(f"{p}: 'backend' must be a mapping.")

    out: dict[str, Any] = {}
    for key in ("model", "api_key", "base_url"):
        v = backend.get(key)
        if v is None:
            continue
        v = str(v).strip()
        if key == "api_key":
            v = _expand_env_placeholders(v)
        if v:
            out[key] = v
    return out


def resolve_backend_config(
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    yaml_path: Optional[Path] = None,
    config_model: Optional[str] = None,
) -> BackendConfig:
    """
    Priority:
      - CLI overrides
      - YAML ``backend:`` section
      - app config ``model``
      - environment (GEMINI_API_KEY) / built-in defaults
    """
    from_yaml = load_backend_yaml(yaml_path or Path("pymakasero.yaml"))

    final_model = model or from_yaml.get("model") or config_model or DEFAULT_MODEL
    final_api_key = api_key or from_yaml.get("api_key") or os.getenv(API_KEY_ENV, "")
    final_base_url = base_url or from_yaml.get("base_url") or DEFAULT_BASE_URL

    if not final_api_key:
        raise ValueError(f"Missing API key: set {API_KEY_ENV} or backend.api_key in the YAML config.")

    return BackendConfig(model=final_model, api_key=final_api_key, base_url=final_base_url)


def make_provider(cfg: BackendConfig) -> GeminiProvider:
    return GeminiProvider(model=cfg.model, api_key=cfg.api_key, base_url=cfg.base_url)
