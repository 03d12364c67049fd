from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .models import AppConfig
from ..mcp.models import ToolServerConfig
from ..util.paths import config_file_path

logger = logging.getLogger(__name__)


def _candidate_paths(cwd: Path) -> list[Path]:
    return [
        cwd / ".pymakasero.json",
        cwd / "pymakasero.json",
    ]


def _load_json(p: Path) -> dict[str, Any] | None:
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("ignoring config file %s: %s", p, e)
        return None
    if isinstance(obj, dict):
        return obj
    logger.warning("ignoring config file %s: top level is not an object", p)
    return None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dicts(out[k], v)  # type: ignore
        else:
            out[k] = v
    return out


def _first(d: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d:
            return d[k]
    return None


def load_app_config(*, cwd: Path, explicit_path: Path | None = None) -> AppConfig:
    """Load app config.

    Merge order: global < project < explicit_path. A missing explicit file is
    an error; missing global/project files are not.
    """
    merged: dict[str, Any] = {}
    cfg = AppConfig()

    p = config_file_path()
    if p.is_file():
        obj = _load_json(p)
        if obj is not None:
            merged = _merge_dicts(merged, obj)
            cfg.loaded_from.append(p)

    for p in _candidate_paths(cwd):
        if p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                cfg.loaded_from.append(p)
                break  # first match wins for project-level

    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        obj = _load_json(p)
        if obj is not None:
            merged = _merge_dicts(merged, obj)
            cfg.loaded_from.append(p)

    sp = _first(merged, "systemPrompt", "system_prompt")
    if isinstance(sp, str) and sp.strip():
        cfg.system_prompt = sp

    model = merged.get("model")
    if isinstance(model, str) and model.strip():
        cfg.model = model.strip()

    mc = _first(merged, "maxContinues", "max_continues")
    if isinstance(mc, int) and not isinstance(mc, bool) and mc >= 0:
        cfg.max_continues = mc
    elif mc is not None:
        logger.warning("ignoring invalid maxContinues: %r", mc)

    servers = _first(merged, "mcpServers", "mcp_servers") or {}
    if isinstance(servers, dict):
        for name, obj in servers.items():
            if not isinstance(name, str) or not name:
                continue
            sc = ToolServerConfig.from_obj(name, obj)
            if sc is None:
                logger.warning("ignoring invalid tool server config: %s", name)
                continue
            cfg.tool_servers[name] = sc

    return cfg
