from __future__ import annotations

from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "pymakasero"


def config_dir() -> Path:
    """Configuration root.

    An existing legacy ``~/.pymakasero`` keeps being used; otherwise the
    platform config dir (XDG_CONFIG_HOME aware on Linux).
    """
    legacy = Path.home() / f".{APP_NAME}"
    if legacy.is_dir():
        return legacy
    return Path(user_config_dir(APP_NAME))


def sessions_dir() -> Path:
    return config_dir() / "sessions"


def config_file_path() -> Path:
    return config_dir() / "config.json"


def events_dir() -> Path:
    return Path(user_data_dir(APP_NAME)) / "events"
