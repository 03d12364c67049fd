from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_configured = False


def setup_logging(debug: bool = False) -> None:
    """Route all ``pymakasero`` loggers through a rich handler on stderr."""
    global _configured
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger("pymakasero")
    root.setLevel(level)
    if _configured:
        return
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.propagate = False
    _configured = True
