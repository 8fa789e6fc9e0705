"""PebbleCode companion client: bridge connection and session state core."""

from __future__ import annotations

from typing import Any

__all__ = ["run"]

__version__ = "0.3.0"


def run(*args: Any, **kwargs: Any) -> Any:
    """Entrypoint for the console client (lazy import)."""
    from .cli import cli as _cli

    return _cli(*args, **kwargs)
