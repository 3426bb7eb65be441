"""Logging setup for the CLI and the web backend."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", rich_console: bool = True) -> None:
    """Configure the root logger once.

    With ``rich_console`` the records are rendered through rich, matching the
    CLI output; otherwise a plain stream handler is used (server logs).
    """
    root = logging.getLogger()
    if getattr(root, "_sanity_configured", False):
        root.setLevel(level)
        return

    if rich_console:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))

    root.addHandler(handler)
    root.setLevel(level)
    root._sanity_configured = True  # type: ignore[attr-defined]
