"""Logging setup for the CLI: library modules log, rich renders."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_QUIET_LOGGERS = ("LiteLLM", "litellm", "httpx", "openai")


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route log records through a RichHandler on stderr.

    INFO by default, DEBUG with *verbose*. Third-party HTTP/LLM loggers stay at
    WARNING either way.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
