"""Logging setup for the docrag CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS: tuple[str, ...] = ("LiteLLM", "litellm", "httpx", "httpcore", "openai")


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.WARNING


def setup_logging(level: str | int = "WARNING", *, console: Console | None = None) -> None:
    """Attach a RichHandler to the ``docrag`` logger and set its level.

    Safe to call more than once: the handler is installed only on the first
    call, later calls just adjust the level.
    """
    root_level = _parse_level(level)
    logger = logging.getLogger("docrag")
    logger.setLevel(root_level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    third_party = max(root_level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(third_party)

    logger.debug("Logging configured: level=%s", logging.getLevelName(root_level))
