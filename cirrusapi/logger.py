"""
Logging setup for the Cirrus query service.

Modules log through ``logging.getLogger(__name__)``; the entry point calls
``configure_logging`` once to attach a Rich console handler to the root logger.
"""

import logging
import threading
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from cirrusapi.config import LOG_LEVEL

LOG_FORMAT = "%(name)s - %(message)s"

_lock = threading.Lock()
_configured = False


def configure_logging(level: Optional[str] = None, console: Optional[Console] = None) -> None:
    """
    Configure the root logger with a Rich handler.

    Calling this more than once is a no-op, so both the app lifespan and
    scripts may call it.

    Args:
        level (Optional[str]): Logging level name. Defaults to ``LOG_LEVEL``.
        console (Optional[Console]): Console to render to. Defaults to stderr.
    """
    global _configured
    with _lock:
        if _configured:
            return

        numeric_level = getattr(logging, str(level or LOG_LEVEL).upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(numeric_level)
        root_logger.handlers.clear()

        # Request lines are noise next to the query logs
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

        handler = RichHandler(
            console=console or Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        handler.setLevel(numeric_level)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
        root_logger.addHandler(handler)

        _configured = True
