"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)`; this only installs the
root handler once at startup.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = level or settings.log_level()
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    numeric = logging.getLevelName(resolved)
    # getLevelName returns a "Level X" string for unknown names.
    root.setLevel(numeric if isinstance(numeric, int) else logging.INFO)
