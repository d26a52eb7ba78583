from __future__ import annotations

import logging

from app.config import settings

LOG_FORMAT = 'ts=%(asctime)s level=%(levelname)s logger=%(name)s msg="%(message)s"'

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install one stream handler on the ``app`` logger tree.

    Safe to call repeatedly; later calls only adjust the level.
    """
    global _configured

    root = logging.getLogger('app')
    root.setLevel((level or settings.log_level).upper())
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def reset_logging() -> None:
    global _configured

    root = logging.getLogger('app')
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True
    _configured = False
