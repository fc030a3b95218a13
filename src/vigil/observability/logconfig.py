"""Server log setup.

Every vigil module logs through ``logging.getLogger(__name__)``; this
installs the single stderr handler those records go to.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "vigil-stderr"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stderr handler to the ``vigil`` logger and set its level.

    Safe to call more than once: the handler is installed only the first time.

    Returns:
        The ``vigil`` package logger.

    """
    logger = logging.getLogger("vigil")
    logger.setLevel(level.upper())

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    return logger
