"""Process-wide logging helpers taking printf-style messages."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger("anycdc")

_GENERIC_VERB = re.compile(r"%[+#]?[vw]")


def _format(msg: str, args: tuple) -> str:
    """Render ``msg`` with ``args``; arguments without a matching verb are appended."""
    if not args:
        return msg
    template = _GENERIC_VERB.sub("%s", msg)
    try:
        return template % args
    except (TypeError, ValueError):
        return msg + " " + " ".join(str(arg) for arg in args)


def debug(msg: str, *args) -> None:
    """Log a debug message."""
    logger.debug(_format(msg, args), stacklevel=2)


def info(msg: str, *args) -> None:
    """Log an informational message."""
    logger.info(_format(msg, args), stacklevel=2)


def warn(msg: str, *args) -> None:
    """Log a warning."""
    logger.warning(_format(msg, args), stacklevel=2)


def error(msg: str, *args) -> None:
    """Log an error."""
    logger.error(_format(msg, args), stacklevel=2)


def errorf(msg: str, *args) -> RuntimeError:
    """Log an error and return it as an exception for the caller to raise."""
    text = _format(msg, args)
    logger.error(text, stacklevel=2)
    return RuntimeError(text)