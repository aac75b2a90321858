"""Logging utilities for nativeauth.

Library modules log through ``logging.getLogger("nativeauth.<area>")``
and never configure handlers themselves. ``get_logger()`` sets up the
shared ``nativeauth`` parent logger once; ``redact_sensitive_data``
scrubs credentials from form fields and token responses before they
reach a log line.
"""

from __future__ import annotations

import logging
import sys

from collections.abc import Mapping
from typing import Any


_LOGGER_NAME = "nativeauth"
_LOG_FORMAT = "%(name)s - %(levelname)s - %(message)s"

_REDACTED = "[REDACTED]"

# Substrings that mark a field name as carrying a credential
_SENSITIVE_MARKERS = (
    "secret",
    "password",
    "token",
    "code",
    "assertion",
    "credential",
    "verifier",
)

# Field names that contain a marker but hold public values
_PUBLIC_FIELDS = frozenset({"grant_type", "response_type", "token_type", "expires_in"})


class _LoggerHolder:
    """Holder for the package logger once it has been configured."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the ``nativeauth`` logger, attaching a stderr handler on first use.

    An application that already attached its own handler to the
    ``nativeauth`` logger keeps it; no second handler is added.
    """
    if _LoggerHolder.instance is None:
        logger = logging.getLogger(_LOGGER_NAME)
        if logger.level == logging.NOTSET:
            logger.setLevel(logging.WARNING)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            logger.addHandler(handler)
        _LoggerHolder.instance = logger
    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Set the level of the ``nativeauth`` logger.

    Parameters
    ----------
    level : int or str
        A ``logging`` level or its name in any case (``"debug"``, ``"INFO"``).
    """
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            msg = f"Unknown log level: {name}"
            raise ValueError(msg)
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Log listener, URL building and token exchange details."""
    set_level(logging.DEBUG)


def is_sensitive_key(key: object) -> bool:
    """Whether values under ``key`` must be hidden from logs."""
    name = str(key).lower()
    if name in _PUBLIC_FIELDS:
        return False
    return any(marker in name for marker in _SENSITIVE_MARKERS)


def redact_sensitive_data(data: Any, max_depth: int = 5) -> Any:
    """Return a copy of ``data`` safe to log.

    Mappings are copied with the values of credential-like keys
    (``client_secret``, ``code``, ``refresh_token``, ...) replaced by
    ``"[REDACTED]"``; lists are copied element-wise. Anything else is
    returned unchanged.

    Parameters
    ----------
    data : Any
        Form fields, a decoded token response, or any nesting of them.
    max_depth : int
        Nesting below this depth is replaced by ``"[MAX_DEPTH]"`` (default 5).

    Returns
    -------
    Any
        The redacted copy.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, Mapping):
        return {
            k: _REDACTED if is_sensitive_key(k) else redact_sensitive_data(v, max_depth - 1)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data
