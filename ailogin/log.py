"""Logging utilities for ailogin.

Module loggers live under the ``ailogin`` namespace (for example
``ailogin.auth``). The package logger gets one stderr handler the first
time it is requested; credentials are scrubbed with the ``redact_*``
helpers before anything token-shaped is logged.
"""

from __future__ import annotations

import logging
import re
import sys

from typing import Any


ROOT_LOGGER = "ailogin"
REDACTED = "[REDACTED]"

_HANDLER_ATTR = "_ailogin_handler"
_FORMAT = "%(name)s - %(levelname)s - %(message)s"

# Fragments of normalized key names (lowercase, no ``_`` or ``-``)
_SENSITIVE_FRAGMENTS = (
    "token",
    "secret",
    "password",
    "apikey",
    "code",
    "verifier",
    "credential",
)

_QUERY_PARAM = re.compile(r"(?P<key>[A-Za-z_][\w-]*)=(?P<value>[^&\s#\"']*)")


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger, or a child of it.

    Parameters
    ----------
    name : str, optional
        Child name, e.g. ``"auth"`` for ``ailogin.auth``.

    Returns
    -------
    logging.Logger
        The requested logger. The package logger carries a single
        stderr handler no matter how often this is called.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, _HANDLER_ATTR, False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        setattr(handler, _HANDLER_ATTR, True)
        root.addHandler(handler)
        if root.level == logging.NOTSET:
            root.setLevel(logging.WARNING)
    return root.getChild(name) if name else root


def set_level(level: int | str) -> None:
    """Set the package log level by number or name (``"debug"`` works)."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            msg = f"Unknown log level: {level}"
            raise ValueError(msg)
        level = resolved
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Enable verbose logging of flows, token requests and store access."""
    set_level(logging.DEBUG)


def is_sensitive_key(key: Any) -> bool:
    """Whether values stored under ``key`` must not be logged."""
    normalized = str(key).lower().replace("_", "").replace("-", "")
    return any(fragment in normalized for fragment in _SENSITIVE_FRAGMENTS)


def redact_sensitive_data(data: Any, max_depth: int = 5) -> Any:
    """Return a copy of ``data`` with sensitive values replaced.

    Dicts and lists are walked up to ``max_depth`` levels; anything
    nested deeper becomes ``"[MAX_DEPTH]"``. Scalars pass through.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, dict):
        return {
            key: REDACTED if is_sensitive_key(key) else redact_sensitive_data(value, max_depth - 1)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data


def redact_query(text: str) -> str:
    """Mask sensitive ``key=value`` pairs in a URL or request line.

    ``GET /callback?code=abc&state=xyz HTTP/1.1`` becomes
    ``GET /callback?code=[REDACTED]&state=xyz HTTP/1.1``.
    """

    def _mask(match: re.Match[str]) -> str:
        if is_sensitive_key(match.group("key")):
            return f"{match.group('key')}={REDACTED}"
        return match.group(0)

    return _QUERY_PARAM.sub(_mask, text)
