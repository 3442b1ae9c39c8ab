"""Isolated invocation of consumer callbacks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)


def invoke_callback(callback: Callable[..., Any] | None, *args: Any, name: str) -> None:
    """Call *callback*, logging instead of propagating anything it raises.

    A failing consumer handler must never stop the poll or delivery loop.
    """
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        _logger.warning("%s callback failed", name, exc_info=True)
