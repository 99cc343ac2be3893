"""
Small helpers shared across features.
"""
import copy
import json
import logging
import time
from typing import Any, TypeVar, Union

from .types import CloneMode

logger = logging.getLogger(__name__)

T = TypeVar("T")


def now_ms() -> float:
    """Wall clock in milliseconds."""
    return time.time() * 1000


def perf_ms() -> float:
    """Monotonic high-resolution clock in milliseconds, for durations."""
    return time.perf_counter() * 1000


def update_running_mean(current: float, sample: float, count: int) -> float:
    """
    Fold one sample into a running mean.

    ``count`` is the number of samples including this one.
    """
    if count <= 0:
        return current
    return current + (sample - current) / count


def clone_data(data: T, mode: Union[CloneMode, str] = CloneMode.NONE) -> T:
    """
    Copy ``data`` according to ``mode``.

    A failed copy logs a warning and hands back the original reference.
    """
    mode = CloneMode(mode)
    if mode == CloneMode.NONE or data is None:
        return data

    try:
        if mode == CloneMode.SHALLOW:
            return copy.copy(data)
        return copy.deepcopy(data)
    except Exception as e:
        logger.warning(f"{mode.value} clone failed, returning original data: {e}")
        return data


def safe_stringify(data: Any) -> str:
    """Serialize ``data`` for diagnostics without ever raising."""
    if data is None:
        return "[none]"
    if callable(data):
        return "[function]"
    try:
        return json.dumps(data, sort_keys=True, default=repr)
    except (TypeError, ValueError):
        return f"[{type(data).__name__}]"
