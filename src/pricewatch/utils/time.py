from __future__ import annotations

import time


def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()


def utc_now_ms() -> int:
    """Unix epoch milliseconds (int)."""
    return time.time_ns() // 1_000_000
