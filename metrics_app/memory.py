"""Process memory probe backing the heap-usage gauge."""

from __future__ import annotations

import psutil


def heap_usage_ratio() -> float:
    """
    Return resident memory of this process as a fraction of system memory.

    CPython has no fixed heap limit to compare against, so the ratio is
    taken against total physical memory as reported by ``psutil``.
    """
    resident_bytes = psutil.Process().memory_info().rss
    total_bytes = psutil.virtual_memory().total
    if total_bytes <= 0:
        return 0.0
    return resident_bytes / total_bytes
