from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


def resolve_workers(workers: Optional[int]) -> int:
    if workers is None or workers <= 0:
        return os.cpu_count() or 1
    return int(workers)


def split_ranges(n: int, parts: int) -> List[Tuple[int, int]]:
    parts = max(1, min(parts, n))
    step = (n + parts - 1) // parts if n else 0
    return [(s, min(s + step, n)) for s in range(0, n, step)] if n else []


def run_chunked(n: int, fn: Callable[[int, int], T], workers: Optional[int] = None) -> List[T]:
    """Run ``fn(start, stop)`` over disjoint ranges of ``0..n``.

    Each call owns its range; results come back in range order.
    """
    ranges = split_ranges(n, resolve_workers(workers))
    if len(ranges) <= 1:
        return [fn(a, b) for a, b in ranges]
    with ThreadPoolExecutor(max_workers=len(ranges)) as exe:
        futures = [exe.submit(fn, a, b) for a, b in ranges]
        return [f.result() for f in futures]


__all__ = ["resolve_workers", "run_chunked", "split_ranges"]
