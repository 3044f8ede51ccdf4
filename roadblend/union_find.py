from __future__ import annotations

from typing import Dict, List

import numpy as np


class UnionFind:
    """Disjoint sets over the dense ids ``0..n-1``."""

    def __init__(self, n: int) -> None:
        if n < 0:
            raise ValueError("size_negative")
        self.parent = np.arange(n, dtype=np.int64)
        self.rank = np.zeros(n, dtype=np.int64)

    def __len__(self) -> int:
        return int(self.parent.shape[0])

    def find(self, x: int) -> int:
        parent = self.parent
        while parent[x] != x:
            # path halving
            parent[x] = parent[parent[x]]
            x = int(parent[x])
        return int(x)

    def union(self, a: int, b: int) -> bool:
        ra = self.find(a)
        rb = self.find(b)
        if ra == rb:
            return False
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1
        return True

    def groups(self) -> Dict[int, List[int]]:
        out: Dict[int, List[int]] = {}
        for i in range(len(self)):
            out.setdefault(self.find(i), []).append(i)
        return out


__all__ = ["UnionFind"]
