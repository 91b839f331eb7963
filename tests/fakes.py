"""
fakes.py - Test doubles for the engine's collaborators

FakeTransmuter is a redemption oracle whose demand is scripted per block,
so tests control exactly how much debt each earmark sees.
"""

from __future__ import annotations
from typing import Dict, List, Tuple


class FakeTransmuter:
    """
    Redemption oracle with scripted per-block demand.

    Example:
        oracle = FakeTransmuter()
        oracle.schedule(block=3, amount=100)
        oracle.query_graph(1, 5)   # 100
    """

    def __init__(self, address: str = "transmuter"):
        self._address = address
        self.demand: Dict[int, int] = {}
        self.queries: List[Tuple[int, int]] = []

    @property
    def address(self) -> str:
        return self._address

    def schedule(self, block: int, amount: int) -> None:
        self.demand[block] = self.demand.get(block, 0) + amount

    def query_graph(self, start_block: int, end_block: int) -> int:
        self.queries.append((start_block, end_block))
        return sum(v for b, v in self.demand.items() if start_block <= b <= end_block)
