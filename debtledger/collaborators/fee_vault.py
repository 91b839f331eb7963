"""
fee_vault.py - External liquidation fee reserve

Holds underlying tokens that top up liquidator fees when a position's own
collateral has no surplus to pay them from.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Tuple

from ..core import IllegalArgument, IllegalState


class FeeVault:
    """
    Underlying-token pool with a payout ledger.

    Example:
        reserve = FeeVault()
        reserve.deposit(5_000)
        reserve.withdraw("keeper", 1_000)
        assert reserve.paid["keeper"] == 1_000
    """

    def __init__(self):
        self._deposits = 0
        self.paid: Dict[str, int] = defaultdict(int)

    def total_deposits(self) -> int:
        return self._deposits

    def deposit(self, amount: int) -> None:
        if amount <= 0:
            raise IllegalArgument(f"fee reserve deposit must be positive, got {amount}")
        self._deposits += amount

    def withdraw(self, recipient: str, amount: int) -> None:
        if amount > self._deposits:
            raise IllegalState(f"fee reserve holds {self._deposits}, cannot pay {amount}")
        self._deposits -= amount
        self.paid[recipient] += amount

    def snapshot(self) -> Tuple[int, Dict[str, int]]:
        return self._deposits, dict(self.paid)

    def restore(self, snapshot: Tuple[int, Dict[str, int]]) -> None:
        self._deposits, paid = snapshot
        self.paid = defaultdict(int, paid)
