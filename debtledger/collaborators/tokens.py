"""
tokens.py - In-memory fungible token books

TokenBook is a minimal balance map with transfer, mint and burn. DebtToken
is the synthetic asset the engine mints against collateral. Both support
snapshot()/restore() so the engine can roll them back with its own state.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Tuple

from ..core import IllegalArgument, IllegalState


class TokenBook:
    """
    Balances of one fungible token keyed by address.

    Example:
        book = DebtToken("alUSD")
        book.mint("alice", 100)
        book.transfer("alice", "bob", 40)
        assert book.balance_of("bob") == 40
    """

    def __init__(self, symbol: str):
        self.symbol = symbol
        self.balances: Dict[str, int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def transfer(self, source: str, dest: str, amount: int) -> None:
        """
        Move `amount` from source to dest.

        Raises:
            IllegalArgument: If amount is negative or an address is empty.
            IllegalState: If source holds less than amount.
        """
        if amount < 0:
            raise IllegalArgument(f"{self.symbol}: negative transfer {amount}")
        if not source or not dest:
            raise IllegalArgument(f"{self.symbol}: transfer address cannot be empty")
        if amount == 0:
            return
        if self.balances.get(source, 0) < amount:
            raise IllegalState(
                f"{self.symbol}: {source} holds {self.balance_of(source)}, cannot send {amount}"
            )
        self.balances[source] -= amount
        self.balances[dest] += amount

    def _mint(self, recipient: str, amount: int) -> None:
        if amount < 0:
            raise IllegalArgument(f"{self.symbol}: negative mint {amount}")
        self.balances[recipient] += amount
        self.total_supply += amount

    def _burn(self, holder: str, amount: int) -> None:
        if amount < 0:
            raise IllegalArgument(f"{self.symbol}: negative burn {amount}")
        if self.balances.get(holder, 0) < amount:
            raise IllegalState(
                f"{self.symbol}: {holder} holds {self.balance_of(holder)}, cannot burn {amount}"
            )
        self.balances[holder] -= amount
        self.total_supply -= amount

    def snapshot(self) -> Tuple[Dict[str, int], int]:
        return dict(self.balances), self.total_supply

    def restore(self, snapshot: Tuple[Dict[str, int], int]) -> None:
        balances, self.total_supply = snapshot
        self.balances = defaultdict(int, balances)


class DebtToken(TokenBook):
    """Synthetic debt token minted by the engine against collateral."""

    def __init__(self, symbol: str = "alUSD"):
        super().__init__(symbol)

    def mint(self, recipient: str, amount: int) -> None:
        self._mint(recipient, amount)

    def burn(self, holder: str, amount: int) -> None:
        self._burn(holder, amount)
