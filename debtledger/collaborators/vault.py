"""
vault.py - In-memory share vault

A minimal yield vault whose shares the engine accepts as collateral. Share
value is total_assets / total_supply; accrue_yield() and realize_loss() move
the share price the way strategy gains and losses would.
"""

from __future__ import annotations
from typing import Tuple

from ..core import IllegalArgument, IllegalState
from .tokens import TokenBook


class ShareVault(TokenBook):
    """
    Share-based vault over an underlying asset.

    Before the first deposit shares and assets convert one to one.

    Example:
        vault = ShareVault("myUSDC", underlying_decimals=6)
        shares = vault.deposit("alice", 1_000_000)
        vault.accrue_yield(100_000)           # share price +10%
        vault.convert_to_assets(shares)       # 1_100_000
    """

    def __init__(self, symbol: str = "MYT", underlying_decimals: int = 18):
        super().__init__(symbol)
        self.underlying_decimals = underlying_decimals
        self.total_assets = 0

    def convert_to_assets(self, shares: int) -> int:
        if self.total_supply == 0:
            return shares
        return shares * self.total_assets // self.total_supply

    def convert_to_shares(self, assets: int) -> int:
        if self.total_supply == 0 or self.total_assets == 0:
            return assets
        return assets * self.total_supply // self.total_assets

    def deposit(self, owner: str, assets: int) -> int:
        """Mint shares for `assets` of underlying supplied by owner."""
        if assets <= 0:
            raise IllegalArgument(f"{self.symbol}: deposit must be positive, got {assets}")
        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise IllegalState(f"{self.symbol}: deposit of {assets} mints no shares")
        self._mint(owner, shares)
        self.total_assets += assets
        return shares

    def redeem(self, owner: str, shares: int) -> int:
        """Burn shares and return the underlying they were worth."""
        assets = self.convert_to_assets(shares)
        self._burn(owner, shares)
        self.total_assets -= assets
        return assets

    def accrue_yield(self, assets: int) -> None:
        """Strategy gain: raises the value of every share."""
        if assets < 0:
            raise IllegalArgument(f"{self.symbol}: yield cannot be negative, got {assets}")
        self.total_assets += assets

    def realize_loss(self, assets: int) -> None:
        """Strategy loss: lowers the value of every share."""
        if assets < 0 or assets > self.total_assets:
            raise IllegalArgument(f"{self.symbol}: invalid loss {assets}")
        self.total_assets -= assets

    def snapshot(self) -> Tuple[Tuple, int]:
        return super().snapshot(), self.total_assets

    def restore(self, snapshot: Tuple[Tuple, int]) -> None:
        book, self.total_assets = snapshot
        super().restore(book)
