"""
keeper.py - Position health scan for liquidation keepers

Vectorized, read-only report over a list of position ids. Every figure comes
from DebtEngine.get_cdp(), i.e. what a sync would produce right now, so the
scan never mutates the engine.

Ratios are float64 and informational only. Whether a position is
liquidatable is decided with exact integer arithmetic, the same comparison
DebtEngine.liquidate() makes.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List

import numpy as np

from .core import FIXED_POINT_SCALAR
from .engine import DebtEngine


@dataclass(frozen=True)
class HealthReport:
    """
    Column-oriented snapshot of position health.

    Attributes:
        account_ids: Position ids, in scan order
        collateral: Yield-token collateral per position
        collateral_value: Collateral value in debt units
        debt: Debt per position
        earmarked: Earmarked debt per position
        ratio: Collateralization (1.0 == 100%); inf for debt-free positions
        liquidatable: True where the ratio is at or below the lower bound
    """
    account_ids: np.ndarray
    collateral: np.ndarray
    collateral_value: np.ndarray
    debt: np.ndarray
    earmarked: np.ndarray
    ratio: np.ndarray
    liquidatable: np.ndarray

    def __len__(self) -> int:
        return len(self.account_ids)

    def worst_first(self) -> np.ndarray:
        """Indices ordered by ascending collateralization."""
        return np.argsort(self.ratio, kind="stable")


def scan_positions(engine: DebtEngine, account_ids: Iterable[int]) -> HealthReport:
    """
    Build a HealthReport for the given positions.

    Args:
        engine: Engine to read from
        account_ids: Positions to scan; each must exist

    Returns:
        HealthReport with one row per id.
    """
    ids: List[int] = list(account_ids)
    lower_bound = engine.config.collateralization_lower_bound

    collateral, values, debts, earmarked, flags = [], [], [], [], []
    for account_id in ids:
        c, d, e = engine.get_cdp(account_id)
        value = engine.convert_yield_to_debt(c)
        collateral.append(c)
        values.append(value)
        debts.append(d)
        earmarked.append(e)
        flags.append(d > 0 and value * FIXED_POINT_SCALAR <= lower_bound * d)

    value_arr = np.array(values, dtype=np.float64)
    debt_arr = np.array(debts, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(debt_arr > 0, value_arr / np.where(debt_arr > 0, debt_arr, 1.0), np.inf)

    return HealthReport(
        account_ids=np.array(ids, dtype=np.int64),
        collateral=np.array(collateral, dtype=np.float64),
        collateral_value=value_arr,
        debt=debt_arr,
        earmarked=np.array(earmarked, dtype=np.float64),
        ratio=ratio,
        liquidatable=np.array(flags, dtype=bool),
    )


def find_liquidatable(engine: DebtEngine, account_ids: Iterable[int]) -> List[int]:
    """Ids of liquidatable positions, least collateralized first."""
    report = scan_positions(engine, account_ids)
    order = report.worst_first()
    return [int(report.account_ids[i]) for i in order if report.liquidatable[i]]
