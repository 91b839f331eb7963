"""
liquidation.py - Liquidation Policy

Pure decision function for how much of an unhealthy position to seize and
burn, plus the typed results the engine returns to liquidators.

Key Formulas (all in debt units, ratios scaled by 1e18, fees in bps):
    debt >= collateral          -> seize all collateral, burn all debt,
                                   outsourced fee = fee_bps * debt
    system ratio < system min   -> seize debt, burn all debt,
                                   outsourced fee = fee_bps * debt
    otherwise:
        fee  = fee_bps * (collateral - debt)
        burn = (target * debt - (collateral - fee)) / (target - 1)
        seize = burn + fee       (nothing if collateral - fee >= target * debt)

The burn formula restores the position to exactly the target ratio:
    (collateral - seize) / (debt - burn) == target
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import BPS, FIXED_POINT_SCALAR


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Output of calculate_liquidation().

    Attributes:
        gross_collateral_to_seize: Collateral value taken from the position,
            fee included.
        debt_to_burn: Debt removed from the position.
        fee: Liquidator fee paid out of the seized collateral.
        outsourced_fee: Liquidator fee owed from the external fee reserve
            because the position has no surplus to pay it from.
    """
    gross_collateral_to_seize: int
    debt_to_burn: int
    fee: int
    outsourced_fee: int


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    What a liquidation call did.

    A zero result means the position was skipped (healthy, debt-free, or the
    vault share is worthless); batch callers rely on that instead of an error.

    Attributes:
        amount_liquidated: Yield tokens taken from the position, force
            repayment included.
        fee_in_yield: Yield tokens paid to the liquidator.
        fee_in_underlying: Underlying tokens paid to the liquidator by the
            fee reserve.
    """
    amount_liquidated: int = 0
    fee_in_yield: int = 0
    fee_in_underlying: int = 0

    def __add__(self, other: LiquidationResult) -> LiquidationResult:
        return LiquidationResult(
            self.amount_liquidated + other.amount_liquidated,
            self.fee_in_yield + other.fee_in_yield,
            self.fee_in_underlying + other.fee_in_underlying,
        )

    def is_empty(self) -> bool:
        return self.amount_liquidated == 0


def collateralization_ratio(collateral_value: int, debt: int) -> int:
    """Collateral value over debt, scaled by 1e18. Debt-free positions have no finite ratio."""
    if debt == 0:
        raise ZeroDivisionError("collateralization ratio is undefined for zero debt")
    return collateral_value * FIXED_POINT_SCALAR // debt


def calculate_liquidation(
    collateral: int,
    debt: int,
    target_collateralization: int,
    system_collateralization: int,
    system_minimum_collateralization: int,
    fee_bps: int,
) -> LiquidationQuote:
    """
    Decide how much of a position to seize and burn.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        collateral: Position collateral value, in debt units
        debt: Position debt
        target_collateralization: Ratio a partial liquidation restores (1e18 scale)
        system_collateralization: Current protocol-wide ratio (1e18 scale)
        system_minimum_collateralization: Protocol-wide floor; below it every
            liquidation burns the full debt
        fee_bps: Liquidator fee in basis points

    Returns:
        LiquidationQuote. Amounts round down.

    Example:
        >>> calculate_liquidation(105, 100, 11 * 10**17, 2 * 10**18, 11 * 10**17, 500)
        LiquidationQuote(gross_collateral_to_seize=50, debt_to_burn=50, fee=0, outsourced_fee=0)
    """
    if debt >= collateral:
        return LiquidationQuote(collateral, debt, 0, debt * fee_bps // BPS)

    if system_collateralization < system_minimum_collateralization:
        return LiquidationQuote(debt, debt, 0, debt * fee_bps // BPS)

    surplus = collateral - debt
    fee = surplus * fee_bps // BPS
    adjusted_collateral = collateral - fee
    required = target_collateralization * debt // FIXED_POINT_SCALAR

    if required <= adjusted_collateral:
        return LiquidationQuote(0, 0, fee, 0)

    debt_to_burn = (required - adjusted_collateral) * FIXED_POINT_SCALAR // (
        target_collateralization - FIXED_POINT_SCALAR
    )
    return LiquidationQuote(debt_to_burn + fee, debt_to_burn, fee, 0)


def repayment_fee(repaid_in_yield: int, fee_bps: int) -> int:
    """Fee owed to the caller of a liquidation that only force-repaid earmarked debt."""
    return repaid_in_yield * fee_bps // BPS
