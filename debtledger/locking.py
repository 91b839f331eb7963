"""
locking.py - Debt/Collateral Lock Accounting

Point-in-time proportional locking tied to mint and burn. Minting debt locks
`debt_in_yield * minimum_collateralization` of the position's collateral;
burning or repaying frees the same proportion. The lock is recorded both on
the position (raw_locked) and globally (total_locked), which is what
redemptions draw collateral against.

Pure functions: each takes an Account and a GlobalLedger and returns new
instances of both.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Tuple

from .core import Account, FIXED_POINT_SCALAR, IllegalArgument, Undercollateralized
from .ledger import GlobalLedger


# Converts a debt amount to yield-token units at the current share price.
ToYield = Callable[[int], int]


def lock_amount(debt_in_yield: int, minimum_collateralization: int) -> int:
    """Collateral locked for a debt already expressed in yield-token units."""
    return debt_in_yield * minimum_collateralization // FIXED_POINT_SCALAR


def locked_collateral(account: Account, to_yield: ToYield, minimum_collateralization: int) -> int:
    """Collateral the position's current debt keeps locked."""
    return lock_amount(to_yield(account.debt), minimum_collateralization)


def free_collateral(account: Account, to_yield: ToYield, minimum_collateralization: int) -> int:
    """Collateral the position could withdraw without breaching its lock."""
    locked = locked_collateral(account, to_yield, minimum_collateralization)
    return account.collateral - locked if account.collateral > locked else 0


def add_debt(
    account: Account,
    ledger: GlobalLedger,
    amount: int,
    to_yield: ToYield,
    minimum_collateralization: int,
) -> Tuple[Account, GlobalLedger]:
    """
    Increase a position's debt and lock the collateral backing it.

    Raises:
        Undercollateralized: If the position's free collateral is smaller
            than the lock the new debt requires.
    """
    to_lock = lock_amount(to_yield(amount), minimum_collateralization)
    locked = locked_collateral(account, to_yield, minimum_collateralization)
    if account.collateral < locked or account.collateral - locked < to_lock:
        raise Undercollateralized(
            f"minting {amount} requires {to_lock} free collateral, "
            f"position has {max(account.collateral - locked, 0)}"
        )

    account = replace(account, raw_locked=locked + to_lock, debt=account.debt + amount)
    ledger = replace(
        ledger,
        total_locked=ledger.total_locked + to_lock,
        total_debt=ledger.total_debt + amount,
    )
    return account, ledger


def sub_debt(
    account: Account,
    ledger: GlobalLedger,
    amount: int,
    to_yield: ToYield,
    minimum_collateralization: int,
) -> Tuple[Account, GlobalLedger]:
    """
    Decrease a position's debt and free the collateral it locked.

    The globally freed amount is clamped to what is still locked, which can
    already have been released by a redemption or liquidation. Earmarked
    debt above the new debt is dropped from the position and the global
    pool alike, and cumulative_earmarked is clamped to total_debt.

    Raises:
        IllegalArgument: If amount exceeds the position's debt.
    """
    if amount > account.debt:
        raise IllegalArgument(f"cannot remove {amount} debt from a position owing {account.debt}")

    to_free = min(lock_amount(to_yield(amount), minimum_collateralization), ledger.total_locked)
    locked = locked_collateral(account, to_yield, minimum_collateralization)

    debt = account.debt - amount
    dropped_earmark = account.earmarked - debt if account.earmarked > debt else 0

    account = replace(
        account,
        debt=debt,
        earmarked=account.earmarked - dropped_earmark,
        raw_locked=locked - to_free if locked > to_free else 0,
    )

    total_debt = ledger.total_debt - amount if ledger.total_debt > amount else 0
    cumulative_earmarked = ledger.cumulative_earmarked - dropped_earmark
    cumulative_earmarked = min(max(cumulative_earmarked, 0), total_debt)
    ledger = replace(
        ledger,
        total_debt=total_debt,
        cumulative_earmarked=cumulative_earmarked,
        total_locked=ledger.total_locked - to_free,
    )
    return account, ledger
