"""
sync.py - Position Sync Engine

Brings one position up to date with the global ledger in O(1), no matter how
many earmarks and redemptions happened since its last checkpoint.

Settlement steps (all from the weight deltas since the checkpoint):
    1. collateral -= raw_locked * (1 - 2^-dCollateralWeight)
    2. survival_ratio = 2^-dRedemptionWeight
    3. earmark_raw = (debt - earmarked) * (1 - 2^-dEarmarkWeight)
    4. survival_diff = max(0, accumulator_now - accumulator_then * survival_ratio)
    5. earmarked_unredeemed = min(earmark_raw,
                                  exposure * survival_diff / survival(earmark_weight_then))
    6. exposure_survival = earmarked * survival_ratio
    7. redeemed = (earmarked - exposure_survival) + (earmark_raw - earmarked_unredeemed)
    8. debt -= redeemed; earmarked = exposure_survival + earmarked_unredeemed
    9. raw_locked recomputed from debt; checkpoint advanced

Step 2 evaluates 2^-(now - then), which equals survival(now) / survival(then)
but stays exactly 1 when nothing was redeemed, even after a saturating
weight. That keeps a second sync with no intervening events a no-op.

A checkpoint from a closed earmark epoch settles steps 3 and 4 against the
epoch's closing record: the whole exposure was earmarked at the close, and
accumulator_now is the closing accumulator decayed by the redemption weight
since the close.

Step 9 hands the difference between the decayed lock and the recomputed
lock back to total_locked, so total_locked stays the sum of position locks
and later collateral draws are shared in proportion to current locks.

sync_account() settles against the ledger and returns both. quote_account()
settles against a projected ledger (see ledger.simulate_earmark()) so callers
can read "what sync would produce right now" without mutating anything.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Tuple

from .core import Account
from .decay import (
    div_q128,
    mul_q128,
    scale_by_weight_delta,
    survival_from_weight,
)
from .ledger import GlobalLedger, rebase_lock


# Maps a debt amount to the collateral (yield-token units) it locks.
LockForDebt = Callable[[int], int]


def _earmark_window(account: Account, ledger: GlobalLedger, user_exposure: int) -> Tuple[int, int]:
    """(debt newly earmarked, accumulator now) for the position's epoch."""
    checkpoint = account.checkpoint
    if checkpoint.earmark_epoch == ledger.earmark_epoch:
        earmark_raw = scale_by_weight_delta(
            user_exposure, ledger.earmark_weight - checkpoint.earmark_weight
        )
        return earmark_raw, ledger.survival_accumulator

    closing = ledger.epoch_closings[checkpoint.earmark_epoch]
    since_close = survival_from_weight(ledger.redemption_weight - closing.redemption_weight)
    return user_exposure, mul_q128(closing.survival_accumulator, since_close)


def _settle(account: Account, ledger: GlobalLedger, lock_for_debt: LockForDebt) -> Tuple[Account, int]:
    """Settled account and the raw lock it held net of collateral drawn."""
    checkpoint = account.checkpoint

    # 1. Collateral drawn by redemptions and their fees
    collateral_removed = scale_by_weight_delta(
        account.raw_locked, ledger.collateral_weight - checkpoint.collateral_weight
    )
    collateral = account.collateral - collateral_removed if account.collateral > collateral_removed else 0
    decayed_lock = account.raw_locked - collateral_removed

    # 2. Fraction of earmarked debt surviving the redemptions in this window
    survival_ratio = survival_from_weight(ledger.redemption_weight - checkpoint.redemption_weight)

    # 3. Debt newly earmarked in this window, before any of it was redeemed
    user_exposure = account.debt - account.earmarked
    earmark_raw, accumulator_now = _earmark_window(account, ledger, user_exposure)

    # 4. Accumulator growth in this window, net of redemptions
    decayed_prior = mul_q128(checkpoint.survival_accumulator, survival_ratio)
    survival_diff = accumulator_now - decayed_prior if accumulator_now > decayed_prior else 0

    # 5. Newly earmarked debt still outstanding
    unredeemed_ratio = div_q128(survival_diff, survival_from_weight(checkpoint.earmark_weight))
    earmarked_unredeemed = min(earmark_raw, mul_q128(user_exposure, unredeemed_ratio))

    # 6. Earlier earmarks that survived this window
    exposure_survival = mul_q128(account.earmarked, survival_ratio)

    # 7. Everything redeemed from this position in this window
    redeemed_from_earmarked = earmark_raw - earmarked_unredeemed
    redeemed_total = (account.earmarked - exposure_survival) + redeemed_from_earmarked

    # 8.
    debt = account.debt - redeemed_total if account.debt > redeemed_total else 0
    earmarked = min(exposure_survival + earmarked_unredeemed, debt)

    # 9.
    settled = replace(
        account,
        collateral=collateral,
        debt=debt,
        earmarked=earmarked,
        raw_locked=lock_for_debt(debt),
        checkpoint=ledger.checkpoint(),
    )
    return settled, decayed_lock


def sync_account(
    account: Account,
    ledger: GlobalLedger,
    lock_for_debt: LockForDebt,
) -> Tuple[Account, GlobalLedger]:
    """
    Settle a position against the current global ledger.

    Args:
        account: Stored position
        ledger: Ledger the position settles against (already earmarked)
        lock_for_debt: Collateral lock required for a given debt

    Returns:
        (account, ledger): the Account with debt, earmarked, collateral and
        raw_locked updated and its checkpoint equal to the ledger's weights,
        and the ledger with total_locked re-based to the new raw_locked.
    """
    settled, decayed_lock = _settle(account, ledger, lock_for_debt)
    return settled, rebase_lock(ledger, decayed_lock, settled.raw_locked)


def quote_account(account: Account, ledger: GlobalLedger, lock_for_debt: LockForDebt) -> Account:
    """
    Settle a position against a projected ledger without committing anything.

    Args:
        account: Stored position
        ledger: Ledger as it would be after earmarking now, typically from
            simulate_earmark()
        lock_for_debt: Collateral lock required for a given debt

    Returns:
        The Account sync_account() would produce against that ledger.
    """
    settled, _ = _settle(account, ledger, lock_for_debt)
    return settled
