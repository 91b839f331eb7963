"""
ledger.py - Global Ledger: protocol-wide counters and weight accumulators

The GlobalLedger is the single aggregate record every position settles
against. Two events move its weights forward:

    earmark  - a fraction of all unearmarked debt becomes earmarked
    redeem   - a fraction of all earmarked debt is paid off

Neither event touches a position. Each folds its fraction into an
additive weight (see decay.py), and positions catch up on their next sync
(see sync.py).

Survival accumulator:
    Tracks, in earmark-normalized space, how much of the debt earmarked so far
    is still unredeemed. Every earmark adds survival(earmark_weight) times the
    earmarked fraction; every redemption scales the whole accumulator by the
    fraction of earmarked debt that survived. A position compares its own
    snapshot, decayed by the redemptions since, against the current value to
    learn how much of its freshly earmarked debt is still outstanding.

Earmark epochs:
    An earmark that consumes all unearmarked debt drives survival to zero,
    after which the accumulator can no longer be normalized. The ledger then
    closes the epoch: it records the accumulator and redemption weight at
    the close in `epoch_closings` and restarts earmark weight and
    accumulator from zero. Debt created afterwards is earmarked within the
    new epoch. A position last settled in a closed epoch had all of its
    unearmarked debt earmarked at the close, and settles its earmarks
    against that epoch's closing record.

All functions here are pure: they take a GlobalLedger and return a new one.
Amounts are in debt units; the engine converts collateral before calling.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Tuple

from .core import Checkpoint
from .decay import (
    div_q128,
    mul_q128,
    survival_from_weight,
    weight_increment,
)


@dataclass(frozen=True, slots=True)
class EpochClosing:
    """
    Accumulator state when an earmark epoch was closed by full depletion.

    Attributes:
        survival_accumulator: Accumulator right after the depleting earmark.
        redemption_weight: Redemption weight at that moment; later
            redemptions decay the closed accumulator by the weight since.
    """
    survival_accumulator: int
    redemption_weight: int


@dataclass(frozen=True, slots=True)
class GlobalLedger:
    """
    Immutable snapshot of protocol-wide accounting state.

    Attributes:
        total_debt: Sum of all position debt (debt units).
        cumulative_earmarked: Debt earmarked and not yet redeemed or repaid.
        total_locked: Collateral locked across positions (yield-token units).
        last_earmark_block: Block through which redemption demand is earmarked.
        last_redemption_block: Block of the last redemption.
        last_transmuter_balance: Redemption authority's yield-token balance at
            the last observation; growth beyond it counts as cover.
        earmark_weight: Q128 weight of earmarking within the current epoch.
        redemption_weight: Q128 weight of cumulative redemption.
        collateral_weight: Q128 weight of cumulative locked-collateral removal.
        survival_accumulator: Q128 earmarked-but-unredeemed history of the
            current epoch.
        earmark_epoch: Index of the current earmark epoch.
        epoch_closings: One EpochClosing per closed epoch, indexed by epoch.
    """
    total_debt: int = 0
    cumulative_earmarked: int = 0
    total_locked: int = 0
    last_earmark_block: int = 0
    last_redemption_block: int = 0
    last_transmuter_balance: int = 0
    earmark_weight: int = 0
    redemption_weight: int = 0
    collateral_weight: int = 0
    survival_accumulator: int = 0
    earmark_epoch: int = 0
    epoch_closings: Tuple[EpochClosing, ...] = ()

    def __post_init__(self):
        if self.cumulative_earmarked > self.total_debt:
            raise ValueError(
                f"cumulative_earmarked {self.cumulative_earmarked} exceeds total_debt {self.total_debt}"
            )

    @property
    def unearmarked(self) -> int:
        """Debt still available to be earmarked."""
        return self.total_debt - self.cumulative_earmarked

    def checkpoint(self) -> Checkpoint:
        """The weights a position records when it settles against this ledger."""
        return Checkpoint(
            earmark_weight=self.earmark_weight,
            redemption_weight=self.redemption_weight,
            collateral_weight=self.collateral_weight,
            survival_accumulator=self.survival_accumulator,
            earmark_epoch=self.earmark_epoch,
        )


@dataclass(frozen=True, slots=True)
class RedemptionOutcome:
    """
    Result of applying a redemption to the ledger.

    Attributes:
        amount: Net redeemed principal, after clamping to earmarked debt.
        cover_applied: Extra earmarked debt retired against yield the
            redemption authority had already received.
        redeemed_total: amount + cover_applied; what left the earmarked pool.
    """
    amount: int
    cover_applied: int
    redeemed_total: int


# ============================================================================
# EARMARK
# ============================================================================

def earmark_due(ledger: GlobalLedger, block: int) -> bool:
    """True when earmark() at this block would consult the redemption oracle."""
    return ledger.total_debt > 0 and block > ledger.last_earmark_block


def _earmark_amount(ledger: GlobalLedger, demand: int, cover: int) -> int:
    amount = demand - cover if demand > cover else 0
    return min(amount, ledger.unearmarked)


def _fold_earmark(ledger: GlobalLedger, amount: int) -> GlobalLedger:
    """
    Apply one earmark of `amount` out of the unearmarked debt.

    Closes the epoch when the earmark leaves no surviving unearmarked debt.
    """
    unearmarked = ledger.unearmarked
    previous_survival = survival_from_weight(ledger.earmark_weight)
    earmarked_fraction = div_q128(amount, unearmarked)
    survival_accumulator = ledger.survival_accumulator + mul_q128(previous_survival, earmarked_fraction)
    earmark_weight = ledger.earmark_weight + weight_increment(amount, unearmarked)
    cumulative_earmarked = ledger.cumulative_earmarked + amount

    if survival_from_weight(earmark_weight) > 0:
        return replace(
            ledger,
            earmark_weight=earmark_weight,
            survival_accumulator=survival_accumulator,
            cumulative_earmarked=cumulative_earmarked,
        )

    closing = EpochClosing(survival_accumulator, ledger.redemption_weight)
    return replace(
        ledger,
        earmark_weight=0,
        survival_accumulator=0,
        cumulative_earmarked=cumulative_earmarked,
        earmark_epoch=ledger.earmark_epoch + 1,
        epoch_closings=ledger.epoch_closings + (closing,),
    )


def earmark(
    ledger: GlobalLedger,
    block: int,
    demand: int,
    cover: int,
    transmuter_balance: int,
) -> GlobalLedger:
    """
    Earmark newly due redemption demand against all unearmarked debt.

    Idempotent per block: returns the ledger unchanged when there is no
    debt or the block has not advanced past last_earmark_block.

    Args:
        ledger: Current ledger
        block: Current block
        demand: Redemption demand due in (last_earmark_block, block]
        cover: Debt-equivalent of yield the redemption authority received
            directly since the last observation
        transmuter_balance: The authority's balance now; becomes the new
            observation

    Returns:
        New ledger with weights folded forward and the block marker advanced.
        An earmark that depletes the unearmarked debt opens a new epoch.
    """
    if not earmark_due(ledger, block):
        return ledger

    amount = _earmark_amount(ledger, demand, cover)
    if amount > 0 and ledger.unearmarked > 0:
        ledger = _fold_earmark(ledger, amount)

    return replace(
        ledger,
        last_earmark_block=block,
        last_transmuter_balance=transmuter_balance,
    )


def simulate_earmark(ledger: GlobalLedger, block: int, demand: int, cover: int) -> GlobalLedger:
    """
    Ledger earmark() would produce now, for quoting.

    The balance observation is left as stored; nothing else differs from
    the committed earmark.
    """
    return earmark(ledger, block, demand, cover, ledger.last_transmuter_balance)


# ============================================================================
# REDEMPTION
# ============================================================================

def redeem(ledger: GlobalLedger, amount: int, cover: int, block: int) -> Tuple[GlobalLedger, RedemptionOutcome]:
    """
    Retire earmarked debt on behalf of the redemption authority.

    Args:
        ledger: Current ledger (already earmarked for this block)
        amount: Requested redemption; clamped to cumulative_earmarked
        cover: Debt-equivalent of unobserved yield the authority holds;
            folded in up to the earmarked debt left after `amount`
        block: Current block

    Returns:
        (new ledger, RedemptionOutcome)
    """
    live_earmarked = ledger.cumulative_earmarked
    amount = min(amount, live_earmarked)
    cover_applied = min(cover, live_earmarked - amount)
    redeemed_total = amount + cover_applied

    redemption_weight = ledger.redemption_weight
    survival_accumulator = ledger.survival_accumulator
    if live_earmarked > 0 and redeemed_total > 0:
        survival = div_q128(live_earmarked - redeemed_total, live_earmarked)
        survival_accumulator = mul_q128(survival_accumulator, survival)
        redemption_weight += weight_increment(redeemed_total, live_earmarked)

    new_ledger = replace(
        ledger,
        cumulative_earmarked=live_earmarked - redeemed_total,
        total_debt=ledger.total_debt - redeemed_total,
        redemption_weight=redemption_weight,
        survival_accumulator=survival_accumulator,
        last_redemption_block=block,
    )
    return new_ledger, RedemptionOutcome(amount, cover_applied, redeemed_total)


def consume_cover(ledger: GlobalLedger, used: int) -> GlobalLedger:
    """
    Advance the balance observation by `used` yield tokens.

    Called with the cover a redemption credited plus the collateral it sent
    to the authority, so neither is counted as cover again.
    """
    return replace(ledger, last_transmuter_balance=ledger.last_transmuter_balance + used)


def observe_transmuter_balance(ledger: GlobalLedger, balance: int) -> GlobalLedger:
    """Re-base the balance observation; growth is measured from `balance` onwards."""
    return replace(ledger, last_transmuter_balance=balance)


def remove_locked_collateral(ledger: GlobalLedger, collateral_out: int) -> GlobalLedger:
    """
    Fold the removal of `collateral_out` from total locked collateral.

    Every position loses the same fraction of its raw lock on next sync.
    """
    old = ledger.total_locked
    if old == 0 or collateral_out == 0:
        return ledger
    removed = min(collateral_out, old)
    return replace(
        ledger,
        total_locked=old - removed,
        collateral_weight=ledger.collateral_weight + weight_increment(removed, old),
    )


def rebase_lock(ledger: GlobalLedger, previous_lock: int, new_lock: int) -> GlobalLedger:
    """
    Replace one position's share of total_locked.

    `previous_lock` is the position's raw lock net of the collateral weight
    since its checkpoint; `new_lock` is what it locks after settling.
    Keeps total_locked equal to the sum of position locks (floor 0).
    """
    if previous_lock == new_lock:
        return ledger
    total_locked = ledger.total_locked - previous_lock + new_lock
    return replace(ledger, total_locked=total_locked if total_locked > 0 else 0)
