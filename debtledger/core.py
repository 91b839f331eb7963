"""
Core types, constants and protocols for the debt ledger engine.

This module provides the foundational data structures shared by every layer:
1. Protocols: interfaces of the external collaborators the engine consumes
2. Immutable data structures: Checkpoint, Account, EngineEvent, EngineConfig
3. Exceptions: EngineError and domain-specific error types
4. Numeric conventions: ratio and basis-point scales

Every record here is a frozen value. Mutations produce new instances via
dataclasses.replace(); only DebtEngine decides which instance is current.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Ratios (collateralization, fee fractions) are scaled so that 10**18 == 100%.
FIXED_POINT_SCALAR = 10 ** 18

# Basis-point fees: 10000 == 100%.
BPS = 10_000

# Position id 0 is reserved: passing it to deposit() opens a new position.
NO_ACCOUNT = 0

# Default address the engine holds custody under.
ENGINE_ADDRESS = "alchemist"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all user-facing engine errors."""
    pass


class IllegalArgument(EngineError):
    """Raised for zero amounts, empty addresses, or out-of-range values."""
    pass


class IllegalState(EngineError):
    """Raised when the engine or a position is not in a state allowing the call."""
    pass


class Unauthorized(EngineError):
    """Raised when the caller does not own the position or lacks the required role."""
    pass


class Undercollateralized(EngineError):
    """Raised when a mint would lock more collateral than the position has free."""
    pass


class LiquidationError(EngineError):
    """Raised by batch liquidation when none of the given positions could be liquidated."""
    pass


class UnknownAccount(EngineError):
    """Raised when a position id has never been minted by the registry."""
    pass


class DecayDomainError(AssertionError):
    """
    Raised when the fixed-point decay math receives arguments outside its domain.

    This is an implementation defect, not a user error: it derives from
    AssertionError so that handlers catching EngineError do not swallow it.
    """
    pass


# ============================================================================
# POSITION STATE
# ============================================================================

@dataclass(frozen=True, slots=True)
class Checkpoint:
    """
    Global weight values a position observed at its last settlement.

    The weights are Q128 fixed-point numbers. Redemption and collateral
    weights only ever increase. The earmark weight and survival accumulator
    belong to earmark epoch `earmark_epoch` and restart from zero when a
    new epoch opens.
    """
    earmark_weight: int = 0
    redemption_weight: int = 0
    collateral_weight: int = 0
    survival_accumulator: int = 0
    earmark_epoch: int = 0


@dataclass(frozen=True, slots=True)
class Account:
    """
    Immutable snapshot of one collateral/debt position.

    Attributes:
        collateral: Yield-token (vault share) balance backing the position.
        debt: Synthetic debt owed, including the earmarked part.
        earmarked: Portion of debt already committed to redemption.
        raw_locked: Collateral locked at the minimum collateralization when
            debt last changed; redemptions draw collateral pro rata to it.
        checkpoint: Global weights observed at the last sync.
        last_touched_block: Block of the last mutation.
        last_mint_block: Block of the last mint; repay and burn are refused
            in that same block.
    """
    collateral: int = 0
    debt: int = 0
    earmarked: int = 0
    raw_locked: int = 0
    checkpoint: Checkpoint = field(default_factory=Checkpoint)
    last_touched_block: int = 0
    last_mint_block: int = -1

    def __post_init__(self):
        if self.collateral < 0:
            raise ValueError(f"Account collateral cannot be negative, got {self.collateral}")
        if self.debt < 0:
            raise ValueError(f"Account debt cannot be negative, got {self.debt}")
        if self.earmarked < 0 or self.earmarked > self.debt:
            raise ValueError(
                f"Account earmarked must be within [0, debt], got {self.earmarked} > {self.debt}"
            )

    @property
    def unearmarked(self) -> int:
        """Debt not yet committed to redemption."""
        return self.debt - self.earmarked


# ============================================================================
# AUDIT TRAIL
# ============================================================================

class EventType(Enum):
    """Classification of engine events recorded in the audit trail."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    MINT = "mint"
    BURN = "burn"
    REPAY = "repay"
    FORCE_REPAY = "force_repay"
    LIQUIDATE = "liquidate"
    REPAYMENT_FEE = "repayment_fee"
    REDEMPTION = "redemption"
    MINT_APPROVAL = "mint_approval"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Immutable record of one committed engine operation.

    Attributes:
        event_type: What happened.
        block: Block number at which it happened.
        sequence_number: Monotonic within the engine (for ordering).
        account_id: Position affected, or None for protocol-wide events.
        caller: Address that invoked the entry point.
        data: Amounts involved, keyed by name.
    """
    event_type: EventType
    block: int
    sequence_number: int
    account_id: Optional[int] = None
    caller: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        parts = [f"#{self.sequence_number}", self.event_type.value, f"block={self.block}"]
        if self.account_id is not None:
            parts.append(f"account={self.account_id}")
        parts.extend(f"{k}={v}" for k, v in self.data.items())
        return f"Event({', '.join(parts)})"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Immutable protocol parameters, fixed when the engine is created.

    Attributes:
        minimum_collateralization: Ratio locked per unit of debt and the
            target a partial liquidation restores (e.g. 1.1e18 for 110%).
        collateralization_lower_bound: Positions at or below this ratio are
            liquidatable. Must not exceed minimum_collateralization.
        global_minimum_collateralization: When the whole system falls below
            this ratio, liquidations seize debt in full.
        protocol_fee: Bps of redeemed/repaid collateral sent to the fee receiver.
        liquidator_fee: Bps of the collateral surplus paid to liquidators.
        repayment_fee: Bps of force-repaid collateral paid to liquidators.
        underlying_decimals: Decimals of the vault's underlying asset; debt
            always has 18.
        protocol_fee_receiver: Address receiving protocol fees.
        address: Address the engine holds custody under.
    """
    minimum_collateralization: int
    collateralization_lower_bound: int
    global_minimum_collateralization: int
    protocol_fee: int = 0
    liquidator_fee: int = 300
    repayment_fee: int = 100
    underlying_decimals: int = 18
    protocol_fee_receiver: str = "protocol"
    address: str = ENGINE_ADDRESS

    def __post_init__(self):
        if self.minimum_collateralization <= FIXED_POINT_SCALAR:
            raise ValueError(
                f"minimum_collateralization must exceed 1e18, got {self.minimum_collateralization}"
            )
        if not FIXED_POINT_SCALAR <= self.collateralization_lower_bound <= self.minimum_collateralization:
            raise ValueError(
                "collateralization_lower_bound must lie in [1e18, minimum_collateralization], "
                f"got {self.collateralization_lower_bound}"
            )
        if self.global_minimum_collateralization < self.minimum_collateralization:
            raise ValueError(
                "global_minimum_collateralization cannot be below minimum_collateralization"
            )
        for name in ("protocol_fee", "liquidator_fee", "repayment_fee"):
            value = getattr(self, name)
            if not 0 <= value <= BPS:
                raise ValueError(f"{name} must be within [0, {BPS}] bps, got {value}")
        if not 0 <= self.underlying_decimals <= 18:
            raise ValueError(f"underlying_decimals must be within [0, 18], got {self.underlying_decimals}")
        if not self.protocol_fee_receiver or not self.address:
            raise ValueError("protocol_fee_receiver and address cannot be empty")

    @property
    def underlying_conversion_factor(self) -> int:
        """Multiplier taking underlying-token units to 18-decimal debt units."""
        return 10 ** (18 - self.underlying_decimals)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class YieldVault(Protocol):
    """Share-based vault whose shares are the engine's collateral."""

    def convert_to_assets(self, shares: int) -> int:
        """Underlying assets redeemable for the given shares."""
        ...

    def convert_to_shares(self, assets: int) -> int:
        """Shares minted for the given underlying assets."""
        ...

    def balance_of(self, holder: str) -> int:
        ...

    def transfer(self, source: str, dest: str, amount: int) -> None:
        ...


@runtime_checkable
class DebtTokenAuthority(Protocol):
    """Fungible synthetic token the engine may mint and burn."""

    def mint(self, recipient: str, amount: int) -> None:
        ...

    def burn(self, holder: str, amount: int) -> None:
        ...


@runtime_checkable
class RedemptionOracle(Protocol):
    """
    The redemption authority as seen by earmark().

    query_graph returns the redemption demand falling due in the inclusive
    block range [start_block, end_block], in debt units.
    """

    @property
    def address(self) -> str:
        ...

    def query_graph(self, start_block: int, end_block: int) -> int:
        ...


@runtime_checkable
class AccountRegistry(Protocol):
    """
    Maps positive integer position ids to owners.

    exists() must not raise for unknown ids; id 0 is never minted.
    """

    def mint(self, owner: str) -> int:
        ...

    def owner_of(self, account_id: int) -> str:
        ...

    def exists(self, account_id: int) -> bool:
        ...


@runtime_checkable
class Snapshotable(Protocol):
    """
    Collaborator state the engine can roll back.

    The engine takes a snapshot of every collaborator implementing this
    before an entry point runs and restores it if the entry point raises.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


@runtime_checkable
class FeeReserve(Protocol):
    """External pool topping up liquidation fees, in underlying units."""

    def total_deposits(self) -> int:
        ...

    def withdraw(self, recipient: str, amount: int) -> None:
        ...
