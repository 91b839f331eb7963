"""
debtledger - Collateralized Debt Engine with Lazy Decay Accounting

Users lock vault shares as collateral and mint a synthetic debt token
against them. A redemption authority (the transmuter) schedules redemption
demand; the engine earmarks and redeems it protocol-wide by advancing
logarithmic weights, and each position settles in O(1) on its next touch.

Usage:
    from debtledger import (
        DebtEngine, EngineConfig, ShareVault, DebtToken,
        PositionRegistry, Transmuter,
    )

    vault = ShareVault("MYT")
    debt_token = DebtToken("alUSD")
    transmuter = Transmuter(vault, debt_token, time_to_transmute=100)
    engine = DebtEngine(
        EngineConfig(
            minimum_collateralization=15 * 10**17,
            collateralization_lower_bound=11 * 10**17,
            global_minimum_collateralization=15 * 10**17,
        ),
        vault, debt_token, transmuter, PositionRegistry(),
    )

    vault.deposit("alice", 10_000)
    account_id = engine.deposit("alice", 10_000, "alice")
    engine.mint("alice", account_id, 5_000, "alice")
"""

# Core types
from .core import (
    Account,
    Checkpoint,
    EngineConfig,
    EngineEvent,
    EventType,
    YieldVault,
    DebtTokenAuthority,
    RedemptionOracle,
    FeeReserve,
    AccountRegistry,
    Snapshotable,
    EngineError,
    IllegalArgument,
    IllegalState,
    Unauthorized,
    Undercollateralized,
    LiquidationError,
    UnknownAccount,
    DecayDomainError,
    FIXED_POINT_SCALAR,
    BPS,
    NO_ACCOUNT,
    ENGINE_ADDRESS,
)

# Decay math
from .decay import (
    ONE_Q128,
    SATURATION_WEIGHT,
    weight_increment,
    survival_from_weight,
    scale_by_weight_delta,
)

# Global ledger
from .ledger import (
    EpochClosing,
    GlobalLedger,
    RedemptionOutcome,
    earmark,
    simulate_earmark,
    redeem,
    remove_locked_collateral,
    rebase_lock,
)

# Position sync
from .sync import sync_account, quote_account

# Lock accounting
from .locking import add_debt, sub_debt, lock_amount, free_collateral

# Liquidation
from .liquidation import (
    LiquidationQuote,
    LiquidationResult,
    calculate_liquidation,
    collateralization_ratio,
)

# Engine
from .engine import DebtEngine

# Keeper
from .keeper import HealthReport, scan_positions, find_liquidatable

# Reference collaborators
from .collaborators import (
    TokenBook,
    DebtToken,
    ShareVault,
    PositionRegistry,
    FeeVault,
    Transmuter,
)

__all__ = [
    # Core
    'Account', 'Checkpoint', 'EngineConfig', 'EngineEvent', 'EventType',
    'YieldVault', 'DebtTokenAuthority', 'RedemptionOracle', 'FeeReserve', 'AccountRegistry', 'Snapshotable',
    'EngineError', 'IllegalArgument', 'IllegalState', 'Unauthorized',
    'Undercollateralized', 'LiquidationError', 'UnknownAccount', 'DecayDomainError',
    'FIXED_POINT_SCALAR', 'BPS', 'NO_ACCOUNT', 'ENGINE_ADDRESS',
    # Decay
    'ONE_Q128', 'SATURATION_WEIGHT',
    'weight_increment', 'survival_from_weight', 'scale_by_weight_delta',
    # Ledger
    'EpochClosing', 'GlobalLedger', 'RedemptionOutcome', 'earmark', 'simulate_earmark', 'redeem',
    'remove_locked_collateral', 'rebase_lock',
    # Sync
    'sync_account', 'quote_account',
    # Locking
    'add_debt', 'sub_debt', 'lock_amount', 'free_collateral',
    # Liquidation
    'LiquidationQuote', 'LiquidationResult', 'calculate_liquidation', 'collateralization_ratio',
    # Engine
    'DebtEngine',
    # Keeper
    'HealthReport', 'scan_positions', 'find_liquidatable',
    # Collaborators
    'TokenBook', 'DebtToken', 'ShareVault', 'PositionRegistry', 'FeeVault', 'Transmuter',
]

__version__ = '1.0.0'
