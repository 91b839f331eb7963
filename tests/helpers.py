"""
helpers.py - Constants and comparison utilities shared by the test suites
"""

from debtledger import DebtEngine, ShareVault
from debtledger.sync import sync_account


WAD = 10 ** 18

MIN_COLLATERALIZATION = 15 * 10 ** 17        # 150%
LOWER_BOUND = 11 * 10 ** 17                  # 110%
GLOBAL_MIN_COLLATERALIZATION = 15 * 10 ** 17

WALLETS = ("alice", "bob", "carol", "dave")
WALLET_SHARES = 1_000_000 * WAD


def approx_eq(actual: int, expected: int, tolerance: int = 10) -> bool:
    """Integer equality up to a few units of rounding."""
    return abs(actual - expected) <= tolerance


def drop_price(vault: ShareVault, loss_bps: int) -> None:
    """Lower the vault share price by loss_bps basis points."""
    vault.realize_loss(vault.total_assets * loss_bps // 10_000)


def engine_state(engine: DebtEngine) -> dict:
    """Everything an aborted entry point must leave untouched."""
    return {
        "ledger": engine.ledger,
        "accounts": dict(engine._accounts),
        "events": len(engine.event_log),
        "vault": engine.vault.snapshot(),
        "debt_token": engine.debt_token.snapshot(),
        "registry": engine.registry.snapshot(),
    }


def lock_at_150(debt: int) -> int:
    """lock_for_debt for a 1:1 vault at 150% minimum collateralization."""
    return debt * MIN_COLLATERALIZATION // WAD


def settle(account, ledger):
    """Sync an account against a ledger with the 150% lock; returns the account."""
    account, _ = sync_account(account, ledger, lock_at_150)
    return account
