"""
conftest.py - Shared pytest fixtures for debt engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Protocol configuration
- Funded collaborators (vault, debt token, registry, fee reserve)
- Engines wired to a scripted oracle or to the reference transmuter
"""

import pytest

from debtledger import (
    DebtEngine,
    DebtToken,
    EngineConfig,
    FeeVault,
    PositionRegistry,
    ShareVault,
    Transmuter,
)
from tests.fakes import FakeTransmuter
from tests.helpers import (
    GLOBAL_MIN_COLLATERALIZATION,
    LOWER_BOUND,
    MIN_COLLATERALIZATION,
    WAD,
    WALLET_SHARES,
    WALLETS,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def config():
    return EngineConfig(
        minimum_collateralization=MIN_COLLATERALIZATION,
        collateralization_lower_bound=LOWER_BOUND,
        global_minimum_collateralization=GLOBAL_MIN_COLLATERALIZATION,
        protocol_fee=0,
        liquidator_fee=300,
        repayment_fee=100,
    )


@pytest.fixture
def vault():
    """Share vault with every test wallet holding 1M shares at a 1:1 price."""
    v = ShareVault("MYT")
    for wallet in WALLETS:
        v.deposit(wallet, WALLET_SHARES)
    return v


@pytest.fixture
def debt_token():
    return DebtToken("alUSD")


@pytest.fixture
def registry():
    return PositionRegistry()


@pytest.fixture
def fee_vault():
    reserve = FeeVault()
    reserve.deposit(10 * WAD)
    return reserve


@pytest.fixture
def oracle():
    return FakeTransmuter()


@pytest.fixture
def engine(config, vault, debt_token, oracle, registry, fee_vault):
    """Engine whose redemption demand is scripted through `oracle`."""
    return DebtEngine(config, vault, debt_token, oracle, registry, fee_reserve=fee_vault)


@pytest.fixture
def transmuter(vault, debt_token):
    return Transmuter(vault, debt_token, time_to_transmute=10)


@pytest.fixture
def transmuter_engine(config, vault, debt_token, transmuter, registry, fee_vault):
    """Engine wired to the reference linear-vesting transmuter."""
    return DebtEngine(config, vault, debt_token, transmuter, registry, fee_reserve=fee_vault)


@pytest.fixture
def borrower(engine):
    """
    Alice's position: 3000 collateral, 1000 debt, minted at block 0.

    The engine is advanced to block 1 so repay/burn are allowed.
    """
    account_id = engine.deposit("alice", 3_000 * WAD, "alice")
    engine.mint("alice", account_id, 1_000 * WAD, "alice")
    engine.advance_block()
    return account_id
