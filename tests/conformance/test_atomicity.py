"""
Atomicity Conformance Tests

INVARIANT: Entry points are all-or-nothing.

    ∀ entry point E:
        E succeeds ⟹ all of its state changes are applied
        E raises   ⟹ engine and collaborators are exactly as before

This covers the engine's own records (ledger, positions, allowances, audit
trail) and every collaborator it rolls back with them (vault, debt token,
registry, transmuter requests).
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from debtledger import (
    DebtEngine,
    DebtToken,
    EngineConfig,
    EngineError,
    FeeVault,
    IllegalState,
    PositionRegistry,
    ShareVault,
    Transmuter,
    Undercollateralized,
)

from tests.fakes import FakeTransmuter
from tests.helpers import (
    GLOBAL_MIN_COLLATERALIZATION,
    LOWER_BOUND,
    MIN_COLLATERALIZATION,
    WAD,
    WALLET_SHARES,
    engine_state,
)


def build_engine():
    """Engine with alice and bob funded and a scripted oracle."""
    config = EngineConfig(MIN_COLLATERALIZATION, LOWER_BOUND, GLOBAL_MIN_COLLATERALIZATION)
    vault = ShareVault("MYT")
    for wallet in ("alice", "bob"):
        vault.deposit(wallet, WALLET_SHARES)
    reserve = FeeVault()
    reserve.deposit(WAD)
    return DebtEngine(config, vault, DebtToken("alUSD"), FakeTransmuter(), PositionRegistry(), reserve)


operations = st.lists(
    st.tuples(
        st.sampled_from(["deposit", "withdraw", "mint", "burn", "repay", "advance"]),
        st.integers(min_value=0, max_value=3_000),
    ),
    min_size=1,
    max_size=25,
)


def _apply(engine, account_id, op, amount):
    amount = amount * WAD
    if op == "deposit":
        engine.deposit("alice", amount, "alice", account_id)
    elif op == "withdraw":
        engine.withdraw("alice", amount, "alice", account_id)
    elif op == "mint":
        engine.mint("alice", account_id, amount, "alice")
    elif op == "burn":
        engine.burn("alice", amount, account_id)
    elif op == "repay":
        engine.repay("alice", amount, account_id)
    else:
        engine.advance_block()


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(st.integers(min_value=1, max_value=3_000))
    @settings(max_examples=50)
    def test_mint_all_or_nothing(self, amount):
        """
        PROPERTY: A mint either adds exactly `amount` debt or changes nothing.
        """
        engine = build_engine()
        account_id = engine.deposit("alice", 1_500 * WAD, "alice")
        before = engine_state(engine)

        try:
            engine.mint("alice", account_id, amount * WAD, "alice")
        except Undercollateralized:
            assert amount > 1_000
            assert engine_state(engine) == before
        else:
            assert amount <= 1_000
            assert engine.get_account(account_id).debt == amount * WAD
            assert engine.debt_token.total_supply == amount * WAD

    @given(operations)
    @settings(max_examples=50)
    def test_failed_operations_leave_no_trace(self, ops):
        """
        PROPERTY: For any sequence of operations, each failing one leaves
        the full engine state untouched and the books stay balanced.
        """
        engine = build_engine()
        account_id = engine.deposit("alice", 2_000 * WAD, "alice")

        for op, amount in ops:
            before = engine_state(engine)
            try:
                _apply(engine, account_id, op, amount)
            except EngineError:
                assert engine_state(engine) == before

            account = engine.get_account(account_id)
            ledger = engine.ledger
            assert ledger.total_debt == account.debt
            assert ledger.cumulative_earmarked <= ledger.total_debt
            assert engine.vault.balance_of(engine.config.address) == account.collateral
            assert engine.debt_token.total_supply >= ledger.total_debt


class TestAtomicityEdgeCases:
    """Edge cases for rollback."""

    def test_failed_deposit_releases_registry_id(self):
        engine = build_engine()
        before = engine_state(engine)
        with pytest.raises(IllegalState):
            engine.deposit("mallory", 100 * WAD, "mallory")
        assert engine_state(engine) == before
        assert not engine.registry.exists(1)

    def test_nested_failure_rolls_back_outer_block(self):
        engine = build_engine()
        account_id = engine.deposit("alice", 2_000 * WAD, "alice")
        before = engine_state(engine)
        with pytest.raises(Undercollateralized):
            with engine.atomic():
                engine.mint("alice", account_id, 500 * WAD, "alice")
                engine.withdraw("alice", 2_000 * WAD, "alice", account_id)
        assert engine_state(engine) == before
        assert engine.get_account(account_id).debt == 0

    def test_failed_claim_restores_transmuter(self):
        config = EngineConfig(MIN_COLLATERALIZATION, LOWER_BOUND, GLOBAL_MIN_COLLATERALIZATION)
        vault = ShareVault("MYT")
        vault.deposit("alice", WALLET_SHARES)
        debt_token = DebtToken("alUSD")
        transmuter = Transmuter(vault, debt_token, time_to_transmute=10)
        engine = DebtEngine(config, vault, debt_token, transmuter, PositionRegistry())

        account_id = engine.deposit("alice", 3_000 * WAD, "alice")
        engine.mint("alice", account_id, 1_000 * WAD, "alice")
        request_id = transmuter.create_redemption("alice", 1_000 * WAD)
        engine.advance_block(10)

        # The vested debt tokens vanish, so the burn inside the claim fails.
        debt_token.restore(({}, 0))
        with pytest.raises(IllegalState):
            transmuter.claim_redemption("alice", request_id)
        assert transmuter.get_request(request_id).closed_block is None
        assert engine.ledger.total_debt == 1_000 * WAD
        assert vault.balance_of("alice") == WALLET_SHARES - 3_000 * WAD
