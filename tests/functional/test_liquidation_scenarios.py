"""
test_liquidation_scenarios.py - End-to-end liquidation flows

Scenarios:
- Partial liquidation back to the minimum collateralization
- Force repayment of earmarked debt that restores health
- Underwater position with the fee paid from the reserve
- System-wide breach seizing the debt value in full
- Batch liquidation and the keeper scan
"""

import logging

import numpy as np
import pytest

from debtledger import LiquidationError, LiquidationResult, UnknownAccount, collateralization_ratio
from debtledger.keeper import find_liquidatable, scan_positions

from tests.helpers import MIN_COLLATERALIZATION, WAD, WALLET_SHARES, approx_eq, drop_price


@pytest.fixture
def backstop(engine):
    """Carol's large debt-free position keeps the system ratio healthy."""
    return engine.deposit("carol", 100_000 * WAD, "carol")


@pytest.fixture
def tight_borrower(engine):
    """Alice at exactly 150%: 1500 collateral, 1000 debt."""
    account_id = engine.deposit("alice", 1_500 * WAD, "alice")
    engine.mint("alice", account_id, 1_000 * WAD, "alice")
    return account_id


class TestPartialLiquidation:

    def test_restores_minimum_collateralization(self, engine, vault, oracle, backstop, tight_borrower):
        engine.advance_block()
        drop_price(vault, 3_000)

        result = engine.liquidate("keeper", tight_borrower)

        account = engine.get_account(tight_borrower)
        assert account.debt == 97 * WAD
        ratio = collateralization_ratio(engine.convert_yield_to_debt(account.collateral), account.debt)
        assert abs(ratio - MIN_COLLATERALIZATION) < 10 ** 9
        assert result.fee_in_yield == engine.convert_debt_to_yield(15 * 10 ** 17)
        assert result.fee_in_underlying == 0
        assert vault.balance_of("keeper") == result.fee_in_yield
        assert vault.balance_of(oracle.address) == result.amount_liquidated - result.fee_in_yield

    def test_healthy_position_is_skipped(self, engine, backstop, tight_borrower):
        engine.advance_block()
        before = engine.get_account(tight_borrower)
        assert engine.liquidate("keeper", tight_borrower) == LiquidationResult()
        assert engine.get_account(tight_borrower).debt == before.debt

    def test_debt_free_position_is_skipped(self, engine, backstop):
        assert engine.liquidate("keeper", backstop).is_empty()

    def test_unknown_position_raises(self, engine):
        with pytest.raises(UnknownAccount):
            engine.liquidate("keeper", 5)

    def test_worthless_shares_skip_with_warning(self, engine, vault, tight_borrower, caplog):
        engine.advance_block()
        drop_price(vault, 10_000)
        with caplog.at_level(logging.WARNING, logger="debtledger.engine"):
            assert engine.liquidate("keeper", tight_borrower).is_empty()
        assert "worthless" in caplog.text


class TestForceRepay:

    def test_earmarked_debt_repaid_from_collateral(self, engine, vault, oracle, backstop, tight_borrower):
        """Repaying the earmark lifts the position above the lower bound; only the fee is paid."""
        oracle.schedule(1, 600 * WAD)
        engine.advance_block()
        drop_price(vault, 3_000)

        result = engine.liquidate("keeper", tight_borrower)

        repaid = engine.convert_debt_to_yield(600 * WAD)
        assert approx_eq(result.amount_liquidated, repaid, tolerance=10 ** 3)
        assert approx_eq(result.fee_in_yield, repaid // 100, tolerance=10 ** 3)
        account = engine.get_account(tight_borrower)
        assert approx_eq(account.debt, 400 * WAD, tolerance=10 ** 3)
        assert account.earmarked == 0
        assert approx_eq(vault.balance_of(oracle.address), repaid, tolerance=10 ** 3)

        types = [e.event_type.value for e in engine.event_log[-2:]]
        assert types == ["force_repay", "repayment_fee"]


class TestUnderwater:

    def test_full_seizure_with_reserve_fee(self, engine, vault, fee_vault, backstop, tight_borrower):
        engine.advance_block()
        drop_price(vault, 4_000)

        result = engine.liquidate("keeper", tight_borrower)

        assert result == LiquidationResult(1_500 * WAD, 0, 10 * WAD)
        account = engine.get_account(tight_borrower)
        assert account.collateral == 0
        assert account.debt == 0
        assert fee_vault.total_deposits() == 0
        assert fee_vault.paid["keeper"] == 10 * WAD

    def test_system_breach_seizes_debt_value(self, engine, vault, fee_vault, tight_borrower):
        """Without the backstop the whole system sits below its minimum."""
        engine.advance_block()
        drop_price(vault, 3_000)

        result = engine.liquidate("keeper", tight_borrower)

        seized = engine.convert_debt_to_yield(1_000 * WAD)
        assert result.amount_liquidated == seized
        assert result.fee_in_underlying == 10 * WAD
        account = engine.get_account(tight_borrower)
        assert account.debt == 0
        assert account.collateral == 1_500 * WAD - seized
        assert engine.ledger.total_debt == 0


class TestBatchAndKeeper:

    def test_batch_skips_unknown_and_healthy(self, engine, vault, backstop, tight_borrower):
        bob = engine.deposit("bob", 3_000 * WAD, "bob")
        engine.mint("bob", bob, 1_000 * WAD, "bob")
        engine.advance_block()
        drop_price(vault, 3_000)

        total = engine.batch_liquidate("keeper", [0, tight_borrower, bob, 99])

        assert total.amount_liquidated == engine.convert_debt_to_yield(904 * WAD + 5 * 10 ** 17)
        assert engine.get_account(bob).debt == 1_000 * WAD
        assert engine.get_account(tight_borrower).debt == 97 * WAD

    def test_batch_of_healthy_positions_raises(self, engine, backstop, tight_borrower):
        engine.advance_block()
        events = len(engine.event_log)
        with pytest.raises(LiquidationError):
            engine.batch_liquidate("keeper", [tight_borrower, backstop])
        assert len(engine.event_log) == events

    def test_keeper_orders_worst_first(self, engine, vault, backstop, tight_borrower):
        dave = engine.deposit("dave", 1_600 * WAD, "dave")
        engine.mint("dave", dave, 1_000 * WAD, "dave")
        bob = engine.deposit("bob", 3_000 * WAD, "bob")
        engine.mint("bob", bob, 1_000 * WAD, "bob")
        engine.advance_block()
        drop_price(vault, 4_000)

        ids = [backstop, bob, dave, tight_borrower]
        report = scan_positions(engine, ids)
        assert len(report) == 4
        assert np.isinf(report.ratio[0])
        np.testing.assert_allclose(report.ratio[1:], [1.8, 0.96, 0.9])
        assert find_liquidatable(engine, ids) == [tight_borrower, dave]

    def test_scan_does_not_mutate(self, engine, vault, oracle, tight_borrower):
        oracle.schedule(1, 100 * WAD)
        engine.advance_block()
        ledger = engine.ledger
        scan_positions(engine, [tight_borrower])
        assert engine.ledger == ledger
        assert vault.balance_of("alice") == WALLET_SHARES - 1_500 * WAD
