"""
Position Sync Conformance Tests

INVARIANT: Lazy settlement conserves debt and collateral.

    ∀ sequence of earmarks and redemptions, ∀ positions p:
        Σ sync(p).debt       ≈ ledger.total_debt
        Σ sync(p).earmarked  ≈ ledger.cumulative_earmarked
        Σ sync(p).raw_locked ≈ ledger.total_locked
        Σ sync(p).collateral <= collateral deposited - collateral removed
        sync(p).earmarked   <= sync(p).debt

This holds whichever positions were synced in between, including across
earmarks that deplete all unearmarked debt and open a new earmark epoch.
Settlement is idempotent: syncing twice against the same ledger is the same
as syncing once.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from debtledger import Account, GlobalLedger, earmark, redeem, remove_locked_collateral
from debtledger.sync import sync_account

from tests.helpers import WAD, lock_at_150, settle


@st.composite
def ledger_history(draw):
    """
    Generate opening debts and a sequence of global events.

    Returns: (debts, steps) where each step is
        (demand, redemption, positions synced after the step)

    A demand of 50_000 exceeds any total debt and depletes the unearmarked
    debt outright.
    """
    debts = draw(st.lists(st.integers(min_value=1, max_value=10_000), min_size=1, max_size=4))
    steps = draw(st.lists(
        st.tuples(
            st.one_of(st.integers(min_value=0, max_value=3_000), st.just(50_000)),
            st.integers(min_value=0, max_value=3_000),
            st.lists(st.integers(min_value=0, max_value=len(debts) - 1), max_size=len(debts)),
        ),
        min_size=1,
        max_size=12,
    ))
    return debts, steps


def _open(debts):
    accounts = [
        Account(collateral=3 * d * WAD, debt=d * WAD, raw_locked=lock_at_150(d * WAD))
        for d in debts
    ]
    ledger = GlobalLedger(
        total_debt=sum(a.debt for a in accounts),
        total_locked=sum(a.raw_locked for a in accounts),
    )
    return accounts, ledger


def _replay(debts, steps):
    """Final (accounts, ledger, collateral removed) after syncing everyone."""
    accounts, ledger = _open(debts)
    removed = 0
    for block, (demand, redemption, touched) in enumerate(steps, start=1):
        ledger = earmark(ledger, block, demand * WAD, 0, 0)
        ledger, outcome = redeem(ledger, redemption * WAD, 0, block)
        before = ledger.total_locked
        ledger = remove_locked_collateral(ledger, outcome.amount)
        removed += before - ledger.total_locked
        for i in touched:
            accounts[i], ledger = sync_account(accounts[i], ledger, lock_at_150)
    for i in range(len(accounts)):
        accounts[i], ledger = sync_account(accounts[i], ledger, lock_at_150)
    return accounts, ledger, removed


class TestConservation:
    """Property tests for debt and collateral conservation across lazy settlement."""

    @given(ledger_history())
    @settings(max_examples=50)
    def test_debt_sums_to_total(self, history):
        """
        PROPERTY: Σ position debt ≈ total_debt, whatever was synced when.
        """
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        tolerance = 16 * len(steps) * len(accounts)
        assert abs(sum(a.debt for a in accounts) - ledger.total_debt) <= tolerance

    @given(ledger_history())
    @settings(max_examples=50)
    def test_earmarked_sums_to_cumulative(self, history):
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        tolerance = 16 * len(steps) * len(accounts)
        assert abs(sum(a.earmarked for a in accounts) - ledger.cumulative_earmarked) <= tolerance

    @given(ledger_history())
    @settings(max_examples=50)
    def test_earmarked_bounded(self, history):
        """PROPERTY: earmarked <= debt per position; cumulative <= total globally."""
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        assert ledger.cumulative_earmarked <= ledger.total_debt
        for account in accounts:
            assert 0 <= account.earmarked <= account.debt

    @given(ledger_history())
    @settings(max_examples=50)
    def test_locks_sum_to_total_locked(self, history):
        """PROPERTY: Σ raw_locked ≈ total_locked once everyone has synced."""
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        tolerance = 16 * len(steps) * len(accounts)
        assert abs(sum(a.raw_locked for a in accounts) - ledger.total_locked) <= tolerance

    @given(ledger_history())
    @settings(max_examples=50)
    def test_collateral_never_exceeds_what_is_held(self, history):
        """
        PROPERTY: Σ position collateral <= deposits - collateral removed

        Positions never claim collateral that redemptions already took.
        """
        debts, steps = history
        accounts, _, removed = _replay(debts, steps)
        deposited = sum(3 * d * WAD for d in debts)
        assert sum(a.collateral for a in accounts) <= deposited - removed

    @given(ledger_history())
    @settings(max_examples=50)
    def test_collateral_never_grows(self, history):
        debts, steps = history
        accounts, _, _ = _replay(debts, steps)
        for account, d in zip(accounts, debts):
            assert account.collateral <= 3 * d * WAD


class TestIdempotency:
    """Property tests for repeated settlement."""

    @given(ledger_history())
    @settings(max_examples=50)
    def test_second_sync_is_noop(self, history):
        """
        PROPERTY: sync(sync(p)) == sync(p)
        """
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        for account in accounts:
            assert settle(account, ledger) == account

    @given(ledger_history())
    @settings(max_examples=50)
    def test_second_sync_leaves_ledger_alone(self, history):
        debts, steps = history
        accounts, ledger, _ = _replay(debts, steps)
        for account in accounts:
            _, again = sync_account(account, ledger, lock_at_150)
            assert again == ledger
