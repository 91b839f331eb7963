"""
engine.py - Stateful Collateralized Debt Engine

DebtEngine is the only component that mutates positions or the global
ledger. Every other module computes new immutable values; the engine decides
which ones become current.

Key responsibilities:
    - Orders every entry point as earmark -> sync -> mutation
    - Executes entry points atomically (all state changes or none)
    - Serializes writers behind a single re-entrant lock
    - Moves tokens through the external collaborators
    - Records an audit trail of committed operations
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
import logging
import threading

from .core import (
    # Types
    Account, EngineConfig, EngineEvent, EventType,
    AccountRegistry, DebtTokenAuthority, FeeReserve, RedemptionOracle,
    Snapshotable, YieldVault,
    # Constants
    BPS, FIXED_POINT_SCALAR, NO_ACCOUNT,
    # Exceptions
    IllegalArgument, IllegalState, LiquidationError, Undercollateralized,
    Unauthorized, UnknownAccount,
)
from .ledger import (
    GlobalLedger,
    consume_cover,
    earmark,
    earmark_due,
    observe_transmuter_balance,
    redeem,
    remove_locked_collateral,
    simulate_earmark,
)
from .liquidation import (
    LiquidationResult,
    calculate_liquidation,
    collateralization_ratio,
    repayment_fee,
)
from .locking import add_debt, free_collateral, lock_amount, sub_debt
from .sync import quote_account, sync_account


logger = logging.getLogger(__name__)


class DebtEngine:
    """
    Collateralized debt engine with lazy, weight-based position settlement.

    Users deposit vault shares as collateral and mint debt tokens against
    them. The redemption authority (transmuter) schedules redemption demand;
    the engine earmarks it against all unearmarked debt at once and retires
    it on redeem(), without ever iterating over positions. Each position
    catches up in O(1) the next time it is touched.

    Thread Safety:
        Every entry point serializes on one re-entrant lock. Read-only
        quotes take the same lock, work on immutable values and never
        write shared state.

    Example:
        engine = DebtEngine(config, vault, debt_token, transmuter, registry)
        account_id = engine.deposit("alice", 10_000, "alice")
        engine.mint("alice", account_id, 5_000, "alice")
        engine.advance_block()
        collateral, debt, earmarked = engine.get_cdp(account_id)
    """

    def __init__(
        self,
        config: EngineConfig,
        vault: YieldVault,
        debt_token: DebtTokenAuthority,
        transmuter: RedemptionOracle,
        registry: AccountRegistry,
        fee_reserve: Optional[FeeReserve] = None,
        initial_block: int = 0,
    ):
        """
        Create an engine.

        Args:
            config: Protocol parameters
            vault: Share vault whose shares are the collateral
            debt_token: Token the engine mints and burns
            transmuter: Redemption authority; attached to this engine if it
                exposes attach()
            registry: Position id registry
            fee_reserve: Optional pool topping up liquidation fees
            initial_block: Starting block number
        """
        if initial_block < 0:
            raise ValueError(f"initial_block cannot be negative, got {initial_block}")
        self.config = config
        self.vault = vault
        self.debt_token = debt_token
        self.transmuter = transmuter
        self.registry = registry
        self.fee_reserve = fee_reserve

        self._block = initial_block
        self._ledger = GlobalLedger(
            last_earmark_block=initial_block,
            last_redemption_block=initial_block,
            last_transmuter_balance=vault.balance_of(transmuter.address),
        )
        self._accounts: Dict[int, Account] = {}
        self._mint_allowances: Dict[Tuple[int, str], int] = {}
        self.event_log: List[EngineEvent] = []
        self._next_sequence = 0
        self._lock = threading.RLock()

        attach = getattr(transmuter, "attach", None)
        if attach is not None:
            attach(self)

    # ========================================================================
    # CLOCK
    # ========================================================================

    @property
    def block_number(self) -> int:
        return self._block

    def advance_block(self, blocks: int = 1) -> int:
        """
        Move the logical block clock forward.

        Raises:
            ValueError: If blocks is negative
        """
        if blocks < 0:
            raise ValueError(f"Cannot move blocks backwards: {blocks}")
        with self._lock:
            self._block += blocks
            return self._block

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    def _collaborators(self) -> List[Snapshotable]:
        candidates = (self.vault, self.debt_token, self.transmuter, self.registry, self.fee_reserve)
        return [c for c in candidates if c is not None and isinstance(c, Snapshotable)]

    def _save_state(self) -> Tuple[Any, ...]:
        return (
            self._ledger,
            dict(self._accounts),
            dict(self._mint_allowances),
            len(self.event_log),
            self._next_sequence,
            [(c, c.snapshot()) for c in self._collaborators()],
        )

    def _restore_state(self, saved: Tuple[Any, ...]) -> None:
        ledger, accounts, allowances, log_length, sequence, collaborators = saved
        self._ledger = ledger
        self._accounts = accounts
        self._mint_allowances = allowances
        del self.event_log[log_length:]
        self._next_sequence = sequence
        for collaborator, snapshot in collaborators:
            collaborator.restore(snapshot)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a block of engine and collaborator calls as one operation.

        Holds the engine lock for the whole block. If anything inside
        raises, the engine and every snapshotable collaborator are rolled
        back to their state on entry and the exception propagates.
        """
        with self._lock:
            saved = self._save_state()
            try:
                yield
            except BaseException:
                self._restore_state(saved)
                logger.debug("rolled back operation at block %d", self._block)
                raise

    # ========================================================================
    # CONVERSIONS
    # ========================================================================

    def convert_yield_to_underlying(self, amount: int) -> int:
        return self.vault.convert_to_assets(amount)

    def convert_underlying_to_yield(self, amount: int) -> int:
        return self.vault.convert_to_shares(amount)

    def normalize_underlying_to_debt(self, amount: int) -> int:
        return amount * self.config.underlying_conversion_factor

    def normalize_debt_to_underlying(self, amount: int) -> int:
        return amount // self.config.underlying_conversion_factor

    def convert_yield_to_debt(self, amount: int) -> int:
        return self.normalize_underlying_to_debt(self.convert_yield_to_underlying(amount))

    def convert_debt_to_yield(self, amount: int) -> int:
        return self.convert_underlying_to_yield(self.normalize_debt_to_underlying(amount))

    def _lock_for_debt(self, debt: int) -> int:
        return lock_amount(self.convert_debt_to_yield(debt), self.config.minimum_collateralization)

    # ========================================================================
    # INTERNAL: ORDERING
    # ========================================================================

    def _pending_cover(self, ledger: GlobalLedger) -> Tuple[int, int]:
        """(current authority balance, debt-equivalent of its unobserved growth)"""
        balance = self.vault.balance_of(self.transmuter.address)
        if balance <= ledger.last_transmuter_balance:
            return balance, 0
        return balance, self.convert_yield_to_debt(balance - ledger.last_transmuter_balance)

    def _observe_cover(self) -> Tuple[int, int]:
        """
        Read the authority's balance growth since the last observation.

        A balance below the last observation means yield left the authority
        without the engine seeing it. No cover is credited for it and the
        observation is re-based to the current balance.
        """
        balance, cover = self._pending_cover(self._ledger)
        if balance < self._ledger.last_transmuter_balance:
            logger.warning(
                "transmuter balance fell from %d to %d between observations; re-basing",
                self._ledger.last_transmuter_balance, balance,
            )
            self._ledger = observe_transmuter_balance(self._ledger, balance)
        return balance, cover

    def _earmark(self) -> None:
        if not earmark_due(self._ledger, self._block):
            return
        demand = self.transmuter.query_graph(self._ledger.last_earmark_block + 1, self._block)
        balance, cover = self._observe_cover()
        before = self._ledger.cumulative_earmarked
        self._ledger = earmark(self._ledger, self._block, demand, cover, balance)
        logger.debug(
            "earmark at block %d: demand=%d cover=%d earmarked=%d",
            self._block, demand, cover, self._ledger.cumulative_earmarked - before,
        )

    def _load(self, account_id: int) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            account = Account(checkpoint=self._ledger.checkpoint(), last_touched_block=self._block)
        return account

    def _sync(self, account_id: int) -> Account:
        account, self._ledger = sync_account(self._load(account_id), self._ledger, self._lock_for_debt)
        self._accounts[account_id] = account
        return account

    def _store(self, account_id: int, account: Account) -> None:
        self._accounts[account_id] = replace(account, last_touched_block=self._block)

    def _emit(self, event_type: EventType, account_id: Optional[int] = None,
              caller: Optional[str] = None, **data: Any) -> None:
        self.event_log.append(EngineEvent(
            event_type=event_type,
            block=self._block,
            sequence_number=self._next_sequence,
            account_id=account_id,
            caller=caller,
            data=data,
        ))
        self._next_sequence += 1

    # ========================================================================
    # INTERNAL: VALIDATION
    # ========================================================================

    @staticmethod
    def _check_amount(amount: int) -> None:
        if amount <= 0:
            raise IllegalArgument(f"amount must be positive, got {amount}")

    @staticmethod
    def _check_address(address: str) -> None:
        if not address:
            raise IllegalArgument("address cannot be empty")

    def _check_account(self, account_id: int) -> None:
        if account_id == NO_ACCOUNT or not self.registry.exists(account_id):
            raise UnknownAccount(f"position {account_id} does not exist")

    def _check_owner(self, caller: str, account_id: int) -> None:
        self._check_account(account_id)
        if self.registry.owner_of(account_id) != caller:
            raise Unauthorized(f"{caller} does not own position {account_id}")

    def _check_transmuter(self, caller: str) -> None:
        if caller != self.transmuter.address:
            raise Unauthorized(f"{caller} is not the transmuter")

    def _check_not_minted_this_block(self, account: Account, account_id: int) -> None:
        if account.last_mint_block == self._block:
            raise IllegalState(f"position {account_id} minted in block {self._block}")

    # ========================================================================
    # COLLATERAL
    # ========================================================================

    def deposit(self, caller: str, amount: int, recipient: str, account_id: int = NO_ACCOUNT) -> int:
        """
        Deposit yield tokens as collateral.

        Args:
            caller: Address the yield tokens come from
            amount: Yield tokens to deposit
            recipient: Owner of the new position when account_id is 0
            account_id: Existing position, or 0 to open a new one

        Returns:
            The position id credited.
        """
        self._check_amount(amount)
        self._check_address(recipient)
        with self.atomic():
            self._earmark()
            if account_id == NO_ACCOUNT:
                account_id = self.registry.mint(recipient)
                logger.debug("opened position %d for %s", account_id, recipient)
            else:
                self._check_account(account_id)
            account = self._sync(account_id)

            self.vault.transfer(caller, self.config.address, amount)
            self._store(account_id, replace(account, collateral=account.collateral + amount))
            self._emit(EventType.DEPOSIT, account_id, caller, amount=amount)
        return account_id

    def withdraw(self, caller: str, amount: int, recipient: str, account_id: int) -> int:
        """
        Withdraw collateral not locked by the position's debt.

        Raises:
            Undercollateralized: If amount exceeds the free collateral
        """
        self._check_amount(amount)
        self._check_address(recipient)
        with self.atomic():
            self._check_owner(caller, account_id)
            self._earmark()
            account = self._sync(account_id)

            available = free_collateral(
                account, self.convert_debt_to_yield, self.config.minimum_collateralization
            )
            if amount > available:
                raise Undercollateralized(
                    f"position {account_id} has {available} free collateral, cannot withdraw {amount}"
                )
            self._store(account_id, replace(account, collateral=account.collateral - amount))
            self.vault.transfer(self.config.address, recipient, amount)
            self._emit(EventType.WITHDRAW, account_id, caller, amount=amount, recipient=recipient)
        return amount

    # ========================================================================
    # DEBT
    # ========================================================================

    def _mint_debt(self, caller: str, account_id: int, amount: int, recipient: str) -> None:
        self._earmark()
        account = self._sync(account_id)
        account, self._ledger = add_debt(
            account, self._ledger, amount,
            self.convert_debt_to_yield, self.config.minimum_collateralization,
        )
        self._store(account_id, replace(account, last_mint_block=self._block))
        self.debt_token.mint(recipient, amount)
        self._emit(EventType.MINT, account_id, caller, amount=amount, recipient=recipient)

    def mint(self, caller: str, account_id: int, amount: int, recipient: str) -> None:
        """
        Mint debt tokens against a position's free collateral.

        Raises:
            Undercollateralized: If the new debt needs more collateral than is free
        """
        self._check_amount(amount)
        self._check_address(recipient)
        with self.atomic():
            self._check_owner(caller, account_id)
            self._mint_debt(caller, account_id, amount, recipient)

    def approve_mint(self, caller: str, account_id: int, spender: str, amount: int) -> None:
        """Allow `spender` to mint up to `amount` against the caller's position."""
        if amount < 0:
            raise IllegalArgument(f"allowance cannot be negative, got {amount}")
        self._check_address(spender)
        with self.atomic():
            self._check_owner(caller, account_id)
            self._mint_allowances[(account_id, spender)] = amount
            self._emit(EventType.MINT_APPROVAL, account_id, caller, spender=spender, amount=amount)

    def mint_allowance(self, account_id: int, spender: str) -> int:
        return self._mint_allowances.get((account_id, spender), 0)

    def mint_from(self, caller: str, account_id: int, amount: int, recipient: str) -> None:
        """Mint against another owner's position, spending the caller's allowance."""
        self._check_amount(amount)
        self._check_address(recipient)
        with self.atomic():
            self._check_account(account_id)
            allowance = self.mint_allowance(account_id, caller)
            if allowance < amount:
                raise Unauthorized(
                    f"{caller} may mint {allowance} against position {account_id}, requested {amount}"
                )
            self._mint_allowances[(account_id, caller)] = allowance - amount
            self._mint_debt(caller, account_id, amount, recipient)

    def _take_protocol_fee(self, account: Account, fee: int) -> Account:
        """Move up to `fee` yield tokens of a position's collateral to the fee receiver."""
        fee = min(fee, account.collateral)
        if fee > 0:
            self.vault.transfer(self.config.address, self.config.protocol_fee_receiver, fee)
            account = replace(account, collateral=account.collateral - fee)
        return account

    def _apply_repayment(self, account: Account, credit: int) -> Account:
        """Retire `credit` debt, earmarked first, and free its lock."""
        earmark_paid = min(credit, account.earmarked)
        global_paid = min(earmark_paid, self._ledger.cumulative_earmarked)
        account = replace(account, earmarked=account.earmarked - earmark_paid)
        ledger = replace(
            self._ledger, cumulative_earmarked=self._ledger.cumulative_earmarked - global_paid
        )
        account, self._ledger = sub_debt(
            account, ledger, credit,
            self.convert_debt_to_yield, self.config.minimum_collateralization,
        )
        return account

    def burn(self, caller: str, amount: int, account_id: int) -> int:
        """
        Burn debt tokens to repay a position's unearmarked debt.

        Earmarked debt is committed to redemption and can only be repaid
        with yield tokens (see repay()).

        Returns:
            Debt actually repaid.
        """
        self._check_amount(amount)
        with self.atomic():
            self._check_account(account_id)
            self._earmark()
            account = self._sync(account_id)
            self._check_not_minted_this_block(account, account_id)
            if account.debt == 0:
                raise IllegalState(f"position {account_id} has no debt")

            credit = min(amount, account.unearmarked)
            if credit == 0:
                raise IllegalState(f"position {account_id} has no unearmarked debt to burn")

            self.debt_token.burn(caller, credit)
            account, self._ledger = sub_debt(
                account, self._ledger, credit,
                self.convert_debt_to_yield, self.config.minimum_collateralization,
            )
            fee = self.convert_debt_to_yield(credit) * self.config.protocol_fee // BPS
            account = self._take_protocol_fee(account, fee)
            self._store(account_id, account)
            self._emit(EventType.BURN, account_id, caller, amount=credit, protocol_fee=fee)
        return credit

    def repay(self, caller: str, amount: int, account_id: int) -> int:
        """
        Repay a position's debt with yield tokens, earmarked debt first.

        The yield tokens go to the transmuter, which uses them to settle
        redemptions.

        Args:
            caller: Address the yield tokens come from
            amount: Yield tokens offered; clamped to the position's debt

        Returns:
            Yield tokens actually taken from the caller.
        """
        self._check_amount(amount)
        with self.atomic():
            self._check_account(account_id)
            self._earmark()
            account = self._sync(account_id)
            self._check_not_minted_this_block(account, account_id)
            if account.debt == 0:
                raise IllegalState(f"position {account_id} has no debt")

            yield_amount = min(amount, self.convert_debt_to_yield(account.debt))
            credit = min(self.convert_yield_to_debt(yield_amount), account.debt)
            if credit == 0:
                raise IllegalArgument(f"repayment of {amount} yield tokens is worth no debt")

            account = self._apply_repayment(account, credit)
            fee = yield_amount * self.config.protocol_fee // BPS
            account = self._take_protocol_fee(account, fee)
            self.vault.transfer(caller, self.transmuter.address, yield_amount)
            self._store(account_id, account)
            self._emit(EventType.REPAY, account_id, caller, amount=yield_amount, credit=credit)
        return yield_amount

    # ========================================================================
    # REDEMPTION
    # ========================================================================

    def redeem(self, caller: str, amount: int) -> int:
        """
        Retire earmarked debt and send the matching collateral to the transmuter.

        Only the transmuter may call this. The amount is clamped to the
        earmarked debt; unobserved yield the transmuter already holds is
        folded in as cover, retiring extra earmarked debt without moving
        collateral.

        Returns:
            Yield tokens sent to the transmuter.
        """
        self._check_transmuter(caller)
        self._check_amount(amount)
        with self.atomic():
            self._earmark()
            last_observed = self._ledger.last_transmuter_balance
            balance, cover = self._observe_cover()
            self._ledger, outcome = redeem(self._ledger, amount, cover, self._block)

            collateral_redeemed = self.convert_debt_to_yield(outcome.amount)
            fee = collateral_redeemed * self.config.protocol_fee // BPS
            self._ledger = remove_locked_collateral(self._ledger, collateral_redeemed + fee)

            unobserved = balance - last_observed if balance > last_observed else 0
            cover_used = min(self.convert_debt_to_yield(outcome.cover_applied), unobserved)

            self.vault.transfer(self.config.address, self.transmuter.address, collateral_redeemed)
            if fee > 0:
                self.vault.transfer(self.config.address, self.config.protocol_fee_receiver, fee)
            self._ledger = consume_cover(self._ledger, cover_used + collateral_redeemed)

            self._emit(
                EventType.REDEMPTION, None, caller,
                amount=outcome.amount, cover=outcome.cover_applied,
                collateral=collateral_redeemed, protocol_fee=fee,
            )
            logger.info(
                "redeemed %d debt (+%d cover) for %d collateral at block %d",
                outcome.amount, outcome.cover_applied, collateral_redeemed, self._block,
            )
        return collateral_redeemed

    def observe_transmuter_balance(self, caller: str) -> int:
        """
        Re-base the transmuter balance observation after it pays out.

        Only the transmuter may call this, after moving yield tokens out on
        purpose; anything it held beyond the observation is no longer cover.
        """
        self._check_transmuter(caller)
        with self.atomic():
            balance = self.vault.balance_of(self.transmuter.address)
            self._ledger = observe_transmuter_balance(self._ledger, balance)
        return balance

    # ========================================================================
    # LIQUIDATION
    # ========================================================================

    def _system_collateralization(self) -> int:
        if self._ledger.total_debt == 0:
            return self.config.global_minimum_collateralization
        total_value = self.normalize_underlying_to_debt(self.get_total_underlying_value())
        return collateralization_ratio(total_value, self._ledger.total_debt)

    def _force_repay(self, account_id: int, account: Account, amount: int) -> Tuple[Account, int]:
        """Repay earmarked debt out of the position's own collateral."""
        credit = min(amount, account.debt)
        repaid_in_yield = min(self.convert_debt_to_yield(credit), account.collateral)
        account = self._apply_repayment(account, credit)
        account = replace(account, collateral=account.collateral - repaid_in_yield)

        protocol_fee = repaid_in_yield * self.config.protocol_fee // BPS
        if account.collateral > protocol_fee:
            account = self._take_protocol_fee(account, protocol_fee)
        if repaid_in_yield > 0:
            self.vault.transfer(self.config.address, self.transmuter.address, repaid_in_yield)
        self._emit(EventType.FORCE_REPAY, account_id, None,
                   amount=credit, collateral=repaid_in_yield, protocol_fee=protocol_fee)
        return account, repaid_in_yield

    def _resolve_repayment_fee(self, account_id: int, account: Account,
                               repaid_in_yield: int, caller: str) -> Tuple[Account, int]:
        fee = min(repayment_fee(repaid_in_yield, self.config.repayment_fee), account.collateral)
        if fee > 0:
            account = replace(account, collateral=account.collateral - fee)
            self.vault.transfer(self.config.address, caller, fee)
        self._emit(EventType.REPAYMENT_FEE, account_id, caller, fee=fee)
        return account, fee

    def _do_liquidation(self, account_id: int, account: Account, collateral_value: int,
                        repaid_in_yield: int, caller: str) -> Tuple[Account, LiquidationResult]:
        quote = calculate_liquidation(
            collateral_value,
            account.debt,
            self.config.minimum_collateralization,
            self._system_collateralization(),
            self.config.global_minimum_collateralization,
            self.config.liquidator_fee,
        )
        seized = min(self.convert_debt_to_yield(quote.gross_collateral_to_seize), account.collateral)
        fee_in_yield = min(self.convert_debt_to_yield(quote.fee), seized)

        if seized == 0 and quote.debt_to_burn == 0:
            # Nothing to seize; only the earmark repayment (if any) happened.
            return account, LiquidationResult(repaid_in_yield, 0, 0)

        account = replace(account, collateral=account.collateral - seized)
        if quote.debt_to_burn > 0:
            account, self._ledger = sub_debt(
                account, self._ledger, min(quote.debt_to_burn, account.debt),
                self.convert_debt_to_yield, self.config.minimum_collateralization,
            )
        self.vault.transfer(self.config.address, self.transmuter.address, seized - fee_in_yield)
        if fee_in_yield > 0:
            self.vault.transfer(self.config.address, caller, fee_in_yield)

        fee_in_underlying = 0
        if quote.outsourced_fee > 0 and self.fee_reserve is not None:
            available = self.fee_reserve.total_deposits()
            fee_in_underlying = min(self.normalize_debt_to_underlying(quote.outsourced_fee), available)
            if fee_in_underlying > 0:
                self.fee_reserve.withdraw(caller, fee_in_underlying)

        self._emit(
            EventType.LIQUIDATE, account_id, caller,
            seized=seized, debt_burned=quote.debt_to_burn,
            fee_in_yield=fee_in_yield, fee_in_underlying=fee_in_underlying,
        )
        logger.info(
            "liquidated position %d: seized=%d burned=%d fee=%d outsourced=%d",
            account_id, seized, quote.debt_to_burn, fee_in_yield, fee_in_underlying,
        )
        return account, LiquidationResult(seized + repaid_in_yield, fee_in_yield, fee_in_underlying)

    def _liquidate(self, caller: str, account_id: int) -> LiquidationResult:
        self._earmark()
        account = self._sync(account_id)
        if account.debt == 0:
            return LiquidationResult()
        if self.vault.convert_to_assets(FIXED_POINT_SCALAR) == 0:
            logger.warning("vault shares are worthless; skipping liquidation of %d", account_id)
            return LiquidationResult()

        lower_bound = self.config.collateralization_lower_bound
        collateral_value = self.convert_yield_to_debt(account.collateral)
        if collateralization_ratio(collateral_value, account.debt) > lower_bound:
            return LiquidationResult()

        repaid_in_yield = 0
        if account.earmarked > 0:
            account, repaid_in_yield = self._force_repay(account_id, account, account.earmarked)

        if account.debt > 0:
            collateral_value = self.convert_yield_to_debt(account.collateral)
            if collateralization_ratio(collateral_value, account.debt) <= lower_bound:
                account, result = self._do_liquidation(
                    account_id, account, collateral_value, repaid_in_yield, caller
                )
                self._store(account_id, account)
                return result

        account, fee = self._resolve_repayment_fee(account_id, account, repaid_in_yield, caller)
        self._store(account_id, account)
        logger.info("force-repaid position %d: repaid=%d fee=%d", account_id, repaid_in_yield, fee)
        return LiquidationResult(repaid_in_yield, fee, 0)

    def liquidate(self, caller: str, account_id: int) -> LiquidationResult:
        """
        Liquidate an unhealthy position.

        Earmarked debt is force-repaid from the position's collateral first.
        If that restores it above the lower bound (or clears its debt), the
        caller only receives the repayment fee. Otherwise the position is
        partially or fully liquidated.

        Returns:
            LiquidationResult; zero when the position is healthy, debt-free
            or the vault share is worthless.
        """
        self._check_address(caller)
        with self.atomic():
            self._check_account(account_id)
            return self._liquidate(caller, account_id)

    def batch_liquidate(self, caller: str, account_ids: Iterable[int]) -> LiquidationResult:
        """
        Liquidate every liquidatable position among account_ids.

        Unknown ids and healthy positions are skipped.

        Raises:
            LiquidationError: If no position was liquidated at all
        """
        self._check_address(caller)
        total = LiquidationResult()
        with self.atomic():
            for account_id in account_ids:
                if account_id == NO_ACCOUNT or not self.registry.exists(account_id):
                    continue
                total = total + self._liquidate(caller, account_id)
            if total.is_empty():
                raise LiquidationError("no position in the batch could be liquidated")
        return total

    # ========================================================================
    # SYNC
    # ========================================================================

    def poke(self, account_id: int) -> Account:
        """Settle a position against the current ledger; idempotent."""
        with self.atomic():
            self._check_account(account_id)
            self._earmark()
            account = self._sync(account_id)
            self._store(account_id, account)
        return self._accounts[account_id]

    # ========================================================================
    # READS (side-effect free)
    # ========================================================================

    @property
    def ledger(self) -> GlobalLedger:
        return self._ledger

    def get_account(self, account_id: int) -> Account:
        """Position as stored, without catching up on global events."""
        try:
            return self._accounts[account_id]
        except KeyError:
            raise UnknownAccount(f"position {account_id} has no state") from None

    def _quote(self, account_id: int) -> Account:
        ledger = self._ledger
        if earmark_due(ledger, self._block):
            demand = self.transmuter.query_graph(ledger.last_earmark_block + 1, self._block)
            _, cover = self._pending_cover(ledger)
            ledger = simulate_earmark(ledger, self._block, demand, cover)
        return quote_account(self._load(account_id), ledger, self._lock_for_debt)

    def get_cdp(self, account_id: int) -> Tuple[int, int, int]:
        """(collateral, debt, earmarked) as a sync right now would leave them."""
        with self._lock:
            self._check_account(account_id)
            account = self._quote(account_id)
        return account.collateral, account.debt, account.earmarked

    def total_value(self, account_id: int) -> int:
        """Value of a position's collateral in debt units."""
        collateral, _, _ = self.get_cdp(account_id)
        return self.convert_yield_to_debt(collateral)

    def get_max_borrowable(self, account_id: int) -> int:
        """Additional debt the position could carry at the minimum collateralization."""
        collateral, debt, _ = self.get_cdp(account_id)
        capacity = self.convert_yield_to_debt(collateral) * FIXED_POINT_SCALAR // self.config.minimum_collateralization
        return capacity - debt if capacity > debt else 0

    def get_total_underlying_value(self) -> int:
        """Underlying value of all collateral the engine holds."""
        return self.convert_yield_to_underlying(self.vault.balance_of(self.config.address))
