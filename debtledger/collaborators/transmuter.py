"""
transmuter.py - Reference redemption authority

Holders lock debt tokens in the transmuter and receive collateral for them
linearly over `time_to_transmute` blocks. The schedule of everything locked
is the redemption demand the engine earmarks:

    query_graph(start, end) = sum over open requests of the amount vesting
                              in blocks [start, end]

A request vests amount / duration per block from the block after it was
created. Claiming closes it: the vested part is redeemed through the engine
and paid out in collateral, the rest of the debt tokens go back to the owner.
A closed request is retired once the engine has earmarked through its
closing block; query_graph() only reads open and not yet retired requests.

This is a deliberately small stand-in for an external component; the engine
only relies on `address` and `query_graph()`.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from ..core import IllegalArgument, IllegalState, Unauthorized
from .tokens import DebtToken
from .vault import ShareVault

if TYPE_CHECKING:
    from ..engine import DebtEngine


@dataclass(frozen=True, slots=True)
class RedemptionRequest:
    """
    One lot of debt tokens waiting to be transmuted.

    Attributes:
        request_id: Identifier returned by create_redemption()
        owner: Who receives the collateral
        amount: Debt tokens locked
        start_block: First block in which the lot vests
        duration: Blocks until fully vested
        closed_block: Block in which the lot was claimed (None while open)
    """
    request_id: int
    owner: str
    amount: int
    start_block: int
    duration: int
    closed_block: Optional[int] = None

    @property
    def maturity_block(self) -> int:
        return self.start_block + self.duration - 1

    def due_through(self, block: int) -> int:
        """Amount vested in blocks [start_block, block]."""
        if self.closed_block is not None:
            block = min(block, self.closed_block)
        elapsed = min(max(block - self.start_block + 1, 0), self.duration)
        return self.amount * elapsed // self.duration


class Transmuter:
    """
    Linear-vesting redemption authority.

    Example:
        transmuter = Transmuter(vault, debt_token, time_to_transmute=100)
        engine = DebtEngine(config, vault, debt_token, transmuter, registry)
        request_id = transmuter.create_redemption("bob", 1_000)
        engine.advance_block(100)
        transmuter.claim_redemption("bob", request_id)
    """

    def __init__(
        self,
        vault: ShareVault,
        debt_token: DebtToken,
        time_to_transmute: int,
        address: str = "transmuter",
    ):
        if time_to_transmute <= 0:
            raise ValueError(f"time_to_transmute must be positive, got {time_to_transmute}")
        self.vault = vault
        self.debt_token = debt_token
        self.time_to_transmute = time_to_transmute
        self._address = address
        self._engine: Optional[DebtEngine] = None
        self._requests: Dict[int, RedemptionRequest] = {}
        self._closing: List[int] = []
        self._next_id = 1

    @property
    def address(self) -> str:
        return self._address

    def attach(self, engine: DebtEngine) -> None:
        """Bind the engine whose debt this transmuter redeems."""
        self._engine = engine

    def _require_engine(self) -> DebtEngine:
        if self._engine is None:
            raise IllegalState("transmuter is not attached to an engine")
        return self._engine

    def _retired(self, request_id: int) -> bool:
        return 0 < request_id < self._next_id and request_id not in self._requests

    def get_request(self, request_id: int) -> RedemptionRequest:
        try:
            return self._requests[request_id]
        except KeyError:
            if self._retired(request_id):
                raise IllegalState(f"redemption request {request_id} was claimed and retired") from None
            raise IllegalArgument(f"redemption request {request_id} does not exist") from None

    def outstanding(self) -> Tuple[RedemptionRequest, ...]:
        """Requests query_graph() still reads: open ones and closed ones not yet earmarked."""
        return tuple(self._requests.values())

    def _retire_settled(self, engine: DebtEngine) -> None:
        earmarked_through = engine.ledger.last_earmark_block
        still_closing = []
        for request_id in self._closing:
            if self._requests[request_id].closed_block <= earmarked_through:
                del self._requests[request_id]
            else:
                still_closing.append(request_id)
        self._closing = still_closing

    # ========================================================================
    # RedemptionOracle
    # ========================================================================

    def query_graph(self, start_block: int, end_block: int) -> int:
        """Redemption demand vesting in the inclusive block range."""
        if end_block < start_block:
            return 0
        return sum(
            r.due_through(end_block) - r.due_through(start_block - 1)
            for r in self._requests.values()
        )

    # ========================================================================
    # HOLDER OPERATIONS
    # ========================================================================

    def create_redemption(self, owner: str, amount: int) -> int:
        """Lock `amount` debt tokens from owner and start vesting next block."""
        if amount <= 0:
            raise IllegalArgument(f"redemption amount must be positive, got {amount}")
        engine = self._require_engine()
        self._retire_settled(engine)
        block = engine.block_number
        self.debt_token.transfer(owner, self._address, amount)
        request_id = self._next_id
        self._next_id += 1
        self._requests[request_id] = RedemptionRequest(
            request_id=request_id,
            owner=owner,
            amount=amount,
            start_block=block + 1,
            duration=self.time_to_transmute,
        )
        return request_id

    def claim_redemption(self, caller: str, request_id: int) -> Tuple[int, int]:
        """
        Close a request: pay out its vested part, return the unvested part.

        Collateral the transmuter already holds (repayments, liquidations,
        earlier cover) pays first; only the shortfall is redeemed from the
        engine. The engine's balance observation is re-based afterwards so
        the payout is not mistaken for a withdrawal.

        Returns:
            (collateral paid to the owner, debt tokens returned to the owner)
        """
        engine = self._require_engine()
        if self._retired(request_id):
            raise IllegalState(f"redemption request {request_id} already claimed")
        request = self.get_request(request_id)
        if request.owner != caller:
            raise Unauthorized(f"{caller} does not own redemption request {request_id}")
        if request.closed_block is not None:
            raise IllegalState(f"redemption request {request_id} already claimed")

        with engine.atomic():
            block = engine.block_number
            vested = request.due_through(block)
            self._requests[request_id] = replace(request, closed_block=block)
            self._closing.append(request_id)

            payout = 0
            if vested > 0:
                held_as_debt = engine.convert_yield_to_debt(self.vault.balance_of(self._address))
                shortfall = vested - held_as_debt if vested > held_as_debt else 0
                if shortfall > 0:
                    engine.redeem(self._address, shortfall)
                payout = min(engine.convert_debt_to_yield(vested), self.vault.balance_of(self._address))
                self.vault.transfer(self._address, request.owner, payout)
                self.debt_token.burn(self._address, vested)

            returned = request.amount - vested
            self.debt_token.transfer(self._address, request.owner, returned)
            engine.observe_transmuter_balance(self._address)
            self._retire_settled(engine)
        return payout, returned

    def snapshot(self) -> Tuple[Dict[int, RedemptionRequest], Tuple[int, ...], int]:
        return dict(self._requests), tuple(self._closing), self._next_id

    def restore(self, snapshot: Tuple[Dict[int, RedemptionRequest], Tuple[int, ...], int]) -> None:
        requests, closing, self._next_id = snapshot
        self._requests = dict(requests)
        self._closing = list(closing)
