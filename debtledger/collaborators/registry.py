"""
registry.py - Position identity registry

Maps positive integer position ids to owners. The engine only looks ids up;
it never owns their lifecycle.
"""

from __future__ import annotations
from typing import Dict, Tuple

from ..core import IllegalArgument, NO_ACCOUNT, Unauthorized, UnknownAccount


class PositionRegistry:
    """
    Sequential position ids starting at 1; id 0 is never issued.

    Example:
        registry = PositionRegistry()
        account_id = registry.mint("alice")
        registry.transfer("alice", "bob", account_id)
        assert registry.owner_of(account_id) == "bob"
    """

    def __init__(self):
        self._owners: Dict[int, str] = {}
        self._next_id = NO_ACCOUNT + 1

    def mint(self, owner: str) -> int:
        if not owner:
            raise IllegalArgument("position owner cannot be empty")
        account_id = self._next_id
        self._next_id += 1
        self._owners[account_id] = owner
        return account_id

    def exists(self, account_id: int) -> bool:
        return account_id in self._owners

    def owner_of(self, account_id: int) -> str:
        try:
            return self._owners[account_id]
        except KeyError:
            raise UnknownAccount(f"position {account_id} does not exist") from None

    def transfer(self, caller: str, dest: str, account_id: int) -> None:
        if self.owner_of(account_id) != caller:
            raise Unauthorized(f"{caller} does not own position {account_id}")
        if not dest:
            raise IllegalArgument("position recipient cannot be empty")
        self._owners[account_id] = dest

    def snapshot(self) -> Tuple[Dict[int, str], int]:
        return dict(self._owners), self._next_id

    def restore(self, snapshot: Tuple[Dict[int, str], int]) -> None:
        owners, self._next_id = snapshot
        self._owners = dict(owners)
