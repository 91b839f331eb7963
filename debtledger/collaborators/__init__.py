"""
Collaborators module - In-memory stand-ins for the engine's external parties.

The engine only consumes the protocols in debtledger.core. These reference
implementations satisfy them so the engine can run end to end:
- TokenBook / DebtToken: fungible balances and the synthetic debt token
- ShareVault: share-based collateral vault with a movable share price
- PositionRegistry: position id ownership
- FeeVault: liquidation fee reserve
- Transmuter: linear-vesting redemption authority

All of them implement snapshot()/restore(), so the engine rolls them back
together with its own state when an entry point fails.
"""

from .tokens import TokenBook, DebtToken
from .vault import ShareVault
from .registry import PositionRegistry
from .fee_vault import FeeVault
from .transmuter import RedemptionRequest, Transmuter

__all__ = [
    'TokenBook', 'DebtToken', 'ShareVault', 'PositionRegistry', 'FeeVault',
    'RedemptionRequest', 'Transmuter',
]
