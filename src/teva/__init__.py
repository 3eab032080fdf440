"""
TEVA - Token Vesting Ledger

Tracks fixed token allocations granted to investors and releases them over
time according to a per-class schedule (initial unlock, cliff, linear drip).

Main Components:
- Ledger: Role-gated fungible token (mint/burn, transfers, allowances)
- Vesting: Schedule configuration, unlock math, withdrawals and reclaim
- Storage: Durable JSON persistence with checksum verification
"""

__version__ = "0.1.0"
__author__ = "TEVA Development Team"

__all__ = []
