"""
TEVA contracts.

- TevaToken: role-gated fungible ledger
- VestingContract: investor schedules, unlock math, withdrawals and reclaim
"""

from .erc20 import TevaToken, TokenEvent
from .vesting import (
    INITIAL_UNLOCK_PERCENT,
    InvestorClass,
    InvestorRecord,
    ScheduleConfiguration,
    ScheduleState,
    VestingContract,
    VestingEvent,
    calculate_unlocked_amount,
)

__all__ = [
    # Ledger
    "TevaToken",
    "TokenEvent",
    # Vesting
    "VestingContract",
    "VestingEvent",
    "InvestorClass",
    "InvestorRecord",
    "ScheduleConfiguration",
    "ScheduleState",
    "INITIAL_UNLOCK_PERCENT",
    "calculate_unlocked_amount",
]
