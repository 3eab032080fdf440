"""
TEVA Core Module

Core functionality for the TEVA vesting ledger including:
- Access control (owner and role membership)
- Token and vesting contracts
- Storage and persistence
- Configuration, logging and metrics
"""

__all__ = []
