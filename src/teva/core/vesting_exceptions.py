"""
Vesting-specific exception hierarchy for TEVA.

Provides typed exceptions for vesting and ledger operations so callers can
branch on a stable error kind instead of parsing messages. Every rejection
is deterministic and input-derived; none of them is retryable from the
engine's point of view.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when the schedule or the investor table is configured incorrectly."""
    pass


class AlreadyConfiguredError(ConfigurationError):
    """Raised when the initial timestamp has already been set."""
    pass


class PastTimestampError(ConfigurationError):
    """Raised when the initial timestamp lies before the current time."""
    pass


class ArityMismatchError(ConfigurationError):
    """Raised when the address and amount sequences differ in length."""
    pass


class DuplicateInvestorError(ConfigurationError):
    """Raised when an investor address is registered twice."""
    pass


class AlreadyStartedError(ConfigurationError):
    """Raised when registering investors after the schedule was frozen."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError):
    """Raised when a caller lacks the capability for a privileged operation."""
    pass


# ==================== Schedule State Errors ====================


class ScheduleStateError(VestingError):
    """Raised when an operation is not allowed in the current schedule state."""
    pass


class NotConfiguredError(ScheduleStateError):
    """Raised when the initial timestamp has not been set yet."""
    pass


class NotStartedError(ScheduleStateError):
    """Raised when vesting has not started yet."""
    pass


class VestingNotOverError(ScheduleStateError):
    """Raised when the full vesting window has not elapsed."""
    pass


# ==================== Accounting Errors ====================


class AccountingError(VestingError):
    """Raised when balances or claims do not permit the operation."""
    pass


class UnknownInvestorError(AccountingError):
    """Raised when the caller has no investor record."""
    pass


class NothingAvailableError(AccountingError):
    """Raised when an investor has no newly unlocked tokens to withdraw."""
    pass


class NothingToReclaimError(AccountingError):
    """Raised when the engine holds no balance beyond what investors are owed."""
    pass


# ==================== Dependency Errors ====================


class TokenError(VestingError):
    """Raised by the token ledger when a transfer, mint or burn is rejected.

    Examples: paused ledger, missing minter role, balance or allowance too low.
    """
    pass


class DependencyError(VestingError):
    """Raised when the underlying ledger call made by the engine fails.

    The underlying ledger exception is chained as ``__cause__``.
    """
    pass


# ==================== Storage Errors ====================


class StorageError(VestingError):
    """Raised when vesting storage operations fail."""
    pass


class CorruptedDataError(StorageError):
    """Raised when stored vesting data fails checksum or schema checks."""
    pass


__all__ = [
    "VestingError",
    "ConfigurationError",
    "AlreadyConfiguredError",
    "PastTimestampError",
    "ArityMismatchError",
    "DuplicateInvestorError",
    "AlreadyStartedError",
    "AuthorizationError",
    "ScheduleStateError",
    "NotConfiguredError",
    "NotStartedError",
    "VestingNotOverError",
    "AccountingError",
    "UnknownInvestorError",
    "NothingAvailableError",
    "NothingToReclaimError",
    "TokenError",
    "DependencyError",
    "StorageError",
    "CorruptedDataError",
]
