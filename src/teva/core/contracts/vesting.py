"""
TEVA Vesting Contract.

Holds the investor table and the schedule configuration, computes how much
of each allocation has unlocked, and mints newly vested tokens through the
TEVA ledger on withdrawal.

Release schedule per investor (allocation ``A``):
- initial unlock: 10% (seed) or 15% (private), claimable from the start time
- cliff: only the initial unlock is claimable until ``start + cliff``
- linear window: the remainder accrues linearly over ``vesting_duration``
- at ``start + cliff + vesting_duration`` the full allocation is unlocked

Every operation runs under a single lock, reads the clock once, and commits
its state change only after the ledger call has succeeded. When a storage is
attached, a failed save rolls the engine and the ledger back before the
StorageError is raised.
"""

from __future__ import annotations

import functools
import hashlib
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Sequence

from .. import config, vesting_metrics
from ..access_control import Ownable, is_zero_address, normalize_address
from ..vesting_exceptions import (
    AccountingError,
    AlreadyConfiguredError,
    AlreadyStartedError,
    ArityMismatchError,
    AuthorizationError,
    ConfigurationError,
    CorruptedDataError,
    DependencyError,
    DuplicateInvestorError,
    NotConfiguredError,
    NotStartedError,
    NothingAvailableError,
    NothingToReclaimError,
    PastTimestampError,
    StorageError,
    TokenError,
    UnknownInvestorError,
    VestingError,
    VestingNotOverError,
)
from .erc20 import TevaToken

if TYPE_CHECKING:
    from ..vesting_storage import VestingStorage

logger = logging.getLogger(__name__)

_deployment_nonce = itertools.count()


class InvestorClass(Enum):
    """Investor category; the value matches the on-chain enum index."""

    SEED = 0
    PRIVATE = 1

    @property
    def initial_unlock_percent(self) -> int:
        return INITIAL_UNLOCK_PERCENT[self]

    @classmethod
    def coerce(cls, value: "InvestorClass | int | str") -> "InvestorClass":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError as exc:
                raise ConfigurationError(f"Vesting: unknown investor class {value!r}") from exc
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError as exc:
                raise ConfigurationError(f"Vesting: unknown investor class {value!r}") from exc
        raise ConfigurationError(f"Vesting: unknown investor class {value!r}")


INITIAL_UNLOCK_PERCENT = {
    InvestorClass.SEED: 10,
    InvestorClass.PRIVATE: 15,
}


class ScheduleState(Enum):
    UNCONFIGURED = "unconfigured"
    TIMESTAMP_SET = "timestamp_set"
    VESTING_ACTIVE = "vesting_active"
    VESTING_COMPLETE = "vesting_complete"


@dataclass
class InvestorRecord:
    address: str
    total_allocation: int
    investor_class: InvestorClass
    claimed_amount: int = 0

    @property
    def initial_unlock(self) -> int:
        return self.total_allocation * self.investor_class.initial_unlock_percent // 100

    @property
    def unclaimed(self) -> int:
        return self.total_allocation - self.claimed_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "total_allocation": self.total_allocation,
            "investor_class": self.investor_class.name,
            "claimed_amount": self.claimed_amount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InvestorRecord":
        return cls(
            address=normalize_address(data["address"]),
            total_allocation=int(data["total_allocation"]),
            investor_class=InvestorClass.coerce(data["investor_class"]),
            claimed_amount=int(data.get("claimed_amount", 0)),
        )


@dataclass
class ScheduleConfiguration:
    """Start time (set once) plus the fixed cliff and vesting durations."""

    cliff_duration: int = config.CLIFF_DURATION
    vesting_duration: int = config.VESTING_DURATION
    initial_timestamp: int | None = None

    def __post_init__(self) -> None:
        try:
            config.validate_durations(self.cliff_duration, self.vesting_duration)
        except config.EnvironmentConfigError as exc:
            raise ConfigurationError(str(exc)) from exc

    @property
    def is_configured(self) -> bool:
        return self.initial_timestamp is not None

    @property
    def cliff_end(self) -> int:
        return self._require_start() + self.cliff_duration

    @property
    def vesting_end(self) -> int:
        return self.cliff_end + self.vesting_duration

    def set_initial_timestamp(self, timestamp: int, now: int) -> None:
        if self.initial_timestamp is not None:
            raise AlreadyConfiguredError(
                "Vesting: timestamp has already been initialized",
                details={"initial_timestamp": self.initial_timestamp},
            )
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise ConfigurationError("Vesting: initial timestamp must be an integer (Unix seconds)")
        if timestamp < now:
            raise PastTimestampError(
                "Vesting: initial timestamp is less than the current timestamp",
                details={"timestamp": timestamp, "now": now},
            )
        self.initial_timestamp = timestamp

    def state(self, now: int) -> ScheduleState:
        if self.initial_timestamp is None:
            return ScheduleState.UNCONFIGURED
        if now < self.initial_timestamp:
            return ScheduleState.TIMESTAMP_SET
        if now < self.vesting_end:
            return ScheduleState.VESTING_ACTIVE
        return ScheduleState.VESTING_COMPLETE

    def _require_start(self) -> int:
        if self.initial_timestamp is None:
            raise NotConfiguredError("Vesting: not initialized")
        return self.initial_timestamp


def calculate_unlocked_amount(
    total_allocation: int,
    investor_class: InvestorClass,
    schedule: ScheduleConfiguration,
    at_time: int,
) -> int:
    """
    Total amount unlocked for an allocation at ``at_time``.

    The linear term is truncated with integer division. Once the vesting
    window has fully elapsed the whole allocation is returned, so the final
    withdrawal always collects whatever truncation left behind.
    """
    initial_unlock = total_allocation * investor_class.initial_unlock_percent // 100

    if at_time < schedule.cliff_end:
        return initial_unlock
    if at_time >= schedule.vesting_end:
        return total_allocation

    elapsed = at_time - schedule.cliff_end
    remaining = total_allocation - initial_unlock
    return initial_unlock + remaining * elapsed // schedule.vesting_duration


@dataclass
class VestingEvent:
    """Represents a vesting contract event."""

    event_type: str  # AddInvestor, SetInitialTimestamp, WithdrawTokens, EmergencyWithdraw
    account: str
    value: int
    investor_class: InvestorClass | None = None
    timestamp: float = field(default_factory=time.time)


def _tracked(operation: str) -> Callable:
    """Count rejected calls of a vesting operation, then re-raise."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(self: "VestingContract", *args: Any, **kwargs: Any) -> Any:
            try:
                return func(self, *args, **kwargs)
            except VestingError as exc:
                vesting_metrics.record_rejection(operation, exc)
                logger.warning(
                    "Vesting operation rejected",
                    extra={
                        "event": f"vesting.{operation}.rejected",
                        "error_type": type(exc).__name__,
                        "error": exc.message,
                    },
                )
                raise

        return wrapper

    return decorator


class VestingContract:
    """
    Token vesting engine.

    Usage:
        token = TevaToken(owner=admin)
        vesting = VestingContract(token, owner=admin)
        token.add_minter(admin, vesting.address)

        vesting.register_investors(admin, [alice], [100_000], InvestorClass.SEED)
        vesting.set_initial_timestamp(admin, start)
        ...
        vesting.withdraw(alice)
    """

    def __init__(
        self,
        token: TevaToken | None,
        owner: str,
        *,
        cliff_duration: int = config.CLIFF_DURATION,
        vesting_duration: int = config.VESTING_DURATION,
        time_provider: Callable[[], int] | None = None,
        storage: "VestingStorage | None" = None,
        address: str = "",
    ) -> None:
        if token is None or is_zero_address(getattr(token, "address", "")):
            raise ConfigurationError("Vesting: token address is zero")

        self.token = token
        self._ownable = Ownable(owner=owner)
        self.schedule = ScheduleConfiguration(
            cliff_duration=cliff_duration,
            vesting_duration=vesting_duration,
        )
        self.storage = storage
        self.events: list[VestingEvent] = []

        self._investors: dict[str, InvestorRecord] = {}
        self._outstanding_supply = 0
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = threading.RLock()

        if not address:
            addr_input = f"vesting{token.address}{next(_deployment_nonce)}{time.time()}".encode()
            address = f"0x{hashlib.sha3_256(addr_input).digest()[-20:].hex()}"
        self.address = normalize_address(address)

        logger.info(
            "VestingContract deployed",
            extra={
                "event": "vesting.deployed",
                "address": self.address,
                "token": token.address,
                "owner": self._ownable.owner[:10],
                "cliff_duration": cliff_duration,
                "vesting_duration": vesting_duration,
            },
        )

    # ==================== View Functions ====================

    @property
    def owner(self) -> str:
        return self._ownable.owner

    def is_owner(self, caller: str) -> bool:
        return self._ownable.is_owner(caller)

    @property
    def initial_timestamp(self) -> int | None:
        return self.schedule.initial_timestamp

    @property
    def total_supply(self) -> int:
        return self._outstanding_supply

    def outstanding_supply(self) -> int:
        """Sum of ``total_allocation - claimed_amount`` over all investors."""
        return self._outstanding_supply

    def schedule_state(self, at_time: int | None = None) -> ScheduleState:
        return self.schedule.state(self._resolve_time(at_time))

    def get_investor(self, address: str) -> InvestorRecord | None:
        record = self._investors.get(normalize_address(address))
        if record is None:
            return None
        return replace(record)

    def investors(self) -> list[InvestorRecord]:
        with self._lock:
            return [replace(self._investors[key]) for key in sorted(self._investors)]

    @property
    def investor_count(self) -> int:
        return len(self._investors)

    def claimed_amount(self, address: str) -> int:
        record = self._investors.get(normalize_address(address))
        return record.claimed_amount if record else 0

    def unlocked_amount(self, address: str, at_time: int | None = None) -> int:
        """
        Total tokens unlocked for ``address`` at ``at_time`` (defaults to now).

        Raises:
            NotConfiguredError: If the initial timestamp is not set
            UnknownInvestorError: If the address is not registered
        """
        now = self._resolve_time(at_time)
        if not self.schedule.is_configured:
            raise NotConfiguredError("Vesting: not initialized")
        record = self._require_investor(address)
        return calculate_unlocked_amount(record.total_allocation, record.investor_class, self.schedule, now)

    def withdrawable_amount(self, address: str, at_time: int | None = None) -> int:
        record = self._require_investor(address)
        return self.unlocked_amount(address, at_time) - record.claimed_amount

    # ==================== Owner Functions ====================

    @_tracked("set_initial_timestamp")
    def set_initial_timestamp(self, caller: str, timestamp: int) -> int:
        """
        Set the vesting start time. One-shot; freezes investor registration.

        Args:
            caller: Address making the call (must be owner)
            timestamp: Unix timestamp at which the cliff begins counting

        Raises:
            AuthorizationError: If caller is not the owner
            AlreadyConfiguredError: If the timestamp was already set
            PastTimestampError: If ``timestamp`` is before the current time
        """
        with self._lock:
            now = self._current_time()
            self._ownable.require_owner(caller)
            snapshot = self._snapshot()
            self.schedule.set_initial_timestamp(timestamp, now)

            self._emit("SetInitialTimestamp", self.owner, timestamp)
            self._persist("set_initial_timestamp", snapshot)
            logger.info(
                "Vesting initial timestamp set",
                extra={
                    "event": "vesting.initial_timestamp_set",
                    "initial_timestamp": timestamp,
                    "cliff_end": self.schedule.cliff_end,
                    "vesting_end": self.schedule.vesting_end,
                },
            )
            return timestamp

    @_tracked("register_investors")
    def register_investors(
        self,
        caller: str,
        addresses: Sequence[str],
        amounts: Sequence[int],
        investor_class: InvestorClass | int | str,
    ) -> int:
        """
        Register a batch of investors sharing one class.

        The batch is validated in full before any record is inserted.

        Returns:
            Number of investors registered

        Raises:
            AuthorizationError: If caller is not the owner
            ArityMismatchError: If the sequences differ in length
            AlreadyStartedError: If the initial timestamp is already set
            DuplicateInvestorError: If an address is already registered or repeated
            ConfigurationError: On zero addresses or non-positive amounts
        """
        with self._lock:
            self._ownable.require_owner(caller)
            addresses = list(addresses)
            amounts = list(amounts)
            if len(addresses) != len(amounts):
                raise ArityMismatchError(
                    "Vesting: the number of items in the arrays does't match",
                    details={"addresses": len(addresses), "amounts": len(amounts)},
                )
            if self.schedule.is_configured:
                raise AlreadyStartedError("Vesting: vesting has already been started")
            if not addresses:
                raise ConfigurationError("Vesting: no investors supplied")
            investor_class = InvestorClass.coerce(investor_class)

            batch: dict[str, int] = {}
            for address, amount in zip(addresses, amounts):
                if is_zero_address(address):
                    raise ConfigurationError("Vesting: investor is the zero address")
                if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                    raise ConfigurationError(
                        "Vesting: investor amount must be a positive integer",
                        details={"address": address, "amount": amount},
                    )
                if amount > self.token.UINT256_MAX:
                    raise ConfigurationError(
                        "Vesting: investor amount exceeds uint256",
                        details={"address": address, "amount": amount},
                    )
                address_norm = normalize_address(address)
                if address_norm in self._investors or address_norm in batch:
                    raise DuplicateInvestorError(
                        "Vesting: investor already exist",
                        details={"address": address_norm},
                    )
                batch[address_norm] = amount

            batch_total = sum(batch.values())
            if self._outstanding_supply + batch_total > self.token.UINT256_MAX:
                raise ConfigurationError(
                    "Vesting: total allocation exceeds uint256",
                    details={"outstanding_supply": self._outstanding_supply, "batch_total": batch_total},
                )

            snapshot = self._snapshot()
            for address_norm, amount in batch.items():
                self._investors[address_norm] = InvestorRecord(
                    address=address_norm,
                    total_allocation=amount,
                    investor_class=investor_class,
                )
                self._outstanding_supply += amount
                self._emit("AddInvestor", address_norm, amount, investor_class)

            self._persist("register_investors", snapshot)
            logger.info(
                "Investors registered",
                extra={
                    "event": "vesting.investors_added",
                    "count": len(batch),
                    "investor_class": investor_class.name,
                    "batch_total": batch_total,
                    "outstanding_supply": self._outstanding_supply,
                },
            )
            return len(batch)

    @_tracked("emergency_withdraw")
    def emergency_withdraw(self, caller: str) -> int:
        """
        Sweep ledger balance held by the engine beyond what investors are owed.

        Investor records and the outstanding supply are left untouched.

        Returns:
            Amount transferred to the owner

        Raises:
            AuthorizationError: If caller is not the owner
            NotConfiguredError: If the initial timestamp is not set
            VestingNotOverError: If the vesting window has not fully elapsed
            NothingToReclaimError: If there is no excess balance
            DependencyError: If the ledger transfer fails
        """
        with self._lock:
            now = self._current_time()
            self._ownable.require_owner(caller)
            if not self.schedule.is_configured:
                raise NotConfiguredError("Vesting: not initialized")
            if self.schedule.state(now) is not ScheduleState.VESTING_COMPLETE:
                raise VestingNotOverError(
                    "Vesting: vesting not over",
                    details={"now": now, "vesting_end": self.schedule.vesting_end},
                )

            balance = self.token.balance_of(self.address)
            excess = max(0, balance - self._outstanding_supply)
            if excess == 0:
                raise NothingToReclaimError(
                    "Vesting: transaction amount is zero",
                    details={"balance": balance, "outstanding_supply": self._outstanding_supply},
                )

            snapshot = self._snapshot()
            try:
                self.token.transfer(self.address, caller, excess)
            except (TokenError, AuthorizationError) as exc:
                raise DependencyError(f"Vesting: token transfer failed: {exc}") from exc

            recipient = normalize_address(caller)
            self._emit("EmergencyWithdraw", recipient, excess)
            self._persist("emergency_withdraw", snapshot)
            vesting_metrics.record_reclaim(excess)
            logger.warning(
                "Excess tokens reclaimed",
                extra={
                    "event": "vesting.emergency_withdraw",
                    "recipient": recipient[:10],
                    "amount": excess,
                    "outstanding_supply": self._outstanding_supply,
                },
            )
            return excess

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._lock:
            snapshot = self._snapshot()
            self._ownable.transfer_ownership(caller, new_owner)
            self._persist("transfer_ownership", snapshot)

    def checkpoint(self) -> None:
        """
        Save the engine and ledger as they are now.

        Engine operations save on their own; call this after changing the
        ledger directly (for example minting into the engine) so the change
        survives a restart.
        """
        with self._lock:
            self._persist("checkpoint", self._snapshot())

    # ==================== Investor Functions ====================

    @_tracked("withdraw")
    def withdraw(self, caller: str) -> int:
        """
        Mint the caller's newly unlocked, unclaimed tokens.

        Returns:
            Amount minted to the caller

        Raises:
            NotConfiguredError: If the initial timestamp is not set
            NotStartedError: If vesting has not started
            UnknownInvestorError: If caller is not a registered investor
            NothingAvailableError: If nothing new has unlocked
            DependencyError: If the ledger mint fails (no state is changed)
        """
        with self._lock:
            now = self._current_time()
            if not self.schedule.is_configured:
                raise NotConfiguredError("Vesting: not initialized")
            if now < self.schedule.initial_timestamp:
                raise NotStartedError(
                    "Vesting: vesting hasn't started",
                    details={"now": now, "initial_timestamp": self.schedule.initial_timestamp},
                )
            record = self._require_investor(caller)

            unlocked = calculate_unlocked_amount(
                record.total_allocation, record.investor_class, self.schedule, now
            )
            delta = unlocked - record.claimed_amount
            if delta <= 0:
                raise NothingAvailableError(
                    "Vesting: no tokens available",
                    details={"address": record.address, "claimed_amount": record.claimed_amount},
                )

            snapshot = self._snapshot()
            try:
                self.token.mint(self.address, record.address, delta)
            except (TokenError, AuthorizationError) as exc:
                raise DependencyError(f"Vesting: token mint failed: {exc}") from exc

            record.claimed_amount += delta
            self._outstanding_supply -= delta

            self._emit("WithdrawTokens", record.address, delta, record.investor_class)
            self._persist("withdraw", snapshot)
            vesting_metrics.record_withdrawal(record.investor_class.name.lower(), delta)
            logger.info(
                "Vested tokens withdrawn",
                extra={
                    "event": "vesting.withdraw",
                    "investor": record.address[:10],
                    "amount": delta,
                    "claimed_amount": record.claimed_amount,
                    "outstanding_supply": self._outstanding_supply,
                },
            )
            return delta

    # ==================== Invariants ====================

    def check_invariants(self) -> None:
        """
        Raise AccountingError if the investor table and the outstanding supply disagree.
        """
        with self._lock:
            expected = 0
            for record in self._investors.values():
                if not 0 <= record.claimed_amount <= record.total_allocation:
                    raise AccountingError(
                        "Vesting: claimed amount out of bounds",
                        details=record.to_dict(),
                    )
                expected += record.unclaimed
            if expected != self._outstanding_supply:
                raise AccountingError(
                    "Vesting: outstanding supply does not match investor records",
                    details={"expected": expected, "actual": self._outstanding_supply},
                )

    # ==================== Helpers ====================

    def _current_time(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    def _resolve_time(self, at_time: int | None) -> int:
        return self._current_time() if at_time is None else int(at_time)

    def _require_investor(self, address: str) -> InvestorRecord:
        record = self._investors.get(normalize_address(address))
        if record is None:
            raise UnknownInvestorError(
                "Vesting: you are not a investor",
                details={"address": normalize_address(address)},
            )
        return record

    def _emit(
        self,
        event_type: str,
        account: str,
        value: int,
        investor_class: InvestorClass | None = None,
    ) -> None:
        self.events.append(
            VestingEvent(
                event_type=event_type,
                account=account,
                value=value,
                investor_class=investor_class,
            )
        )

    def _snapshot(self) -> dict[str, Any] | None:
        """Engine and ledger state to roll back to if saving fails."""
        if self.storage is None:
            return None
        return {
            "owner": self.owner,
            "initial_timestamp": self.schedule.initial_timestamp,
            "investors": {key: replace(record) for key, record in self._investors.items()},
            "outstanding_supply": self._outstanding_supply,
            "event_count": len(self.events),
            "token": self.token.snapshot(),
        }

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self._ownable.owner = snapshot["owner"]
        self.schedule.initial_timestamp = snapshot["initial_timestamp"]
        self._investors = snapshot["investors"]
        self._outstanding_supply = snapshot["outstanding_supply"]
        del self.events[snapshot["event_count"]:]
        self.token.restore(snapshot["token"])

    def _persist(self, operation: str, snapshot: dict[str, Any] | None) -> None:
        if self.storage is not None:
            success, message = self.storage.save_to_disk(self.to_dict(), self.token.to_dict())
            if not success:
                self._restore(snapshot)
                raise StorageError(
                    f"Vesting: {operation} rolled back, state could not be saved: {message}",
                    details={"operation": operation},
                    recoverable=True,
                )
        vesting_metrics.update_engine_gauges(self.address, self._outstanding_supply, len(self._investors))

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "address": self.address,
                "owner": self.owner,
                "token_address": self.token.address,
                "cliff_duration": self.schedule.cliff_duration,
                "vesting_duration": self.schedule.vesting_duration,
                "initial_timestamp": self.schedule.initial_timestamp,
                "outstanding_supply": self._outstanding_supply,
                "investors": [self._investors[key].to_dict() for key in sorted(self._investors)],
            }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        token: TevaToken,
        *,
        time_provider: Callable[[], int] | None = None,
        storage: "VestingStorage | None" = None,
    ) -> "VestingContract":
        """
        Rebuild an engine from ``to_dict`` output.

        Raises:
            CorruptedDataError: If the data references another token or the
                accounting does not add up
        """
        if normalize_address(data.get("token_address", "")) != token.address:
            raise CorruptedDataError(
                "Vesting: stored state belongs to a different token",
                details={"stored": data.get("token_address"), "token": token.address},
            )
        contract = cls(
            token,
            data["owner"],
            cliff_duration=int(data["cliff_duration"]),
            vesting_duration=int(data["vesting_duration"]),
            time_provider=time_provider,
            storage=storage,
            address=data["address"],
        )
        initial_timestamp = data.get("initial_timestamp")
        contract.schedule.initial_timestamp = None if initial_timestamp is None else int(initial_timestamp)
        for item in data.get("investors", []):
            record = InvestorRecord.from_dict(item)
            contract._investors[record.address] = record
        contract._outstanding_supply = int(data.get("outstanding_supply", 0))
        try:
            contract.check_invariants()
        except AccountingError as exc:
            raise CorruptedDataError(exc.message, details=exc.details) from exc
        return contract

    @classmethod
    def load(
        cls,
        storage: "VestingStorage",
        *,
        time_provider: Callable[[], int] | None = None,
    ) -> "VestingContract":
        """
        Restore the engine and its ledger from ``storage``.

        Raises:
            StorageError: If nothing could be loaded
        """
        package = storage.require_loaded()
        token = TevaToken.from_dict(package["token"])
        contract = cls.from_dict(package["vesting"], token, time_provider=time_provider, storage=storage)
        logger.info(
            "VestingContract restored",
            extra={
                "event": "vesting.restored",
                "address": contract.address,
                "investors": contract.investor_count,
                "outstanding_supply": contract.outstanding_supply(),
            },
        )
        return contract
