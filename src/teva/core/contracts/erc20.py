"""
TEVA fungible token ledger.

ERC20-style token that backs the vesting engine:
- Basic token operations (transfer, approve, transfer_from)
- Allowance adjustment (increase_allowance / decrease_allowance)
- Role-gated minting and burning (minter / burner roles granted by the owner)
- Pause switch
- Events (Transfer, Approval)

Security features:
- Overflow protection (256-bit arithmetic)
- Zero address checks
- Balance underflow prevention
- Allowance validation
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .. import config
from ..access_control import (
    ZERO_ADDRESS,
    Role,
    RoleBasedAccessControl,
    is_zero_address,
    normalize_address,
)
from ..vesting_exceptions import TokenError

logger = logging.getLogger(__name__)


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class TevaToken:
    """
    Fungible ledger with role-gated supply changes.

    The deployer becomes owner and receives the minter and burner roles.
    Further roles can only be granted by the owner; the vesting engine is
    granted the minter role once at deployment time.
    """

    owner: str
    name: str = config.TOKEN_NAME
    symbol: str = config.TOKEN_SYMBOL
    decimals: int = config.TOKEN_DECIMALS
    total_supply: int = 0
    address: str = ""

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)
    paused: bool = False

    access_control: RoleBasedAccessControl = field(init=False)

    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        self.access_control = RoleBasedAccessControl(owner=self.owner)
        self.owner = self.access_control.owner
        self.access_control.roles[Role.MINTER.value].add(self.owner)
        self.access_control.roles[Role.BURNER.value].add(self.owner)
        if not self.address:
            addr_input = f"{self.name}{self.symbol}{time.time()}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = normalize_address(self.address)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize_address(owner), {}).get(normalize_address(spender), 0)

    def is_minter(self, account: str) -> bool:
        return self.access_control.has_role(Role.MINTER, account)

    def is_burner(self, account: str) -> bool:
        return self.access_control.has_role(Role.BURNER, account)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (the caller)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            TokenError: If transfer fails
        """
        self._require_not_paused()
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)

        self._validate_address(recipient_norm, "transfer to")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise TokenError(
                f"ERC20: transfer amount exceeds balance ({amount} > {sender_balance})"
            )

        self.balances[sender_norm] = sender_balance - amount
        self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
        self._emit_transfer(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Approve spender to spend tokens on behalf of owner."""
        self._require_not_paused()
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)

        self._validate_address(spender_norm, "approve to")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit_approval(owner_norm, spender_norm, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing transfer (the caller)
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Raises:
            TokenError: If allowance or balance is insufficient
        """
        self._require_not_paused()
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)

        self._validate_address(to_norm, "transfer to")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise TokenError(f"ERC20: insufficient allowance ({current_allowance} < {amount})")

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise TokenError(f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})")

        # Unlimited allowances are never decremented
        if current_allowance != self.UINT256_MAX:
            self.allowances[from_norm][spender_norm] = current_allowance - amount

        self.balances[from_norm] = from_balance - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit_transfer(from_norm, to_norm, amount)
        return True

    def increase_allowance(self, owner: str, spender: str, added_value: int) -> bool:
        self._validate_amount(added_value)
        new_allowance = min(self.allowance(owner, spender) + added_value, self.UINT256_MAX)
        return self.approve(owner, spender, new_allowance)

    def decrease_allowance(self, owner: str, spender: str, subtracted_value: int) -> bool:
        """
        Decrease spender's allowance.

        Raises:
            TokenError: If the decrease exceeds the current allowance
        """
        self._validate_amount(subtracted_value)
        current = self.allowance(owner, spender)
        if subtracted_value > current:
            raise TokenError("ERC20: decreased allowance below zero")
        return self.approve(owner, spender, current - subtracted_value)

    # ==================== Minting & Burning ====================

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (minter role only).

        Args:
            minter: Address calling mint (must hold the minter role)
            to: Recipient of minted tokens
            amount: Amount to mint

        Returns:
            True if successful

        Raises:
            AuthorizationError: If minter lacks the minter role
            TokenError: If the ledger is paused or the input is invalid
        """
        self._require_not_paused()
        self.access_control.require_role(Role.MINTER, minter)

        to_norm = normalize_address(to)
        self._validate_address(to_norm, "mint to")
        self._validate_amount(amount)
        if self.total_supply + amount > self.UINT256_MAX:
            raise TokenError("ERC20: mint would overflow total supply")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit_transfer(ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )
        return True

    def burn(self, holder: str, amount: int) -> bool:
        """
        Burn tokens from the caller's own balance (burner role only).

        Raises:
            AuthorizationError: If holder lacks the burner role
            TokenError: If the burn exceeds the balance
        """
        self._require_not_paused()
        self.access_control.require_role(Role.BURNER, holder)
        holder_norm = normalize_address(holder)
        self._validate_amount(amount)

        balance = self.balances.get(holder_norm, 0)
        if balance < amount:
            raise TokenError(f"ERC20: burn amount exceeds balance ({amount} > {balance})")

        self.balances[holder_norm] = balance - amount
        self.total_supply -= amount
        self._emit_transfer(holder_norm, ZERO_ADDRESS, amount)

        logger.info(
            "ERC20 burn",
            extra={
                "event": "erc20.burn",
                "token": self.symbol,
                "from": holder_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )
        return True

    # ==================== Admin Functions ====================

    def add_minter(self, caller: str, account: str) -> bool:
        self.access_control.grant_role(caller, Role.MINTER, account)
        return True

    def remove_minter(self, caller: str, account: str) -> bool:
        self.access_control.revoke_role(caller, Role.MINTER, account)
        return True

    def add_burner(self, caller: str, account: str) -> bool:
        self.access_control.grant_role(caller, Role.BURNER, account)
        return True

    def remove_burner(self, caller: str, account: str) -> bool:
        self.access_control.revoke_role(caller, Role.BURNER, account)
        return True

    def pause(self, caller: str) -> bool:
        """Pause transfers, mints and burns (owner only)."""
        self.access_control.require_owner(caller)
        self.paused = True
        return True

    def unpause(self, caller: str) -> bool:
        """Unpause the ledger (owner only)."""
        self.access_control.require_owner(caller)
        self.paused = False
        return True

    def transfer_ownership(self, caller: str, new_owner: str) -> bool:
        """Transfer ownership (owner only). Roles held by the old owner are kept."""
        self.access_control.transfer_ownership(caller, new_owner)
        self.owner = self.access_control.owner
        return True

    # ==================== Helpers ====================

    def _validate_address(self, address: str, action: str) -> None:
        if is_zero_address(address):
            raise TokenError(f"ERC20: {action} the zero address")

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TokenError("ERC20: amount must be an integer")
        if amount < 0:
            raise TokenError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise TokenError("ERC20: amount exceeds uint256")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise TokenError("ERC20: token is paused")

    def _emit_transfer(self, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(event_type="Transfer", from_address=from_addr, to_address=to_addr, value=amount)
        )

    def _emit_approval(self, owner: str, spender: str, amount: int) -> None:
        self.events.append(
            TokenEvent(event_type="Approval", from_address=owner, to_address=spender, value=amount)
        )

    # ==================== Rollback ====================

    def snapshot(self) -> dict[str, Any]:
        """Capture the mutable ledger state for a later ``restore``."""
        return {
            "total_supply": self.total_supply,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "event_count": len(self.events),
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.total_supply = snapshot["total_supply"]
        self.balances = dict(snapshot["balances"])
        self.allowances = {k: dict(v) for k, v in snapshot["allowances"].items()}
        del self.events[snapshot["event_count"]:]

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "roles": {role: sorted(members) for role, members in self.access_control.roles.items()},
            "paused": self.paused,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TevaToken":
        """Deserialize token state from dictionary."""
        token = cls(
            owner=data["owner"],
            name=data.get("name", config.TOKEN_NAME),
            symbol=data.get("symbol", config.TOKEN_SYMBOL),
            decimals=data.get("decimals", config.TOKEN_DECIMALS),
            total_supply=data.get("total_supply", 0),
            address=data.get("address", ""),
            paused=data.get("paused", False),
        )
        token.balances = {k: int(v) for k, v in data.get("balances", {}).items()}
        token.allowances = {
            k: {spender: int(value) for spender, value in v.items()}
            for k, v in data.get("allowances", {}).items()
        }
        if "roles" in data:
            token.access_control.roles = {role: set(members) for role, members in data["roles"].items()}
            for role in Role:
                token.access_control.roles.setdefault(role.value, set())
        return token
